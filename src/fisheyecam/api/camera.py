from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from fisheyecam.core.distortion import monotonic_max_theta
from fisheyecam.core.hessian import project_hess
from fisheyecam.core.numerics import UNBOUNDED, as_pair, as_points
from fisheyecam.core.projection import project, project_distorted, project_jac, unproject, unproject_distorted
from fisheyecam.core.solver import DEFAULT_SOLVER, SolverConfig
from fisheyecam.intrinsics import FisheyeIntrinsics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FisheyeCamera:
    """
    Batch front-end for one calibrated fisheye camera.

    Binds intrinsics and numeric settings to the pure projection functions.
    Inputs can have any leading shape: points (..., 3), pixels (..., 2).

    `max_theta` bounds the incidence angle accepted by the distorted model. It
    defaults to the monotonic bound of the distortion polynomial (see
    `from_intrinsics`).
    """

    intrinsics: FisheyeIntrinsics
    min_norm: float = 1e-6
    max_theta: float = UNBOUNDED
    solver: SolverConfig = DEFAULT_SOLVER

    @classmethod
    def from_intrinsics(
        cls,
        intrinsics: FisheyeIntrinsics,
        *,
        min_norm: float = 1e-6,
        solver: SolverConfig = DEFAULT_SOLVER,
        use_monotonic_bound: bool = True,
    ) -> "FisheyeCamera":
        max_theta = UNBOUNDED
        if use_monotonic_bound and intrinsics.radial_coeffs is not None:
            max_theta = monotonic_max_theta(intrinsics.radial_coeffs, solver=solver)
            if max_theta == UNBOUNDED:
                logger.debug("distortion is monotonic for all angles")
            else:
                logger.debug("monotonic bound max_theta=%.6f rad (%.2f deg)", max_theta, math.degrees(max_theta))
        return cls(intrinsics=intrinsics, min_norm=float(min_norm), max_theta=float(max_theta), solver=solver)

    @property
    def has_distortion(self) -> bool:
        return self.intrinsics.radial_coeffs is not None

    def field_of_view_rad(self) -> float:
        """Full angular field of view over which the model is invertible."""
        return 2.0 * min(self.max_theta, math.pi)

    def project(self, points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Camera-frame points (..., 3) -> (pixels (..., 2), valid (...))."""
        points = as_points(points, 3, "points")
        f = self.intrinsics.focal_length
        c = self.intrinsics.principal_point
        if self.has_distortion:
            uv, valid = project_distorted(
                points, f, c, self.intrinsics.radial_coeffs, min_norm=self.min_norm, max_theta=self.max_theta
            )
        else:
            uv = project(points, f, c, min_norm=self.min_norm)
            valid = np.ones(points.shape[:-1], dtype=bool)
        return np.asarray(uv), np.asarray(valid, dtype=bool)

    def unproject(self, pixels: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Pixels (..., 2) -> (unit rays (..., 3), valid (...))."""
        pixels = as_pair(pixels, "pixels")
        f = self.intrinsics.focal_length
        c = self.intrinsics.principal_point
        if self.has_distortion:
            rays, valid = unproject_distorted(
                pixels,
                f,
                c,
                self.intrinsics.radial_coeffs,
                min_norm=self.min_norm,
                max_theta=self.max_theta,
                solver=self.solver,
            )
        else:
            rays = unproject(pixels, f, c, min_norm=self.min_norm)
            valid = np.ones(pixels.shape[:-1], dtype=bool)
        return np.asarray(rays), np.asarray(valid, dtype=bool)

    def project_jac(self, points: np.ndarray) -> np.ndarray:
        """Undistorted projection Jacobian, (..., 2, 3)."""
        return np.asarray(project_jac(points, self.intrinsics.focal_length, min_norm=self.min_norm))

    def project_hess(self, points: np.ndarray) -> np.ndarray:
        """Undistorted projection Hessian, (..., 2, 3, 3)."""
        return np.asarray(project_hess(points, self.intrinsics.focal_length, min_norm=self.min_norm))

    def in_image(self, pixels: np.ndarray) -> np.ndarray:
        """Mask of pixels inside [0, W-1] x [0, H-1]."""
        pixels = as_pair(pixels, "pixels")
        w = self.intrinsics.image.width_px
        h = self.intrinsics.image.height_px
        u = pixels[..., 0]
        v = pixels[..., 1]
        return (u >= 0.0) & (u <= w - 1) & (v >= 0.0) & (v <= h - 1)
