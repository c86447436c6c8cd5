"""
Equidistant fisheye projection: camera frame <-> pixels.

Conventions
-----------
- Camera frame: z forward. Points are arrays of shape (..., 3); a single
  point is simply the batch of shape ().
- Pixels: arrays of shape (..., 2); pixel = f * uv + c.
- Jacobians are returned as (..., 2, 3): J[..., i, j] = d pixel_i / d p_j.
- Near the optical axis (radius below `min_norm`) the angular factor
  atan(r)/r is replaced by its limit 1 instead of dividing by r.
"""
from __future__ import annotations

from typing import Optional

import numpy as np

from fisheyecam.core.distortion import CoeffsLike, as_radial_coeffs, distortion, undistortion
from fisheyecam.core.numerics import UNBOUNDED, as_pair, as_points, stable_norm2, unwrap
from fisheyecam.core.solver import DEFAULT_SOLVER, SolverConfig

_FORWARD = np.array([0.0, 0.0, 1.0], dtype=np.float64)


def _normalized_xy(camera_point: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Return (p, 1/z, xy = (x, y)/z, |xy|)."""
    p = as_points(camera_point, 3, "camera_point")
    invz = 1.0 / p[..., 2]
    xy = p[..., :2] * invz[..., None]
    r = stable_norm2(xy[..., 0], xy[..., 1])
    return p, invz, xy, r


def xy_jacobian(invz: np.ndarray, xy: np.ndarray) -> np.ndarray:
    """d(x/z, y/z)/d(x, y, z) as (..., 2, 3)."""
    J = np.zeros(invz.shape + (2, 3), dtype=np.float64)
    J[..., 0, 0] = invz
    J[..., 1, 1] = invz
    J[..., 0, 2] = -xy[..., 0] * invz
    J[..., 1, 2] = -xy[..., 1] * invz
    return J


def project(
    camera_point: np.ndarray,
    focal_length: np.ndarray,
    principal_point: np.ndarray,
    radial_coeffs: Optional[CoeffsLike] = None,
    *,
    min_norm: float = 1e-6,
    max_theta: float = UNBOUNDED,
):
    """
    Project camera-frame points to pixels.

    Without `radial_coeffs` this is the undistorted equidistant model and only
    the pixels are returned. With coefficients it forwards to
    `project_distorted` and returns (pixels, valid).
    """
    if radial_coeffs is not None:
        return project_distorted(
            camera_point, focal_length, principal_point, radial_coeffs, min_norm=min_norm, max_theta=max_theta
        )

    f = as_pair(focal_length, "focal_length")
    c = as_pair(principal_point, "principal_point")
    _p, _invz, xy, r = _normalized_xy(camera_point)

    on_axis = r < min_norm
    r_safe = np.where(on_axis, 1.0, r)
    s = np.where(on_axis, 1.0, np.arctan(r_safe) / r_safe)
    uv = s[..., None] * xy
    return unwrap(f * uv + c)


def project_distorted(
    camera_point: np.ndarray,
    focal_length: np.ndarray,
    principal_point: np.ndarray,
    radial_coeffs: CoeffsLike,
    min_norm: float = 1e-6,
    max_theta: float = UNBOUNDED,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Project with radial distortion applied to the incidence angle.

    Points whose incidence angle exceeds `max_theta` are rejected:
    valid=False and the pixel is zero. Points on the optical axis are always
    valid and see no distortion.
    """
    rc = as_radial_coeffs(radial_coeffs)
    f = as_pair(focal_length, "focal_length")
    c = as_pair(principal_point, "principal_point")
    _p, _invz, xy, r = _normalized_xy(camera_point)

    on_axis = r < min_norm
    r_safe = np.where(on_axis, 1.0, r)
    theta = np.arctan(r)
    valid = on_axis | (theta <= max_theta)

    theta_d = distortion(theta, rc)
    s = np.where(on_axis, 1.0, theta_d / r_safe)
    image_point = f * (s[..., None] * xy) + c
    image_point = np.where(valid[..., None], image_point, 0.0)
    return unwrap(image_point), unwrap(valid)


def project_jac(camera_point: np.ndarray, focal_length: np.ndarray, min_norm: float = 1e-6) -> np.ndarray:
    """
    Jacobian of the undistorted projection w.r.t. the camera point, (..., 2, 3).

    On the optical axis the angular block d(uv)/d(xy) is the identity.
    """
    f = as_pair(focal_length, "focal_length")
    _p, invz, xy, r = _normalized_xy(camera_point)

    on_axis = r < min_norm
    r_safe = np.where(on_axis, 1.0, r)
    invr = 1.0 / r_safe
    s = np.arctan(r_safe) * invr

    J_theta_r = 1.0 / (1.0 + r_safe * r_safe)
    J_s_xy = ((J_theta_r - s) * invr * invr)[..., None] * xy
    eye = np.eye(2, dtype=np.float64)
    J_uv_xy = s[..., None, None] * eye + xy[..., :, None] * J_s_xy[..., None, :]
    J_uv_xy = np.where(on_axis[..., None, None], eye, J_uv_xy)

    J_im_xy = f[..., :, None] * J_uv_xy
    return unwrap(J_im_xy @ xy_jacobian(invz, xy))


def unproject(
    image_point: np.ndarray,
    focal_length: np.ndarray,
    principal_point: np.ndarray,
    radial_coeffs: Optional[CoeffsLike] = None,
    *,
    min_norm: float = 1e-6,
    max_theta: float = UNBOUNDED,
    solver: SolverConfig = DEFAULT_SOLVER,
):
    """
    Pixels -> unit ray directions in the camera frame.

    Without `radial_coeffs` only the directions are returned. With
    coefficients it forwards to `unproject_distorted` and returns
    (directions, valid).
    """
    if radial_coeffs is not None:
        return unproject_distorted(
            image_point,
            focal_length,
            principal_point,
            radial_coeffs,
            min_norm=min_norm,
            max_theta=max_theta,
            solver=solver,
        )

    uv = (as_pair(image_point, "image_point") - as_pair(principal_point, "principal_point")) / as_pair(
        focal_length, "focal_length"
    )
    theta = stable_norm2(uv[..., 0], uv[..., 1])

    on_axis = theta < min_norm
    t_safe = np.where(on_axis, 1.0, theta)
    xy = (np.sin(t_safe) / t_safe)[..., None] * uv
    direction = np.concatenate([xy, np.cos(theta)[..., None]], axis=-1)
    return unwrap(np.where(on_axis[..., None], _FORWARD, direction))


def unproject_distorted(
    image_point: np.ndarray,
    focal_length: np.ndarray,
    principal_point: np.ndarray,
    radial_coeffs: CoeffsLike,
    min_norm: float = 1e-6,
    max_theta: float = UNBOUNDED,
    solver: SolverConfig = DEFAULT_SOLVER,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Pixels -> unit rays, inverting the radial distortion with Newton's method.

    Where the inversion does not converge (or leaves [0, max_theta]) the
    direction is zero and valid=False.
    """
    rc = as_radial_coeffs(radial_coeffs)
    uv = (as_pair(image_point, "image_point") - as_pair(principal_point, "principal_point")) / as_pair(
        focal_length, "focal_length"
    )
    theta_d = stable_norm2(uv[..., 0], uv[..., 1])

    on_axis = theta_d < min_norm
    theta, converged = undistortion(theta_d, rc, max_theta=max_theta, solver=solver)
    theta = np.asarray(theta, dtype=np.float64)
    valid = on_axis | np.asarray(converged, dtype=bool)

    td_safe = np.where(on_axis, 1.0, theta_d)
    # Non-converged iterates may be non-finite; they are masked out below.
    with np.errstate(invalid="ignore", over="ignore"):
        xy = (np.sin(theta) / td_safe)[..., None] * uv
        direction = np.concatenate([xy, np.cos(theta)[..., None]], axis=-1)
    direction = np.where(valid[..., None], direction, 0.0)
    direction = np.where(on_axis[..., None], _FORWARD, direction)
    return unwrap(direction), unwrap(valid)
