from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from fisheyecam.core.numerics import UNBOUNDED, eval_poly_horner, unwrap
from fisheyecam.core.solver import DEFAULT_SOLVER, SolverConfig, newton, poly_minimal_positive


@dataclass(frozen=True)
class RadialCoeffs:
    """
    Fisheye radial distortion on the incidence angle theta (OpenCV fisheye naming):

      theta_d = theta * (1 + k1 theta^2 + k2 theta^4 + k3 theta^6 + k4 theta^8)

    Positional order (k1, k2, k3, k4) is the order used in calibration files.
    """

    k1: float = 0.0
    k2: float = 0.0
    k3: float = 0.0
    k4: float = 0.0

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "RadialCoeffs":
        vals = [float(v) for v in np.asarray(values, dtype=np.float64).reshape(-1)]
        if len(vals) != 4:
            raise ValueError("radial coefficients must have exactly 4 values (k1, k2, k3, k4)")
        return cls(*vals)

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.k1, self.k2, self.k3, self.k4)

    def distort(self, theta: np.ndarray) -> np.ndarray:
        return distortion(theta, self)

    def undistort(
        self,
        theta_d: np.ndarray,
        max_theta: float = UNBOUNDED,
        solver: SolverConfig = DEFAULT_SOLVER,
    ) -> tuple[np.ndarray, np.ndarray]:
        return undistortion(theta_d, self, max_theta=max_theta, solver=solver)

    def max_theta(self, guess: float = 1.57, solver: SolverConfig = DEFAULT_SOLVER) -> float:
        return monotonic_max_theta(self, guess=guess, solver=solver)


CoeffsLike = Union[RadialCoeffs, Sequence[float]]


def as_radial_coeffs(coeffs: CoeffsLike) -> RadialCoeffs:
    if isinstance(coeffs, RadialCoeffs):
        return coeffs
    return RadialCoeffs.from_sequence(coeffs)


def distortion(theta: np.ndarray, coeffs: CoeffsLike) -> np.ndarray:
    """theta -> theta_d, Horner on theta^2."""
    k1, k2, k3, k4 = as_radial_coeffs(coeffs).as_tuple()
    theta = np.asarray(theta, dtype=np.float64)
    return unwrap(theta * eval_poly_horner((1.0, k1, k2, k3, k4), theta * theta))


def distortion_jac(theta: np.ndarray, coeffs: CoeffsLike) -> np.ndarray:
    """d(theta_d)/d(theta)."""
    k1, k2, k3, k4 = as_radial_coeffs(coeffs).as_tuple()
    theta = np.asarray(theta, dtype=np.float64)
    return unwrap(eval_poly_horner((1.0, 3.0 * k1, 5.0 * k2, 7.0 * k3, 9.0 * k4), theta * theta))


def undistortion(
    theta_d: np.ndarray,
    coeffs: CoeffsLike,
    max_theta: float = UNBOUNDED,
    solver: SolverConfig = DEFAULT_SOLVER,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Invert `distortion` with Newton's method started at theta = theta_d.

    Trial angles above `max_theta` produce a zero residual/jacobian pair, which
    the solver reports as not converged.

    Returns (theta, converged). theta is unspecified where converged is False.
    """
    rc = as_radial_coeffs(coeffs)
    theta_d = np.asarray(theta_d, dtype=np.float64)

    def func(theta: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        inside = theta <= max_theta
        jac = np.where(inside, distortion_jac(theta, rc), 0.0)
        res = np.where(inside, distortion(theta, rc) - theta_d, 0.0)
        return res, jac

    with np.errstate(over="ignore", invalid="ignore"):
        theta, converged = newton(func, theta_d, solver)
    return unwrap(theta), unwrap(converged)


def monotonic_max_theta(coeffs: CoeffsLike, guess: float = 1.57, solver: SolverConfig = DEFAULT_SOLVER) -> float:
    """
    Largest theta such that `distortion` is increasing on [0, theta].

    With x = theta^2 this is the smallest positive root of

      1 + 3 k1 x + 5 k2 x^2 + 7 k3 x^3 + 9 k4 x^4 = 0.

    Returns UNBOUNDED when the derivative never vanishes for theta > 0.
    """
    k1, k2, k3, k4 = as_radial_coeffs(coeffs).as_tuple()
    x = poly_minimal_positive(
        (1.0, 3.0 * k1, 5.0 * k2, 7.0 * k3, 9.0 * k4),
        0.0,
        guess,
        UNBOUNDED,
        solver,
    )
    return UNBOUNDED if x == UNBOUNDED else math.sqrt(x)
