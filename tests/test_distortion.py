import math

import numpy as np
import pytest

from fisheyecam.core.distortion import (
    RadialCoeffs,
    distortion,
    distortion_jac,
    monotonic_max_theta,
    undistortion,
)
from fisheyecam.core.numerics import UNBOUNDED
from fisheyecam.core.solver import SolverConfig

# Mildly non-monotone higher-order terms, typical of a ~180 deg lens calibration.
COEFFS = (0.05, -0.01, 0.002, -0.0005)


def test_distortion_matches_polynomial():
    k1, k2, k3, k4 = COEFFS
    theta = 0.7
    t2 = theta * theta
    expected = theta * (1.0 + k1 * t2 + k2 * t2**2 + k3 * t2**3 + k4 * t2**4)
    assert math.isclose(distortion(theta, COEFFS), expected, rel_tol=1e-14)


def test_zero_coeffs_is_identity():
    theta = np.linspace(0.0, 3.0, 31)
    assert np.allclose(distortion(theta, (0.0, 0.0, 0.0, 0.0)), theta, atol=0.0)
    assert np.allclose(distortion_jac(theta, RadialCoeffs()), 1.0, atol=0.0)


def test_distortion_jac_matches_central_differences():
    theta = np.linspace(0.05, 1.5, 40)
    h = 1e-6
    fd = (distortion(theta + h, COEFFS) - distortion(theta - h, COEFFS)) / (2.0 * h)
    assert np.max(np.abs(distortion_jac(theta, COEFFS) - fd)) < 1e-7


def test_undistortion_roundtrip():
    bound = monotonic_max_theta(COEFFS)
    theta = np.linspace(0.0, 0.95 * min(bound, 1.5), 200)

    theta_rt, converged = undistortion(distortion(theta, COEFFS), COEFFS)
    assert converged.all()
    assert np.max(np.abs(theta_rt - theta)) < 1e-5

    theta_d = distortion(theta, COEFFS)
    theta_u, converged = undistortion(theta_d, COEFFS, max_theta=bound)
    assert converged.all()
    assert np.max(np.abs(distortion(theta_u, COEFFS) - theta_d)) < 1e-5


def test_undistortion_scalar_returns_scalars():
    theta, converged = undistortion(0.3, COEFFS)
    assert np.ndim(theta) == 0
    assert bool(converged)
    assert abs(distortion(theta, COEFFS) - 0.3) < 1e-6


def test_undistortion_rejects_angles_above_max_theta():
    theta, converged = undistortion(1.0, (0.0, 0.0, 0.0, 0.0), max_theta=0.5)
    assert not bool(converged)


def test_undistortion_reports_exhausted_budget():
    _theta, converged = undistortion(2.0, (0.1, 0.05, 0.01, 0.005), solver=SolverConfig(n_iter=1))
    assert not bool(converged)


def test_undistortion_keeps_batch_shape():
    theta_d = np.full((3, 4), 0.4)
    theta, converged = undistortion(theta_d, COEFFS)
    assert theta.shape == (3, 4)
    assert converged.shape == (3, 4)
    assert converged.all()


def test_monotonic_max_theta_unbounded_without_distortion():
    assert monotonic_max_theta((0.0, 0.0, 0.0, 0.0)) == UNBOUNDED
    # All positive coefficients keep the derivative positive.
    assert monotonic_max_theta((0.1, 0.05, 0.01, 0.005)) == UNBOUNDED


def test_monotonic_max_theta_linear_root():
    # 1 + 3 k1 x = 0 -> x = 2/3
    assert math.isclose(monotonic_max_theta((-0.5, 0.0, 0.0, 0.0)), math.sqrt(2.0 / 3.0), rel_tol=1e-9)


def test_monotonic_max_theta_quadratic_root():
    # 1 + 5 k2 x^2 = 0 with k2 = -0.2 -> x = 1
    assert math.isclose(monotonic_max_theta((0.0, -0.2, 0.0, 0.0)), 1.0, rel_tol=1e-9)


def test_monotonic_max_theta_is_where_derivative_vanishes():
    coeffs = (-0.1, 0.02, -0.03, 0.001)
    bound = monotonic_max_theta(coeffs)
    assert 0.0 < bound < UNBOUNDED
    assert abs(distortion_jac(bound, coeffs)) < 1e-6
    below = np.linspace(0.0, bound * 0.999, 100)
    assert (distortion_jac(below, coeffs) > 0.0).all()


def test_radial_coeffs_positional_and_named():
    rc = RadialCoeffs.from_sequence([0.1, 0.2, 0.3, 0.4])
    assert rc.as_tuple() == (0.1, 0.2, 0.3, 0.4)
    assert rc.k3 == 0.3
    with pytest.raises(ValueError):
        RadialCoeffs.from_sequence([0.1, 0.2, 0.3])


def test_radial_coeffs_methods_match_functions():
    rc = RadialCoeffs(*COEFFS)
    theta = np.linspace(0.0, 1.2, 7)
    assert np.array_equal(rc.distort(theta), distortion(theta, COEFFS))
    back, ok = rc.undistort(rc.distort(theta))
    assert ok.all()
    assert np.allclose(back, theta, atol=1e-6)
    assert rc.max_theta() == monotonic_max_theta(COEFFS)


def test_monotonic_max_theta_unbounded_for_near_tangent_derivative():
    # min over x = theta^2 of 1 + 3 k1 x + 5 k2 x^2 is 5e-7: never zero.
    k2 = 0.1
    k1 = -math.sqrt((1.0 - 5e-7) * 20.0 * k2 / 9.0)
    assert monotonic_max_theta((k1, k2, 0.0, 0.0)) == UNBOUNDED
    theta = np.linspace(0.0, 3.0, 301)
    assert (distortion_jac(theta, (k1, k2, 0.0, 0.0)) > 0.0).all()
