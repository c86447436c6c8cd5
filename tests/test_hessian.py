import numpy as np

from fisheyecam.core.hessian import project_hess, project_hess_reference
from fisheyecam.core.projection import project_jac

F = np.array([500.0, 480.0])


def _points(rng, n):
    p = np.stack(
        [rng.uniform(-2.0, 2.0, size=n), rng.uniform(-2.0, 2.0, size=n), rng.uniform(0.5, 3.0, size=n)],
        axis=-1,
    )
    r = np.hypot(p[:, 0], p[:, 1]) / p[:, 2]
    return p[r > 0.05]


def _fd_hessian(p, h=1e-5):
    slices = []
    for b in range(3):
        e = np.zeros(3)
        e[b] = h
        slices.append((project_jac(p + e, F) - project_jac(p - e, F)) / (2.0 * h))
    return np.stack(slices, axis=-1)  # (..., 2, 3, 3)


def test_production_matches_reference():
    rng = np.random.default_rng(0)
    p = _points(rng, 300)
    H = project_hess(p, F)
    H_ref = project_hess_reference(p, F)
    assert H.shape == (p.shape[0], 2, 3, 3)
    np.testing.assert_allclose(H, H_ref, rtol=1e-7, atol=1e-7)


def test_hessians_match_finite_differences():
    rng = np.random.default_rng(1)
    p = _points(rng, 100)
    H_fd = _fd_hessian(p)
    np.testing.assert_allclose(project_hess(p, F), H_fd, rtol=1e-5, atol=1e-3)
    np.testing.assert_allclose(project_hess_reference(p, F), H_fd, rtol=1e-5, atol=1e-3)


def test_hessian_is_symmetric():
    rng = np.random.default_rng(2)
    H = project_hess(_points(rng, 50), F)
    assert np.allclose(H, np.swapaxes(H, -1, -2), atol=1e-9)


def test_on_axis_only_depth_curvature_remains():
    z = 2.0
    expected = np.zeros((2, 3, 3))
    expected[0, 0, 2] = expected[0, 2, 0] = -F[0] / z**2
    expected[1, 1, 2] = expected[1, 2, 1] = -F[1] / z**2
    for fn in (project_hess, project_hess_reference):
        H = fn([0.0, 0.0, z], F)
        assert H.shape == (2, 3, 3)
        assert np.allclose(H, expected, atol=1e-12)


def test_single_point_matches_batch():
    rng = np.random.default_rng(3)
    p = _points(rng, 8)
    batch = project_hess(p, F)
    for i in range(p.shape[0]):
        assert np.allclose(project_hess(p[i], F), batch[i], rtol=1e-12, atol=1e-9)
