"""
Second derivatives of the undistorted fisheye projection.

Two derivations of the same tensor live here:

- `project_hess`: radial derivatives of s(r) = atan(r)/r are precomputed and
  contracted with the Jacobian/Hessian of xy = (x, y)/z.
- `project_hess_reference`: differentiates the `project_jac` computation term
  by term. It is slower and only serves as an independent oracle for tests.

Both return (..., 2, 3, 3): H[..., i] = d^2 pixel_i / d p^2.
"""
from __future__ import annotations

import numpy as np

from fisheyecam.core.numerics import as_pair, as_points, stable_norm2, unwrap
from fisheyecam.core.projection import xy_jacobian

_EYE2 = np.eye(2, dtype=np.float64)


def xy_hessian(camera_point: np.ndarray, invz: np.ndarray) -> np.ndarray:
    """d^2(x/z, y/z)/d(x, y, z)^2 as (..., 2, 3, 3)."""
    invz2 = invz * invz
    invz3 = invz2 * invz
    H = np.zeros(invz.shape + (2, 3, 3), dtype=np.float64)
    H[..., 0, 0, 2] = -invz2
    H[..., 0, 2, 0] = -invz2
    H[..., 0, 2, 2] = 2.0 * camera_point[..., 0] * invz3
    H[..., 1, 1, 2] = -invz2
    H[..., 1, 2, 1] = -invz2
    H[..., 1, 2, 2] = 2.0 * camera_point[..., 1] * invz3
    return H


def project_hess(camera_point: np.ndarray, focal_length: np.ndarray, min_norm: float = 1e-6) -> np.ndarray:
    """
    Hessian of the undistorted projection w.r.t. the camera point.

    Returns (..., 2, 3, 3) with H[..., i, a, b] = d^2 pixel_i / d p_a d p_b.
    On the optical axis the radial terms take their limits s=1, s'=s''=0.
    """
    f = as_pair(focal_length, "focal_length")
    p = as_points(camera_point, 3, "camera_point")
    invz = 1.0 / p[..., 2]
    xy = p[..., :2] * invz[..., None]
    r = stable_norm2(xy[..., 0], xy[..., 1])

    # s(r) and its radial derivatives; the on-axis limit has s=1, s'=s''=0.
    off_axis = ~(r < min_norm)
    r_safe = np.where(off_axis, r, 1.0)
    invr = 1.0 / r_safe
    s_raw = np.arctan(r_safe) * invr
    Jtr = 1.0 / (1.0 + r_safe * r_safe)  # d theta / d r
    s1_raw = (Jtr - s_raw) * invr
    dJtr = -2.0 * r_safe * Jtr * Jtr
    s2_raw = (dJtr - s1_raw - (Jtr - s_raw) * invr) * invr

    s = np.where(off_axis, s_raw, 1.0)
    s1 = np.where(off_axis, s1_raw, 0.0)
    s2 = np.where(off_axis, s2_raw, 0.0)

    # ds/dxy and d2s/dxy2
    Js = (s1 * invr)[..., None] * xy
    invr2 = invr * invr
    outer = xy[..., :, None] * xy[..., None, :]
    c1 = (s2 * invr2)[..., None, None]
    c2 = (s1 * invr)[..., None, None]
    Hs = c1 * outer + c2 * (_EYE2 - outer * invr2[..., None, None])

    # uv = s * xy in xy-space
    Juv = s[..., None, None] * _EYE2 + xy[..., :, None] * Js[..., None, :]
    Huv = (
        np.einsum("...k,ij->...ijk", Js, _EYE2)
        + np.einsum("...j,ik->...ijk", Js, _EYE2)
        + np.einsum("...i,...jk->...ijk", xy, Hs)
    )

    Jxy = xy_jacobian(invz, xy)
    Hxy = xy_hessian(p, invz)

    H = np.einsum("...ijk,...ja,...kb->...iab", Huv, Jxy, Jxy) + np.einsum("...ij,...jab->...iab", Juv, Hxy)
    return unwrap(f[..., :, None, None] * H)


def project_hess_reference(camera_point: np.ndarray, focal_length: np.ndarray, min_norm: float = 1e-6) -> np.ndarray:
    """
    Reference Hessian obtained by differentiating `project_jac` symbolically.

    Only used to cross-check `project_hess`; prefer `project_hess` elsewhere.
    """
    f = as_pair(focal_length, "focal_length")
    p = as_points(camera_point, 3, "camera_point")
    invz = 1.0 / p[..., 2]
    invz2 = invz * invz
    xy = p[..., :2] * invz[..., None]
    x_ = xy[..., 0]
    y_ = xy[..., 1]
    r = stable_norm2(x_, y_)

    on_axis = r < min_norm
    r_safe = np.where(on_axis, 1.0, r)
    invr = 1.0 / r_safe
    invr2 = invr * invr
    theta = np.arctan(r_safe)
    s = theta * invr

    J_theta_r = 1.0 / (1.0 + r_safe * r_safe)
    tmp = (J_theta_r - s) * invr2
    xy_outer = xy[..., :, None] * xy[..., None, :]
    J_uv_xy = s[..., None, None] * _EYE2 + tmp[..., None, None] * xy_outer

    d_r_d_xy = xy * invr[..., None]
    d_s_d_r = J_theta_r * invr - theta * invr2
    d_tmp_d_r = invr2 * (-2.0 * J_theta_r * J_theta_r * r_safe - 3.0 * d_s_d_r)
    d_s_d_xy = d_s_d_r[..., None] * d_r_d_xy
    d_tmp_d_xy = d_tmp_d_r[..., None] * d_r_d_xy

    # d(xy xy^T)/dx' and d(xy xy^T)/dy'
    d_outer_d_x = np.zeros(x_.shape + (2, 2), dtype=np.float64)
    d_outer_d_x[..., 0, 0] = 2.0 * x_
    d_outer_d_x[..., 0, 1] = y_
    d_outer_d_x[..., 1, 0] = y_
    d_outer_d_y = np.zeros(x_.shape + (2, 2), dtype=np.float64)
    d_outer_d_y[..., 0, 1] = x_
    d_outer_d_y[..., 1, 0] = x_
    d_outer_d_y[..., 1, 1] = 2.0 * y_

    d_J_uv_xy_d_x = (
        d_s_d_xy[..., 0, None, None] * _EYE2
        + d_tmp_d_xy[..., 0, None, None] * xy_outer
        + tmp[..., None, None] * d_outer_d_x
    )
    d_J_uv_xy_d_y = (
        d_s_d_xy[..., 1, None, None] * _EYE2
        + d_tmp_d_xy[..., 1, None, None] * xy_outer
        + tmp[..., None, None] * d_outer_d_y
    )

    # Image center: J_uv_xy = I and its derivatives vanish.
    axis = on_axis[..., None, None]
    J_uv_xy = np.where(axis, _EYE2, J_uv_xy)
    d_J_uv_xy_d_x = np.where(axis, 0.0, d_J_uv_xy_d_x)
    d_J_uv_xy_d_y = np.where(axis, 0.0, d_J_uv_xy_d_y)

    f_rows = f[..., :, None]
    J_im_xy = f_rows * J_uv_xy
    d_J_im_xy_d_x = f_rows * d_J_uv_xy_d_x
    d_J_im_xy_d_y = f_rows * d_J_uv_xy_d_y

    def d_J_d_cam(d_J_im: np.ndarray, col: int) -> np.ndarray:
        last = -np.einsum("...ij,...j->...i", d_J_im, xy) - J_im_xy[..., :, col]
        return invz2[..., None, None] * np.concatenate([d_J_im, last[..., :, None]], axis=-1)

    d_J_d_cam_x = d_J_d_cam(d_J_im_xy_d_x, 0)
    d_J_d_cam_y = d_J_d_cam(d_J_im_xy_d_y, 1)

    # dJ/dz through xy equals -(x' dJ/dx + y' dJ/dy) up to the direct 1/z terms.
    d_J_xy_cam_d_z_direct = np.zeros(x_.shape + (2, 3), dtype=np.float64)
    d_J_xy_cam_d_z_direct[..., 0, 0] = -invz2
    d_J_xy_cam_d_z_direct[..., 1, 1] = -invz2
    d_J_xy_cam_d_z_direct[..., 0, 2] = x_ * invz2
    d_J_xy_cam_d_z_direct[..., 1, 2] = y_ * invz2
    d_J_d_cam_z = (
        -d_J_d_cam_x * x_[..., None, None]
        - d_J_d_cam_y * y_[..., None, None]
        + J_im_xy @ d_J_xy_cam_d_z_direct
    )

    # H[..., i, a, b] = d J[..., i, a] / d p_b
    H = np.stack([d_J_d_cam_x, d_J_d_cam_y, d_J_d_cam_z], axis=-1)
    return unwrap(H)
