"""
Perspective rectification of fisheye images.

Builds dense remap LUTs (mapx/mapy) that warp a virtual pinhole image grid
into the fisheye image: every virtual pixel defines a ray, the ray is
projected through the distorted fisheye model and the resulting fisheye pixel
is stored in the maps. Rays the model rejects are stored as -1 so that
`cv2.remap` fills them with the border value.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from fisheyecam.api.camera import FisheyeCamera

logger = logging.getLogger(__name__)


@dataclass
class RectifyParams:
    width: int
    height: int
    fx: Optional[float] = None
    fy: Optional[float] = None
    cx: Optional[float] = None
    cy: Optional[float] = None
    rotation: Optional[np.ndarray] = None  # (3,3) virtual frame -> fisheye frame
    border_value: float = 0.0


def default_pinhole(width: int, height: int, fov_deg: float = 90.0) -> Tuple[float, float, float, float]:
    """Square-pixel pinhole with the given horizontal field of view, centered."""
    if not 0.0 < fov_deg < 180.0:
        raise ValueError("fov_deg must be in (0, 180)")
    fx = fy = 0.5 * width / math.tan(math.radians(fov_deg) * 0.5)
    cx = (width - 1) / 2.0
    cy = (height - 1) / 2.0
    return fx, fy, cx, cy


def virtual_rays(params: RectifyParams) -> np.ndarray:
    """Ray directions (H, W, 3) of the virtual pinhole, in the fisheye frame."""
    H, W = int(params.height), int(params.width)
    fx, fy, cx, cy = params.fx, params.fy, params.cx, params.cy
    if fx is None or fy is None or cx is None or cy is None:
        fx, fy, cx, cy = default_pinhole(W, H)

    uu, vv = np.meshgrid(np.arange(W, dtype=np.float64), np.arange(H, dtype=np.float64))
    d = np.stack([(uu - cx) / fx, (vv - cy) / fy, np.ones_like(uu)], axis=-1)
    d /= np.linalg.norm(d, axis=-1, keepdims=True)
    if params.rotation is not None:
        R = np.asarray(params.rotation, dtype=np.float64).reshape(3, 3)
        d = d @ R.T
    return d


def build_perspective_maps(camera: FisheyeCamera, params: RectifyParams) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build rectification remap LUTs.

    Returns
    -------
    mapx, mapy : float32 arrays (H, W), fisheye pixel coordinates (-1 if invalid)
    """
    rays = virtual_rays(params)
    # The fisheye model divides by z: only the forward hemisphere is representable.
    forward = rays[..., 2] > 0.0
    safe = np.where(forward[..., None], rays, np.array([0.0, 0.0, 1.0]))
    uv, valid = camera.project(safe)
    valid &= forward

    mapx = np.where(valid, uv[..., 0], -1.0).astype(np.float32)
    mapy = np.where(valid, uv[..., 1], -1.0).astype(np.float32)
    logger.debug(
        "built %dx%d perspective maps, %d/%d valid",
        params.width,
        params.height,
        int(np.count_nonzero(valid)),
        valid.size,
    )
    return mapx, mapy


def rectify_image(image: np.ndarray, maps: Tuple[np.ndarray, np.ndarray], params: RectifyParams) -> np.ndarray:
    """Apply precomputed maps to a fisheye image (bilinear, constant border)."""
    if image is None:
        raise ValueError("Input image is None")
    import cv2  # type: ignore

    mapx, mapy = maps
    return cv2.remap(
        image,
        mapx,
        mapy,
        interpolation=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=params.border_value,
    )
