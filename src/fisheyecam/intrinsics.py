from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import numpy as np

from fisheyecam.core.distortion import RadialCoeffs

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "fisheyecam.intrinsics.v0"


class IntrinsicsValidationError(ValueError):
    pass


@dataclass(frozen=True)
class ImageSize:
    width_px: int
    height_px: int


@dataclass(frozen=True)
class FisheyeIntrinsics:
    schema_version: str
    image: ImageSize
    focal_length_px: tuple[float, float]
    principal_point_px: tuple[float, float]
    radial_coeffs: Optional[RadialCoeffs] = None

    @classmethod
    def from_opencv(
        cls,
        K: np.ndarray,
        D: Optional[np.ndarray],
        width_px: int,
        height_px: int,
    ) -> "FisheyeIntrinsics":
        """
        Build from the OpenCV fisheye calibration convention:
        K = [[fx, 0, cx], [0, fy, cy], [0, 0, 1]], D = (k1, k2, k3, k4).
        """
        K = np.asarray(K, dtype=np.float64).reshape(3, 3)
        data: dict[str, Any] = {
            "schema_version": SCHEMA_VERSION,
            "image": {"width_px": int(width_px), "height_px": int(height_px)},
            "focal_length_px": [float(K[0, 0]), float(K[1, 1])],
            "principal_point_px": [float(K[0, 2]), float(K[1, 2])],
        }
        if D is not None:
            data["radial_coeffs"] = np.asarray(D, dtype=np.float64).reshape(-1).tolist()
        return parse_intrinsics(data)

    def camera_matrix(self) -> np.ndarray:
        fx, fy = self.focal_length_px
        cx, cy = self.principal_point_px
        return np.array([[fx, 0.0, cx], [0.0, fy, cy], [0.0, 0.0, 1.0]], dtype=np.float64)

    @property
    def focal_length(self) -> np.ndarray:
        return np.asarray(self.focal_length_px, dtype=np.float64)

    @property
    def principal_point(self) -> np.ndarray:
        return np.asarray(self.principal_point_px, dtype=np.float64)


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise IntrinsicsValidationError(msg)


def _finite_pair(raw: Any, name: str) -> tuple[float, float]:
    _require(isinstance(raw, (list, tuple)) and len(raw) == 2, f"{name} must be [a,b]")
    a, b = float(raw[0]), float(raw[1])
    _require(math.isfinite(a) and math.isfinite(b), f"{name} values must be finite")
    return a, b


def load_intrinsics(path: Path) -> FisheyeIntrinsics:
    path = Path(path)
    logger.debug("loading fisheye intrinsics from %s", path)
    data = json.loads(path.read_text(encoding="utf-8"))
    return parse_intrinsics(data)


def parse_intrinsics(data: dict[str, Any]) -> FisheyeIntrinsics:
    schema_version = data.get("schema_version")
    _require(schema_version == SCHEMA_VERSION, f"schema_version must be {SCHEMA_VERSION}")

    image = data.get("image", {})
    w_raw = image.get("width_px")
    h_raw = image.get("height_px")
    _require(w_raw is not None and h_raw is not None, "image.width_px and image.height_px are required")
    w = int(w_raw)
    h = int(h_raw)
    _require(w > 0 and h > 0, "image.width_px and image.height_px must be > 0")

    f_raw = data.get("focal_length_px")
    _require(f_raw is not None, "focal_length_px is required")
    fx, fy = _finite_pair(f_raw, "focal_length_px")
    _require(fx != 0.0 and fy != 0.0, "focal_length_px values must be non-zero")

    c_raw = data.get("principal_point_px")
    _require(c_raw is not None, "principal_point_px is required")
    cx, cy = _finite_pair(c_raw, "principal_point_px")

    radial = None
    k_raw = data.get("radial_coeffs")
    if k_raw is not None:
        _require(
            isinstance(k_raw, (list, tuple)) and len(k_raw) == 4,
            "radial_coeffs must be [k1,k2,k3,k4]",
        )
        ks = [float(k) for k in k_raw]
        _require(all(math.isfinite(k) for k in ks), "radial_coeffs values must be finite")
        radial = RadialCoeffs(*ks)

    return FisheyeIntrinsics(
        schema_version=schema_version,
        image=ImageSize(width_px=w, height_px=h),
        focal_length_px=(fx, fy),
        principal_point_px=(cx, cy),
        radial_coeffs=radial,
    )


def intrinsics_to_dict(intr: FisheyeIntrinsics) -> dict[str, Any]:
    out: dict[str, Any] = {
        "schema_version": intr.schema_version,
        "image": {"width_px": int(intr.image.width_px), "height_px": int(intr.image.height_px)},
        "focal_length_px": [float(v) for v in intr.focal_length_px],
        "principal_point_px": [float(v) for v in intr.principal_point_px],
    }
    if intr.radial_coeffs is not None:
        out["radial_coeffs"] = list(intr.radial_coeffs.as_tuple())
    return out


def save_intrinsics(path: Path, intr: FisheyeIntrinsics) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(intrinsics_to_dict(intr), indent=2, sort_keys=True), encoding="utf-8")
    logger.debug("wrote fisheye intrinsics to %s", path)
    return path
