from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image


def load_image(path: str | Path, gray: bool = False) -> np.ndarray:
    """
    Load an image as uint8, (H,W) if `gray` else (H,W,3) RGB.

    Primary backend is OpenCV (if installed). Pillow is used as a fallback for
    OpenCV builds that lack a codec.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Missing {p}")
    try:
        import cv2  # type: ignore

        img = cv2.imread(str(p), cv2.IMREAD_GRAYSCALE if gray else cv2.IMREAD_COLOR)
        if img is not None:
            if img.dtype != np.uint8:
                img = np.clip(img, 0, 255).astype(np.uint8)
            if not gray:
                img = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
            return img
    except ImportError:
        pass

    with Image.open(p) as im:
        im = im.convert("L" if gray else "RGB")
        arr = np.asarray(im, dtype=np.uint8)
    return arr


def save_image(path: str | Path, arr: np.ndarray) -> Path:
    """Write a uint8 (H,W) grayscale or (H,W,3) RGB array."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    arr = np.asarray(arr)
    if arr.dtype != np.uint8:
        arr = np.clip(arr, 0, 255).astype(np.uint8)
    if not (arr.ndim == 2 or (arr.ndim == 3 and arr.shape[2] == 3)):
        raise ValueError("image must have shape (H,W) or (H,W,3)")
    img = Image.fromarray(arr)
    if p.suffix.lower() == ".webp":
        img.save(p, lossless=True)
    else:
        img.save(p)
    return p
