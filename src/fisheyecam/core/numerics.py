from __future__ import annotations

from typing import Sequence

import numpy as np
from numpy.polynomial import polynomial as P

# Sentinel for "no bound": every finite angle compares below it.
UNBOUNDED = float(np.finfo(np.float64).max)


def eval_poly_horner(coeffs: Sequence[float], x: np.ndarray) -> np.ndarray:
    """
    Evaluate sum_i c_i x^i with Horner's scheme.

    `coeffs` is ordered by increasing power. `x` may be a scalar or any array.
    """
    c = np.asarray(coeffs, dtype=np.float64).reshape(-1)
    return P.polyval(np.asarray(x, dtype=np.float64), c)


def stable_norm2(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """sqrt(a^2 + b^2) without intermediate overflow/underflow."""
    return np.hypot(np.asarray(a, dtype=np.float64), np.asarray(b, dtype=np.float64))


def as_points(x: np.ndarray, dim: int, name: str) -> np.ndarray:
    x = np.asarray(x, dtype=np.float64)
    if x.ndim == 0 or x.shape[-1] != dim:
        raise ValueError(f"{name} must have shape (..., {dim})")
    return x


def as_pair(x: np.ndarray, name: str) -> np.ndarray:
    x = np.asarray(x, dtype=np.float64)
    if x.ndim == 0 or x.shape[-1] != 2:
        raise ValueError(f"{name} must have shape (..., 2)")
    return x


def unwrap(x: np.ndarray):
    # 0-d arrays become numpy scalars, everything else passes through.
    return x[()]
