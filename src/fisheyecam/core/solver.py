from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np
from numpy.polynomial import polynomial as P

ResidualFn = Callable[[np.ndarray], "tuple[np.ndarray, np.ndarray]"]


@dataclass(frozen=True)
class SolverConfig:
    """
    Fixed-budget root finding settings.

    n_iter: number of Newton steps (the loop always runs at most this many).
    tol: convergence threshold on |residual|.
    """

    n_iter: int = 20
    tol: float = 1e-6

    def __post_init__(self) -> None:
        if int(self.n_iter) < 1:
            raise ValueError("n_iter must be >= 1")
        if not self.tol > 0.0:
            raise ValueError("tol must be > 0")


DEFAULT_SOLVER = SolverConfig()


def newton(func: ResidualFn, x0: np.ndarray, solver: SolverConfig = DEFAULT_SOLVER) -> tuple[np.ndarray, np.ndarray]:
    """
    Element-wise scalar Newton-Raphson over an array of independent problems.

    `func(x)` returns `(residual, jacobian)` with the shape of `x`. An element
    whose jacobian is exactly zero is considered outside the domain where
    `func` can be trusted: it stops iterating and is reported as not converged.
    This is also how callers signal a domain guard (a zero residual/jacobian
    pair).

    Returns (x, converged). For non-converged elements `x` holds the last
    iterate and must not be used.
    """
    x = np.array(x0, dtype=np.float64, copy=True)
    converged = np.zeros(x.shape, dtype=bool)
    active = np.ones(x.shape, dtype=bool)

    for _ in range(int(solver.n_iter)):
        res, jac = func(x)
        res = np.broadcast_to(np.asarray(res, dtype=np.float64), x.shape)
        jac = np.broadcast_to(np.asarray(jac, dtype=np.float64), x.shape)

        done = active & (jac != 0.0) & (np.abs(res) < solver.tol)
        stuck = active & (jac == 0.0)
        converged |= done
        active &= ~(done | stuck)
        if not active.any():
            break

        step = res / np.where(jac == 0.0, 1.0, jac)
        x = np.where(active, x - step, x)
    else:
        # The budget ran out: the last step has not been checked yet.
        res, jac = func(x)
        res = np.broadcast_to(np.asarray(res, dtype=np.float64), x.shape)
        jac = np.broadcast_to(np.asarray(jac, dtype=np.float64), x.shape)
        converged |= active & (jac != 0.0) & (np.abs(res) < solver.tol)

    return x, converged


def poly_minimal_positive(
    coeffs: Sequence[float],
    lo: float,
    guess: float,
    hi: float,
    solver: SolverConfig = DEFAULT_SOLVER,
) -> float:
    """
    Smallest real root of sum_i c_i x^i strictly inside (lo, hi), or `hi`.

    Candidates are the (near-)real eigenvalues of the companion matrix. Each
    one is polished with Newton steps, and the polished value replaces the
    eigenvalue only if it has a smaller residual: Newton stalls short of
    roots of even multiplicity, which the eigenvalue already locates well.

    A Newton run started at `guess` adds one more candidate, accepted only if
    the polynomial changes sign within sqrt(tol) of it. A small residual
    alone does not make a root.
    """
    c = P.polytrim(np.asarray(coeffs, dtype=np.float64).reshape(-1), tol=0.0)
    if c.size < 2:
        return float(hi)
    dc = P.polyder(c)

    def func(x: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        return P.polyval(x, c), P.polyval(x, dc)

    roots = P.polyroots(c)
    scale = np.maximum(1.0, np.abs(roots))
    real = roots.real[np.abs(roots.imag) <= 1e-6 * scale]

    candidates = []
    if real.size:
        polished, ok = newton(func, real, solver)
        better = ok & (np.abs(P.polyval(polished, c)) <= np.abs(P.polyval(real, c)))
        candidates.extend(np.where(better, polished, real).tolist())

    from_guess, ok = newton(func, np.float64(guess), solver)
    x = float(from_guess)
    if bool(ok) and np.isfinite(x):
        delta = math.sqrt(solver.tol) * max(1.0, abs(x))
        if P.polyval(x - delta, c) * P.polyval(x + delta, c) <= 0.0:
            candidates.append(x)

    inside = [x for x in candidates if np.isfinite(x) and lo < x < hi]
    if not inside:
        return float(hi)
    return float(min(inside))
