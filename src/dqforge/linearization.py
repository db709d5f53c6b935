from __future__ import annotations

from dataclasses import dataclass
import logging

import numpy as np
import scipy.linalg as la

from .contract import CallFlag, DeviceModel
from .errors import DomainError

logger = logging.getLogger(__name__)

REL_STEP = 1e-6


@dataclass(frozen=True)
class LinearModel:
    A: np.ndarray
    B: np.ndarray
    C: np.ndarray
    D: np.ndarray


def _column_steps(v: np.ndarray) -> np.ndarray:
    return REL_STEP * np.maximum(1.0, np.abs(v))


def linearize(model: DeviceModel, x, u) -> LinearModel:
    """
    Central-difference Jacobians of f and g about (x, u).

    Step per column is 1e-6 relative to the entry, at least 1e-6 absolute.
    """
    x = np.asarray(x, dtype=float)
    u = np.asarray(u, dtype=float)

    def f(xx, uu):
        return np.asarray(model.state_equation(xx, uu, CallFlag.DERIVATIVE), dtype=float)

    def g(xx, uu):
        return np.asarray(model.state_equation(xx, uu, CallFlag.OUTPUT), dtype=float)

    n, m = len(x), len(u)
    p = len(g(x, u))
    A, C = np.zeros((n, n)), np.zeros((p, n))
    B, D = np.zeros((n, m)), np.zeros((p, m))

    hx = _column_steps(x)
    for j in range(n):
        dx = np.zeros(n)
        dx[j] = hx[j]
        A[:, j] = (f(x + dx, u) - f(x - dx, u)) / (2.0 * hx[j])
        C[:, j] = (g(x + dx, u) - g(x - dx, u)) / (2.0 * hx[j])

    hu = _column_steps(u)
    for j in range(m):
        du = np.zeros(m)
        du[j] = hu[j]
        B[:, j] = (f(x, u + du) - f(x, u - du)) / (2.0 * hu[j])
        D[:, j] = (g(x, u + du) - g(x, u - du)) / (2.0 * hu[j])

    return LinearModel(A=A, B=B, C=C, D=D)


def trapezoidal_operator(A: np.ndarray, ts: float) -> np.ndarray:
    """W = (I - Ts/2 A)^-1. Raises DomainError when the operator is singular."""
    n = A.shape[0]
    M = np.eye(n) - ts / 2.0 * A

    # singular relative to the size of its two terms, not to M itself
    scale = max(1.0, ts / 2.0 * la.norm(A, 2))
    sv = la.svdvals(M)
    if sv.min() <= n * np.finfo(float).eps * scale:
        raise DomainError(f"I - Ts/2*A is singular (Ts={ts}, sigma_min={sv.min():.3g})")

    try:
        W = la.inv(M)
    except la.LinAlgError as exc:
        raise DomainError(f"I - Ts/2*A is singular (Ts={ts})") from exc

    cond = sv.max() / sv.min()
    if cond > 1e8:
        logger.warning("Trapezoidal operator is ill-conditioned (cond=%.3g, Ts=%g)", cond, ts)
    return W
