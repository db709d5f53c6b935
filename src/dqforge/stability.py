from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Sequence

import numpy as np
import pandas as pd
import scipy.linalg as la

from .contract import DeviceModel
from .errors import InvalidConfiguration
from .linearization import linearize
from .symbolic import state_matrix_function

logger = logging.getLogger(__name__)

DEFAULT_TOL = 1e-6


@dataclass(frozen=True)
class EigenAnalysis:
    eigenvalues: np.ndarray      # rad/s, sorted by descending real part
    eigenvalues_hz: np.ndarray   # eigenvalues / 2pi
    tol: float

    @property
    def dominant(self) -> complex:
        return complex(self.eigenvalues[0])

    @property
    def max_real(self) -> float:
        return float(self.eigenvalues[0].real)

    @property
    def stable(self) -> bool:
        return self.max_real <= self.tol

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "real_rad_s": self.eigenvalues.real,
            "imag_rad_s": self.eigenvalues.imag,
            "real_hz": self.eigenvalues_hz.real,
            "imag_hz": self.eigenvalues_hz.imag,
        })


def eigen_analysis(A: np.ndarray, tol: float = DEFAULT_TOL) -> EigenAnalysis:
    lam = la.eigvals(np.asarray(A, dtype=float))
    order = np.lexsort((lam.imag, -lam.real))
    lam = lam[order]
    return EigenAnalysis(eigenvalues=lam, eigenvalues_hz=lam / (2.0 * math.pi), tol=tol)


def model_eigen_analysis(model: DeviceModel, tol: float = DEFAULT_TOL) -> EigenAnalysis:
    """Linearize at the model's equilibrium and analyse A."""
    eq = model.equilibrium()
    lin = linearize(model, eq.x_e, eq.u_e)
    return eigen_analysis(lin.A, tol)


def scale_range(low: float = 0.1, high: float = 100.0, n: int = 10) -> np.ndarray:
    """n log-spaced multipliers between low and high."""
    return np.logspace(math.log10(low), math.log10(high), n)


@dataclass(frozen=True)
class SweepResult:
    name: str
    values: np.ndarray
    analyses: tuple[EigenAnalysis, ...]

    @property
    def dominant_real(self) -> np.ndarray:
        return np.array([a.max_real for a in self.analyses])

    @property
    def stable(self) -> np.ndarray:
        return np.array([a.stable for a in self.analyses])

    def crossings(self) -> list[int]:
        """Indices i where stability differs between values[i] and values[i+1]."""
        s = self.stable
        return [i for i in range(len(s) - 1) if s[i] != s[i + 1]]

    def boundary(self) -> float | None:
        """Parameter value at the first crossing, linear in the dominant real part."""
        idx = self.crossings()
        if not idx:
            return None
        i = idx[0]
        r0, r1 = self.dominant_real[i], self.dominant_real[i + 1]
        p0, p1 = self.values[i], self.values[i + 1]
        if r1 == r0:
            return float(p0)
        t = (self.analyses[i].tol - r0) / (r1 - r0)
        return float(p0 + min(max(t, 0.0), 1.0) * (p1 - p0))

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for value, a in zip(self.values, self.analyses):
            for k, lam in enumerate(a.eigenvalues):
                rows.append({
                    self.name: value,
                    "mode": k,
                    "real_rad_s": lam.real,
                    "imag_rad_s": lam.imag,
                    "stable": a.stable,
                })
        return pd.DataFrame(rows)


def sweep_parameter(
    model: DeviceModel,
    name: str,
    values: Sequence[float],
    method: str = "numeric",
    tol: float = DEFAULT_TOL,
) -> SweepResult:
    """
    Eigenvalues of the linearized model over a range of one parameter.

    method="numeric" rebuilds the equilibrium and finite-difference Jacobian at
    each value. method="symbolic" derives A(name) once with sympy and evaluates
    it per value.
    """
    values = np.asarray(values, dtype=float)

    if method == "numeric":
        A_of = None
    elif method == "symbolic":
        A_of = state_matrix_function(model, name)
    else:
        raise InvalidConfiguration("method", method, "Unknown sweep method")

    analyses = []
    for v in values:
        if A_of is None:
            analyses.append(model_eigen_analysis(model.with_param(name, float(v)), tol))
        else:
            analyses.append(eigen_analysis(A_of(float(v)), tol))

    result = SweepResult(name=name, values=values, analyses=tuple(analyses))
    logger.info(
        "Swept %s over %d values (%s): %d stable, boundary=%s",
        name, len(values), method, int(result.stable.sum()), result.boundary(),
    )
    return result
