from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import IntEnum
import math
from typing import Protocol, Sequence, runtime_checkable

import numpy as np

from .errors import DimensionMismatch, DomainError, InvalidConfiguration


# =============================
# State-space contract
# =============================

class CallFlag(IntEnum):
    DERIVATIVE = 1   # dx/dt = f(x, u)
    OUTPUT = 2       # y = g(x, u)


class Apparatus(IntEnum):
    GFL_DC_LINK = 10     # grid-following, dc-link voltage control
    GFL_AC = 11          # grid-following, ac side only
    GFL_DC_SOURCE = 12   # grid-following, dc-link control with current-source dc side
    GFL_LCL = 13         # grid-following, ac only, PLL on the capacitor voltage
    GFM_DROOP = 20       # grid-forming, P-w droop
    INDUCTOR = 90        # single-phase dq inductor, for verification


@dataclass(frozen=True)
class SignalList:
    """
    Ordered signal names of a device.

    Contract shared by every device:
      - first two inputs are the dq voltage pair
      - first two outputs are the dq current pair, the third is w
      - the final state is the frame angle theta, which feeds no other state
    """
    state: tuple[str, ...]
    input: tuple[str, ...]
    output: tuple[str, ...]


@dataclass(frozen=True)
class PowerFlow:
    p: float = 0.5
    q: float = 0.0
    v: float = 1.0
    xi: float = 0.0                   # angle offset (rad)
    w: float = 2.0 * math.pi * 50.0   # frequency (rad/s)

    @classmethod
    def from_vector(cls, pf: Sequence[float]) -> "PowerFlow":
        if len(pf) != 5:
            raise DimensionMismatch("power flow", 5, len(pf))
        return cls(*(float(v) for v in pf))


@dataclass(frozen=True)
class Equilibrium:
    x_e: np.ndarray
    u_e: np.ndarray
    xi: float


@runtime_checkable
class DeviceModel(Protocol):
    def signal_list(self) -> SignalList: ...
    def equilibrium(self) -> Equilibrium: ...
    def state_equation(self, x: np.ndarray, u: np.ndarray, flag: CallFlag) -> np.ndarray: ...
    def with_param(self, name: str, value) -> "DeviceModel": ...


# =============================
# Helpers shared by device modules
# =============================

def require_nonzero(value, what: str) -> None:
    # symbolic values pass through; only concrete zeros are rejected
    if isinstance(value, (int, float)) and value == 0:
        raise DomainError(f"{what} is zero")


def replace_param(params, name: str, value):
    if name not in {f.name for f in fields(params)}:
        raise InvalidConfiguration("parameter", name, f"{type(params).__name__} has no field")
    return replace(params, **{name: value})


def params_from_vector(cls, para: Sequence[float], n_required: int):
    """Build a parameter dataclass from its positional vector form."""
    n_fields = len(fields(cls))
    if not (n_required <= len(para) <= n_fields):
        raise DimensionMismatch(f"{cls.__name__} vector", n_required, len(para))
    return cls(*(float(v) for v in para))


def params_to_vector(params) -> np.ndarray:
    return np.array([getattr(params, f.name) for f in fields(params)], dtype=float)


def check_dimensions(model: DeviceModel, eq: Equilibrium, x0: np.ndarray | None = None) -> None:
    """Raise DimensionMismatch if the equilibrium or x0 disagree with signal_list()."""
    sig = model.signal_list()
    n, m, p = len(sig.state), len(sig.input), len(sig.output)

    if len(eq.x_e) != n:
        raise DimensionMismatch("x_e", n, len(eq.x_e))
    if len(eq.u_e) != m:
        raise DimensionMismatch("u_e", m, len(eq.u_e))
    if x0 is not None and len(x0) != n:
        raise DimensionMismatch("x0", n, len(x0))

    f = model.state_equation(eq.x_e, eq.u_e, CallFlag.DERIVATIVE)
    if len(f) != n:
        raise DimensionMismatch("f(x, u)", n, len(f))
    y = model.state_equation(eq.x_e, eq.u_e, CallFlag.OUTPUT)
    if len(y) != p:
        raise DimensionMismatch("g(x, u)", p, len(y))
