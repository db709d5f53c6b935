"""
Discrete-time wrapper around a continuous device model.

Schemes
-------
FORWARD_EULER:    x <- x + Ts f(x, u)
TRAPEZOIDAL:      x <- x + W Ts (f(x, u_k) + B (u - u_k) / 2),  W = (I - Ts/2 A)^-1
                  with A, B fixed at the equilibrium
VIRTUAL_DAMPING:  as above but A, B, C are re-linearized at every step

In both trapezoidal forms the angle (last state) advances with Forward Euler,
so the model's angle must not feed back into its other states.
The output adds the feed-through of the implicit part so that y sees u on the
same sample.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
import logging

import numpy as np

from .contract import CallFlag, DeviceModel, Equilibrium, check_dimensions
from .errors import InvalidConfiguration
from .linearization import LinearModel, linearize, trapezoidal_operator

logger = logging.getLogger(__name__)


class Scheme(IntEnum):
    FORWARD_EULER = 1
    TRAPEZOIDAL = 2
    VIRTUAL_DAMPING = 3

    @classmethod
    def parse(cls, scheme) -> "Scheme":
        if isinstance(scheme, cls):
            return scheme
        if isinstance(scheme, str):
            key = scheme.strip().upper().replace("-", "_").replace(" ", "_")
            if key in cls.__members__:
                return cls[key]
        else:
            try:
                return cls(int(scheme))
            except (TypeError, ValueError):
                pass
        raise InvalidConfiguration("scheme", scheme, "Unknown discretization scheme")


def _check_free_angle(model: DeviceModel, A: np.ndarray) -> None:
    coupling = np.max(np.abs(A[:-1, -1]), initial=0.0)
    if coupling > 1e-9 * max(1.0, np.max(np.abs(A))):
        raise InvalidConfiguration(
            "model", type(model).__name__,
            "Last state feeds back into the other states; discrete stepping needs a free-running angle",
        )


class Lifecycle(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    STEPPING = "stepping"
    RELEASED = "released"


@dataclass
class DiscreteDevice:
    model: DeviceModel
    ts: float
    scheme: Scheme = Scheme.TRAPEZOIDAL
    x0: np.ndarray | None = None

    # filled by setup()
    eq: Equilibrium | None = field(default=None, init=False)
    lin: LinearModel | None = field(default=None, init=False)
    lin_k: LinearModel | None = field(default=None, init=False)   # latest linearization point
    x: np.ndarray | None = field(default=None, init=False)
    xk: np.ndarray | None = field(default=None, init=False)
    uk: np.ndarray | None = field(default=None, init=False)
    W: np.ndarray | None = field(default=None, init=False)
    state: Lifecycle = field(default=Lifecycle.UNINITIALIZED, init=False)

    def __post_init__(self):
        self.scheme = Scheme.parse(self.scheme)
        if not self.ts > 0:
            raise InvalidConfiguration("ts", self.ts, "Sample period must be positive")

    # ---------- lifecycle ----------

    def setup(self) -> "DiscreteDevice":
        if self.state is Lifecycle.RELEASED:
            raise RuntimeError("DiscreteDevice was released")

        eq = self.model.equilibrium()
        x0 = None if self.x0 is None else np.asarray(self.x0, dtype=float)
        check_dimensions(self.model, eq, x0)

        self.eq = Equilibrium(
            x_e=np.asarray(eq.x_e, dtype=float),
            u_e=np.asarray(eq.u_e, dtype=float),
            xi=eq.xi,
        )
        self.x0 = self.eq.x_e.copy() if x0 is None else x0
        self.lin = linearize(self.model, self.eq.x_e, self.eq.u_e)
        _check_free_angle(self.model, self.lin.A)
        if self.scheme is not Scheme.FORWARD_EULER:
            self.W = trapezoidal_operator(self.lin.A, self.ts)

        self.state = Lifecycle.READY
        self.reset()
        logger.debug(
            "Set up %s: %d states, scheme=%s, Ts=%g",
            type(self.model).__name__, len(self.x0), self.scheme.name, self.ts,
        )
        return self

    def reset(self) -> None:
        self._require_setup()
        self.x = np.array(self.x0, dtype=float)
        self.xk = self.eq.x_e.copy()
        self.uk = self.eq.u_e.copy()
        self.lin_k = self.lin
        if self.scheme is Scheme.VIRTUAL_DAMPING:
            self.W = trapezoidal_operator(self.lin.A, self.ts)
        self.state = Lifecycle.READY

    def release(self) -> None:
        self.state = Lifecycle.RELEASED

    def _require_setup(self) -> None:
        if self.state is Lifecycle.RELEASED:
            raise RuntimeError("DiscreteDevice was released")
        if self.state is Lifecycle.UNINITIALIZED:
            raise RuntimeError("DiscreteDevice.setup() must be called before stepping")

    # ---------- per-sample ----------

    def _f(self, x, u) -> np.ndarray:
        return np.asarray(self.model.state_equation(x, u, CallFlag.DERIVATIVE), dtype=float)

    def _g(self, x, u) -> np.ndarray:
        return np.asarray(self.model.state_equation(x, u, CallFlag.OUTPUT), dtype=float)

    def output(self, u) -> np.ndarray:
        self._require_setup()
        u = np.asarray(u, dtype=float)
        y = self._g(self.x, u)
        if self.scheme is Scheme.FORWARD_EULER:
            return y

        C, B, W, ts = self.lin_k.C, self.lin_k.B, self.W, self.ts
        y = y + ts / 2.0 * (C @ W @ B @ (u - self.uk))
        y = y + ts * (C @ W @ self._f(self.x, self.uk))
        return y

    def update(self, u) -> None:
        self._require_setup()
        u = np.asarray(u, dtype=float)
        x, ts = self.x, self.ts

        if self.scheme is Scheme.FORWARD_EULER:
            self.x = x + ts * self._f(x, u)

        elif self.scheme is Scheme.TRAPEZOIDAL:
            dx = ts * (self._f(x, self.uk) + self.lin.B @ (u - self.uk) / 2.0)
            x_lin = x + self.W @ dx
            x_euler = x + ts * self._f(x, u)
            self.x = np.concatenate([x_lin[:-1], x_euler[-1:]])

        else:
            self.xk = x.copy()
            self.lin_k = linearize(self.model, self.xk, self.uk)
            self.W = trapezoidal_operator(self.lin_k.A, ts)
            f_k = self._f(self.xk, self.uk)
            x_vd = self.xk + self.W @ (ts * f_k)
            x_euler = self.xk + ts * f_k
            self.x = np.concatenate([x_vd[:-1], x_euler[-1:]])

        self.uk = u.copy()
        self.state = Lifecycle.STEPPING

    def step(self, u) -> np.ndarray:
        y = self.output(u)
        self.update(u)
        return y

    def read_equilibrium(self):
        """Return (x_e, u_e, y_e, xi)."""
        self._require_setup()
        y_e = self._g(self.eq.x_e, self.eq.u_e)
        return self.eq.x_e.copy(), self.eq.u_e.copy(), y_e, self.eq.xi
