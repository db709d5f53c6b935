"""
Series R-L branch in a synchronous dq frame. Used to check discretization
accuracy against a closed-form continuous model.

  x = [i_d, i_q, theta],  u = [v_d, v_q],  y = [i_d, i_q, w, theta]
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
import math

import numpy as np

from .contract import (
    CallFlag,
    Equilibrium,
    PowerFlow,
    SignalList,
    params_from_vector,
    replace_param,
    require_nonzero,
)


@dataclass(frozen=True)
class InductorParams:
    x: float = 0.5     # reactance at w0 (pu)
    r: float = 0.1     # resistance (pu)
    w0: float = 2.0 * math.pi * 50.0

    @classmethod
    def from_vector(cls, para) -> "InductorParams":
        return params_from_vector(cls, para, n_required=2)


@dataclass(frozen=True)
class Inductor:
    params: InductorParams = field(default_factory=InductorParams)
    power_flow: PowerFlow = field(default_factory=PowerFlow)

    def signal_list(self) -> SignalList:
        return SignalList(
            state=("i_d", "i_q", "theta"),
            input=("v_d", "v_q"),
            output=("i_d", "i_q", "w", "theta"),
        )

    def equilibrium(self) -> Equilibrium:
        # i = V / (R + j w L); P and Q follow from the branch and are not imposed
        p, pf = self.params, self.power_flow
        require_nonzero(pf.v, "terminal voltage magnitude V")
        l = p.x / p.w0
        z2 = p.r ** 2 + (pf.w * l) ** 2
        require_nonzero(z2, "branch impedance")
        i_d = pf.v * p.r / z2
        i_q = -pf.v * pf.w * l / z2
        return Equilibrium(
            x_e=np.array([i_d, i_q, pf.xi]),
            u_e=np.array([pf.v, 0.0]),
            xi=pf.xi,
        )

    def state_equation(self, x, u, flag: CallFlag) -> np.ndarray:
        p = self.params
        w = self.power_flow.w
        l = p.x / p.w0
        i_d, i_q, theta = x[0], x[1], x[2]
        v_d, v_q = u[0], u[1]

        if flag == CallFlag.DERIVATIVE:
            di_d = (v_d - p.r * i_d + w * l * i_q) / l
            di_q = (v_q - p.r * i_q - w * l * i_d) / l
            return np.array([di_d, di_q, w])
        return np.array([i_d, i_q, w, theta])

    def with_param(self, name: str, value) -> "Inductor":
        return replace(self, params=replace_param(self.params, name, value))
