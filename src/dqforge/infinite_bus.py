"""
One device connected to a stiff grid.

The device angle theta is replaced by delta = theta - w_g t, the grid voltage
(given in the global frame rotating at w_g) is rotated into the device frame,
and the device currents are rotated back. The resulting system has a true
equilibrium, so its eigenvalues carry no free-running angle mode. delta
feeds back into every other state, so the composition is for eigenvalue
analysis; `DiscreteDevice` rejects it.

  x = device states[:-1] + [delta]
  u = [v_gD, v_gQ, w_g] + device inputs[2:]
  y = [i_D, i_Q] + device outputs[2:]   (theta output replaced by delta)
"""
from __future__ import annotations

from dataclasses import dataclass, replace

import numpy as np

from .contract import CallFlag, DeviceModel, Equilibrium, SignalList
from .symbolic import cos, sin


@dataclass(frozen=True)
class InfiniteBusSystem:
    device: DeviceModel

    def signal_list(self) -> SignalList:
        sig = self.device.signal_list()
        outputs = ("i_D", "i_Q") + tuple("delta" if n == "theta" else n for n in sig.output[2:])
        return SignalList(
            state=tuple(sig.state[:-1]) + ("delta",),
            input=("v_gD", "v_gQ", "w_g") + tuple(sig.input[2:]),
            output=outputs,
        )

    def equilibrium(self) -> Equilibrium:
        eq = self.device.equilibrium()
        pf = self.device.power_flow
        u_e = [pf.v * cos(pf.xi), pf.v * sin(pf.xi), pf.w] + list(eq.u_e[2:])
        return Equilibrium(x_e=np.array(list(eq.x_e)), u_e=np.array(u_e), xi=eq.xi)

    def _device_io(self, x, u):
        delta = x[-1]
        v_gD, v_gQ = u[0], u[1]
        c, s = cos(delta), sin(delta)
        v_d = v_gD * c + v_gQ * s
        v_q = -v_gD * s + v_gQ * c
        u_dev = np.array([v_d, v_q] + list(u[3:]))
        return u_dev, c, s

    def state_equation(self, x, u, flag: CallFlag) -> np.ndarray:
        u_dev, c, s = self._device_io(x, u)
        w_g = u[2]

        if flag == CallFlag.DERIVATIVE:
            f = self.device.state_equation(x, u_dev, CallFlag.DERIVATIVE)
            return np.array(list(f[:-1]) + [f[-1] - w_g])

        y = self.device.state_equation(x, u_dev, CallFlag.OUTPUT)
        i_d, i_q = y[0], y[1]
        i_D = i_d * c - i_q * s
        i_Q = i_d * s + i_q * c
        return np.array([i_D, i_Q] + list(y[2:]))

    def with_param(self, name: str, value) -> "InfiniteBusSystem":
        return replace(self, device=self.device.with_param(name, value))
