"""
Grid-forming droop inverter with an LC filter and a grid-side inductor.

Source convention: i_g flows from the inverter into the grid.

Voltage control variants:
  DOUBLE_LOOP  voltage PI -> current PI -> e
  SINGLE_LOOP  voltage PI -> e
  OPEN_LOOP    e fixed at its equilibrium value

  x = [v_d_i, v_q_i, i_d_i, i_q_i, i_ld, i_lq, v_cd, v_cq, i_gd, i_gq, w, theta]   (double loop)
  x = [v_d_i, v_q_i, i_ld, i_lq, v_cd, v_cq, i_gd, i_gq, w, theta]                 (single loop)
  x = [i_ld, i_lq, v_cd, v_cq, i_gd, i_gq, w, theta]                               (open loop)
  u = [v_d, v_q]
  y = [i_d, i_q, w, theta]   (grid-side current i_g)

Without damping the droop drops its -w term and w integrates the power error.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from functools import cached_property
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
from .controllers import bandwidth_rad, pi_gains
from .errors import InvalidConfiguration
from .symbolic import atan2, cos, sin, sqrt


class VoltageControl(Enum):
    DOUBLE_LOOP = "double_loop"
    SINGLE_LOOP = "single_loop"
    OPEN_LOOP = "open_loop"

    @classmethod
    def parse(cls, mode) -> "VoltageControl":
        if isinstance(mode, cls):
            return mode
        try:
            return cls(str(mode).strip().lower().replace("-", "_").replace(" ", "_"))
        except ValueError:
            raise InvalidConfiguration("voltage_control", mode) from None


_CONTROL_STATES = {
    VoltageControl.DOUBLE_LOOP: ("v_d_i", "v_q_i", "i_d_i", "i_q_i"),
    VoltageControl.SINGLE_LOOP: ("v_d_i", "v_q_i"),
    VoltageControl.OPEN_LOOP: (),
}
_PLANT_STATES = ("i_ld", "i_lq", "v_cd", "v_cq", "i_gd", "i_gq", "w", "theta")
_INPUTS = ("v_d", "v_q")
_OUTPUTS = ("i_d", "i_q", "w", "theta")


@dataclass(frozen=True)
class GridFormingParams:
    x_f: float = 0.05          # filter reactance (pu)
    r_f: float = 0.01          # filter resistance (pu)
    b_f: float = 0.02          # filter capacitor susceptance (pu)
    x_g: float = 0.2           # grid-side reactance (pu)
    r_g: float = 0.04          # grid-side resistance (pu)
    f_v: float = 250.0         # voltage loop bandwidth (Hz)
    ki_v_scale: float = 20.0   # voltage integral gain relative to critical damping
    f_i: float = 1000.0        # current loop bandwidth (Hz)
    d_w: float = 0.05          # P-w droop, pu frequency per pu power
    f_lpf: float = 10.0        # power measurement filter (Hz), sets the virtual inertia
    w0: float = 2.0 * math.pi * 50.0

    @classmethod
    def from_vector(cls, para) -> "GridFormingParams":
        return params_from_vector(cls, para, n_required=10)


def _gains(p: GridFormingParams):
    cf = p.b_f / p.w0
    lf = p.x_f / p.w0
    vol = pi_gains(p.f_v, cf, ki_scale=p.ki_v_scale)
    cur = pi_gains(p.f_i, lf)
    return vol, cur


@dataclass(frozen=True)
class GFMOperatingPoint:
    """Steady state in the droop frame (v_c on the d-axis)."""
    v_d: float
    v_q: float
    i_ld: float
    i_lq: float
    v_cd: float
    v_cq: float
    i_gd: float
    i_gq: float
    e_d: float
    e_q: float
    phi: float     # droop frame angle relative to the terminal voltage


def gfm_operating_point(p: GridFormingParams, pf: PowerFlow) -> GFMOperatingPoint:
    require_nonzero(pf.v, "terminal voltage magnitude V")
    w = pf.w
    lf, cf, lg = p.x_f / p.w0, p.b_f / p.w0, p.x_g / p.w0

    # grid frame: v = V, i_g = conj(S / V)
    i_gd = pf.p / pf.v
    i_gq = -pf.q / pf.v
    v_cd = pf.v + p.r_g * i_gd - w * lg * i_gq
    v_cq = p.r_g * i_gq + w * lg * i_gd

    # the voltage loop regulates v_c onto the d-axis of the droop frame
    phi = atan2(v_cq, v_cd)
    c, s = cos(phi), sin(phi)
    v_d, v_q = pf.v * c, -pf.v * s
    i_gd, i_gq = i_gd * c + i_gq * s, -i_gd * s + i_gq * c
    v_cd, v_cq = sqrt(v_cd ** 2 + v_cq ** 2), 0.0

    i_ld = i_gd - w * cf * v_cq
    i_lq = i_gq + w * cf * v_cd
    e_d = v_cd + p.r_f * i_ld - w * lf * i_lq
    e_q = v_cq + p.r_f * i_lq + w * lf * i_ld

    return GFMOperatingPoint(
        v_d=v_d, v_q=v_q,
        i_ld=i_ld, i_lq=i_lq,
        v_cd=v_cd, v_cq=v_cq,
        i_gd=i_gd, i_gq=i_gq,
        e_d=e_d, e_q=e_q,
        phi=phi,
    )


def gfm_equilibrium(
    p: GridFormingParams,
    pf: PowerFlow,
    voltage_control: VoltageControl = VoltageControl.DOUBLE_LOOP,
) -> Equilibrium:
    op = gfm_operating_point(p, pf)
    vol, cur = _gains(p)

    if voltage_control is VoltageControl.DOUBLE_LOOP:
        # voltage integrators carry the inductor current, current integrators carry e
        x_ctrl = [op.i_ld / vol.ki, op.i_lq / vol.ki, op.e_d / cur.ki, op.e_q / cur.ki]
    elif voltage_control is VoltageControl.SINGLE_LOOP:
        x_ctrl = [op.e_d / vol.ki, op.e_q / vol.ki]
    else:
        x_ctrl = []

    x_e = x_ctrl + [
        op.i_ld, op.i_lq,
        op.v_cd, op.v_cq,
        op.i_gd, op.i_gq,
        pf.w,
        pf.xi + op.phi,
    ]
    return Equilibrium(x_e=np.array(x_e), u_e=np.array([op.v_d, op.v_q]), xi=pf.xi)


@dataclass(frozen=True)
class SetPoints:
    v_r: float   # capacitor voltage magnitude reference
    p_r: float   # active power reference of the droop
    e_d: float   # open-loop converter voltage
    e_q: float


def gfm_set_points(p: GridFormingParams, pf: PowerFlow, damping: bool = True) -> SetPoints:
    op = gfm_operating_point(p, pf)
    p_e = op.v_cd * op.i_ld + op.v_cq * op.i_lq
    if damping:
        p_r = p_e + (pf.w - p.w0) / (p.d_w * p.w0)
    else:
        p_r = p_e
    return SetPoints(v_r=op.v_cd, p_r=p_r, e_d=op.e_d, e_q=op.e_q)


def gfm_state_equation(
    p: GridFormingParams,
    sp_: SetPoints,
    x,
    u,
    flag: CallFlag,
    voltage_control: VoltageControl = VoltageControl.DOUBLE_LOOP,
    damping: bool = True,
) -> np.ndarray:
    lf, cf = p.x_f / p.w0, p.b_f / p.w0
    lg = p.x_g / p.w0
    vol, cur = _gains(p)
    d_w = p.d_w * p.w0
    w_f = bandwidth_rad(p.f_lpf)

    n_ctrl = len(_CONTROL_STATES[voltage_control])
    i_ld, i_lq, v_cd, v_cq = x[n_ctrl], x[n_ctrl + 1], x[n_ctrl + 2], x[n_ctrl + 3]
    i_gd, i_gq, w, theta = x[n_ctrl + 4], x[n_ctrl + 5], x[n_ctrl + 6], x[n_ctrl + 7]
    v_d, v_q = u[0], u[1]

    if flag == CallFlag.OUTPUT:
        return np.array([i_gd, i_gq, w, theta])

    # droop with low-pass filtered power
    p_e = v_cd * i_ld + v_cq * i_lq
    if damping:
        dw = ((sp_.p_r - p_e) * d_w + p.w0 - w) * w_f
    else:
        dw = (sp_.p_r - p_e) * d_w * w_f

    if voltage_control is VoltageControl.OPEN_LOOP:
        e_d, e_q = sp_.e_d, sp_.e_q
        f_ctrl = []
    else:
        v_d_i, v_q_i = x[0], x[1]
        dv_d_i = sp_.v_r - v_cd
        dv_q_i = -v_cq
        if voltage_control is VoltageControl.SINGLE_LOOP:
            e_d = vol.kp * (sp_.v_r - v_cd) + vol.ki * v_d_i
            e_q = vol.kp * (0.0 - v_cq) + vol.ki * v_q_i
            f_ctrl = [dv_d_i, dv_q_i]
        else:
            i_d_i, i_q_i = x[2], x[3]
            i_dr = vol.kp * (sp_.v_r - v_cd) + vol.ki * v_d_i
            i_qr = vol.kp * (0.0 - v_cq) + vol.ki * v_q_i
            di_d_i = i_dr - i_ld
            di_q_i = i_qr - i_lq
            e_d = cur.kp * (i_dr - i_ld) + cur.ki * i_d_i
            e_q = cur.kp * (i_qr - i_lq) + cur.ki * i_q_i
            f_ctrl = [dv_d_i, dv_q_i, di_d_i, di_q_i]

    # LCL filter
    di_ld = (e_d - v_cd + w * lf * i_lq - p.r_f * i_ld) / lf
    di_lq = (e_q - v_cq - w * lf * i_ld - p.r_f * i_lq) / lf
    dv_cd = (i_ld - i_gd + w * cf * v_cq) / cf
    dv_cq = (i_lq - i_gq - w * cf * v_cd) / cf
    di_gd = (v_cd - v_d + w * lg * i_gq - p.r_g * i_gd) / lg
    di_gq = (v_cq - v_q - w * lg * i_gd - p.r_g * i_gq) / lg

    return np.array(f_ctrl + [
        di_ld, di_lq, dv_cd, dv_cq,
        di_gd, di_gq, dw, w,
    ])


@dataclass(frozen=True)
class GridFormingVSI:
    params: GridFormingParams = field(default_factory=GridFormingParams)
    power_flow: PowerFlow = field(default_factory=PowerFlow)
    voltage_control: VoltageControl = VoltageControl.DOUBLE_LOOP
    damping: bool = True

    def __post_init__(self):
        object.__setattr__(self, "voltage_control", VoltageControl.parse(self.voltage_control))

    def signal_list(self) -> SignalList:
        state = _CONTROL_STATES[self.voltage_control] + _PLANT_STATES
        return SignalList(state=state, input=_INPUTS, output=_OUTPUTS)

    def equilibrium(self) -> Equilibrium:
        return gfm_equilibrium(self.params, self.power_flow, self.voltage_control)

    @cached_property
    def set_points(self) -> SetPoints:
        return gfm_set_points(self.params, self.power_flow, self.damping)

    def state_equation(self, x, u, flag: CallFlag) -> np.ndarray:
        return gfm_state_equation(
            self.params, self.set_points, x, u, flag, self.voltage_control, self.damping
        )

    def with_param(self, name: str, value) -> "GridFormingVSI":
        return replace(self, params=replace_param(self.params, name, value))
