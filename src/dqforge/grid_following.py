"""
Grid-following voltage-source inverter in its own PLL dq frame.

ac side: load convention, admittance form.
dc side: source convention, impedance form.

States (apparatus 10, 12):
  x = [i_ld, i_lq, i_ld_i, i_lq_i, v_od, v_oq, i_od, i_oq, w_pll_i, w, v_dc, v_dc_i, theta]
Apparatus 11 and 13 drop v_dc, v_dc_i. The "_i" suffix marks PI integrator
states. theta is always last and drives nothing but its own output.

Inputs:  u = [v_d, v_q, ang_r, P_dc]
Outputs: y = [i_d, i_q, w, v_dc, theta]   (i_d, i_q are the grid-side currents)
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from functools import cached_property
import math

import numpy as np

from .contract import (
    Apparatus,
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


GFL_TYPES = (Apparatus.GFL_DC_LINK, Apparatus.GFL_AC, Apparatus.GFL_DC_SOURCE, Apparatus.GFL_LCL)
DC_LINK_TYPES = (Apparatus.GFL_DC_LINK, Apparatus.GFL_DC_SOURCE)

_AC_STATES = ("i_ld", "i_lq", "i_ld_i", "i_lq_i", "v_od", "v_oq", "i_od", "i_oq", "w_pll_i", "w")
_DC_STATES = ("v_dc", "v_dc_i")
_INPUTS = ("v_d", "v_q", "ang_r", "P_dc")
_OUTPUTS = ("i_d", "i_q", "w", "v_dc", "theta")


class PLLMode(Enum):
    PHASE = "phase"   # e = atan2(v_q, v_d)
    VQ = "vq"         # e = v_q
    Q = "q"           # e = +-(Q - Q_r) / |P|

    @classmethod
    def parse(cls, mode) -> "PLLMode":
        if isinstance(mode, cls):
            return mode
        try:
            return cls(str(mode).lower())
        except ValueError:
            raise InvalidConfiguration("pll_mode", mode) from None


@dataclass(frozen=True)
class GridFollowingParams:
    # Positional order of the device parameter vector
    c_dc: float = 1.25        # dc-link capacitance (pu)
    v_dc: float = 2.5         # rated dc-link voltage (pu)
    f_v_dc: float = 10.0      # dc-link voltage loop bandwidth (Hz)
    f_pll: float = 10.0       # PLL bandwidth (Hz)
    f_tau_pll: float = 300.0  # PLL frequency filter corner (Hz)
    f_i_dq: float = 250.0     # current loop bandwidth (Hz)
    x_f: float = 0.03         # filter reactance w0*L_f (pu)
    r_f: float = 0.01         # filter resistance (pu)
    w0: float = 2.0 * math.pi * 50.0  # base frequency (rad/s)

    # Optional tail of the vector: filter capacitor and coupling inductor
    b_f: float = 0.02         # capacitor susceptance w0*C_f (pu)
    x_c: float = 0.01         # coupling reactance w0*L_c (pu)
    r_c: float = 0.001        # coupling resistance (pu)

    @classmethod
    def from_vector(cls, para) -> "GridFollowingParams":
        return params_from_vector(cls, para, n_required=9)


@dataclass(frozen=True)
class GFLOperatingPoint:
    """Closed-form steady state in the device frame."""
    v_d: float
    v_q: float
    v_od: float
    v_oq: float
    i_od: float
    i_oq: float
    i_ld: float
    i_lq: float
    e_d: float
    e_q: float
    phi: float     # device frame angle relative to the terminal voltage


def _rotate(d, q, ang):
    c, s = cos(ang), sin(ang)
    return d * c - q * s, d * s + q * c


def gfl_operating_point(p: GridFollowingParams, pf: PowerFlow, apparatus: int) -> GFLOperatingPoint:
    """
    Back-solve the LCL filter from the terminal power flow.

      i_o = conj(S / V)                     (load convention, V on the d-axis)
      v_o = v - (R_c + j w L_c) i_o
      i_l = i_o - j w C_f v_o
      e   = v_o - (R_f + j w L_f) i_l
    """
    require_nonzero(pf.v, "terminal voltage magnitude V")
    w = pf.w
    lf = p.x_f / p.w0
    cf = p.b_f / p.w0
    lc = p.x_c / p.w0

    v_d, v_q = pf.v, 0.0
    i_od = pf.p / pf.v
    i_oq = -pf.q / pf.v
    v_od = v_d - (p.r_c * i_od - w * lc * i_oq)
    v_oq = v_q - (p.r_c * i_oq + w * lc * i_od)

    phi = 0.0
    if apparatus == Apparatus.GFL_LCL:
        # PLL locks to the capacitor voltage: put v_o on the d-axis
        phi = atan2(v_oq, v_od)
        v_d, v_q = _rotate(v_d, v_q, -phi)
        i_od, i_oq = _rotate(i_od, i_oq, -phi)
        v_od, v_oq = sqrt(v_od ** 2 + v_oq ** 2), 0.0

    i_ld = i_od + w * cf * v_oq
    i_lq = i_oq - w * cf * v_od
    e_d = v_od - (p.r_f * i_ld - w * lf * i_lq)
    e_q = v_oq - (p.r_f * i_lq + w * lf * i_ld)

    return GFLOperatingPoint(
        v_d=v_d, v_q=v_q,
        v_od=v_od, v_oq=v_oq,
        i_od=i_od, i_oq=i_oq,
        i_ld=i_ld, i_lq=i_lq,
        e_d=e_d, e_q=e_q,
        phi=phi,
    )


@dataclass(frozen=True)
class GFLReferences:
    i_d_r: float      # active current reference (ac-only types)
    i_q_r: float      # reactive current reference
    q_r: float        # Q-PLL target
    pll_sign: float   # Q-PLL polarity follows the active power direction


def gfl_references(p: GridFollowingParams, pf: PowerFlow, apparatus: int, pll_mode: PLLMode) -> GFLReferences:
    op = gfl_operating_point(p, pf, apparatus)

    if apparatus == Apparatus.GFL_LCL:
        v_md, v_mq = op.v_od, op.v_oq
    else:
        v_md, v_mq = op.v_d, op.v_q

    q_r = v_mq * op.i_ld - v_md * op.i_lq
    if pll_mode is PLLMode.Q:
        require_nonzero(pf.p, "active power P (Q-PLL normalization)")
    pll_sign = -1.0 if pf.p <= 0 else 1.0

    return GFLReferences(i_d_r=op.i_ld, i_q_r=op.i_lq, q_r=q_r, pll_sign=pll_sign)


def gfl_equilibrium(p: GridFollowingParams, pf: PowerFlow, apparatus: int) -> Equilibrium:
    op = gfl_operating_point(p, pf, apparatus)

    theta = pf.xi + op.phi
    p_dc = op.e_d * op.i_ld + op.e_q * op.i_lq

    x_ac = [
        op.i_ld, op.i_lq,
        op.e_d, op.e_q,           # current-loop integrators carry the converter voltage
        op.v_od, op.v_oq,
        op.i_od, op.i_oq,
        pf.w, pf.w,               # w_pll_i, w
    ]
    if apparatus in DC_LINK_TYPES:
        x_e = x_ac + [p.v_dc, op.i_ld, theta]
    else:
        x_e = x_ac + [theta]

    u_e = [op.v_d, op.v_q, 0.0, p_dc]
    return Equilibrium(x_e=np.array(x_e), u_e=np.array(u_e), xi=pf.xi)


def gfl_state_equation(
    p: GridFollowingParams,
    pf: PowerFlow,
    apparatus: int,
    pll_mode: PLLMode,
    ref: GFLReferences,
    x: np.ndarray,
    u: np.ndarray,
    flag: CallFlag,
) -> np.ndarray:
    lf = p.x_f / p.w0
    cf = p.b_f / p.w0
    lc = p.x_c / p.w0

    # kp = w*L, ki = w^2*L/4: each loop is a critically damped second order
    # system with bandwidth w
    dc = pi_gains(p.f_v_dc, p.v_dc * p.c_dc)
    pll = pi_gains(p.f_pll, 1.0)
    cur = pi_gains(p.f_i_dq, lf)
    tau_pll = 1.0 / bandwidth_rad(p.f_tau_pll)

    i_ld, i_lq, i_ld_i, i_lq_i = x[0], x[1], x[2], x[3]
    v_od, v_oq, i_od, i_oq = x[4], x[5], x[6], x[7]
    w_pll_i, w = x[8], x[9]
    theta = x[-1]
    has_dc = apparatus in DC_LINK_TYPES
    if has_dc:
        v_dc, v_dc_i = x[10], x[11]
    else:
        v_dc, v_dc_i = p.v_dc, 0.0

    v_d, v_q, ang_r, p_dc = u[0], u[1], u[2], u[3]

    # Current references
    if has_dc:
        i_d_r = (p.v_dc - v_dc) * dc.kp + v_dc_i
    else:
        i_d_r = ref.i_d_r
    i_q_r = ref.i_q_r

    # PLL phase error; "- ang_r" gives the reference in load convention
    if apparatus == Apparatus.GFL_LCL:
        v_md, v_mq = v_od, v_oq
    else:
        v_md, v_mq = v_d, v_q

    if pll_mode is PLLMode.PHASE:
        e_ang = atan2(v_mq, v_md) - ang_r
    elif pll_mode is PLLMode.VQ:
        e_ang = v_mq - ang_r
    else:
        # Q from the current references, i.e. behind the current PI and L_f.
        # Q ~ v_q*i_d, so the sign follows the power direction and the error
        # is scaled by |P| to keep the PLL bandwidth.
        q = v_mq * i_d_r - v_md * i_q_r
        e_ang = (ref.pll_sign * (q - ref.q_r) - ang_r) / abs(pf.p)

    dw_pll_i = e_ang * pll.ki
    dw = (w_pll_i + e_ang * pll.kp - w) / tau_pll
    dtheta = w

    # dq-frame current PI: e_dq = -(i_dq_r - i_dq)*(kp + ki/s)
    di_ld_i = -(i_d_r - i_ld) * cur.ki
    di_lq_i = -(i_q_r - i_lq) * cur.ki
    e_d = -(i_d_r - i_ld) * cur.kp + i_ld_i
    e_q = -(i_q_r - i_lq) * cur.kp + i_lq_i

    # Dc link
    if apparatus == Apparatus.GFL_DC_LINK:
        dv_dc = (e_d * i_ld + e_q * i_lq - p_dc) / v_dc / p.c_dc
        dv_dc_i = (p.v_dc - v_dc) * dc.ki
    elif apparatus == Apparatus.GFL_DC_SOURCE:
        i_dc = p_dc / p.v_dc
        dv_dc = ((e_d * i_ld + e_q * i_lq) / v_dc - i_dc) / p.c_dc
        dv_dc_i = (p.v_dc - v_dc) * dc.ki

    # L_f: v_o - e = L_f di_l/dt + R_f i_l + j w L_f i_l
    di_ld = (v_od - p.r_f * i_ld + w * lf * i_lq - e_d) / lf
    di_lq = (v_oq - p.r_f * i_lq - w * lf * i_ld - e_q) / lf

    # C_f: -(i_l - i_o) = C_f dv_o/dt + j w C_f v_o
    dv_od = (-(i_ld - i_od) + w * cf * v_oq) / cf
    dv_oq = (-(i_lq - i_oq) - w * cf * v_od) / cf

    # L_c: v_o - v = -(L_c di_o/dt + R_c i_o + j w L_c i_o)
    di_od = (v_d - v_od - p.r_c * i_od + w * lc * i_oq) / lc
    di_oq = (v_q - v_oq - p.r_c * i_oq - w * lc * i_od) / lc

    if flag == CallFlag.DERIVATIVE:
        f = [di_ld, di_lq, di_ld_i, di_lq_i, dv_od, dv_oq, di_od, di_oq, dw_pll_i, dw]
        if has_dc:
            f += [dv_dc, dv_dc_i]
        return np.array(f + [dtheta])

    return np.array([i_od, i_oq, w, v_dc, theta])


@dataclass(frozen=True)
class GridFollowingVSI:
    params: GridFollowingParams = field(default_factory=GridFollowingParams)
    power_flow: PowerFlow = field(default_factory=PowerFlow)
    apparatus: int = Apparatus.GFL_DC_LINK
    pll_mode: PLLMode = PLLMode.VQ

    def __post_init__(self):
        if self.apparatus not in GFL_TYPES:
            raise InvalidConfiguration("apparatus", self.apparatus, "Not a grid-following type")
        object.__setattr__(self, "apparatus", Apparatus(self.apparatus))
        object.__setattr__(self, "pll_mode", PLLMode.parse(self.pll_mode))

    def signal_list(self) -> SignalList:
        state = _AC_STATES + (_DC_STATES if self.apparatus in DC_LINK_TYPES else ()) + ("theta",)
        return SignalList(state=state, input=_INPUTS, output=_OUTPUTS)

    @cached_property
    def references(self) -> GFLReferences:
        return gfl_references(self.params, self.power_flow, self.apparatus, self.pll_mode)

    def equilibrium(self) -> Equilibrium:
        return gfl_equilibrium(self.params, self.power_flow, self.apparatus)

    def state_equation(self, x, u, flag: CallFlag) -> np.ndarray:
        return gfl_state_equation(
            self.params, self.power_flow, self.apparatus, self.pll_mode, self.references, x, u, flag
        )

    def with_param(self, name: str, value) -> "GridFollowingVSI":
        return replace(self, params=replace_param(self.params, name, value))
