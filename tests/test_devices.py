import math

import numpy as np
import pytest

from dqforge.apparatus import build_device
from dqforge.contract import Apparatus, CallFlag, PowerFlow, check_dimensions
from dqforge.errors import DimensionMismatch, DomainError, InvalidConfiguration
from dqforge.grid_following import GridFollowingParams, GridFollowingVSI, PLLMode
from dqforge.grid_forming import GridFormingVSI, VoltageControl
from dqforge.infinite_bus import InfiniteBusSystem
from dqforge.linearization import linearize
from dqforge.symbolic import symbolic_linearize


W_BASE = 2.0 * math.pi * 50.0

GFL_CODES = [10, 11, 12, 13]


def all_devices():
    devices = []
    for code in GFL_CODES:
        for mode in PLLMode:
            devices.append(build_device(code, pll_mode=mode))
    for control in VoltageControl:
        devices.append(build_device(20, voltage_control=control))
    devices.append(build_device(20, damping=False))
    devices.append(build_device(90))
    return devices


def device_id(dev):
    name = type(dev).__name__
    mode = getattr(dev, "pll_mode", None)
    if mode is not None:
        return f"{name}-{int(dev.apparatus)}-{mode.value}"
    control = getattr(dev, "voltage_control", None)
    if control is not None:
        return f"{name}-{control.value}" + ("" if dev.damping else "-undamped")
    return name


DEVICES = all_devices()


@pytest.mark.parametrize("dev", DEVICES, ids=device_id)
def test_equilibrium_is_fixed_point(dev):
    eq = dev.equilibrium()
    f = dev.state_equation(eq.x_e, eq.u_e, CallFlag.DERIVATIVE)

    assert np.allclose(f[:-1], 0.0, atol=1e-8)
    assert f[-1] == pytest.approx(dev.power_flow.w)


@pytest.mark.parametrize("dev", DEVICES, ids=device_id)
def test_angle_does_not_feed_back(dev):
    eq = dev.equilibrium()
    lin = linearize(dev, eq.x_e, eq.u_e)
    assert np.all(lin.A[:-1, -1] == 0.0)


@pytest.mark.parametrize("dev", DEVICES, ids=device_id)
def test_numeric_matches_symbolic_jacobian(dev):
    eq = dev.equilibrium()
    num = linearize(dev, eq.x_e, eq.u_e)
    sym = symbolic_linearize(dev, eq.x_e, eq.u_e)

    for M_num, M_sym in [(num.A, sym.A), (num.B, sym.B), (num.C, sym.C), (num.D, sym.D)]:
        assert M_num.shape == M_sym.shape
        assert np.allclose(M_num, M_sym, rtol=1e-5, atol=1e-3)


@pytest.mark.parametrize("dev", DEVICES, ids=device_id)
def test_signal_list_is_stable_and_consistent(dev):
    sig = dev.signal_list()
    assert sig == dev.signal_list()
    assert sig.state[-1] == "theta"
    assert sig.input[:2] == ("v_d", "v_q")
    assert sig.output[2] == "w"
    check_dimensions(dev, dev.equilibrium())


def test_gfl_scenario_output_currents():
    dev = build_device(10, power_flow=(0.5, 0.0, 1.0, 0.0, W_BASE))
    eq = dev.equilibrium()
    y = dev.state_equation(eq.x_e, eq.u_e, CallFlag.OUTPUT)

    assert y[:2] == pytest.approx([0.5, 0.0], abs=1e-12)
    assert y[2] == pytest.approx(W_BASE)
    assert y[3] == pytest.approx(GridFollowingParams().v_dc)


def test_gfl_lcl_frame_follows_capacitor_voltage():
    dev = build_device(13, power_flow=(0.8, 0.2, 1.0, 0.1, W_BASE))
    eq = dev.equilibrium()
    sig = dev.signal_list()
    x = dict(zip(sig.state, eq.x_e))

    assert x["v_oq"] == pytest.approx(0.0, abs=1e-12)
    # terminal voltage keeps its magnitude in the rotated frame
    assert math.hypot(eq.u_e[0], eq.u_e[1]) == pytest.approx(1.0)
    assert x["theta"] != pytest.approx(0.1)


def test_gfl_power_balance_at_terminal():
    pf = PowerFlow(p=0.6, q=-0.2, v=1.02)
    for code in GFL_CODES:
        dev = build_device(code, power_flow=pf)
        eq = dev.equilibrium()
        y = dev.state_equation(eq.x_e, eq.u_e, CallFlag.OUTPUT)
        v_d, v_q = eq.u_e[0], eq.u_e[1]
        p = v_d * y[0] + v_q * y[1]
        q = v_q * y[0] - v_d * y[1]
        assert p == pytest.approx(0.6)
        assert q == pytest.approx(-0.2)


def test_gfm_delivers_requested_power():
    dev = GridFormingVSI(power_flow=PowerFlow(p=0.4, q=0.1))
    eq = dev.equilibrium()
    y = dev.state_equation(eq.x_e, eq.u_e, CallFlag.OUTPUT)
    v_d, v_q = eq.u_e
    # source convention: S = v * conj(i_g)
    assert v_d * y[0] + v_q * y[1] == pytest.approx(0.4)
    assert v_q * y[0] - v_d * y[1] == pytest.approx(0.1)


@pytest.mark.parametrize(
    "control, n_states",
    [("double_loop", 12), ("single-loop", 10), (VoltageControl.OPEN_LOOP, 8)],
)
def test_gfm_voltage_control_variants(control, n_states):
    dev = build_device(20, power_flow=PowerFlow(p=0.4, q=0.1), voltage_control=control)
    sig = dev.signal_list()
    eq = dev.equilibrium()

    assert len(sig.state) == n_states
    assert sig.state[-2:] == ("w", "theta")
    y = dev.state_equation(eq.x_e, eq.u_e, CallFlag.OUTPUT)
    v_d, v_q = eq.u_e
    assert v_d * y[0] + v_q * y[1] == pytest.approx(0.4)


def test_gfm_damping_switch():
    damped = build_device(20)
    undamped = build_device(20, damping=False)
    k = damped.signal_list().state.index("w")

    A_damped = linearize(damped, *_anchor(damped)).A
    A_undamped = linearize(undamped, *_anchor(undamped)).A
    w_f = 2.0 * math.pi * damped.params.f_lpf
    assert A_damped[k, k] == pytest.approx(-w_f, rel=1e-6)
    assert A_undamped[k, k] == pytest.approx(0.0, abs=1e-6)
    assert np.allclose(np.delete(A_damped, k, axis=0), np.delete(A_undamped, k, axis=0))

    with pytest.raises(InvalidConfiguration):
        build_device(20, voltage_control="triple_loop")


def _anchor(dev):
    eq = dev.equilibrium()
    return eq.x_e, eq.u_e


def test_inductor_equilibrium_current():
    dev = build_device(90, para=[0.5, 0.1])
    eq = dev.equilibrium()
    L = 0.5 / W_BASE
    i = 1.0 / complex(0.1, W_BASE * L)
    assert eq.x_e[0] == pytest.approx(i.real)
    assert eq.x_e[1] == pytest.approx(i.imag)


@pytest.mark.parametrize("code", [10, 13, 20, 90])
def test_infinite_bus_fixed_point_and_linearization(code):
    sys = InfiniteBusSystem(build_device(code, power_flow=(0.5, 0.1, 1.0, 0.2, W_BASE)))
    eq = sys.equilibrium()
    f = sys.state_equation(eq.x_e, eq.u_e, CallFlag.DERIVATIVE)
    assert np.allclose(f, 0.0, atol=1e-8)

    num = linearize(sys, eq.x_e, eq.u_e)
    sym = symbolic_linearize(sys, eq.x_e, eq.u_e)
    assert np.allclose(num.A, sym.A, rtol=1e-5, atol=1e-3)
    assert np.allclose(num.C, sym.C, rtol=1e-5, atol=1e-3)


def test_infinite_bus_currents_in_grid_frame():
    xi = 0.3
    sys = InfiniteBusSystem(build_device(10, power_flow=(0.5, 0.0, 1.0, xi, W_BASE)))
    eq = sys.equilibrium()
    y = sys.state_equation(eq.x_e, eq.u_e, CallFlag.OUTPUT)

    assert sys.signal_list().state[-1] == "delta"
    assert y[0] == pytest.approx(0.5 * math.cos(xi))
    assert y[1] == pytest.approx(0.5 * math.sin(xi))


def test_unknown_apparatus_is_rejected():
    with pytest.raises(InvalidConfiguration):
        build_device(42)
    with pytest.raises(InvalidConfiguration):
        build_device("gfl")
    with pytest.raises(InvalidConfiguration):
        GridFollowingVSI(apparatus=Apparatus.GFM_DROOP)


def test_unknown_pll_mode_is_rejected():
    with pytest.raises(InvalidConfiguration):
        build_device(10, pll_mode="zero-crossing")


def test_zero_voltage_is_a_domain_error():
    for code in [10, 13, 20, 90]:
        dev = build_device(code, power_flow=(0.5, 0.0, 0.0, 0.0, W_BASE))
        with pytest.raises(DomainError):
            dev.equilibrium()


def test_q_pll_needs_active_power():
    dev = build_device(11, power_flow=(0.0, 0.3, 1.0, 0.0, W_BASE), pll_mode=PLLMode.Q)
    with pytest.raises(DomainError):
        dev.references


def test_parameter_vectors():
    p = GridFollowingParams.from_vector([1.0, 2.0, 10, 10, 300, 250, 0.03, 0.01, W_BASE])
    assert p.c_dc == 1.0
    assert p.b_f == GridFollowingParams().b_f

    with pytest.raises(DimensionMismatch):
        GridFollowingParams.from_vector([1.0, 2.0])
    with pytest.raises(DimensionMismatch):
        PowerFlow.from_vector([0.5, 0.0, 1.0])


def test_with_param_returns_new_device():
    dev = build_device(10)
    dev2 = dev.with_param("f_pll", 20.0)
    assert dev2.params.f_pll == 20.0
    assert dev.params.f_pll == 10.0

    with pytest.raises(InvalidConfiguration):
        dev.with_param("not_a_parameter", 1.0)
