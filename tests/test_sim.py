import math

import numpy as np
import pytest

from dqforge.apparatus import build_device
from dqforge.discrete import Scheme
from dqforge.metrics import compute_step_metrics
from dqforge.profiles import (
    ConstantInput,
    InputProfile,
    RampInput,
    SineInput,
    StepInput,
    channel_delta,
)
from dqforge.sim import SimConfig, run_continuous_reference, run_discrete_sim


def test_profiles():
    base = (1.0, 0.0)
    delta = channel_delta(base, 0, 0.1)
    assert delta == (0.1, 0.0)

    step = StepInput(base=base, delta=delta, t_step=0.01)
    ramp = RampInput(base=base, delta=delta, t0=0.0, t1=0.02)
    sine = SineInput(base=base, delta=delta, freq_hz=50.0)

    for prof in [ConstantInput(base), step, ramp, sine]:
        assert isinstance(prof, InputProfile)

    assert np.allclose(step(0.0), base)
    assert np.allclose(step(0.02), [1.1, 0.0])
    assert np.allclose(ramp(0.01), [1.05, 0.0])
    assert np.allclose(ramp(1.0), [1.1, 0.0])
    assert np.allclose(sine(0.005), [1.1, 0.0])


def test_discrete_run_shapes_and_steady_output():
    model = build_device(10)
    eq = model.equilibrium()
    cfg = SimConfig(t_end=0.01, dt=1e-4)

    res = run_discrete_sim(model, ConstantInput(tuple(eq.u_e)), cfg)
    sig = model.signal_list()

    assert res.t.shape == (cfg.n_steps,)
    assert res.x.shape == (cfg.n_steps, len(sig.state))
    assert res.y.shape == (cfg.n_steps, len(sig.output))
    assert res.u.shape == (cfg.n_steps, len(sig.input))
    assert np.allclose(res.y[:, :2], [0.5, 0.0], atol=1e-8)
    assert np.isfinite(res.y).all()


@pytest.mark.parametrize("scheme", ["forward_euler", "trapezoidal", "virtual_damping"])
def test_inductor_step_response_settles(scheme):
    model = build_device(90)
    eq = model.equilibrium()
    profile = StepInput(base=tuple(eq.u_e), delta=(0.05, 0.0), t_step=0.01)
    cfg = SimConfig(t_end=0.2, dt=1e-4)

    res = run_discrete_sim(model, profile, cfg, scheme=scheme)

    p = model.params
    L = p.x / p.w0
    i_new = 1.05 / complex(p.r, model.power_flow.w * L)

    m = compute_step_metrics(res.t, res.y[:, 0])
    assert m.initial == pytest.approx(eq.x_e[0])
    assert m.final == pytest.approx(i_new.real, rel=1e-3)
    assert m.settling_time_s is not None
    assert 0.01 <= m.settling_time_s < 0.2


def test_continuous_reference_matches_closed_form_steady_state():
    model = build_device(90)
    eq = model.equilibrium()
    cfg = SimConfig(t_end=0.01, dt=1e-3)

    res = run_continuous_reference(model, ConstantInput(tuple(eq.u_e)), cfg)
    assert np.allclose(res.y[:, :2], eq.x_e[:2], atol=1e-9)
    assert np.allclose(res.x[:, -1], model.power_flow.w * res.t, atol=1e-9)


def test_step_metrics_first_order():
    t = np.linspace(0.0, 1.0, 1001)
    tau = 0.05
    y = 1.0 - np.exp(-t / tau)

    m = compute_step_metrics(t, y, final=1.0, settling_band=0.02, settle_window_s=0.05)
    assert m.overshoot == pytest.approx(0.0)
    assert m.peak_deviation == pytest.approx(y.max())
    # 2% band is reached after ~4 time constants
    assert m.settling_time_s == pytest.approx(tau * math.log(50.0), abs=2e-3)


def test_step_metrics_overshoot():
    t = np.linspace(0.0, 1.0, 1001)
    y = 1.0 - np.exp(-5.0 * t) * np.cos(20.0 * t)

    m = compute_step_metrics(t, y, final=1.0)
    assert m.overshoot > 0.1
    assert m.settling_time_s is not None


def test_step_metrics_never_settles():
    t = np.linspace(0.0, 1.0, 101)
    y = 1.0 + 0.5 * np.sin(2.0 * math.pi * 5.0 * t)
    m = compute_step_metrics(t, y, final=1.0, settle_window_s=0.05)
    assert m.settling_time_s is None


def test_scheme_enum_accepted_by_sim():
    model = build_device(90)
    eq = model.equilibrium()
    res = run_discrete_sim(model, ConstantInput(tuple(eq.u_e)), SimConfig(t_end=1e-3, dt=1e-4), scheme=Scheme.FORWARD_EULER)
    assert res.y.shape == (11, 4)
