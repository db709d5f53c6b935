from dataclasses import dataclass, replace
import math

import numpy as np
import pytest
import sympy as sp

from dqforge.apparatus import build_device
from dqforge.contract import CallFlag, Equilibrium, SignalList
from dqforge.errors import DomainError, InvalidConfiguration
from dqforge.grid_forming import VoltageControl
from dqforge.infinite_bus import InfiniteBusSystem
from dqforge.stability import eigen_analysis, model_eigen_analysis, scale_range, sweep_parameter
from dqforge.symbolic import state_matrix_function


def gfm_on_grid():
    return InfiniteBusSystem(build_device(20, power_flow=(0.5, 0.0, 1.0, 0.0, 2.0 * math.pi * 50.0)))


def test_eigen_analysis_sorting_and_units():
    A = np.diag([-3.0, 1.0, -0.5])
    ea = eigen_analysis(A)

    assert np.allclose(ea.eigenvalues.real, [1.0, -0.5, -3.0])
    assert np.allclose(ea.eigenvalues_hz, ea.eigenvalues / (2.0 * math.pi))
    assert ea.dominant == pytest.approx(1.0)
    assert not ea.stable

    df = ea.to_frame()
    assert list(df.columns) == ["real_rad_s", "imag_rad_s", "real_hz", "imag_hz"]
    assert len(df) == 3


def test_marginal_modes_within_tolerance_are_stable():
    A = np.array([[0.0, 0.0], [0.0, -1.0]])
    assert eigen_analysis(A).stable
    assert not eigen_analysis(A + 1e-3 * np.eye(2), tol=1e-6).stable


def test_scale_range():
    s = scale_range(0.1, 100.0, 4)
    assert s[0] == pytest.approx(0.1)
    assert s[-1] == pytest.approx(100.0)
    assert np.allclose(np.diff(np.log10(s)), 1.0)


def test_gfm_on_grid_has_no_free_angle_mode():
    ea = model_eigen_analysis(gfm_on_grid())
    assert np.all(np.abs(ea.eigenvalues) > 1e-3)


def test_gfm_voltage_integral_gain_sweep_crosses_stability_boundary():
    sys = gfm_on_grid()
    nominal = sys.device.params.ki_v_scale
    values = nominal * scale_range(0.1, 100.0, 8)

    sweep = sweep_parameter(sys, "ki_v_scale", values)

    assert sweep.stable[0]
    assert not sweep.stable[-1]
    assert sweep.crossings()

    boundary = sweep.boundary()
    assert values[0] < boundary < values[-1]

    df = sweep.to_frame()
    assert set(df["ki_v_scale"]) == set(values)
    assert len(df) == len(values) * len(sys.signal_list().state)


def test_numeric_and_symbolic_sweeps_agree():
    sys = gfm_on_grid()
    values = [2.0, 2000.0]

    num = sweep_parameter(sys, "ki_v_scale", values, method="numeric")
    sym = sweep_parameter(sys, "ki_v_scale", values, method="symbolic")

    assert np.array_equal(num.stable, sym.stable)
    assert np.allclose(num.dominant_real, sym.dominant_real, rtol=1e-3, atol=1e-1)


def test_symbolic_sweep_of_parameter_named_like_a_state():
    dev = build_device(10)
    values = [2.0, 2.5, 3.0]

    num = sweep_parameter(dev, "v_dc", values, method="numeric")
    sym = sweep_parameter(dev, "v_dc", values, method="symbolic")
    assert np.allclose(num.dominant_real, sym.dominant_real, rtol=1e-3, atol=1e-1)


def test_sweep_rejects_unknown_method_and_parameter():
    sys = gfm_on_grid()
    with pytest.raises(InvalidConfiguration):
        sweep_parameter(sys, "ki_v_scale", [1.0], method="montecarlo")
    with pytest.raises(InvalidConfiguration):
        sweep_parameter(sys, "no_such_gain", [1.0])


def test_single_loop_is_stable_when_slow_and_unstable_when_fast():
    dev = build_device(20, voltage_control=VoltageControl.SINGLE_LOOP)
    values = [1.0, 10.0, 2000.0, 5000.0]

    sweep = sweep_parameter(InfiniteBusSystem(dev), "f_v", values)

    assert list(sweep.stable) == [True, True, False, False]
    assert 10.0 < sweep.boundary() < 2000.0


def test_open_loop_droop_is_stable_on_a_stiff_grid():
    dev = build_device(20, voltage_control=VoltageControl.OPEN_LOOP)
    ea = model_eigen_analysis(InfiniteBusSystem(dev))
    assert ea.stable
    assert len(ea.eigenvalues) == 8


@dataclass(frozen=True)
class _UnresolvedEquilibrium:
    a: float = -1.0

    def signal_list(self):
        return SignalList(state=("x", "theta"), input=("u",), output=("x", "theta"))

    def equilibrium(self):
        return Equilibrium(x_e=np.array([sp.Symbol("stray"), 0.0]), u_e=np.array([0.0]), xi=0.0)

    def state_equation(self, x, u, flag):
        if flag == CallFlag.OUTPUT:
            return np.array([x[0], x[1]])
        return np.array([self.a * x[0] ** 2 + u[0], 1.0])

    def with_param(self, name, value):
        return replace(self, **{name: value})


def test_symbolic_state_matrix_needs_a_resolved_equilibrium():
    with pytest.raises(DomainError):
        state_matrix_function(_UnresolvedEquilibrium(), "a")
