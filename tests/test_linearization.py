import math

import numpy as np
import pytest

from dqforge.apparatus import build_device
from dqforge.contract import CallFlag
from dqforge.controllers import pi_gains
from dqforge.errors import DomainError
from dqforge.linearization import linearize, trapezoidal_operator
from dqforge.stability import eigen_analysis, model_eigen_analysis


class SeriesRLC:
    """x = [i, v_c], u = [v_s], y = [i, v_c]"""

    def __init__(self, R=1.0, L=1e-3, C=1e-4):
        self.R, self.L, self.C = R, L, C

    def state_equation(self, x, u, flag):
        i, v_c = x[0], x[1]
        if flag == CallFlag.DERIVATIVE:
            return np.array([(u[0] - self.R * i - v_c) / self.L, i / self.C])
        return np.array([i, v_c])


class PICurrentLoop:
    """L plant under PI control, x = [i, z], u = [i_ref]"""

    def __init__(self, f_hz=250.0, L=1e-4):
        self.L = L
        self.gains = pi_gains(f_hz, L)

    def state_equation(self, x, u, flag):
        i, z = x[0], x[1]
        e = self.gains.kp * (u[0] - i) + self.gains.ki * z
        if flag == CallFlag.DERIVATIVE:
            return np.array([e / self.L, u[0] - i])
        return np.array([i])


def test_series_rlc_poles():
    m = SeriesRLC()
    lin = linearize(m, np.zeros(2), np.zeros(1))

    expected = np.roots([1.0, m.R / m.L, 1.0 / (m.L * m.C)])
    ea = eigen_analysis(lin.A)
    assert np.allclose(np.sort_complex(ea.eigenvalues), np.sort_complex(expected), rtol=1e-6)
    assert np.allclose(lin.B[:, 0], [1.0 / m.L, 0.0])
    assert np.allclose(lin.C, np.eye(2))
    assert ea.stable


def test_pi_design_gives_double_pole_at_half_bandwidth():
    m = PICurrentLoop(f_hz=250.0)
    lin = linearize(m, np.zeros(2), np.zeros(1))
    ea = eigen_analysis(lin.A)

    w = 2.0 * math.pi * 250.0
    assert np.allclose(ea.eigenvalues, -w / 2.0, atol=1e-3 * w)


def test_inductor_poles():
    dev = build_device(90, para=[0.5, 0.1])
    ea = model_eigen_analysis(dev)

    L = 0.5 / dev.params.w0
    w = dev.power_flow.w
    # the angle contributes a zero mode, the branch -R/L +- jw
    assert ea.eigenvalues[0] == pytest.approx(0.0, abs=1e-9)
    branch = np.sort_complex(ea.eigenvalues[1:])
    assert np.allclose(branch, [complex(-0.1 / L, -w), complex(-0.1 / L, w)], rtol=1e-7)


def test_linearize_is_exact_for_linear_device():
    dev = build_device(90)
    eq = dev.equilibrium()
    lin = linearize(dev, eq.x_e, eq.u_e)

    L = dev.params.x / dev.params.w0
    w = dev.power_flow.w
    A_expected = np.array([
        [-dev.params.r / L, w, 0.0],
        [-w, -dev.params.r / L, 0.0],
        [0.0, 0.0, 0.0],
    ])
    assert np.allclose(lin.A, A_expected, rtol=1e-8, atol=1e-6)
    assert np.allclose(lin.B[:2], np.eye(2) / L, rtol=1e-8)
    assert np.allclose(lin.D, 0.0)


def test_trapezoidal_operator():
    A = np.array([[-10.0, 1.0], [0.0, -5.0]])
    ts = 1e-3
    W = trapezoidal_operator(A, ts)
    assert np.allclose(W @ (np.eye(2) - ts / 2.0 * A), np.eye(2))


def test_trapezoidal_operator_singular():
    ts = 1e-4
    A = 2.0 / ts * np.eye(3)
    with pytest.raises(DomainError):
        trapezoidal_operator(A, ts)

    # DomainError is an ArithmeticError
    with pytest.raises(ArithmeticError):
        trapezoidal_operator(A, ts)
