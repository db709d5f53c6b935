"""
Backend-neutral math and the symbolic linearization strategy.

Device equations are written once and evaluated either on floats (simulation)
or on sympy expressions (symbolic Jacobians, parameter sweeps). The helpers
below pick numpy or sympy depending on the argument type.
"""
from __future__ import annotations

import logging

import numpy as np
import sympy as sp

from .contract import CallFlag, DeviceModel
from .errors import DomainError

logger = logging.getLogger(__name__)


def is_symbolic(*values) -> bool:
    return any(isinstance(v, sp.Basic) for v in values)


def cos(x):
    return sp.cos(x) if is_symbolic(x) else np.cos(x)


def sin(x):
    return sp.sin(x) if is_symbolic(x) else np.sin(x)


def sqrt(x):
    return sp.sqrt(x) if is_symbolic(x) else np.sqrt(x)


def atan2(y, x):
    return sp.atan2(y, x) if is_symbolic(y, x) else np.arctan2(y, x)


def signal_symbols(model: DeviceModel) -> tuple[list[sp.Symbol], list[sp.Symbol]]:
    """Real-valued sympy symbols named after the model's states and inputs."""
    sig = model.signal_list()
    xs = [sp.Symbol(name, real=True) for name in sig.state]
    us = [sp.Symbol(name, real=True) for name in sig.input]
    return xs, us


def symbolic_jacobians(model: DeviceModel):
    """
    Evaluate the model's state equations on symbols and differentiate them.

    Returns: (xs, us, A, B, C, D) where A..D are sympy matrices in xs, us.
    """
    xs, us = signal_symbols(model)
    x = np.array(xs, dtype=object)
    u = np.array(us, dtype=object)

    f = sp.Matrix(list(model.state_equation(x, u, CallFlag.DERIVATIVE)))
    g = sp.Matrix(list(model.state_equation(x, u, CallFlag.OUTPUT)))

    A = f.jacobian(xs)
    B = f.jacobian(us)
    C = g.jacobian(xs)
    D = g.jacobian(us)
    return xs, us, A, B, C, D


def _to_float(M: sp.Matrix, subs: dict) -> np.ndarray:
    return np.array(M.subs(subs).evalf().tolist(), dtype=float)


def symbolic_linearize(model: DeviceModel, x, u):
    """Linearize by exact differentiation, then substitute the anchor point."""
    from .linearization import LinearModel

    xs, us, A, B, C, D = symbolic_jacobians(model)
    subs = dict(zip(xs, np.asarray(x).tolist()))
    subs.update(zip(us, np.asarray(u).tolist()))

    return LinearModel(
        A=_to_float(A, subs),
        B=_to_float(B, subs),
        C=_to_float(C, subs),
        D=_to_float(D, subs),
    )


def state_matrix_function(model: DeviceModel, name: str):
    """
    Leave parameter `name` symbolic and return a callable A(value).

    The equilibrium is evaluated with the symbolic parameter as well, so each
    call re-anchors the Jacobian at the equilibrium of that parameter value.
    """
    # Dummy: parameter names may coincide with state names (v_dc)
    p = sp.Dummy(name, real=True)
    sym_model = model.with_param(name, p)

    xs, us, A, _, _, _ = symbolic_jacobians(sym_model)
    eq = sym_model.equilibrium()

    subs = dict(zip(xs, list(eq.x_e)))
    subs.update(zip(us, list(eq.u_e)))
    A_p = A.subs(subs)

    free = A_p.free_symbols - {p}
    if free:
        # equilibrium left a state or input unresolved
        raise DomainError(f"State matrix still depends on {sorted(map(str, free))}")

    logger.debug("Lambdified %dx%d state matrix in %s", A_p.rows, A_p.cols, name)
    fn = sp.lambdify(p, A_p, modules="numpy")

    def state_matrix(value: float) -> np.ndarray:
        return np.array(fn(value), dtype=float)

    return state_matrix
