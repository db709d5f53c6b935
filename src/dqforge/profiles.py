from __future__ import annotations
from dataclasses import dataclass
from typing import Protocol, runtime_checkable
import math

import numpy as np


@runtime_checkable
class InputProfile(Protocol):
    def __call__(self, t: float) -> np.ndarray: ...


def _vec(values) -> np.ndarray:
    return np.asarray(values, dtype=float)


@dataclass(frozen=True)
class ConstantInput:
    base: tuple[float, ...]
    def __call__(self, t: float) -> np.ndarray:
        return _vec(self.base)


@dataclass(frozen=True)
class StepInput:
    base: tuple[float, ...]
    delta: tuple[float, ...]
    t_step: float = 0.01
    def __call__(self, t: float) -> np.ndarray:
        u = _vec(self.base)
        return u + _vec(self.delta) if t >= self.t_step else u


@dataclass(frozen=True)
class RampInput:
    base: tuple[float, ...]
    delta: tuple[float, ...]
    t0: float = 0.01
    t1: float = 0.05
    def __call__(self, t: float) -> np.ndarray:
        if t <= self.t0:
            alpha = 0.0
        elif t >= self.t1:
            alpha = 1.0
        else:
            alpha = (t - self.t0) / (self.t1 - self.t0)
        return _vec(self.base) + alpha * _vec(self.delta)


@dataclass(frozen=True)
class SineInput:
    base: tuple[float, ...]
    delta: tuple[float, ...]
    freq_hz: float = 20.0
    def __call__(self, t: float) -> np.ndarray:
        return _vec(self.base) + _vec(self.delta) * math.sin(2.0 * math.pi * self.freq_hz * t)


def channel_delta(base, index: int, amount: float) -> tuple[float, ...]:
    """delta vector that is zero except for one input channel."""
    delta = [0.0] * len(base)
    delta[index] = float(amount)
    return tuple(delta)
