from __future__ import annotations
from dataclasses import dataclass
import math


@dataclass(frozen=True)
class PIGains:
    kp: float
    ki: float


def bandwidth_rad(f_hz):
    return 2.0 * math.pi * f_hz


def pi_gains(f_hz, plant, ki_scale=1.0) -> PIGains:
    """
    PI gains for an integrating plant 1/(s*plant), plant being L or C.

    kp = w*plant, ki = kp*w/4 places a critically damped double pole at -w/2.
    ki_scale detunes the integral gain away from that point.
    """
    w = bandwidth_rad(f_hz)
    kp = w * plant
    return PIGains(kp=kp, ki=kp * w / 4.0 * ki_scale)
