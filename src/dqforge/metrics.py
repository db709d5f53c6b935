from __future__ import annotations

from dataclasses import dataclass
import numpy as np


@dataclass(frozen=True)
class StepMetrics:
    initial: float
    final: float
    peak_deviation: float
    overshoot: float
    rms_error: float
    settling_time_s: float | None


def compute_step_metrics(
    t: np.ndarray,
    signal: np.ndarray,
    final: float | None = None,
    settling_band: float = 0.02,
    settle_window_s: float = 0.01,
) -> StepMetrics:
    """
    Step-response metrics of one output channel.

    final defaults to the last sample. overshoot is relative to the step size
    |final - initial|; 0 when the step is zero.

    settling_time_s:
      earliest time after which the signal stays within
      +/- settling_band * max(|final - initial|, |final|) of final for
      settle_window_s seconds. Returns None if it never settles.
    """
    t = np.asarray(t, dtype=float)
    y = np.asarray(signal, dtype=float)

    initial = float(y[0])
    final = float(y[-1]) if final is None else float(final)
    step = final - initial

    peak_deviation = float(np.nanmax(np.abs(y - initial)))
    rms_error = float(np.sqrt(np.nanmean((y - final) ** 2)))

    overshoot = 0.0
    if step != 0.0:
        beyond = (y - final) * np.sign(step)
        overshoot = float(max(np.nanmax(beyond), 0.0) / abs(step))

    band = abs(settling_band * max(abs(step), abs(final)))
    lo = final - band
    hi = final + band

    settling_time_s: float | None = None
    if len(t) >= 2:
        dt = float(np.median(np.diff(t)))
        win_n = max(1, int(round(settle_window_s / max(dt, 1e-12))))
        ok = (y >= lo) & (y <= hi)

        # Find earliest index i such that ok[i:i+win_n] are all True
        for i in range(0, len(t) - win_n + 1):
            if bool(np.all(ok[i : i + win_n])):
                settling_time_s = float(t[i])
                break

    return StepMetrics(
        initial=initial,
        final=final,
        peak_deviation=peak_deviation,
        overshoot=overshoot,
        rms_error=rms_error,
        settling_time_s=settling_time_s,
    )
