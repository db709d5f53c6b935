from __future__ import annotations
import logging

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from dqforge.apparatus import build_device
from dqforge.discrete import Scheme
from dqforge.profiles import SineInput
from dqforge.sim import SimConfig, run_continuous_reference, run_discrete_sim


def main() -> None:
    logging.basicConfig(level=logging.WARNING)

    model = build_device(90)
    eq = model.equilibrium()
    profile = SineInput(base=tuple(eq.u_e), delta=(0.05, 0.0), freq_hz=20.0)

    rows = []
    for ts in [1e-4, 5e-5, 2e-5, 1e-5]:
        cfg = SimConfig(t_end=0.05, dt=ts)
        ref = run_continuous_reference(model, profile, cfg, rtol=1e-12, atol=1e-12)
        for scheme in Scheme:
            res = run_discrete_sim(model, profile, cfg, scheme=scheme)
            err = float(np.max(np.abs(res.y[:, :2] - ref.y[:, :2])))
            rows.append({"Ts": ts, "scheme": scheme.name.lower(), "max_error": err})

    df = pd.DataFrame(rows)
    print(df.pivot(index="Ts", columns="scheme", values="max_error"))

    plt.figure()
    for scheme, g in df.groupby("scheme"):
        plt.loglog(g["Ts"], g["max_error"], marker="o", label=scheme)
    plt.xlabel("Ts (s)")
    plt.ylabel("max |i - i_ref| (pu)")
    plt.title("DQForge — discretization error on a dq inductor")
    plt.legend()
    plt.grid(True, which="both")

    plt.show()


if __name__ == "__main__":
    main()
