from __future__ import annotations
import logging
import math

from dqforge.apparatus import build_device
from dqforge.contract import PowerFlow
from dqforge.grid_following import PLLMode
from dqforge.infinite_bus import InfiniteBusSystem
from dqforge.metrics import compute_step_metrics
from dqforge.profiles import StepInput, channel_delta
from dqforge.sim import SimConfig, run_discrete_sim
from dqforge.stability import model_eigen_analysis
from dqforge.report import (
    save_timeseries_csv,
    save_eigenvalues_csv,
    save_pole_map_png,
    save_summary_json,
    write_report_md,
)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    pf = PowerFlow(p=0.5, q=0.0, v=1.0, xi=0.0, w=2.0 * math.pi * 50.0)
    model = build_device(10, power_flow=pf, pll_mode=PLLMode.VQ)

    eq = model.equilibrium()
    base = tuple(float(v) for v in eq.u_e)
    # 5% sag of the terminal voltage at 20 ms
    profile = StepInput(base=base, delta=channel_delta(base, 0, -0.05), t_step=0.02)

    cfg = SimConfig(t_end=0.2, dt=1e-4)
    res = run_discrete_sim(model, profile, cfg, scheme="trapezoidal")

    metrics = compute_step_metrics(res.t, res.y[:, 3], final=model.params.v_dc)
    ea = model_eigen_analysis(InfiniteBusSystem(model))

    name = "gfl_voltage_sag"
    csv_path = save_timeseries_csv("outputs", name, res, model.signal_list())
    eig_path = save_eigenvalues_csv("outputs", name, ea)
    plot_path = save_pole_map_png("outputs", name, ea, zoom=[-50.0, 5.0, -100.0, 100.0])
    save_summary_json("outputs", name, ea=ea, metrics=metrics)
    write_report_md(
        "outputs",
        name,
        title="DQForge — GFL voltage sag",
        description="Grid-following inverter with dc-link control, 5% terminal voltage sag, split trapezoidal stepping at 10 kHz.",
        ea=ea,
        plot_path=plot_path,
        csv_path=eig_path,
    )

    print("Saved outputs to ./outputs/")
    print(" -", plot_path)
    print(" -", csv_path)


if __name__ == "__main__":
    main()
