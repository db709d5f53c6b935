from __future__ import annotations
import logging

import matplotlib.pyplot as plt

from dqforge.apparatus import build_device
from dqforge.infinite_bus import InfiniteBusSystem
from dqforge.plots import plot_sweep_loci
from dqforge.stability import scale_range, sweep_parameter


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    grid_sys = InfiniteBusSystem(build_device(20))
    nominal = grid_sys.device.params.ki_v_scale

    # voltage-loop integral gain, 0.1x .. 100x nominal
    values = nominal * scale_range(0.1, 100.0, 10)
    sweep = sweep_parameter(grid_sys, "ki_v_scale", values, method="symbolic")

    df = sweep.to_frame()
    out_csv = "gfm_kiv_sweep.csv"
    df.to_csv(out_csv, index=False)
    print(f"Saved: {out_csv}")

    for v, r, s in zip(sweep.values, sweep.dominant_real, sweep.stable):
        print(f"ki_v_scale={v:9.3f}  max Re = {r:10.2f} 1/s  {'stable' if s else 'UNSTABLE'}")
    boundary = sweep.boundary()
    print("boundary:", "not crossed" if boundary is None else f"{boundary:.4g}")

    plot_sweep_loci(sweep, zoom=[-200.0, 50.0, -1500.0, 1500.0])

    plt.figure()
    plt.semilogx(sweep.values, sweep.dominant_real, marker="o")
    plt.axhline(0.0, linestyle="--", linewidth=1)
    plt.xlabel("ki_v_scale")
    plt.ylabel("max Re(λ) (1/s)")
    plt.title("DQForge — GFM stability vs voltage integral gain")
    plt.grid(True)

    plt.show()


if __name__ == "__main__":
    main()
