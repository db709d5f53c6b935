from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
import json
from typing import Sequence

import matplotlib.pyplot as plt
import pandas as pd

from .contract import SignalList
from .metrics import StepMetrics
from .plots import plot_pole_map, plot_sweep_loci
from .sim import SimResult
from .stability import EigenAnalysis, SweepResult


def ensure_outputs_dir(out_dir: str | Path = "outputs") -> Path:
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)
    return p


def timeseries_frame(res: SimResult, sig: SignalList) -> pd.DataFrame:
    data = {"t": res.t}
    for k, name in enumerate(sig.input):
        data[f"u_{name}"] = res.u[:, k]
    for k, name in enumerate(sig.state):
        data[f"x_{name}"] = res.x[:, k]
    for k, name in enumerate(sig.output):
        data[f"y_{name}"] = res.y[:, k]
    return pd.DataFrame(data)


def save_timeseries_csv(out_dir: str | Path, name: str, res: SimResult, sig: SignalList) -> Path:
    out = ensure_outputs_dir(out_dir) / f"{name}.csv"
    timeseries_frame(res, sig).to_csv(out, index=False)
    return out


def save_eigenvalues_csv(out_dir: str | Path, name: str, ea: EigenAnalysis) -> Path:
    out = ensure_outputs_dir(out_dir) / f"{name}_eigenvalues.csv"
    ea.to_frame().to_csv(out, index=False)
    return out


def save_sweep_csv(out_dir: str | Path, name: str, sweep: SweepResult) -> Path:
    out = ensure_outputs_dir(out_dir) / f"{name}_sweep.csv"
    sweep.to_frame().to_csv(out, index=False)
    return out


def stability_summary(ea: EigenAnalysis) -> dict:
    return {
        "stable": bool(ea.stable),
        "max_real_rad_s": ea.max_real,
        "dominant_rad_s": [ea.dominant.real, ea.dominant.imag],
        "dominant_hz": [float(ea.eigenvalues_hz[0].real), float(ea.eigenvalues_hz[0].imag)],
        "n_modes": int(len(ea.eigenvalues)),
        "tol": ea.tol,
    }


def save_summary_json(
    out_dir: str | Path,
    name: str,
    ea: EigenAnalysis | None = None,
    metrics: StepMetrics | None = None,
    sweep: SweepResult | None = None,
) -> Path:
    out = ensure_outputs_dir(out_dir) / f"{name}_summary.json"
    payload = {}
    if ea is not None:
        payload["stability"] = stability_summary(ea)
    if metrics is not None:
        payload["metrics"] = asdict(metrics)
    if sweep is not None:
        payload["sweep"] = {
            "parameter": sweep.name,
            "values": [float(v) for v in sweep.values],
            "dominant_real_rad_s": [float(r) for r in sweep.dominant_real],
            "stable": [bool(s) for s in sweep.stable],
            "boundary": sweep.boundary(),
        }
    out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return out


def save_pole_map_png(out_dir: str | Path, name: str, ea: EigenAnalysis, zoom: Sequence[float] | None = None) -> Path:
    out = ensure_outputs_dir(out_dir) / f"{name}_poles.png"
    fig = plot_pole_map(ea, zoom=zoom, title=name)
    fig.savefig(out, dpi=160)
    plt.close(fig)
    return out


def save_sweep_png(out_dir: str | Path, name: str, sweep: SweepResult, zoom: Sequence[float] | None = None) -> Path:
    out = ensure_outputs_dir(out_dir) / f"{name}_loci.png"
    fig = plot_sweep_loci(sweep, zoom=zoom)
    fig.savefig(out, dpi=160)
    plt.close(fig)
    return out


def write_report_md(
    out_dir: str | Path,
    name: str,
    title: str,
    description: str,
    ea: EigenAnalysis,
    plot_path: Path,
    csv_path: Path,
    sweep: SweepResult | None = None,
) -> Path:
    out_dir = ensure_outputs_dir(out_dir)
    out = out_dir / f"{name}_report.md"

    md = []
    md.append(f"# {title}\n")
    md.append(description.strip() + "\n")
    md.append("## Small-signal stability\n")
    md.append(f"- Stable: **{'yes' if ea.stable else 'no'}**")
    md.append(f"- Modes: **{len(ea.eigenvalues)}**")
    md.append(f"- Dominant eigenvalue: **{ea.dominant.real:.3f} {ea.dominant.imag:+.3f}j rad/s**")
    md.append(f"- Dominant frequency: **{abs(ea.eigenvalues_hz[0].imag):.2f} Hz**")

    if sweep is not None:
        md.append("\n## Parameter sweep\n")
        md.append(f"- Parameter: `{sweep.name}`, {len(sweep.values)} points")
        md.append(f"- Stable points: **{int(sweep.stable.sum())}**")
        boundary = sweep.boundary()
        if boundary is None:
            md.append("- Stability boundary: **not crossed**")
        else:
            md.append(f"- Stability boundary: **{sweep.name} ~ {boundary:.4g}**")

    md.append("\n## Outputs\n")
    md.append(f"- Plot: `{plot_path.name}`")
    md.append(f"- Eigenvalues: `{csv_path.name}`")
    md.append("\n## Plot\n")
    md.append(f"![plot]({plot_path.name})\n")

    out.write_text("\n".join(md), encoding="utf-8")
    return out
