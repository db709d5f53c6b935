from __future__ import annotations
from typing import Sequence

import matplotlib.pyplot as plt
import numpy as np

from .contract import SignalList
from .errors import InvalidConfiguration
from .sim import SimResult
from .stability import EigenAnalysis, SweepResult


def plot_pole_map(
    ea: EigenAnalysis,
    zoom: Sequence[float] | None = None,
    hz: bool = True,
    title: str = "Pole map",
    show: bool = False,
):
    """
    Scatter the eigenvalues. zoom = [xmin, xmax, ymin, ymax] adds a second
    panel restricted to that window (same units as the plot).
    """
    lam = ea.eigenvalues_hz if hz else ea.eigenvalues
    unit = "Hz" if hz else "rad/s"

    n_ax = 2 if zoom is not None else 1
    fig, axes = plt.subplots(1, n_ax, figsize=(6 * n_ax, 5), squeeze=False)

    for k, ax in enumerate(axes[0]):
        ax.scatter(lam.real, lam.imag, marker="x")
        ax.axvline(0.0, color="k", linewidth=0.8)
        ax.set_xlabel(f"Real ({unit})")
        ax.set_ylabel(f"Imaginary ({unit})")
        ax.grid(True)
        if k == 1:
            ax.set_xlim(zoom[0], zoom[1])
            ax.set_ylim(zoom[2], zoom[3])
            ax.set_title(f"{title} (zoom)")
        else:
            ax.set_title(title)

    fig.tight_layout()
    if show:
        plt.show()
    return fig


def plot_sweep_loci(sweep: SweepResult, hz: bool = True, zoom: Sequence[float] | None = None, show: bool = False):
    """Eigenvalue loci over a sweep, coloured from the first to the last value."""
    fig, ax = plt.subplots(figsize=(7, 5))
    colors = plt.cm.viridis(np.linspace(0.0, 1.0, len(sweep.values)))
    unit = "Hz" if hz else "rad/s"

    for value, ea, c in zip(sweep.values, sweep.analyses, colors):
        lam = ea.eigenvalues_hz if hz else ea.eigenvalues
        ax.scatter(lam.real, lam.imag, marker="x", color=c, label=f"{sweep.name}={value:.3g}")

    ax.axvline(0.0, color="k", linewidth=0.8)
    ax.set_xlabel(f"Real ({unit})")
    ax.set_ylabel(f"Imaginary ({unit})")
    ax.set_title(f"Eigenvalue loci vs {sweep.name}")
    if zoom is not None:
        ax.set_xlim(zoom[0], zoom[1])
        ax.set_ylim(zoom[2], zoom[3])
    ax.grid(True)
    ax.legend(fontsize="small", loc="best")

    fig.tight_layout()
    if show:
        plt.show()
    return fig


def plot_timeseries(
    res: SimResult,
    signals: SignalList,
    output_names: Sequence[str] | None = None,
    show: bool = False,
):
    names = list(signals.output if output_names is None else output_names)
    unknown = [n for n in names if n not in signals.output]
    if unknown:
        raise InvalidConfiguration("output_names", unknown, "Unknown output signal")

    fig, axes = plt.subplots(len(names), 1, figsize=(8, 2.2 * len(names)), sharex=True, squeeze=False)

    for ax, name in zip(axes[:, 0], names):
        ax.plot(res.t, res.y[:, signals.output.index(name)])
        ax.set_ylabel(name)
        ax.grid(True)
    axes[-1, 0].set_xlabel("Time (s)")

    fig.tight_layout()
    if show:
        plt.show()
    return fig
