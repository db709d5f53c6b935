from __future__ import annotations

from pathlib import Path
import sys
import io
import json
import math
import zipfile

# --- MUST come before importing dqforge ---
ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

import streamlit as st
import plotly.graph_objects as go

# Session memory for comparisons
if "runs" not in st.session_state:
    st.session_state.runs = {}

from dqforge.apparatus import build_device
from dqforge.contract import Apparatus, PowerFlow
from dqforge.discrete import Scheme
from dqforge.grid_following import PLLMode
from dqforge.grid_forming import VoltageControl
from dqforge.infinite_bus import InfiniteBusSystem
from dqforge.metrics import compute_step_metrics
from dqforge.profiles import ConstantInput, RampInput, SineInput, StepInput, channel_delta
from dqforge.report import stability_summary, timeseries_frame
from dqforge.sim import SimConfig, run_discrete_sim
from dqforge.stability import model_eigen_analysis, scale_range, sweep_parameter


st.set_page_config(page_title="DQForge", layout="wide")
st.title("⚡ DQForge — Inverter State-Space Workbench")
st.caption("Equilibrium + linearization + discrete-time stepping + eigenvalue stability of grid-connected inverters")

with st.expander("Model assumptions / notes"):
    st.markdown(
        """
- Per-unit quantities, dq frame of each device (PLL frame for grid-following, droop frame for grid-forming).
- Grid-following: load convention; grid-forming: source convention.
- Time-domain runs use the device alone with its dq terminal voltage as input.
- Stability analysis wraps the device with a stiff grid (angle-difference frame).
        """
    )

tab_dash, tab_stab, tab_compare, tab_sweep, tab_export = st.tabs(
    ["📌 Time domain", "🔬 Stability", "📊 Compare", "⚡ Sweep", "📄 Export"]
)

# -------------------------
# Sidebar controls
# -------------------------
APPARATUS_LABELS = {
    "GFL, dc-link control (10)": Apparatus.GFL_DC_LINK,
    "GFL, ac only (11)": Apparatus.GFL_AC,
    "GFL, dc current source (12)": Apparatus.GFL_DC_SOURCE,
    "GFL, ac only, PLL on v_o (13)": Apparatus.GFL_LCL,
    "GFM droop (20)": Apparatus.GFM_DROOP,
    "Inductor (90)": Apparatus.INDUCTOR,
}

with st.sidebar:
    st.header("Device")
    label = st.selectbox("Apparatus", list(APPARATUS_LABELS))
    code = APPARATUS_LABELS[label]
    pll_mode = st.selectbox("PLL detector", [m.value for m in PLLMode], index=1)
    voltage_control = st.selectbox("GFM voltage control", [c.value for c in VoltageControl])
    damping = st.checkbox("GFM droop damping", value=True)

    st.divider()
    st.header("Power flow")
    P = st.slider("P (pu)", -1.0, 1.0, 0.5, 0.05)
    Q = st.slider("Q (pu)", -1.0, 1.0, 0.0, 0.05)
    V = st.slider("V (pu)", 0.8, 1.2, 1.0, 0.01)
    xi = st.slider("xi (rad)", -math.pi, math.pi, 0.0, 0.01)
    f_base = st.select_slider("Frequency (Hz)", options=[50.0, 60.0], value=50.0)

    st.divider()
    st.header("Simulation")
    scheme = st.selectbox("Scheme", [s.name.lower() for s in Scheme], index=1)
    t_end = st.slider("t_end (s)", 0.02, 0.5, 0.1, 0.01)
    ts = st.select_slider("Ts (s)", options=[2e-5, 5e-5, 1e-4, 2e-4], value=1e-4)

    st.divider()
    st.header("Input disturbance")
    profile_kind = st.selectbox("Profile", ["Step", "Ramp", "Sine", "None"])
    amount = st.slider("Amplitude on v_d (pu)", -0.2, 0.2, 0.05, 0.01)
    t_dist = st.slider("Start (s)", 0.0, 0.1, 0.01, 0.005)

    st.divider()
    st.header("Run management")
    run_label = st.text_input("Run label", value=f"Run {len(st.session_state.runs)+1}")
    clear = st.button("🗑️ Clear saved runs")
    if clear:
        st.session_state.runs = {}
        st.success("Cleared saved runs.")

run = st.button("▶ Run", type="primary")

pf = PowerFlow(p=P, q=Q, v=V, xi=xi, w=2.0 * math.pi * f_base)
model = build_device(
    code, power_flow=pf, pll_mode=pll_mode, voltage_control=voltage_control, damping=damping
)
sig = model.signal_list()
cfg = SimConfig(t_end=t_end, dt=ts)

# -------------------------
# RUN
# -------------------------
if run:
    with st.spinner("Computing equilibrium and running..."):
        eq = model.equilibrium()
        base = tuple(float(v) for v in eq.u_e)
        delta = channel_delta(base, 0, amount)
        if profile_kind == "Step":
            profile = StepInput(base=base, delta=delta, t_step=t_dist)
        elif profile_kind == "Ramp":
            profile = RampInput(base=base, delta=delta, t0=t_dist, t1=t_dist + 0.02)
        elif profile_kind == "Sine":
            profile = SineInput(base=base, delta=delta, freq_hz=20.0)
        else:
            profile = ConstantInput(base=base)

        res = run_discrete_sim(model, profile, cfg, scheme=scheme)
        ea = model_eigen_analysis(InfiniteBusSystem(model))

    m = compute_step_metrics(res.t, res.y[:, 0])
    df = timeseries_frame(res, sig)

    # -------------------------
    # TIME DOMAIN TAB
    # -------------------------
    with tab_dash:
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("i_d final (pu)", f"{m.final:.4f}")
        c2.metric("Overshoot", f"{100.0 * m.overshoot:.1f} %")
        c3.metric("Peak deviation (pu)", f"{m.peak_deviation:.4f}")
        c4.metric("Settling time (ms)", "N/A" if m.settling_time_s is None else f"{1e3 * m.settling_time_s:.1f}")

        fig_i = go.Figure()
        fig_i.add_trace(go.Scatter(x=res.t, y=res.y[:, 0], mode="lines", name=sig.output[0]))
        fig_i.add_trace(go.Scatter(x=res.t, y=res.y[:, 1], mode="lines", name=sig.output[1]))
        fig_i.update_layout(
            title="Terminal current (device frame)",
            xaxis_title="Time (s)",
            yaxis_title="Current (pu)",
            template="plotly_white",
        )
        st.plotly_chart(fig_i, use_container_width=True)

        fig_w = go.Figure()
        fig_w.add_trace(go.Scatter(x=res.t, y=res.y[:, 2] / (2.0 * math.pi), mode="lines", name="f"))
        fig_w.update_layout(
            title="Frame frequency",
            xaxis_title="Time (s)",
            yaxis_title="Frequency (Hz)",
            template="plotly_white",
        )
        st.plotly_chart(fig_w, use_container_width=True)

        state_sel = st.multiselect("States", list(sig.state[:-1]), default=list(sig.state[:2]))
        if state_sel:
            fig_x = go.Figure()
            for name in state_sel:
                k = sig.state.index(name)
                fig_x.add_trace(go.Scatter(x=res.t, y=res.x[:, k], mode="lines", name=name))
            fig_x.update_layout(title="States", xaxis_title="Time (s)", template="plotly_white")
            st.plotly_chart(fig_x, use_container_width=True)

    # -------------------------
    # STABILITY TAB
    # -------------------------
    with tab_stab:
        c1, c2, c3 = st.columns(3)
        c1.metric("Stable", "yes" if ea.stable else "no")
        c2.metric("Max real part (1/s)", f"{ea.max_real:.2f}")
        c3.metric("Dominant mode (Hz)", f"{abs(ea.eigenvalues_hz[0].imag):.1f}")

        zoom = st.checkbox("Zoom near the imaginary axis", value=True)
        fig_p = go.Figure()
        fig_p.add_trace(go.Scatter(
            x=ea.eigenvalues_hz.real, y=ea.eigenvalues_hz.imag, mode="markers",
            marker=dict(symbol="x", size=9), name="poles",
        ))
        fig_p.add_vline(x=0.0, line_dash="dash")
        fig_p.update_layout(
            title="Pole map (device on a stiff grid)",
            xaxis_title="Real (Hz)",
            yaxis_title="Imaginary (Hz)",
            template="plotly_white",
        )
        if zoom:
            fig_p.update_xaxes(range=[-50.0, 10.0])
            fig_p.update_yaxes(range=[-200.0, 200.0])
        st.plotly_chart(fig_p, use_container_width=True)
        st.dataframe(ea.to_frame())

    # -------------------------
    # COMPARE TAB (save & overlay)
    # -------------------------
    with tab_compare:
        st.subheader("Save this run")
        if st.button("💾 Save this run"):
            st.session_state.runs[run_label] = {
                "t": res.t,
                "i_d": res.y[:, 0],
                "w": res.y[:, 2],
            }
            st.success(f"Saved: {run_label}")

        st.divider()
        st.subheader("Compare saved runs")

        if len(st.session_state.runs) >= 2:
            selected = st.multiselect(
                "Select runs to compare (i_d)",
                list(st.session_state.runs.keys()),
                default=list(st.session_state.runs.keys()),
            )

            fig_compare = go.Figure()
            for name in selected:
                data = st.session_state.runs[name]
                fig_compare.add_trace(go.Scatter(x=data["t"], y=data["i_d"], mode="lines", name=name))
            fig_compare.update_layout(
                title="i_d comparison",
                xaxis_title="Time (s)",
                yaxis_title="Current (pu)",
                template="plotly_white",
            )
            st.plotly_chart(fig_compare, use_container_width=True)
        else:
            st.info("Save at least 2 runs to compare.")

    # -------------------------
    # SWEEP TAB
    # -------------------------
    with tab_sweep:
        st.subheader("Parameter sweep")
        st.caption("Eigenvalues of the device on a stiff grid across one parameter, log-spaced around its nominal value.")

        param_names = list(vars(model.params))
        param = st.selectbox("Parameter", param_names)
        lo, hi = st.select_slider("Scale range", options=[0.01, 0.1, 0.5, 1.0, 2.0, 10.0, 100.0], value=(0.1, 100.0))
        n_pts = st.slider("Number of points", 3, 25, 10, 1)
        method = st.radio("Method", ["numeric", "symbolic"], horizontal=True)

        if st.button("Run sweep"):
            nominal = getattr(model.params, param)
            values = nominal * scale_range(lo, hi, n_pts)
            with st.spinner("Running sweep..."):
                sweep = sweep_parameter(InfiniteBusSystem(model), param, values, method=method)

            fig_s = go.Figure()
            fig_s.add_trace(go.Scatter(
                x=sweep.values, y=sweep.dominant_real, mode="lines+markers", name="max Re(λ)",
            ))
            fig_s.add_hline(y=0.0, line_dash="dash")
            fig_s.update_xaxes(type="log")
            fig_s.update_layout(
                title=f"Dominant real part vs {param}",
                xaxis_title=param,
                yaxis_title="max Re(λ) (1/s)",
                template="plotly_white",
            )
            st.plotly_chart(fig_s, use_container_width=True)

            boundary = sweep.boundary()
            st.write("Stability boundary:", "not crossed" if boundary is None else f"{param} ≈ {boundary:.4g}")

            df_sweep = sweep.to_frame()
            st.download_button(
                "⬇ Download sweep CSV",
                data=df_sweep.to_csv(index=False).encode("utf-8"),
                file_name=f"dqforge_sweep_{param}.csv",
                mime="text/csv",
            )

    # -------------------------
    # EXPORT TAB (ZIP bundle)
    # -------------------------
    with tab_export:
        st.subheader("Export")

        summary_payload = {
            "apparatus": int(code),
            "scheme": scheme,
            "Ts": ts,
            "power_flow": [P, Q, V, xi, pf.w],
            "stability": stability_summary(ea),
            "settling_time_s": m.settling_time_s,
            "overshoot": m.overshoot,
        }

        csv_bytes = df.to_csv(index=False).encode("utf-8")
        eig_bytes = ea.to_frame().to_csv(index=False).encode("utf-8")
        summary_bytes = json.dumps(summary_payload, indent=2).encode("utf-8")
        html_bytes = fig_i.to_html(include_plotlyjs="cdn").encode("utf-8")

        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as z:
            z.writestr("dqforge_timeseries.csv", csv_bytes)
            z.writestr("eigenvalues.csv", eig_bytes)
            z.writestr("summary.json", summary_bytes)
            z.writestr("report_current.html", html_bytes)
        buf.seek(0)

        st.download_button(
            "⬇ Download report bundle (ZIP)",
            data=buf.getvalue(),
            file_name="dqforge_bundle.zip",
            mime="application/zip",
        )

        st.download_button(
            "⬇ Download time series CSV",
            data=csv_bytes,
            file_name="dqforge_timeseries.csv",
            mime="text/csv",
        )

else:
    st.info("Pick a device in the sidebar, then click **Run**.")
