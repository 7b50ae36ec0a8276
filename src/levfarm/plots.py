from __future__ import annotations

"""
Figures for the scenario report.

Every figure reads the CSV/JSON written by `write_scenario_outputs`, so a plot can
be regenerated (or checked) without rerunning the simulation.
"""

import json
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

COLORS = ["#2b6cb0", "#c53030", "#2f855a", "#b7791f", "#6b46c1", "#319795"]


def _read_json(p: Path) -> dict:
    return json.loads(Path(p).read_text())


def _save(fig, out_png: Path) -> None:
    fig.tight_layout()
    out_png.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_png, dpi=200)
    plt.close(fig)


def plot_ltv_by_step(*, positions_csv: Path, out_png: Path, user: str = "alice") -> None:
    """LTV of one user after every step, one line per scenario. Closed positions plot as gaps."""
    df = pd.read_csv(positions_csv)
    df = df[df["user"].astype(str) == user]

    fig, ax = plt.subplots(figsize=(7.5, 4.2))
    for i, (scenario, g) in enumerate(df.groupby("scenario", sort=False)):
        g = g.sort_values("step_index")
        x = g["step_index"].to_numpy(int)
        y = pd.to_numeric(g["ltv"], errors="coerce").to_numpy(float)
        ax.plot(x, y, marker="o", lw=2.0, color=COLORS[i % len(COLORS)], label=str(scenario))
    ax.set_xlabel("Step")
    ax.set_ylabel("LTV (debt value / bond value)")
    ax.set_title(f"Loan-to-value of {user} by scenario step")
    ax.grid(True, alpha=0.3)
    ax.legend(fontsize=8)
    _save(fig, out_png)


def plot_unit_shares(*, positions_csv: Path, out_png: Path, scenario: str = "dilution") -> None:
    """Each user's share of bond units and debt units at the last step of `scenario`."""
    df = pd.read_csv(positions_csv)
    df = df[df["scenario"].astype(str) == scenario]
    if df.empty:
        raise ValueError(f"{positions_csv} has no rows for scenario {scenario!r}")
    last = df[df["step_index"] == df["step_index"].max()]

    users = last["user"].astype(str).tolist()
    bond = last["bond_units"].to_numpy(float) / np.maximum(last["total_bond_units"].to_numpy(float), 1.0)
    debt = last["debt_units"].to_numpy(float) / np.maximum(last["total_debt_units"].to_numpy(float), 1.0)

    x = np.arange(len(users))
    w = 0.38
    fig, ax = plt.subplots(figsize=(7.5, 4.2))
    ax.bar(x - w / 2, bond, width=w, color=COLORS[0], label="bond units")
    ax.bar(x + w / 2, debt, width=w, color=COLORS[1], label="debt units")
    ax.set_xticks(x, users)
    ax.set_ylim(0.0, 1.0)
    ax.set_ylabel("Share of total units")
    ax.set_title(f"Unit shares after `{scenario}`")
    ax.grid(True, axis="y", alpha=0.25)
    ax.legend()
    _save(fig, out_png)


def plot_liquidation_split(*, summary_json: Path, out_png: Path) -> None:
    s = _read_json(summary_json)["liquidation"]
    labels = ["liquidator", "user"]
    primary = np.array([s["liquidator_primary"], s["user_primary"]], dtype=float)
    secondary = np.array([s["liquidator_secondary"], s["user_secondary"]], dtype=float)

    fig, ax = plt.subplots(figsize=(7.5, 4.2))
    ax.bar(labels, primary, color=COLORS[0], label="primary")
    ax.bar(labels, secondary, bottom=primary, color=COLORS[2], label="secondary")
    for i, v in enumerate(primary + secondary):
        ax.text(i, v, f"{v:,.0f}", ha="center", va="bottom", fontsize=10)
    ax.set_ylabel("Amount received (base units)")
    ax.set_title(f"Liquidation proceeds (LTV at crash {float(s['ltv_at_crash']):.3f})")
    ax.legend()
    _save(fig, out_png)


def generate_all_figures(*, out_root: Path) -> list[Path]:
    out_root = Path(out_root)
    figs = out_root / "figures"
    figs.mkdir(parents=True, exist_ok=True)
    written = []

    positions_csv = out_root / "positions.csv"
    if positions_csv.exists():
        plot_ltv_by_step(positions_csv=positions_csv, out_png=figs / "01_ltv_by_step.png")
        written.append(figs / "01_ltv_by_step.png")
        scenarios = set(pd.read_csv(positions_csv, usecols=["scenario"])["scenario"].astype(str))
        if "dilution" in scenarios:
            plot_unit_shares(positions_csv=positions_csv, out_png=figs / "02_unit_shares.png")
            written.append(figs / "02_unit_shares.png")

    summary_json = out_root / "summary.json"
    if summary_json.exists() and "liquidation" in _read_json(summary_json):
        plot_liquidation_split(summary_json=summary_json, out_png=figs / "03_liquidation_split.png")
        written.append(figs / "03_liquidation_split.png")

    return written


__all__ = ["plot_ltv_by_step", "plot_unit_shares", "plot_liquidation_split", "generate_all_figures"]
