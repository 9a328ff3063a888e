#!/usr/bin/env python3
# viz_sim.py
#
# Writes the scenario comparison figures and an index page into docs/.
# Input is the per-iteration table and the summary table from simulation.py.

import os

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from sim_config import CATEGORIES

STAT_LABELS = {
    'mean_one_year_va':      "Mean one-year VA (letters)",
    'mean_baseline_va':      "Mean baseline VA (letters)",
    'prop_worse_than_6_60':  "Proportion worse than 6/60",
    'prop_worse_than_6_24':  "Proportion worse than 6/24",
    'prop_better_than_6_12': "Proportion 6/12 or better",
}


def plot_summary(summary: pd.DataFrame, stat: str, group_col: str = 'scenario') -> go.Figure:
    """Bar per scenario at the bootstrap mean, error bars spanning the 95% interval."""
    mean = summary[f'{stat}_mean']
    fig = go.Figure(go.Bar(
        x=summary[group_col],
        y=mean,
        error_y=dict(
            type='data',
            symmetric=False,
            array=summary[f'{stat}_upper'] - mean,
            arrayminus=mean - summary[f'{stat}_lower'],
            visible=True,
        ),
        customdata=summary[[f'{stat}_lower', f'{stat}_upper', f'{stat}_sd']].to_numpy(),
        text=[f"{v:.2f}" for v in mean],
        textposition='auto',
        hovertemplate=(
            "<b>%{x}</b><br>"
            "Mean: %{y:.3f}<br>"
            "95% interval: %{customdata[0]:.3f} – %{customdata[1]:.3f}<br>"
            "SD across iterations: %{customdata[2]:.3f}"
            "<extra></extra>"
        ),
    ))
    fig.update_layout(
        title=f"{STAT_LABELS.get(stat, stat)} by scenario",
        xaxis_title="Scenario",
        yaxis_title=STAT_LABELS.get(stat, stat),
        font=dict(size=16),
    )
    return fig


def plot_iteration_distribution(per_iteration: pd.DataFrame, stat: str, group_col: str = 'scenario') -> go.Figure:
    """Overlaid histograms of one statistic across iterations."""
    fig = px.histogram(
        per_iteration,
        x=stat,
        color=group_col,
        barmode='overlay',
        opacity=0.6,
        labels={stat: STAT_LABELS.get(stat, stat), group_col: "Scenario"},
        title=f"{STAT_LABELS.get(stat, stat)} across iterations",
    )
    fig.update_layout(yaxis_title="Iterations", legend=dict(orientation='h'), font=dict(size=16))
    return fig


def plot_category_shift(summary: pd.DataFrame, group_col: str = 'scenario') -> go.Figure:
    """Baseline vs one-year VA band mix per scenario (mean proportions)."""
    recs = []
    for _, row in summary.iterrows():
        for c in CATEGORIES:
            recs.append({'scenario': row[group_col], 'band': f"Band {c}", 'when': 'Baseline',
                         'prop': row[f'prop_baseline_cat_{c}_mean']})
            recs.append({'scenario': row[group_col], 'band': f"Band {c}", 'when': 'One year',
                         'prop': row[f'prop_one_year_cat_{c}_mean']})
    df = pd.DataFrame(recs)

    fig = px.bar(
        df,
        x='band', y='prop',
        color='when',
        barmode='group',
        facet_col='scenario',
        labels={'band': "VA band", 'prop': "Proportion of eyes", 'when': ""},
        title="VA band mix: baseline vs one year",
    )
    fig.update_layout(font=dict(size=14))
    return fig


def write_report(per_iteration: pd.DataFrame, summary: pd.DataFrame, out_dir: str = "docs") -> list[str]:
    """Write every figure as HTML plus index.html; return the written paths."""
    os.makedirs(out_dir, exist_ok=True)
    out_files = []

    for stat, label in STAT_LABELS.items():
        fn = os.path.join(out_dir, f"summary_{stat}.html")
        plot_summary(summary, stat).write_html(fn, include_plotlyjs='cdn')
        out_files.append((label, fn))

    fn = os.path.join(out_dir, "iterations_mean_one_year_va.html")
    plot_iteration_distribution(per_iteration, 'mean_one_year_va').write_html(fn, include_plotlyjs='cdn')
    out_files.append(("One-year VA across iterations", fn))

    fn = os.path.join(out_dir, "band_shift.html")
    plot_category_shift(summary).write_html(fn, include_plotlyjs='cdn')
    out_files.append(("VA band mix", fn))

    idx = [
        "<!DOCTYPE html>",
        "<html><head><meta charset='utf-8'><title>nAMD Treatment Delay Scenarios</title></head>",
        "<body style='font-family:sans-serif; margin:2rem;'>",
        "<h1>nAMD Treatment Delay Scenarios</h1>",
        "<ul>"
    ]
    for label, path in out_files:
        rel = os.path.basename(path)
        idx.append(f"  <li><a href='{rel}' target='_blank'>{label}</a></li>")
    idx += [
        "</ul>",
        "<p style='color:#555;max-width:720px'>",
        "Error bars are 2.5th–97.5th percentiles across resampled iterations.",
        "</p>",
        "</body></html>"
    ]
    index_fn = os.path.join(out_dir, "index.html")
    with open(index_fn, "w", encoding="utf-8") as f:
        f.write("\n".join(idx))

    return [path for _, path in out_files] + [index_fn]
