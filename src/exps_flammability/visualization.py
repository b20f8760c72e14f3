from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import plotly.graph_objects as go
import seaborn as sns

from .mixed_model import FitResult

logger = logging.getLogger(__name__)


def save_figure(fig: plt.Figure, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Saved: {path}")
    return path


def exploratory_scatter(
    df: pd.DataFrame,
    outcome: str,
    predictor: str,
    hue: Optional[str] = "species",
    output_png: Optional[Path] = None,
) -> plt.Figure:
    """Outcome against predictor with one OLS line per hue level."""
    data = df.dropna(subset=[outcome, predictor])
    fig, ax = plt.subplots(figsize=(8, 6))
    sns.set_palette("husl")
    if hue is None:
        sns.regplot(data=data, x=predictor, y=outcome, ci=None, ax=ax, scatter_kws={"alpha": 0.6})
    else:
        for level, group in data.groupby(hue, sort=True):
            sns.regplot(data=group, x=predictor, y=outcome, ci=None, ax=ax, label=str(level), scatter_kws={"alpha": 0.6})
        ax.legend(title=hue)
    ax.set_xlabel(predictor)
    ax.set_ylabel(outcome)
    ax.grid(True, alpha=0.3)
    if output_png:
        save_figure(fig, output_png)
    return fig


def aic_comparison_plot(
    comparison: pd.DataFrame,
    aic_threshold: float = 2.0,
    output_png: Optional[Path] = None,
) -> plt.Figure:
    """ΔAIC per fitted candidate; the selected one is highlighted."""
    fitted = comparison.dropna(subset=["aic"]).sort_values("aic")
    if fitted.empty:
        raise ValueError("Comparison table has no fitted candidates to plot.")
    colors = ["tab:red" if sel else "tab:gray" for sel in fitted["selected"]]
    fig, ax = plt.subplots(figsize=(8, max(3, 0.5 * len(fitted))))
    ax.barh(fitted["label"], fitted["delta_aic"], color=colors)
    ax.axvline(aic_threshold, color="k", linestyle="--", linewidth=1, label=f"ΔAIC = {aic_threshold}")
    ax.invert_yaxis()
    ax.set_xlabel("ΔAIC")
    ax.legend(loc="lower right")
    ax.grid(True, axis="x", alpha=0.3)
    if output_png:
        save_figure(fig, output_png)
    return fig


def partial_effect_plot(
    fit: FitResult,
    partial: pd.Series,
    predictor: str,
    output_png: Optional[Path] = None,
) -> plt.Figure:
    """Partial response (other effects removed) against the predictor of interest."""
    frame = fit.result.model.data.frame
    x = frame[predictor].to_numpy(dtype=float)
    y = partial.to_numpy(dtype=float)
    fig, ax = plt.subplots(figsize=(8, 6))
    ax.scatter(x, y, alpha=0.6)
    order = np.argsort(x)
    slope = float(fit.result.fe_params[predictor])
    ax.plot(x[order], slope * (x[order] - x.mean()) + y.mean(), "k-", linewidth=2, label=f"slope = {slope:.3f}")
    ax.set_xlabel(predictor)
    ax.set_ylabel(f"{fit.spec.response} (partial)")
    ax.legend(loc="best")
    ax.grid(True, alpha=0.3)
    if output_png:
        save_figure(fig, output_png)
    return fig


def residual_plot(fit: FitResult, output_png: Optional[Path] = None) -> plt.Figure:
    fig, ax = plt.subplots(figsize=(7, 5))
    ax.scatter(fit.result.fittedvalues, fit.result.resid, alpha=0.6)
    ax.axhline(0.0, color="k", linewidth=1)
    ax.set_xlabel("Fitted")
    ax.set_ylabel("Residual")
    ax.set_title(fit.spec.formula)
    ax.grid(True, alpha=0.3)
    if output_png:
        save_figure(fig, output_png)
    return fig


def surface_plot(
    grid: pd.DataFrame,
    feature_x: str,
    feature_y: str,
    output_html: Optional[Path] = None,
    output_png: Optional[Path] = None,
    title: str = "Predicted response surface",
    z_title: str = "Predicted response",
) -> go.Figure:
    """Create a 3D surface plot from a prediction grid."""
    required = {feature_x, feature_y, "prediction"}
    if not required.issubset(set(grid.columns)):
        missing = required.difference(grid.columns)
        raise ValueError(f"Grid missing required columns: {missing}")

    x_vals = np.sort(grid[feature_x].unique())
    y_vals = np.sort(grid[feature_y].unique())
    z_matrix = grid.pivot(index=feature_y, columns=feature_x, values="prediction").loc[y_vals, x_vals].values

    fig = go.Figure(data=[go.Surface(x=x_vals, y=y_vals, z=z_matrix, colorscale="Viridis")])
    fig.update_layout(scene=dict(xaxis_title=feature_x, yaxis_title=feature_y, zaxis_title=z_title), title=title)

    if output_html:
        output_html.parent.mkdir(parents=True, exist_ok=True)
        fig.write_html(str(output_html))

    if output_png:
        output_png.parent.mkdir(parents=True, exist_ok=True)
        try:
            fig.write_image(str(output_png))
        except (ValueError, ImportError, RuntimeError) as e:
            # PNG export needs kaleido; the HTML copy is still written.
            logger.warning(f"Skipping PNG export of {output_png}: {e}")

    return fig
