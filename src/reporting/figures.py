from pathlib import Path
from typing import Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from scipy import stats

from src.evaluation.diagnostics import term_effects, worm_points
from src.models.gamlss import GamlssResult


def save_figure(fig, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=300, bbox_inches="tight")
    plt.close(fig)


def plot_response_distribution(y: pd.Series, xlabel: str):
    """Density histogram with KDE next to a notched horizontal boxplot."""

    values = y.dropna().to_numpy(dtype=float)
    fig, (ax_hist, ax_box) = plt.subplots(1, 2, figsize=(12, 5))
    ax_hist.hist(values, bins="sturges", density=True, color="lightgray", edgecolor="black")
    if values.size > 1 and np.std(values) > 0:
        grid = np.linspace(values.min(), values.max(), 256)
        ax_hist.plot(grid, stats.gaussian_kde(values)(grid), color="darkred", lw=2)
    ax_hist.set_xlabel(xlabel)
    ax_hist.set_ylabel("Density")

    ax_box.boxplot(values, notch=True)
    ax_box.set_ylabel("Proportion of votes")
    ax_box.set_xticks([])
    fig.tight_layout()
    return fig


def plot_grouped_boxplot(
    df: pd.DataFrame,
    value_col: str,
    group_col: str,
    order: Sequence,
    labels: Sequence[str],
    xlabel: str,
    ylabel: str,
):
    present = [g for g in order if (df[group_col] == g).any()]
    tick_labels = [labels[list(order).index(g)] for g in present]
    data = [df.loc[df[group_col] == g, value_col].dropna().to_numpy(dtype=float) for g in present]
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.boxplot(data, widths=0.4)
    ax.set_xticks(np.arange(1, len(present) + 1))
    ax.set_xticklabels(tick_labels, fontsize=12)
    ax.set_xlabel(xlabel, fontsize=13)
    ax.set_ylabel(ylabel, fontsize=13)
    fig.tight_layout()
    return fig


def draw_worm(ax, residuals, title: str = "") -> None:
    wp = worm_points(residuals)
    ax.plot(wp.band_z, wp.band_low, ls="--", color="gray", lw=1)
    ax.plot(wp.band_z, wp.band_high, ls="--", color="gray", lw=1)
    ax.axhline(0.0, color="gray", lw=1)
    ax.axvline(0.0, color="gray", lw=0.8, ls=":")
    ax.scatter(wp.z, wp.deviation, s=6, facecolors="none", edgecolors="black")
    grid = np.linspace(wp.z.min(), wp.z.max(), 200)
    ax.plot(grid, np.polyval(wp.cubic, grid), color="red", lw=1.5)
    lim = max(1.0, float(np.nanmax(np.abs(wp.deviation))) * 1.1)
    ax.set_ylim(-lim, lim)
    ax.set_xlim(wp.band_z.min(), wp.band_z.max())
    ax.set_xlabel("Unit normal quantile")
    ax.set_ylabel("Deviation")
    if title:
        ax.set_title(title)


def plot_worms(results: Sequence[GamlssResult]):
    fig, axes = plt.subplots(len(results), 1, figsize=(8, 4 * len(results)), squeeze=False)
    for ax, res in zip(axes[:, 0], results):
        draw_worm(ax, res.residuals, title=res.name)
    fig.tight_layout()
    return fig


def plot_fitted_vs_observed(results: Sequence[GamlssResult], colors: Sequence[str] = ("black", "red")):
    fig, ax = plt.subplots(figsize=(7, 6))
    for res, color in zip(results, colors):
        ax.scatter(res.mu_fv, res.y, s=8, facecolors="none", edgecolors=color, label=res.name)
    lo = min(float(np.min(r.y)) for r in results)
    hi = max(float(np.max(r.y)) for r in results)
    ax.plot([lo, hi], [lo, hi], color="gray", ls=":", lw=1)
    ax.set_xlabel("Fitted values")
    ax.set_ylabel("Observed values")
    ax.set_title("Fitted vs Observed")
    ax.legend()
    fig.tight_layout()
    return fig


def plot_term_effects(result: GamlssResult, parameter: str = "sigma", ncols: int = 4):
    effects = term_effects(result, parameter)
    if not effects:
        raise ValueError(f"{result.name}: no {parameter} terms to plot")
    nrows = int(np.ceil(len(effects) / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(4 * ncols, 3.5 * nrows), squeeze=False)
    flat = axes.ravel()
    for ax, (term, frame) in zip(flat, effects.items()):
        ax.plot(frame["x"], frame["partial"], color="black", lw=1.5)
        ax.plot(frame["x"], frame["partial"] + 2 * frame["se"], color="red", ls="--", lw=1)
        ax.plot(frame["x"], frame["partial"] - 2 * frame["se"], color="red", ls="--", lw=1)
        ax.set_xlabel(term)
        ax.set_ylabel(f"Partial for {term}")
    for ax in flat[len(effects):]:
        ax.set_visible(False)
    fig.tight_layout()
    return fig


def plot_residual_diagnostics(result: GamlssResult):
    """Quantile residuals against fitted values and index, their density and a normal Q-Q plot."""

    r = result.residuals
    fig, axes = plt.subplots(2, 2, figsize=(10, 8))
    ax = axes[0, 0]
    ax.scatter(result.mu_fv, r, s=6, facecolors="none", edgecolors="black")
    ax.axhline(0.0, color="gray", lw=1)
    ax.set_xlabel("Fitted values")
    ax.set_ylabel("Quantile residuals")
    ax.set_title("Against Fitted Values")

    ax = axes[0, 1]
    ax.scatter(np.arange(r.size), r, s=6, facecolors="none", edgecolors="black")
    ax.axhline(0.0, color="gray", lw=1)
    ax.set_xlabel("Index")
    ax.set_ylabel("Quantile residuals")
    ax.set_title("Against Index")

    ax = axes[1, 0]
    finite = r[np.isfinite(r)]
    grid = np.linspace(finite.min() - 0.5, finite.max() + 0.5, 256)
    ax.plot(grid, stats.gaussian_kde(finite)(grid), color="black")
    ax.plot(grid, stats.norm.pdf(grid), color="gray", ls="--")
    ax.set_xlabel("Quantile residuals")
    ax.set_ylabel("Density")
    ax.set_title("Density Estimate")

    ax = axes[1, 1]
    stats.probplot(finite, dist="norm", plot=ax)
    ax.set_title("Normal Q-Q Plot")

    fig.suptitle(result.name)
    fig.tight_layout()
    return fig


def plot_residual_hist_qq(residuals, hist_xlabel: str = "Residuals"):
    r = np.asarray(residuals, dtype=float)
    r = r[np.isfinite(r)]
    fig, (ax_hist, ax_qq) = plt.subplots(1, 2, figsize=(12, 5))
    ax_hist.hist(r, bins="sturges", density=True, color="lightgray", edgecolor="black")
    grid = np.linspace(r.min(), r.max(), 256)
    ax_hist.plot(grid, stats.norm.pdf(grid, loc=r.mean(), scale=r.std(ddof=1)), color="darkred", lw=2)
    ax_hist.set_xlabel(hist_xlabel, fontsize=14)
    ax_hist.set_ylabel("Density", fontsize=14)

    (osm, osr), _ = stats.probplot(r, dist="norm")
    ax_qq.scatter(osm, osr, s=8, facecolors="none", edgecolors="black")
    # Reference line through the quartiles.
    q_sample = np.percentile(r, [25, 75])
    q_theory = stats.norm.ppf([0.25, 0.75])
    line_slope = (q_sample[1] - q_sample[0]) / (q_theory[1] - q_theory[0])
    line_icpt = q_sample[0] - line_slope * q_theory[0]
    ax_qq.plot(osm, line_icpt + line_slope * osm, color="darkred", lw=2)
    ax_qq.set_xlabel("Standard Normal Quantiles", fontsize=14)
    ax_qq.set_ylabel("Sample Quantiles", fontsize=14)
    fig.tight_layout()
    return fig


def plot_metric_bars(measures: pd.DataFrame, metric: str, title: Optional[str] = None):
    values = measures[metric]
    fig, ax = plt.subplots(figsize=(10, 5))
    ax.bar(values.index.astype(str), values.to_numpy(dtype=float))
    ax.set_ylabel(metric)
    ax.set_title(title or f"{metric} by model")
    ax.tick_params(axis="x", rotation=45, labelsize=9)
    fig.tight_layout()
    return fig
