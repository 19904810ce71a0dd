from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

import numpy as np
import pandas as pd
from scipy import stats

from src.models.gamlss import GamlssResult


def ppoints(n: int) -> np.ndarray:
    """Plotting positions (i - a) / (n + 1 - 2a), a = 3/8 for n <= 10 else 1/2."""

    a = 3.0 / 8.0 if n <= 10 else 0.5
    return (np.arange(1, n + 1) - a) / (n + 1 - 2 * a)


@dataclass(frozen=True)
class WormPoints:
    z: np.ndarray
    deviation: np.ndarray
    band_z: np.ndarray
    band_low: np.ndarray
    band_high: np.ndarray
    cubic: np.ndarray

    @property
    def share_outside_band(self) -> float:
        limit = np.interp(self.z, self.band_z, self.band_high)
        return float(np.mean(np.abs(self.deviation) > limit))


def worm_points(residuals, z_limit: float = 4.0, level: float = 0.95) -> WormPoints:
    """Detrended normal Q-Q coordinates with pointwise confidence bands."""

    r = np.sort(np.asarray(residuals, dtype=float))
    r = r[np.isfinite(r)]
    n = r.size
    if n < 4:
        raise ValueError(f"Need at least 4 finite residuals for a worm plot, got {n}")
    z = stats.norm.ppf(ppoints(n))
    deviation = r - z

    crit = stats.norm.ppf(0.5 + level / 2.0)
    band_z = np.linspace(-z_limit, z_limit, 201)
    p = stats.norm.cdf(band_z)
    se = np.sqrt(p * (1.0 - p) / n) / stats.norm.pdf(band_z)
    cubic = np.polyfit(z, deviation, 3)
    return WormPoints(
        z=z,
        deviation=deviation,
        band_z=band_z,
        band_low=-crit * se,
        band_high=crit * se,
        cubic=cubic,
    )


def term_effects(result: GamlssResult, parameter: str) -> Dict[str, pd.DataFrame]:
    """Centred partial linear predictor of each model term with pointwise SE."""

    design = result.designs[parameter]
    coef = result.coefficients[parameter]
    labels = [f"{parameter}:{c}" for c in coef.index]
    cov = result.cov.loc[labels, labels].to_numpy()
    col_pos = {c: i for i, c in enumerate(coef.index)}

    out: Dict[str, pd.DataFrame] = {}
    for term, cols in result.term_columns[parameter].items():
        idx = [col_pos[c] for c in cols]
        Xt = design[cols].to_numpy(dtype=float)
        Xc = Xt - Xt.mean(axis=0)
        fit = Xc @ coef.to_numpy()[idx]
        V = cov[np.ix_(idx, idx)]
        se = np.sqrt(np.clip(np.einsum("ij,jk,ik->i", Xc, V, Xc), 0.0, None))
        x = Xt[:, 0] if len(cols) == 1 else np.arange(len(Xt))
        frame = pd.DataFrame({"x": x, "partial": fit, "se": se}).sort_values("x", kind="mergesort")
        out[term] = frame.reset_index(drop=True)
    return out


def residual_summary(residuals) -> Dict[str, float]:
    """Moments of quantile residuals and the normal probability-plot correlation."""

    r = np.asarray(residuals, dtype=float)
    r = r[np.isfinite(r)]
    (_, _), (_, _, filliben) = stats.probplot(r, dist="norm")
    return {
        "n": int(r.size),
        "mean": float(np.mean(r)),
        "variance": float(np.var(r, ddof=1)),
        "skewness": float(stats.skew(r)),
        "excess_kurtosis": float(stats.kurtosis(r)),
        "filliben_correlation": float(filliben),
    }
