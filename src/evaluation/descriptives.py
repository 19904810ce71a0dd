from __future__ import annotations

from typing import Mapping, Optional

import numpy as np
import pandas as pd
from scipy import stats


DESCRIBE_COLUMNS = [
    "vars",
    "n",
    "mean",
    "sd",
    "median",
    "trimmed",
    "mad",
    "min",
    "max",
    "range",
    "skew",
    "kurtosis",
    "se",
]


def _describe_one(values: np.ndarray) -> dict:
    x = values[np.isfinite(values)]
    n = x.size
    if n == 0:
        return {"n": 0}
    mean = float(np.mean(x))
    sd = float(np.std(x, ddof=1)) if n > 1 else np.nan
    # Type-3 moment estimators: b1 and b2 - 3 scaled to the sample variance.
    m2 = float(np.mean((x - mean) ** 2))
    if m2 > 0 and n > 1:
        g1 = float(stats.skew(x, bias=True))
        g2 = float(stats.kurtosis(x, fisher=False, bias=True))
        skew = g1 * ((n - 1) / n) ** 1.5
        kurt = g2 * ((n - 1) / n) ** 2 - 3.0
    else:
        skew = np.nan
        kurt = np.nan
    return {
        "n": n,
        "mean": mean,
        "sd": sd,
        "median": float(np.median(x)),
        "trimmed": float(stats.trim_mean(x, 0.1)),
        "mad": float(stats.median_abs_deviation(x, scale="normal")),
        "min": float(np.min(x)),
        "max": float(np.max(x)),
        "range": float(np.max(x) - np.min(x)),
        "skew": skew,
        "kurtosis": kurt,
        "se": sd / np.sqrt(n) if n > 1 else np.nan,
    }


def describe_numeric(df: pd.DataFrame) -> pd.DataFrame:
    """Descriptive statistics for every numeric column, one row per variable."""

    numeric = df.select_dtypes(include=[np.number])
    rows = []
    for i, col in enumerate(numeric.columns, start=1):
        row = {"variable": col, "vars": i}
        row.update(_describe_one(numeric[col].to_numpy(dtype=float)))
        rows.append(row)
    out = pd.DataFrame(rows).set_index("variable")
    return out.reindex(columns=DESCRIBE_COLUMNS)


def frequency_table(series: pd.Series, labels: Optional[Mapping] = None) -> pd.DataFrame:
    """Absolute and relative (%) frequencies by level, with a Total row."""

    counts = series.value_counts(dropna=False, sort=False).sort_index()
    if labels:
        counts.index = [labels.get(v, v) for v in counts.index]
    total = int(counts.sum())
    rel = (counts / total * 100.0).round(2) if total else counts * np.nan
    out = pd.DataFrame({"Absolute Frequency": counts.astype(int), "Relative Frequency (%)": rel})
    out.loc["Total"] = [total, round(float(rel.sum()), 2)]
    out["Absolute Frequency"] = out["Absolute Frequency"].astype(int)
    out.index = out.index.map(str)
    return out
