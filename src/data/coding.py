from __future__ import annotations

import re
from typing import Dict, Iterable, Optional, Sequence

import numpy as np
import pandas as pd


_NORMALIZE_RE = re.compile(r"[^0-9a-zA-Z]+")


def _normalize_name(name: str) -> str:
    return _NORMALIZE_RE.sub("_", name).strip("_").lower()


def canonicalize_columns(df: pd.DataFrame, canonical: Iterable[str]) -> pd.DataFrame:
    """Rename columns whose normalized name matches a canonical name.

    Spreadsheet exports differ in header casing/spacing ("mhdi i", "Mhdi_I").
    Columns without a canonical match are left untouched.
    """

    wanted: Dict[str, str] = {_normalize_name(c): c for c in canonical}
    renames: Dict[str, str] = {}
    seen: Dict[str, str] = {}
    for col in df.columns.astype(str).tolist():
        norm = _normalize_name(col)
        if norm not in wanted:
            continue
        if norm in seen:
            raise ValueError(f"Columns {seen[norm]!r} and {col!r} both map to {wanted[norm]!r}")
        seen[norm] = col
        if col != wanted[norm]:
            renames[col] = wanted[norm]
    return df.rename(columns=renames)


def coerce_capital(series: pd.Series) -> pd.Series:
    """Map the capital flag to {0, 1}.

    Accepts numeric 0/1 as well as yes/no style strings.
    """

    yes = {"1", "yes", "sim", "true", "y", "s"}
    no = {"0", "no", "nao", "não", "false", "n"}

    def _code(v):
        if pd.isna(v):
            return pd.NA
        if isinstance(v, (bool, np.bool_)):
            return int(v)
        if isinstance(v, (int, float, np.integer, np.floating)):
            fv = float(v)
            if fv in (0.0, 1.0):
                return int(fv)
        else:
            key = str(v).strip().lower()
            if key.endswith(".0"):
                key = key[:-2]
            if key in yes:
                return 1
            if key in no:
                return 0
        raise ValueError(f"Unexpected capital flag value: {v!r}")

    return series.map(_code).astype("Int64")


def region_dummies(region: pd.Series, levels: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """Indicator columns for every region level except the first (reference) one.

    Levels default to the sorted observed values. Observed values outside an
    explicit `levels` list are an error.
    """

    observed = sorted(region.dropna().astype(str).unique().tolist())
    if levels is None:
        levels = observed
    unknown = sorted(set(observed) - set(levels))
    if unknown:
        raise ValueError(f"Unknown region levels: {unknown}; expected {list(levels)}")

    cat = pd.Categorical(region.astype("string"), categories=list(levels))
    dummies = pd.get_dummies(cat, dtype=int)
    dummies.index = region.index
    return dummies.iloc[:, 1:]


def summarize_missingness(df: pd.DataFrame) -> pd.DataFrame:
    """Return per-column missingness summary in stable column order."""

    n = len(df)
    counts = df.isna().sum()
    out = pd.DataFrame(
        {
            "column": df.columns.astype(str),
            "n": n,
            "n_missing": counts.to_numpy(dtype=int),
        }
    )
    out["missing_rate"] = (out["n_missing"] / n).round(6) if n else np.nan
    return out
