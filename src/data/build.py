from __future__ import annotations

from typing import Dict, Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from src.config import (
    CAPITAL_COL,
    COVARIATE_COLS,
    FIRST_ROUND_COL,
    FIRST_ROUND_COUNTS,
    REGION_COL,
    REGION_LEVELS,
    RESPONSE_COL,
    SECOND_ROUND_COUNTS,
)
from .coding import coerce_capital, region_dummies
from .validate import assert_required_columns


def _blank_null_share(df: pd.DataFrame, counts: Sequence[str]) -> pd.Series:
    blank, null, valid = (df[c].astype(float) for c in counts)
    denom = blank + null + valid
    if (denom <= 0).any():
        bad = int((denom <= 0).sum())
        raise ValueError(f"Zero total votes for {bad} rows in columns {list(counts)}")
    return (blank + null) / denom


def add_vote_proportions(df: pd.DataFrame) -> pd.DataFrame:
    """Append PBNVF/PBNVS: (blank + null) / (blank + null + valid) per round."""

    assert_required_columns(df, list(FIRST_ROUND_COUNTS) + list(SECOND_ROUND_COUNTS))
    out = df.copy()
    out[FIRST_ROUND_COL] = _blank_null_share(out, FIRST_ROUND_COUNTS)
    out[RESPONSE_COL] = _blank_null_share(out, SECOND_ROUND_COUNTS)
    return out


def build_analysis_table(
    df: pd.DataFrame,
    covariates: Iterable[str] = COVARIATE_COLS,
    region_col: str = REGION_COL,
) -> tuple[pd.DataFrame, Dict[str, object]]:
    """Select response, covariates and region; drop incomplete rows.

    Returns the table and a record of the filter applied.
    """

    covariates = list(covariates)
    required = [RESPONSE_COL] + covariates + [region_col]
    assert_required_columns(df, required)

    table = df[required].copy()
    if CAPITAL_COL in table.columns:
        table[CAPITAL_COL] = coerce_capital(table[CAPITAL_COL])
    table[region_col] = table[region_col].astype("string").str.strip()

    n_before = len(table)
    table = table.dropna().reset_index(drop=True)
    if CAPITAL_COL in table.columns:
        table[CAPITAL_COL] = table[CAPITAL_COL].astype(int)
    table[region_col] = table[region_col].astype(str)

    decision = {
        "rule": "drop_incomplete_rows",
        "columns": required,
        "dropped_rows": n_before - len(table),
    }
    return table, decision


def build_modeling_tables(
    table: pd.DataFrame,
    region_levels: Optional[Sequence[str]] = REGION_LEVELS,
    region_col: str = REGION_COL,
) -> Dict[str, pd.DataFrame]:
    """Return the three model inputs.

    - datareg: response and covariates, no region information
    - datafix: datareg plus region dummies (first level is the reference)
    - dataran: datareg plus the region as a grouping column
    """

    assert_required_columns(table, [RESPONSE_COL, region_col])
    datareg = table.drop(columns=[region_col]).reset_index(drop=True)

    levels = region_levels
    observed = set(table[region_col].astype(str).unique().tolist())
    if levels is not None and not observed <= set(levels):
        # Fall back to observed levels so that non-standard labels still model.
        levels = None
    if levels is not None:
        # The reference is the first level present in the sample.
        levels = [lvl for lvl in levels if lvl in observed]
    dummies = region_dummies(table[region_col].reset_index(drop=True), levels=levels)

    datafix = pd.concat([datareg, dummies], axis=1)
    dataran = datareg.copy()
    dataran[region_col] = table[region_col].astype(str).to_numpy()

    return {"datareg": datareg, "datafix": datafix, "dataran": dataran}


def response_range(values) -> Dict[str, float]:
    y = np.asarray(values, dtype=float)
    return {"min": float(np.min(y)), "max": float(np.max(y)), "mean": float(np.mean(y))}
