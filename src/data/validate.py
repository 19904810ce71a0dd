from typing import Iterable

import numpy as np
import pandas as pd


def assert_required_columns(df, required: Iterable[str]) -> None:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")


def assert_unit_interval(values, name: str = "response") -> None:
    """Raise if any value falls outside the open interval (0, 1)."""

    y = np.asarray(pd.Series(values), dtype=float)
    bad = ~((y > 0.0) & (y < 1.0))
    if bad.any():
        raise ValueError(f"{name} must lie strictly inside (0, 1); {int(bad.sum())} of {y.size} values do not.")
