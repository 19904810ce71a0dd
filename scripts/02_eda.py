from __future__ import annotations

import argparse
import os
import sys
import tempfile
from pathlib import Path

_mpl_cache_dir = Path(tempfile.gettempdir()) / "matplotlib"
_mpl_cache_dir.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("MPLCONFIGDIR", str(_mpl_cache_dir))

import numpy as np
import pandas as pd
import matplotlib

matplotlib.use("Agg")


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.config import (  # noqa: E402
    CAPITAL_COL,
    CAPITAL_LABELS,
    MODELING_FILE,
    REGION_COL,
    REGION_PLOT_ORDER,
    REGION_SHORT_LABELS,
    RESPONSE_COL,
)
from src.evaluation.descriptives import describe_numeric, frequency_table  # noqa: E402
from src.reporting.figures import (  # noqa: E402
    plot_grouped_boxplot,
    plot_response_distribution,
    save_figure,
)
from src.reporting.tables import write_table  # noqa: E402
from src.utils.logging import run_metadata, sha256_df, write_json  # noqa: E402


REQUIRED_COLUMNS = [
    "PBNVS",
    "PBNVF",
    "MHDI_I",
    "MHDI_H",
    "MHDI_E",
    "DD",
    "Capital",
    "Region",
]


def _compute_missingness_eda(df: pd.DataFrame) -> pd.DataFrame:
    rows = []
    n = len(df)
    for col in df.columns.astype(str).tolist():
        s = df[col]
        n_missing = int(s.isna().sum())
        rows.append(
            {
                "column": col,
                "dtype": str(s.dtype),
                "n": n,
                "n_missing": n_missing,
                "pct_missing": round((n_missing / n) * 100.0, 6) if n else np.nan,
                "n_unique": int(s.nunique(dropna=True)),
            }
        )
    return pd.DataFrame(rows)


def main() -> None:
    parser = argparse.ArgumentParser(description="Descriptive statistics, frequency tables and response plots.")
    parser.add_argument("--input", type=Path, default=MODELING_FILE, help="Modeling parquet from 01_build_dataset.py.")
    parser.add_argument("--nrows", type=int, default=None, help="Use only the first N rows (deterministic head).")
    parser.add_argument("--outdir", type=Path, default=Path("outputs"), help="Output directory (default: outputs/).")
    args = parser.parse_args()

    if not args.input.exists():
        raise SystemExit(f"Modeling table not found: {args.input}. Run scripts/01_build_dataset.py first.")

    df = pd.read_parquet(args.input)
    missing_required = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing_required:
        raise SystemExit(f"Missing required columns in modeling table: {missing_required}")

    if args.nrows is not None:
        if args.nrows <= 0:
            raise SystemExit("--nrows must be a positive integer.")
        df = df.head(args.nrows).copy()

    outdir = args.outdir
    tables_dir = outdir / "tables"
    figures_dir = outdir / "figures"
    logs_dir = outdir / "logs"
    for d in (tables_dir, figures_dir, logs_dir):
        d.mkdir(parents=True, exist_ok=True)

    run_meta = run_metadata(
        PROJECT_ROOT,
        input_parquet=str(args.input),
        input_content_hash_sha256=sha256_df(df),
        nrows=args.nrows,
        n_rows_used=len(df),
        outdir=str(outdir),
    )

    _compute_missingness_eda(df).to_csv(tables_dir / "missingness_eda.csv", index=False)

    # Capital and Region are summarized as frequency tables instead.
    desc = describe_numeric(df.drop(columns=[CAPITAL_COL, REGION_COL]))
    write_table(desc.round(4), tables_dir / "describe_numeric.csv")
    print(desc.round(4).to_string())

    region_freq = frequency_table(df[REGION_COL])
    capital_freq = frequency_table(df[CAPITAL_COL], labels=CAPITAL_LABELS)
    write_table(region_freq, tables_dir / "frequency_region.csv")
    write_table(capital_freq, tables_dir / "frequency_capital.csv")
    print(region_freq.to_string())
    print(capital_freq.to_string())

    fig = plot_response_distribution(df[RESPONSE_COL], xlabel="Proportion of Blank and Null Votes (2nd Round)")
    save_figure(fig, figures_dir / "pbnvs_distribution.png")

    fig = plot_grouped_boxplot(
        df,
        value_col=RESPONSE_COL,
        group_col=REGION_COL,
        order=REGION_PLOT_ORDER,
        labels=[REGION_SHORT_LABELS[r] for r in REGION_PLOT_ORDER],
        xlabel="Region",
        ylabel="Proportion of Blank and Null Votes",
    )
    save_figure(fig, figures_dir / "pbnvs_by_region.png")

    fig = plot_grouped_boxplot(
        df,
        value_col=RESPONSE_COL,
        group_col=CAPITAL_COL,
        order=list(CAPITAL_LABELS),
        labels=list(CAPITAL_LABELS.values()),
        xlabel="Capital",
        ylabel="Proportion of Blank and Null Votes",
    )
    save_figure(fig, figures_dir / "pbnvs_by_capital.png")

    run_meta["n_regions_observed"] = int(df[REGION_COL].nunique())
    write_json(logs_dir / "eda_run_metadata.json", run_meta)

    print(f"Wrote EDA artifacts to {outdir}/")


if __name__ == "__main__":
    main()
