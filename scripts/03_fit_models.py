from __future__ import annotations

import argparse
import os
import sys
import tempfile
import warnings
from pathlib import Path
from typing import Dict, List

import numpy as np
import pandas as pd

# Matplotlib must be configured before importing pyplot.
_mpl_cache_dir = Path(tempfile.gettempdir()) / "matplotlib"
_mpl_cache_dir.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("MPLCONFIGDIR", str(_mpl_cache_dir))

import matplotlib

matplotlib.use("Agg")

import joblib


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.config import (  # noqa: E402
    DATASET_VERSION,
    EXPERIMENT_NAMESPACE,
    FAMILIES,
    METRIC_COLS,
    MODELING_FILE,
    REPORT_DECIMALS,
)
from src.data.build import build_modeling_tables  # noqa: E402
from src.evaluation.metrics import (  # noqa: E402
    best_model_by_metric,
    build_measures_table,
    comparison_table,
    extract_model_metrics,
)
from src.models.catalog import build_model_specs  # noqa: E402
from src.models.gamlss import FitError, fit_gamlss  # noqa: E402
from src.reporting.figures import plot_metric_bars, save_figure  # noqa: E402
from src.reporting.tables import write_latex_table, write_table  # noqa: E402
from src.utils.logging import run_metadata, sha256_df, write_json  # noqa: E402


def _safe_filename(name: str) -> str:
    return "".join(ch if (ch.isalnum() or ch in {"_", "-", "."}) else "_" for ch in name)


def main() -> None:
    parser = argparse.ArgumentParser(description="Fit the GAMLSS candidate models and compare them.")
    parser.add_argument("--input", type=Path, default=MODELING_FILE, help="Modeling parquet from 01_build_dataset.py.")
    parser.add_argument("--nrows", type=int, default=None, help="Optional dev mode: head(n) rows deterministically.")
    parser.add_argument("--outdir", type=Path, default=Path("outputs"), help="Output directory (default: outputs/).")
    parser.add_argument("--effects", choices=["fixed", "random", "both"], default="both")
    parser.add_argument(
        "--families",
        nargs="+",
        choices=FAMILIES,
        default=list(FAMILIES),
        help="Subset of distribution families to fit.",
    )
    parser.add_argument("--no-persist", action="store_true", help="Do not write fitted models with joblib.")
    args = parser.parse_args()

    if not args.input.exists():
        raise SystemExit(f"Modeling table not found: {args.input}. Run scripts/01_build_dataset.py first.")

    table = pd.read_parquet(args.input)
    if args.nrows is not None:
        if args.nrows <= 0:
            raise SystemExit("--nrows must be a positive integer.")
        table = table.head(args.nrows).copy()

    try:
        datasets = build_modeling_tables(table)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    outdir = args.outdir
    tables_dir = outdir / "tables"
    figures_dir = outdir / "figures"
    models_dir = outdir / "models"
    logs_dir = outdir / "logs"
    coef_dir = tables_dir / "coefficients"
    for d in (tables_dir, figures_dir, models_dir, logs_dir, coef_dir):
        d.mkdir(parents=True, exist_ok=True)

    specs = [s for s in build_model_specs(args.effects) if s.family in set(args.families)]

    rows: Dict[str, Dict[str, float]] = {}
    effects: Dict[str, str] = {}
    fits: List[dict] = []
    for spec in specs:
        data = datasets[spec.data_key]
        effects[spec.name] = spec.effects
        print(f"Fitting {spec.name} ({spec.family}, {spec.effects}) on {spec.data_key} [n={len(data)}]")
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                result = fit_gamlss(spec, data)
                metrics = extract_model_metrics(result, data)
            except (FitError, ValueError, np.linalg.LinAlgError) as exc:
                print(f"  failed: {exc}")
                rows[spec.name] = {m: np.nan for m in METRIC_COLS}
                fits.append({"name": spec.name, "family": spec.family, "error": str(exc)})
                continue

        rows[spec.name] = metrics
        info = result.to_dict()
        info["metrics"] = metrics
        info["warnings"] = [str(w.message) for w in caught]
        fits.append(info)
        print(
            f"  AIC={metrics['AIC']:.4f} BIC={metrics['BIC']:.4f} RSQ={metrics['RSQ']:.4f} "
            f"converged={result.converged}"
        )

        write_table(result.summary(), coef_dir / f"{_safe_filename(spec.name)}.csv", index=False)
        if not args.no_persist:
            joblib.dump(result, models_dir / f"{_safe_filename(spec.name)}.joblib")

    measures = build_measures_table(rows)
    rounded = measures.round(REPORT_DECIMALS)
    print(rounded.to_string())
    write_table(rounded, tables_dir / f"measures_{args.effects}.csv")

    best = best_model_by_metric(measures)
    print(best.to_string(index=False))
    write_table(best, tables_dir / f"best_by_metric_{args.effects}.csv", index=False)

    comparison = comparison_table(measures, effects, decimals=REPORT_DECIMALS)
    write_table(comparison, tables_dir / f"comparison_{args.effects}.csv")
    write_latex_table(
        comparison,
        tables_dir / f"comparison_{args.effects}.tex",
        caption="Information criteria, generalized R-squared and accuracy of the fitted models.",
        label=f"tab:comparison_{args.effects}",
        decimals=REPORT_DECIMALS,
    )

    if measures["AIC"].notna().any():
        save_figure(plot_metric_bars(measures, "AIC"), figures_dir / f"aic_{args.effects}.png")

    run_meta = run_metadata(
        PROJECT_ROOT,
        dataset_version=DATASET_VERSION,
        experiment_namespace=EXPERIMENT_NAMESPACE,
        input_parquet=str(args.input),
        input_content_hash_sha256=sha256_df(table),
        nrows=args.nrows,
        effects=args.effects,
        families=args.families,
        fits=fits,
    )
    write_json(logs_dir / f"fit_models_{args.effects}_run_metadata.json", run_meta)

    print(f"Wrote modeling artifacts to {outdir}/")


if __name__ == "__main__":
    main()
