from __future__ import annotations

import argparse
import os
import sys
import tempfile
from pathlib import Path

import pandas as pd

_mpl_cache_dir = Path(tempfile.gettempdir()) / "matplotlib"
_mpl_cache_dir.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("MPLCONFIGDIR", str(_mpl_cache_dir))

import matplotlib

matplotlib.use("Agg")

import joblib


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.config import GAIC_PENALTY, MODELING_FILE  # noqa: E402
from src.data.build import build_modeling_tables  # noqa: E402
from src.evaluation.diagnostics import residual_summary, worm_points  # noqa: E402
from src.models.catalog import build_final_specs, build_fixed_spec  # noqa: E402
from src.models.gamlss import FitError, fit_gamlss, lr_test  # noqa: E402
from src.models.stepwise import step_gaic  # noqa: E402
from src.reporting.figures import (  # noqa: E402
    plot_fitted_vs_observed,
    plot_residual_diagnostics,
    plot_residual_hist_qq,
    plot_term_effects,
    plot_worms,
    save_figure,
)
from src.reporting.tables import write_table  # noqa: E402
from src.utils.logging import run_metadata, sha256_df, write_json  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Stepwise GAIC selection on the Beta model, dispersion LR test and residual diagnostics."
    )
    parser.add_argument("--input", type=Path, default=MODELING_FILE, help="Modeling parquet from 01_build_dataset.py.")
    parser.add_argument("--nrows", type=int, default=None, help="Optional dev mode: head(n) rows deterministically.")
    parser.add_argument("--outdir", type=Path, default=Path("outputs"), help="Output directory (default: outputs/).")
    parser.add_argument("--k", type=float, default=GAIC_PENALTY, help="GAIC penalty per degree of freedom.")
    parser.add_argument("--skip-stepwise", action="store_true", help="Only refit the final models.")
    args = parser.parse_args()

    if not args.input.exists():
        raise SystemExit(f"Modeling table not found: {args.input}. Run scripts/01_build_dataset.py first.")

    table = pd.read_parquet(args.input)
    if args.nrows is not None:
        if args.nrows <= 0:
            raise SystemExit("--nrows must be a positive integer.")
        table = table.head(args.nrows).copy()

    try:
        datafix = build_modeling_tables(table)["datafix"]
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    outdir = args.outdir
    tables_dir = outdir / "tables"
    figures_dir = outdir / "figures"
    models_dir = outdir / "models"
    logs_dir = outdir / "logs"
    for d in (tables_dir, figures_dir, models_dir, logs_dir):
        d.mkdir(parents=True, exist_ok=True)

    run_meta = run_metadata(
        PROJECT_ROOT,
        input_parquet=str(args.input),
        input_content_hash_sha256=sha256_df(table),
        nrows=args.nrows,
        gaic_k=args.k,
    )

    if not args.skip_stepwise:
        print("Stepwise GAIC selection on the Beta fixed-effects model (mu)")
        beta_fixed = fit_gamlss(build_fixed_spec("BE"), datafix)
        selected, path = step_gaic(beta_fixed, datafix, parameter="mu", k=args.k)
        write_table(path, tables_dir / "stepwise_path.csv", index=False)
        write_table(selected.summary(), tables_dir / "stepwise_selected_summary.csv", index=False)
        run_meta["stepwise"] = {
            "start": beta_fixed.to_dict(),
            "selected": selected.to_dict(),
            "selected_mu_terms": selected.terms("mu"),
        }
        print(selected.summary().round(4).to_string(index=False))

    spec_sigma, spec_const = build_final_specs()
    try:
        final2 = fit_gamlss(spec_sigma, datafix)
        final_sfixed = fit_gamlss(spec_const, datafix)
    except (FitError, ValueError) as exc:
        raise SystemExit(f"Final model fit failed: {exc}") from exc

    for res, stem in ((final2, "final_sigma_modeled"), (final_sfixed, "final_sigma_constant")):
        write_table(res.summary(), tables_dir / f"{stem}_summary.csv", index=False)
        joblib.dump(res, models_dir / f"{stem}.joblib")
        print(res.name)
        print(res.summary().round(4).to_string(index=False))

    lr = lr_test(final_sfixed, final2)
    write_table(lr.to_frame(), tables_dir / "lr_test_dispersion.csv", index=False)
    print(
        f"LR test ({lr.null_model} vs {lr.alternative_model}): "
        f"LR={lr.statistic:.4f}, df={lr.df:.3f}, p={lr.p_value:.4g}"
    )

    save_figure(plot_worms([final2, final_sfixed]), figures_dir / "worm_final_models.png")
    save_figure(plot_fitted_vs_observed([final2, final_sfixed]), figures_dir / "fitted_vs_observed.png")
    save_figure(plot_term_effects(final2, parameter="sigma"), figures_dir / "sigma_term_plot.png")
    save_figure(plot_residual_diagnostics(final2), figures_dir / "diagnostics_final_sigma_modeled.png")
    save_figure(plot_residual_diagnostics(final_sfixed), figures_dir / "diagnostics_final_sigma_constant.png")
    save_figure(
        plot_residual_hist_qq(final2.residuals, hist_xlabel="Quantile residuals"),
        figures_dir / "residuals_hist_qq.png",
    )

    run_meta["final_models"] = {
        "sigma_modeled": {
            **final2.to_dict(),
            "residuals": residual_summary(final2.residuals),
            "worm_share_outside_band": worm_points(final2.residuals).share_outside_band,
        },
        "sigma_constant": {
            **final_sfixed.to_dict(),
            "residuals": residual_summary(final_sfixed.residuals),
            "worm_share_outside_band": worm_points(final_sfixed.residuals).share_outside_band,
        },
    }
    run_meta["lr_test"] = lr.to_frame().iloc[0].to_dict()
    write_json(logs_dir / "final_model_run_metadata.json", run_meta)

    print(f"Wrote final-model artifacts to {outdir}/")


if __name__ == "__main__":
    main()
