import json
from pathlib import Path

import pandas as pd

from conftest import run_script


def test_fit_models_smoke(tmp_path: Path, modeling_parquet: Path):
    outdir = tmp_path / "outputs"
    run_script(
        "03_fit_models.py",
        "--input",
        modeling_parquet,
        "--outdir",
        outdir,
        "--effects",
        "both",
        "--families",
        "BE",
        "Kuma",
    )

    measures = pd.read_csv(outdir / "tables" / "measures_both.csv", index_col=0)
    assert measures.index.tolist() == ["Beta", "Beta RE", "Kuma", "Kuma RE"]
    assert measures.columns.tolist() == ["AIC", "BIC", "RSQ", "MAPE", "MAE", "RMSE"]

    best = pd.read_csv(outdir / "tables" / "best_by_metric_both.csv")
    assert best["metric"].tolist() == ["AIC", "BIC", "RSQ", "MAPE", "MAE", "RMSE"]

    comparison = pd.read_csv(outdir / "tables" / "comparison_both.csv", index_col=0)
    assert comparison["Model_Type"].tolist() == ["Fixed", "Random", "Fixed", "Random"]

    for rel in [
        "tables/comparison_both.tex",
        "tables/coefficients/Beta.csv",
        "models/Beta.joblib",
        "figures/aic_both.png",
        "logs/fit_models_both_run_metadata.json",
    ]:
        assert (outdir / rel).exists(), f"Missing expected modeling artifact: {rel}"

    meta = json.loads((outdir / "logs" / "fit_models_both_run_metadata.json").read_text(encoding="utf-8"))
    assert meta["effects"] == "both"
    assert [f["name"] for f in meta["fits"]] == ["Beta", "Beta RE", "Kuma", "Kuma RE"]


def test_final_model_smoke(tmp_path: Path, modeling_parquet: Path):
    outdir = tmp_path / "outputs"
    run_script("04_final_model.py", "--input", modeling_parquet, "--outdir", outdir, "--skip-stepwise")

    for rel in [
        "tables/final_sigma_modeled_summary.csv",
        "tables/final_sigma_constant_summary.csv",
        "tables/lr_test_dispersion.csv",
        "models/final_sigma_modeled.joblib",
        "figures/worm_final_models.png",
        "figures/fitted_vs_observed.png",
        "figures/sigma_term_plot.png",
        "figures/residuals_hist_qq.png",
        "logs/final_model_run_metadata.json",
    ]:
        assert (outdir / rel).exists(), f"Missing expected final-model artifact: {rel}"

    lr = pd.read_csv(outdir / "tables" / "lr_test_dispersion.csv")
    assert lr.loc[0, "df"] == 8
    assert 0.0 <= lr.loc[0, "p_value"] <= 1.0


def test_fit_models_records_failed_fits(tmp_path: Path, modeling_parquet: Path):
    # Without Center-West, North becomes the dummy reference and the Kuma
    # dispersion formula that names the North dummy cannot be built.
    table = pd.read_parquet(modeling_parquet)
    table = table.loc[table["Region"] != "Center-West"]
    no_reference = tmp_path / "no_center_west.parquet"
    table.to_parquet(no_reference, index=False)

    outdir = tmp_path / "outputs"
    run_script(
        "03_fit_models.py",
        "--input",
        no_reference,
        "--outdir",
        outdir,
        "--effects",
        "fixed",
        "--families",
        "BE",
        "Kuma",
        "--no-persist",
    )

    measures = pd.read_csv(outdir / "tables" / "measures_fixed.csv", index_col=0)
    assert measures.index.tolist() == ["Beta", "Kuma"]
    assert measures.loc["Beta"].notna().all()
    assert measures.loc["Kuma"].isna().all()

    best = pd.read_csv(outdir / "tables" / "best_by_metric_fixed.csv")
    assert set(best["best_model"]) == {"Beta"}

    meta = json.loads((outdir / "logs" / "fit_models_fixed_run_metadata.json").read_text(encoding="utf-8"))
    fits = {f["name"]: f for f in meta["fits"]}
    assert "error" not in fits["Beta"]
    assert "North" in fits["Kuma"]["error"]
    assert not list((outdir / "models").glob("*.joblib"))


def test_final_model_smoke_with_stepwise(tmp_path: Path, modeling_parquet: Path):
    outdir = tmp_path / "outputs"
    run_script("04_final_model.py", "--input", modeling_parquet, "--outdir", outdir)

    path = pd.read_csv(outdir / "tables" / "stepwise_path.csv")
    assert path.columns.tolist() == ["step", "action", "term", "gaic", "df"]
    assert path.loc[0, "action"] == "start"
    assert (path["gaic"].diff().dropna() < 0).all()

    selected = pd.read_csv(outdir / "tables" / "stepwise_selected_summary.csv")
    assert set(selected["parameter"]) == {"mu", "sigma"}

    meta = json.loads((outdir / "logs" / "final_model_run_metadata.json").read_text(encoding="utf-8"))
    assert meta["stepwise"]["selected"]["aic"] <= meta["stepwise"]["start"]["aic"]
    candidates = {"PBNVF", "MHDI_I", "MHDI_H", "MHDI_E", "DD", "Capital", "North", "Northeast", "South", "Southeast"}
    assert set(meta["stepwise"]["selected_mu_terms"]) <= candidates
