import numpy as np
import pandas as pd
import pytest

from src.evaluation.metrics import (
    accuracy_metrics,
    best_model_by_metric,
    build_measures_table,
    comparison_table,
    extract_model_metrics,
)
from src.models.gamlss import ModelSpec, fit_gamlss


def test_accuracy_metrics_known_values():
    out = accuracy_metrics([0.1, 0.2, 0.4], [0.2, 0.2, 0.2])
    assert out["MAE"] == pytest.approx(0.1)
    assert out["RMSE"] == pytest.approx(np.sqrt((0.01 + 0.0 + 0.04) / 3))
    assert out["MAPE"] == pytest.approx(100.0 * (1.0 + 0.0 + 0.5) / 3)


def _measures() -> pd.DataFrame:
    rows = {
        "Beta": {"AIC": -100.0, "BIC": -90.0, "RSQ": 0.5, "MAPE": 10.0, "MAE": 0.02, "RMSE": 0.03},
        "Beta RE": {"AIC": -120.0, "BIC": -95.0, "RSQ": 0.6, "MAPE": 11.0, "MAE": 0.02, "RMSE": 0.025},
        "Kuma": {"AIC": np.nan, "BIC": np.nan, "RSQ": np.nan, "MAPE": np.nan, "MAE": np.nan, "RMSE": np.nan},
    }
    return build_measures_table(rows)


def test_measures_table_layout():
    measures = _measures()
    assert measures.index.name == "model"
    assert measures.index.tolist() == ["Beta", "Beta RE", "Kuma"]
    assert measures.columns.tolist() == ["AIC", "BIC", "RSQ", "MAPE", "MAE", "RMSE"]


def test_best_model_by_metric_directions_and_ties():
    best = best_model_by_metric(_measures()).set_index("metric")
    assert best.loc["AIC", "best_model"] == "Beta RE"
    assert best.loc["RSQ", "best_model"] == "Beta RE"
    assert best.loc["RSQ", "goal"] == "max"
    assert best.loc["MAPE", "best_model"] == "Beta"
    assert best.loc["RMSE", "best_model"] == "Beta RE"
    assert best.loc["RMSE", "goal"] == "min"
    assert best.loc["MAE", "best_model"] == "Beta;Beta RE"


def test_comparison_table_inserts_model_type():
    table = comparison_table(_measures(), {"Beta": "fixed", "Beta RE": "random", "Kuma": "fixed"}, decimals=2)
    assert table.columns[0] == "Model_Type"
    assert table["Model_Type"].tolist() == ["Fixed", "Random", "Fixed"]
    assert table.loc["Beta RE", "AIC"] == pytest.approx(-120.0)
    assert np.isnan(table.loc["Kuma", "AIC"])


def test_extract_model_metrics_from_a_fit(beta_data):
    data = beta_data.head(500)
    spec = ModelSpec(name="sim", family="BE", response="y", mu_terms=("x1",), sigma_terms=())
    result = fit_gamlss(spec, data)
    metrics = extract_model_metrics(result, data)

    assert list(metrics) == ["AIC", "BIC", "RSQ", "MAPE", "MAE", "RMSE"]
    assert metrics["AIC"] == pytest.approx(result.aic)
    assert metrics["BIC"] > metrics["AIC"]
    assert 0.0 < metrics["RSQ"] < 1.0
    assert metrics["RMSE"] >= metrics["MAE"] > 0
