from typing import Dict, Iterable, List, Mapping

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_absolute_percentage_error, mean_squared_error

from src.config import METRIC_COLS, METRIC_GOALS
from src.models.gamlss import GamlssResult, rsq


def accuracy_metrics(y_true, y_pred) -> Dict[str, float]:
    """MAPE (percent), MAE and RMSE of fitted values against observations."""

    y = np.asarray(y_true, dtype=float)
    f = np.asarray(y_pred, dtype=float)
    return {
        "MAPE": float(100.0 * mean_absolute_percentage_error(y, f)),
        "MAE": float(mean_absolute_error(y, f)),
        "RMSE": float(np.sqrt(mean_squared_error(y, f))),
    }


def extract_model_metrics(result: GamlssResult, data: pd.DataFrame) -> Dict[str, float]:
    return {
        "AIC": result.aic,
        "BIC": result.sbc,
        "RSQ": rsq(result, data),
        **accuracy_metrics(result.y, result.mu_fv),
    }


def build_measures_table(rows: Mapping[str, Mapping[str, float]]) -> pd.DataFrame:
    """One row per model (insertion order), metric columns in reporting order."""

    table = pd.DataFrame.from_dict(dict(rows), orient="index")
    table = table.reindex(columns=METRIC_COLS)
    table.index.name = "model"
    return table


def best_model_by_metric(measures: pd.DataFrame, metrics: Iterable[str] = METRIC_COLS) -> pd.DataFrame:
    """Best model(s) per metric; ties list every tied model."""

    rows: List[Dict[str, object]] = []
    for metric in metrics:
        values = measures[metric].dropna()
        if values.empty:
            rows.append({"metric": metric, "goal": METRIC_GOALS[metric], "best_model": "", "value": np.nan})
            continue
        target = values.min() if METRIC_GOALS[metric] == "min" else values.max()
        winners = values.index[np.isclose(values.to_numpy(dtype=float), target, rtol=0.0, atol=1e-12)]
        rows.append(
            {
                "metric": metric,
                "goal": METRIC_GOALS[metric],
                "best_model": ";".join(map(str, winners)),
                "value": float(target),
            }
        )
    return pd.DataFrame(rows)


def comparison_table(measures: pd.DataFrame, effects: Mapping[str, str], decimals: int = 4) -> pd.DataFrame:
    """Rounded measures with a leading Model_Type (Fixed/Random) column."""

    out = measures.round(decimals)
    labels = [effects.get(name, "").capitalize() for name in out.index]
    out.insert(0, "Model_Type", labels)
    return out
