import numpy as np
import pandas as pd
import pytest

from src.evaluation.descriptives import DESCRIBE_COLUMNS, describe_numeric, frequency_table


def test_describe_numeric_basic_statistics():
    df = pd.DataFrame({"a": [1.0, 2.0, 3.0, 4.0, 100.0], "label": list("vwxyz")})
    out = describe_numeric(df)

    assert out.index.tolist() == ["a"]
    assert out.columns.tolist() == DESCRIBE_COLUMNS
    row = out.loc["a"]
    assert row["n"] == 5
    assert row["mean"] == pytest.approx(22.0)
    assert row["median"] == pytest.approx(3.0)
    assert row["range"] == pytest.approx(99.0)
    assert row["sd"] == pytest.approx(np.std([1, 2, 3, 4, 100], ddof=1))
    assert row["se"] == pytest.approx(row["sd"] / np.sqrt(5))
    assert row["skew"] > 0


def test_describe_numeric_symmetric_sample_has_zero_skew():
    out = describe_numeric(pd.DataFrame({"x": [1.0, 2.0, 3.0, 4.0, 5.0]}))
    assert out.loc["x", "skew"] == pytest.approx(0.0)
    assert out.loc["x", "kurtosis"] < 0


def test_frequency_table_with_labels_and_total():
    s = pd.Series([0, 1, 0, 0])
    out = frequency_table(s, labels={0: "No", 1: "Yes"})

    assert out.index.tolist() == ["No", "Yes", "Total"]
    assert out["Absolute Frequency"].tolist() == [3, 1, 4]
    assert out["Relative Frequency (%)"].tolist() == pytest.approx([75.0, 25.0, 100.0])
