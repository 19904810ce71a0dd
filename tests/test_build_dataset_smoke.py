import json
from pathlib import Path

import pandas as pd

from conftest import run_script


def test_build_dataset_smoke(tmp_path: Path, election_xlsx: Path):
    out_parquet = tmp_path / "brazil_election2018_modeling.parquet"
    audit_csv = tmp_path / "modeling_table_audit.csv"
    missingness_csv = tmp_path / "missingness_raw.csv"
    decisions_json = tmp_path / "decisions.json"

    run_script(
        "01_build_dataset.py",
        "--input",
        election_xlsx,
        "--nrows",
        "250",
        "--out-parquet",
        out_parquet,
        "--audit-csv",
        audit_csv,
        "--missingness-csv",
        missingness_csv,
        "--decisions-json",
        decisions_json,
    )

    assert out_parquet.exists()
    df = pd.read_parquet(out_parquet)

    expected_cols = ["PBNVS", "PBNVF", "MHDI_I", "MHDI_H", "MHDI_E", "DD", "Capital", "Region"]
    assert df.columns.tolist() == expected_cols
    assert len(df) == 250

    # Proportions are strictly inside the unit interval.
    for col in ["PBNVS", "PBNVF"]:
        assert df[col].between(0, 1, inclusive="neither").all()
    assert set(df["Capital"].unique().tolist()) <= {0, 1}
    assert set(df["Region"].unique().tolist()) <= {"Center-West", "North", "Northeast", "South", "Southeast"}

    assert audit_csv.exists()
    assert missingness_csv.exists()
    audit = pd.read_csv(audit_csv)
    assert int(audit.loc[0, "modeling_rows"]) == 250

    payload = json.loads(decisions_json.read_text(encoding="utf-8"))
    assert set(payload["derived_columns"]) == {"PBNVF", "PBNVS"}
    assert payload["row_filters"][0]["rule"] == "drop_incomplete_rows"
    assert payload["region_levels_unexpected"] == []
