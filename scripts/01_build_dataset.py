import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import argparse

import pandas as pd

from src.config import (
    CAPITAL_COL,
    COVARIATE_COLS,
    DATASET_VERSION,
    FIRST_ROUND_COL,
    FIRST_ROUND_COUNTS,
    LOGS_DIR,
    MODELING_FILE,
    RAW_FILE_2018,
    RAW_REQUIRED_COLS,
    REGION_COL,
    REGION_LEVELS,
    RESPONSE_COL,
    SECOND_ROUND_COUNTS,
    TABLES_DIR,
)
from src.data.build import add_vote_proportions, build_analysis_table, response_range
from src.data.coding import canonicalize_columns, summarize_missingness
from src.data.ingest import load_election_raw
from src.data.validate import assert_required_columns, assert_unit_interval
from src.utils.logging import sha256_df, sha256_file, write_json


def main() -> None:
    parser = argparse.ArgumentParser(description="Build the municipal modeling table from the 2018 election spreadsheet.")
    parser.add_argument("--input", type=Path, default=RAW_FILE_2018, help="Raw spreadsheet (.xlsx or .csv).")
    parser.add_argument("--nrows", type=int, default=None, help="Optional: read only the first N rows (for tests).")
    parser.add_argument("--out-parquet", type=Path, default=MODELING_FILE, help="Output parquet path.")
    parser.add_argument(
        "--audit-csv",
        type=Path,
        default=TABLES_DIR / "modeling_table_audit.csv",
        help="Output audit CSV path.",
    )
    parser.add_argument(
        "--missingness-csv",
        type=Path,
        default=TABLES_DIR / "missingness_raw.csv",
        help="Output missingness summary CSV path (raw columns used downstream).",
    )
    parser.add_argument(
        "--decisions-json",
        type=Path,
        default=LOGS_DIR / "decisions.json",
        help="Output JSON file for derivation/filter decisions.",
    )
    args = parser.parse_args()

    if not args.input.exists():
        raise SystemExit(f"Input file not found: {args.input}")
    if args.nrows is not None and args.nrows <= 0:
        raise SystemExit("--nrows must be a positive integer.")

    df_raw = load_election_raw(args.input, nrows=args.nrows)
    df_raw = canonicalize_columns(df_raw, RAW_REQUIRED_COLS)
    try:
        assert_required_columns(df_raw, RAW_REQUIRED_COLS)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    raw_rows = len(df_raw)

    miss = summarize_missingness(df_raw[RAW_REQUIRED_COLS])
    args.missingness_csv.parent.mkdir(parents=True, exist_ok=True)
    miss.to_csv(args.missingness_csv, index=False)

    try:
        with_props = add_vote_proportions(df_raw)
        modeling, filter_decision = build_analysis_table(with_props)
        assert_unit_interval(modeling[RESPONSE_COL], RESPONSE_COL)
        assert_unit_interval(modeling[FIRST_ROUND_COL], FIRST_ROUND_COL)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    unexpected_regions = sorted(set(modeling[REGION_COL]) - set(REGION_LEVELS))
    content_hash = sha256_df(modeling)

    args.out_parquet.parent.mkdir(parents=True, exist_ok=True)
    modeling.to_parquet(args.out_parquet, index=False)

    decisions = {
        "dataset_version": DATASET_VERSION,
        "input_file": str(args.input),
        "input_sha256": sha256_file(args.input),
        "derived_columns": {
            FIRST_ROUND_COL: f"({FIRST_ROUND_COUNTS[0]} + {FIRST_ROUND_COUNTS[1]}) / ({' + '.join(FIRST_ROUND_COUNTS)})",
            RESPONSE_COL: f"({SECOND_ROUND_COUNTS[0]} + {SECOND_ROUND_COUNTS[1]}) / ({' + '.join(SECOND_ROUND_COUNTS)})",
        },
        "covariates": list(COVARIATE_COLS),
        "region_levels_expected": list(REGION_LEVELS),
        "region_levels_unexpected": unexpected_regions,
        "row_filters": [filter_decision],
        "raw_rows": raw_rows,
        "modeling_rows": int(len(modeling)),
        "modeling_cols": modeling.columns.tolist(),
        "response_range": response_range(modeling[RESPONSE_COL]),
        "output_parquet": str(args.out_parquet),
        "content_hash_sha256": content_hash,
    }
    write_json(args.decisions_json, decisions)

    region_counts = modeling[REGION_COL].value_counts().to_dict()
    audit_row = {
        "raw_rows": raw_rows,
        "modeling_rows": len(modeling),
        "dropped_rows": filter_decision["dropped_rows"],
        "pbnvs_mean": round(float(modeling[RESPONSE_COL].mean()), 6),
        "pbnvf_mean": round(float(modeling[FIRST_ROUND_COL].mean()), 6),
        "n_capitals": int(modeling[CAPITAL_COL].sum()),
        **{f"n_{region}": int(region_counts.get(region, 0)) for region in REGION_LEVELS},
        "content_hash_sha256": content_hash,
        "decisions_json": str(args.decisions_json),
    }
    args.audit_csv.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame([audit_row]).to_csv(args.audit_csv, index=False)

    print(f"Wrote {args.out_parquet}")
    print(f"Wrote {args.audit_csv}")
    print(f"Wrote {args.missingness_csv}")
    print(f"Wrote {args.decisions_json}")


if __name__ == "__main__":
    main()
