from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATA_DIR = PROJECT_ROOT / "data"
RAW_DIR = DATA_DIR / "raw"
PROCESSED_DIR = DATA_DIR / "processed"

OUTPUTS_DIR = PROJECT_ROOT / "outputs"
FIGURES_DIR = OUTPUTS_DIR / "figures"
TABLES_DIR = OUTPUTS_DIR / "tables"
MODELS_DIR = OUTPUTS_DIR / "models"
LOGS_DIR = OUTPUTS_DIR / "logs"

RAW_FILE_2018 = RAW_DIR / "brazil_election2018.xlsx"
MODELING_FILE = PROCESSED_DIR / "brazil_election2018_modeling.parquet"

# Dataset and experiment identifiers (used in outputs/ metadata)
DATASET_VERSION = "brazil_election2018_v1"
EXPERIMENT_NAMESPACE = "gamlss_unit_models_v1"

# Raw vote counts: white (blank), null and valid votes per round.
FIRST_ROUND_COUNTS = ["WVF", "NVF", "VVF"]
SECOND_ROUND_COUNTS = ["WVS", "NVS", "VVS"]

RESPONSE_COL = "PBNVS"
FIRST_ROUND_COL = "PBNVF"

MHDI_COLS = ["MHDI_I", "MHDI_H", "MHDI_E"]
DENSITY_COL = "DD"
CAPITAL_COL = "Capital"
REGION_COL = "Region"

# Order of the modeling tables; PBNVF is derived, the rest come from the raw file.
COVARIATE_COLS = [FIRST_ROUND_COL] + MHDI_COLS + [DENSITY_COL, CAPITAL_COL]
SIGMA_COVARIATES_NO_CAPITAL = [FIRST_ROUND_COL] + MHDI_COLS + [DENSITY_COL]

RAW_REQUIRED_COLS = FIRST_ROUND_COUNTS + SECOND_ROUND_COUNTS + MHDI_COLS + [DENSITY_COL, CAPITAL_COL, REGION_COL]

# Region levels as coded in the spreadsheet; the first (alphabetical) level is the dummy reference.
REGION_LEVELS = ["Center-West", "North", "Northeast", "South", "Southeast"]
REGION_SHORT_LABELS = {
    "Center-West": "CW",
    "Northeast": "NE",
    "North": "N",
    "Southeast": "SE",
    "South": "S",
}
# Boxplot order used in the thesis figures.
REGION_PLOT_ORDER = ["Center-West", "Northeast", "North", "Southeast", "South"]
CAPITAL_LABELS = {0: "No", 1: "Yes"}

# Families and default links (mu is always logit).
FAMILIES = ["BE", "SIMPLEX", "Kuma", "UW", "RUBXII"]
FAMILY_DISPLAY_NAMES = {
    "BE": "Beta",
    "SIMPLEX": "Simplex",
    "Kuma": "Kuma",
    "UW": "UW",
    "RUBXII": "RUBXII",
}

# Final Beta model after stepwise selection (mu) and manual sigma refinement.
FINAL_MU_TERMS = ["MHDI_H", "MHDI_E", "Capital", "PBNVF", "North", "Northeast", "South", "Southeast"]
FINAL_SIGMA_TERMS = ["MHDI_I", "MHDI_H", "MHDI_E", "Capital", "DD", "North", "Northeast", "Southeast"]

# Optimizer settings
MAX_ITER = 500
TOL = 1e-8
RE_MAX_ITER = 50
RE_TOL = 1e-4
GAIC_PENALTY = 2.0

METRIC_COLS = ["AIC", "BIC", "RSQ", "MAPE", "MAE", "RMSE"]
# Direction used when picking the best model per metric.
METRIC_GOALS = {"AIC": "min", "BIC": "min", "RSQ": "max", "MAPE": "min", "MAE": "min", "RMSE": "min"}
REPORT_DECIMALS = 4
