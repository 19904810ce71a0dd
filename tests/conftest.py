import subprocess
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from scipy.special import expit

from src.config import REGION_LEVELS


def make_election_frame(n: int = 300, seed: int = 2018) -> pd.DataFrame:
    """Synthetic municipal spreadsheet with the raw columns of the 2018 file."""

    rng = np.random.default_rng(seed)
    regions = np.asarray(rng.choice(REGION_LEVELS, size=n, p=[0.1, 0.1, 0.3, 0.25, 0.25]), dtype=object)
    regions[: len(REGION_LEVELS)] = REGION_LEVELS
    region_shift = {"Center-West": 0.0, "North": 0.15, "Northeast": 0.35, "South": -0.2, "Southeast": -0.1}

    mhdi_i = rng.uniform(0.45, 0.85, n)
    mhdi_h = rng.uniform(0.65, 0.90, n)
    mhdi_e = rng.uniform(0.30, 0.80, n)
    dd = rng.lognormal(3.0, 1.2, n)
    capital = np.zeros(n, dtype=int)
    capital[rng.choice(np.arange(len(REGION_LEVELS), n), size=8, replace=False)] = 1

    shift = np.array([region_shift[r] for r in regions])
    mu_first = expit(-2.0 + 1.5 * (mhdi_e - 0.55) + shift)
    pbnvf = rng.beta(mu_first * 60, (1 - mu_first) * 60)
    mu_second = expit(-2.2 + 3.0 * (pbnvf - 0.12) - 1.2 * (mhdi_h - 0.78) + 0.8 * (mhdi_e - 0.55) + shift - 0.1 * capital)
    pbnvs = rng.beta(mu_second * 80, (1 - mu_second) * 80)

    def counts(share):
        total = rng.integers(2_000, 150_000, size=n)
        blank_null = np.clip(np.round(share * total), 1, total - 1).astype(int)
        white = np.round(blank_null * rng.uniform(0.3, 0.5, n)).astype(int)
        null = blank_null - white
        valid = total - blank_null
        return white, null, valid

    wvf, nvf, vvf = counts(pbnvf)
    wvs, nvs, vvs = counts(pbnvs)

    return pd.DataFrame(
        {
            "Code": np.arange(1_100_000, 1_100_000 + n),
            "Municipality": [f"Municipality {i}" for i in range(n)],
            "UF": rng.choice(["SP", "MG", "BA", "PA", "RS", "GO"], size=n),
            "WVF": wvf,
            "NVF": nvf,
            "VVF": vvf,
            "WVS": wvs,
            "NVS": nvs,
            "VVS": vvs,
            "MHDI_I": mhdi_i,
            "MHDI_H": mhdi_h,
            "MHDI_E": mhdi_e,
            "Capital": capital,
            "Region": regions,
            "DD": dd,
        }
    )


@pytest.fixture
def election_frame() -> pd.DataFrame:
    return make_election_frame()


@pytest.fixture
def election_xlsx(tmp_path: Path, election_frame: pd.DataFrame) -> Path:
    path = tmp_path / "brazil_election2018.xlsx"
    election_frame.to_excel(path, index=False)
    return path


@pytest.fixture
def modeling_tables(election_frame: pd.DataFrame):
    from src.data.build import add_vote_proportions, build_analysis_table, build_modeling_tables

    table, _ = build_analysis_table(add_vote_proportions(election_frame))
    return build_modeling_tables(table)


def simulate_beta_regression(n: int = 2000, seed: int = 7) -> pd.DataFrame:
    """Beta responses with mu = expit(-1 + 0.8 x1) and sigma = expit(-1.5 + 0.3 x2)."""

    rng = np.random.default_rng(seed)
    x1 = rng.normal(size=n)
    x2 = rng.normal(size=n)
    mu = expit(-1.0 + 0.8 * x1)
    sigma = expit(-1.5 + 0.3 * x2)
    a = mu * (1 - sigma**2) / sigma**2
    b = a * (1 - mu) / mu
    y = np.clip(rng.beta(a, b), 1e-6, 1 - 1e-6)
    return pd.DataFrame({"y": y, "x1": x1, "x2": x2})


@pytest.fixture
def beta_data() -> pd.DataFrame:
    return simulate_beta_regression()


REPO_ROOT = Path(__file__).resolve().parents[1]


def run_script(name: str, *args) -> subprocess.CompletedProcess:
    cmd = [sys.executable, str(REPO_ROOT / "scripts" / name), *[str(a) for a in args]]
    return subprocess.run(cmd, cwd=REPO_ROOT, check=True, capture_output=True, text=True)


@pytest.fixture
def modeling_parquet(tmp_path: Path, election_xlsx: Path) -> Path:
    out = tmp_path / "modeling.parquet"
    run_script(
        "01_build_dataset.py",
        "--input",
        election_xlsx,
        "--out-parquet",
        out,
        "--audit-csv",
        tmp_path / "audit.csv",
        "--missingness-csv",
        tmp_path / "missingness.csv",
        "--decisions-json",
        tmp_path / "decisions.json",
    )
    return out
