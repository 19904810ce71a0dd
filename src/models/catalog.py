from typing import List

from src.config import (
    COVARIATE_COLS,
    FAMILIES,
    FAMILY_DISPLAY_NAMES,
    FINAL_MU_TERMS,
    FINAL_SIGMA_TERMS,
    REGION_COL,
    SIGMA_COVARIATES_NO_CAPITAL,
)
from src.models.gamlss import ModelSpec

REGION_DUMMY_COLS = ["North", "Northeast", "South", "Southeast"]

# Families whose dispersion model leaves Capital out.
_SIGMA_WITHOUT_CAPITAL = {"Kuma", "UW", "RUBXII"}
# Fixed-effect fits that use the table without region dummies.
_FIXED_ON_DATAREG = {"UW"}


def build_fixed_spec(family: str) -> ModelSpec:
    name = FAMILY_DISPLAY_NAMES[family]
    sigma_terms = ["."]
    if family in _SIGMA_WITHOUT_CAPITAL and family not in _FIXED_ON_DATAREG:
        sigma_terms = SIGMA_COVARIATES_NO_CAPITAL + REGION_DUMMY_COLS
    return ModelSpec(
        name=name,
        family=family,
        mu_terms=(".",),
        sigma_terms=tuple(sigma_terms),
        data_key="datareg" if family in _FIXED_ON_DATAREG else "datafix",
        effects="fixed",
    )


def build_random_spec(family: str) -> ModelSpec:
    sigma_terms = SIGMA_COVARIATES_NO_CAPITAL if family in _SIGMA_WITHOUT_CAPITAL else COVARIATE_COLS
    return ModelSpec(
        name=f"{FAMILY_DISPLAY_NAMES[family]} RE",
        family=family,
        mu_terms=tuple(COVARIATE_COLS),
        sigma_terms=tuple(sigma_terms),
        mu_random=REGION_COL,
        sigma_random=REGION_COL,
        sigma_link="log",
        data_key="dataran",
        effects="random",
    )


def build_model_specs(effects: str = "both") -> List[ModelSpec]:
    """Catalog of candidate models; 'both' interleaves fixed and random per family."""

    if effects not in {"fixed", "random", "both"}:
        raise ValueError(f"effects must be one of fixed/random/both, got {effects!r}")
    specs: List[ModelSpec] = []
    for family in FAMILIES:
        if effects in {"fixed", "both"}:
            specs.append(build_fixed_spec(family))
        if effects in {"random", "both"}:
            specs.append(build_random_spec(family))
    return specs


def build_final_specs() -> List[ModelSpec]:
    """Refined Beta model with modeled dispersion and its constant-dispersion counterpart."""

    final2 = ModelSpec(
        name="Beta final (sigma modeled)",
        family="BE",
        mu_terms=tuple(FINAL_MU_TERMS),
        sigma_terms=tuple(FINAL_SIGMA_TERMS),
        data_key="datafix",
    )
    final_sfixed = ModelSpec(
        name="Beta final (sigma constant)",
        family="BE",
        mu_terms=tuple(FINAL_MU_TERMS),
        sigma_terms=(),
        data_key="datafix",
    )
    return [final2, final_sfixed]
