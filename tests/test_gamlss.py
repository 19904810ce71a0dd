import pickle

import numpy as np
import pandas as pd
import pytest
from scipy.special import expit

from src.models.gamlss import ModelSpec, fit_gamlss, lr_test, null_spec, rsq


def _beta_spec(**kwargs) -> ModelSpec:
    base = dict(name="sim", family="BE", response="y", mu_terms=("x1",), sigma_terms=("x2",))
    base.update(kwargs)
    return ModelSpec(**base)


def test_beta_regression_recovers_coefficients(beta_data):
    result = fit_gamlss(_beta_spec(), beta_data)

    assert result.converged
    assert result.coefficients["mu"]["Intercept"] == pytest.approx(-1.0, abs=0.15)
    assert result.coefficients["mu"]["x1"] == pytest.approx(0.8, abs=0.15)
    assert result.coefficients["sigma"]["Intercept"] == pytest.approx(-1.5, abs=0.15)
    assert result.coefficients["sigma"]["x2"] == pytest.approx(0.3, abs=0.15)
    assert np.all(result.bse["mu"] > 0)
    assert np.all((result.mu_fv > 0) & (result.mu_fv < 1))
    assert np.all((result.sigma_fv > 0) & (result.sigma_fv < 1))


def test_information_criteria(beta_data):
    result = fit_gamlss(_beta_spec(), beta_data)

    assert result.df == pytest.approx(4.0)
    assert result.global_deviance == pytest.approx(-2.0 * result.loglik)
    assert result.aic == pytest.approx(result.global_deviance + 8.0)
    assert result.sbc == pytest.approx(result.global_deviance + np.log(len(beta_data)) * 4.0)
    assert result.gaic(3.0) == pytest.approx(result.global_deviance + 12.0)


def test_summary_and_formula(beta_data):
    result = fit_gamlss(_beta_spec(), beta_data)
    summary = result.summary()

    assert summary.columns.tolist() == ["parameter", "term", "estimate", "std_error", "t_value", "p_value"]
    assert summary["parameter"].tolist() == ["mu", "mu", "sigma", "sigma"]
    assert summary.loc[summary["term"] == "x1", "p_value"].iloc[0] < 1e-6
    assert result.formula("mu") == "y ~ x1"
    assert result.formula("sigma") == "~ x2"
    assert result.to_dict()["family"] == "BE"


def test_quantile_residuals_are_roughly_standard_normal(beta_data):
    result = fit_gamlss(_beta_spec(), beta_data)
    assert abs(float(np.mean(result.residuals))) < 0.1
    assert float(np.var(result.residuals)) == pytest.approx(1.0, abs=0.15)


def test_dot_expands_to_all_predictors(beta_data):
    data = beta_data.assign(x3=np.linspace(-1, 1, len(beta_data)))
    spec = _beta_spec(mu_terms=(".",), sigma_terms=())
    assert spec.resolved_terms("mu", list(data.columns)) == ["x1", "x2", "x3"]

    result = fit_gamlss(spec, data)
    assert list(result.coefficients["mu"].index) == ["Intercept", "x1", "x2", "x3"]
    assert list(result.coefficients["sigma"].index) == ["Intercept"]


def test_fit_is_picklable(beta_data):
    result = fit_gamlss(_beta_spec(), beta_data.head(300))
    restored = pickle.loads(pickle.dumps(result))
    assert restored.aic == pytest.approx(result.aic)


def test_random_intercepts_recover_group_effects():
    rng = np.random.default_rng(11)
    groups = np.array(["A", "B", "C", "D", "E"])
    effects = np.array([-0.4, -0.2, 0.0, 0.2, 0.4])
    g = rng.integers(0, 5, size=1500)
    x1 = rng.normal(size=1500)
    mu = expit(-1.0 + 0.5 * x1 + effects[g])
    sigma = 0.15
    a = mu * (1 - sigma**2) / sigma**2
    b = a * (1 - mu) / mu
    data = pd.DataFrame({"y": rng.beta(a, b), "x1": x1, "g": groups[g]})

    spec = ModelSpec(name="re", family="BE", response="y", mu_terms=("x1",), sigma_terms=(), mu_random="g")
    result = fit_gamlss(spec, data)

    estimated = result.random_effects["mu"].reindex(groups).to_numpy()
    assert np.corrcoef(estimated, effects)[0, 1] > 0.8
    assert 0.0 < result.edf_random["mu"] < 5.0
    assert result.random_variance["mu"] > 0
    assert result.df == pytest.approx(3.0 + result.edf_random["mu"])
    assert "random(g)" in result.formula("mu")


def test_rsq_is_between_zero_and_one(beta_data):
    result = fit_gamlss(_beta_spec(), beta_data)
    value = rsq(result, beta_data)
    assert 0.0 < value < 1.0


def test_null_spec_drops_all_terms():
    spec = null_spec(_beta_spec(mu_random="g"))
    assert spec.mu_terms == () and spec.sigma_terms == ()
    assert spec.mu_random is None


def test_lr_test_detects_modeled_dispersion(beta_data):
    alternative = fit_gamlss(_beta_spec(), beta_data)
    null = fit_gamlss(_beta_spec(name="constant", sigma_terms=()), beta_data)

    lr = lr_test(null, alternative)
    assert lr.df == pytest.approx(1.0)
    assert lr.statistic > 0
    assert lr.p_value < 0.01
    assert lr.to_frame().columns.tolist() == ["null_model", "alternative_model", "lr_statistic", "df", "p_value"]

    with pytest.raises(ValueError):
        lr_test(alternative, null)


def test_response_outside_open_interval_is_rejected(beta_data):
    data = beta_data.copy()
    data.loc[0, "y"] = 1.0
    with pytest.raises(ValueError, match="strictly inside"):
        fit_gamlss(_beta_spec(), data)


def test_missing_term_column_is_rejected(beta_data):
    with pytest.raises(ValueError, match="Missing required columns"):
        fit_gamlss(_beta_spec(mu_terms=("x9",)), beta_data)
