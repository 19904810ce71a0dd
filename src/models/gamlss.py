"""Distributional (GAMLSS-style) regression for unit-interval responses.

Both ``mu`` and ``sigma`` get their own linear predictor and link. Fixed
coefficients are estimated by maximum likelihood; a ``random`` grouping
column adds a random intercept to the predictor, fitted as a ridge-penalized
block whose variance is re-estimated until it stabilizes (the local maximum
likelihood scheme used by ``random()`` in GAMLSS).
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import patsy
from scipy import optimize, stats
from statsmodels.tools.numdiff import approx_fprime

from src.config import MAX_ITER, RE_MAX_ITER, RE_TOL, RESPONSE_COL, TOL
from src.data.validate import assert_required_columns, assert_unit_interval
from src.models.families import UnitFamily, get_family


PARAMETERS = ("mu", "sigma")
_ETA_STEP = 1e-5
_LAMBDA_BOUNDS = (1e-6, 1e8)


class FitError(RuntimeError):
    """Raised when the optimizer cannot produce a finite fit."""


@dataclass(frozen=True)
class ModelSpec:
    name: str
    family: str
    response: str = RESPONSE_COL
    mu_terms: Tuple[str, ...] = (".",)
    sigma_terms: Tuple[str, ...] = (".",)
    mu_random: Optional[str] = None
    sigma_random: Optional[str] = None
    mu_link: Optional[str] = None
    sigma_link: Optional[str] = None
    data_key: str = "datafix"
    effects: str = "fixed"

    def terms(self, parameter: str) -> Tuple[str, ...]:
        return tuple(getattr(self, f"{parameter}_terms"))

    def random(self, parameter: str) -> Optional[str]:
        return getattr(self, f"{parameter}_random")

    def with_terms(self, parameter: str, terms: Sequence[str], name: Optional[str] = None) -> "ModelSpec":
        changes = {f"{parameter}_terms": tuple(terms)}
        if name is not None:
            changes["name"] = name
        return replace(self, **changes)

    def resolved_terms(self, parameter: str, columns: Sequence[str]) -> List[str]:
        """Expand '.' to every column except the response and grouping columns."""

        excluded = {self.response} | {g for g in (self.mu_random, self.sigma_random) if g}
        out: List[str] = []
        for term in self.terms(parameter):
            if term == ".":
                out.extend(c for c in columns if c not in excluded and c not in out)
            elif term not in out:
                out.append(term)
        return out


def _term_expr(term: str) -> str:
    return term if term.isidentifier() else f'Q("{term}")'


@dataclass
class _Block:
    parameter: str
    X: np.ndarray
    raw: np.ndarray
    columns: List[str]
    term_columns: Dict[str, List[str]]
    center: np.ndarray
    scale: np.ndarray
    Z: Optional[np.ndarray] = None
    groups: List[str] = field(default_factory=list)

    @property
    def n_fixed(self) -> int:
        return self.X.shape[1]

    @property
    def n_random(self) -> int:
        return 0 if self.Z is None else self.Z.shape[1]

    def to_original(self, beta_scaled: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Return original-scale coefficients and the linear map used for them."""

        p = self.n_fixed
        A = np.zeros((p, p))
        for j in range(p):
            if self.scale[j] == 0.0:
                A[j, j] = 1.0
            else:
                A[j, j] = 1.0 / self.scale[j]
                # Intercept absorbs the centering shift.
                A[0, j] = -self.center[j] / self.scale[j]
        return A @ beta_scaled, A


def _standardize(X: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    center = np.zeros(X.shape[1])
    scale = np.zeros(X.shape[1])
    Xs = X.copy()
    for j in range(X.shape[1]):
        col = X[:, j]
        sd = float(np.std(col))
        if j == 0 or sd == 0.0:
            continue
        center[j] = float(np.mean(col))
        scale[j] = sd
        Xs[:, j] = (col - center[j]) / sd
    return Xs, center, scale


def _build_block(spec: ModelSpec, parameter: str, data: pd.DataFrame) -> _Block:
    terms = spec.resolved_terms(parameter, list(data.columns))
    assert_required_columns(data, terms)
    rhs = " + ".join(_term_expr(t) for t in terms) or "1"
    design = patsy.dmatrix(f"~ {rhs}", data, return_type="dataframe", NA_action="raise")
    info = design.design_info
    if info.column_names[0] != "Intercept":
        raise ValueError(f"{spec.name}: {parameter} design must include an intercept")

    term_columns: Dict[str, List[str]] = {}
    for term in terms:
        sl = info.term_name_slices[_term_expr(term)]
        term_columns[term] = list(info.column_names[sl])

    X = design.to_numpy(dtype=float)
    if np.linalg.matrix_rank(X) < X.shape[1]:
        raise ValueError(f"{spec.name}: {parameter} design matrix is rank deficient ({info.column_names})")
    Xs, center, scale = _standardize(X)

    block = _Block(
        parameter=parameter,
        X=Xs,
        raw=X,
        columns=list(info.column_names),
        term_columns=term_columns,
        center=center,
        scale=scale,
    )

    group = spec.random(parameter)
    if group:
        assert_required_columns(data, [group])
        codes = pd.Categorical(data[group].astype(str))
        block.groups = [str(c) for c in codes.categories]
        block.Z = np.eye(len(block.groups))[codes.codes]
    return block


class _Objective:
    """Penalized negative log-likelihood over [beta_mu, gamma_mu, beta_sigma, gamma_sigma]."""

    def __init__(self, family: UnitFamily, y: np.ndarray, blocks: Dict[str, _Block]):
        self.family = family
        self.y = y
        self.blocks = blocks
        self.slices: Dict[str, Tuple[slice, slice]] = {}
        start = 0
        for parameter in PARAMETERS:
            b = blocks[parameter]
            fixed = slice(start, start + b.n_fixed)
            start += b.n_fixed
            rand = slice(start, start + b.n_random)
            start += b.n_random
            self.slices[parameter] = (fixed, rand)
        self.size = start
        self.lam = {p: 1.0 for p in PARAMETERS}

    def eta(self, theta: np.ndarray, parameter: str) -> np.ndarray:
        b = self.blocks[parameter]
        fixed, rand = self.slices[parameter]
        out = b.X @ theta[fixed]
        if b.Z is not None:
            out = out + b.Z @ theta[rand]
        return out

    def params(self, theta: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        mu = self.family.mu_link.linkinv(self.eta(theta, "mu"))
        sigma = self.family.sigma_link.linkinv(self.eta(theta, "sigma"))
        return mu, sigma

    def _pointwise(self, eta_mu: np.ndarray, eta_sigma: np.ndarray) -> np.ndarray:
        mu = self.family.mu_link.linkinv(eta_mu)
        sigma = self.family.sigma_link.linkinv(eta_sigma)
        return self.family.logpdf(self.y, mu, sigma)

    def loglik(self, theta: np.ndarray) -> float:
        return float(np.sum(self._pointwise(self.eta(theta, "mu"), self.eta(theta, "sigma"))))

    def penalty(self, theta: np.ndarray) -> float:
        total = 0.0
        for parameter in PARAMETERS:
            _, rand = self.slices[parameter]
            g = theta[rand]
            total += 0.5 * self.lam[parameter] * float(g @ g)
        return total

    def value(self, theta: np.ndarray) -> float:
        ll = self.loglik(theta)
        if not np.isfinite(ll):
            return np.inf
        return -ll + self.penalty(theta)

    def gradient(self, theta: np.ndarray) -> np.ndarray:
        eta_mu = self.eta(theta, "mu")
        eta_sigma = self.eta(theta, "sigma")
        h = _ETA_STEP
        # Central differences of each observation's log density on the predictor scale.
        d_mu = (self._pointwise(eta_mu + h, eta_sigma) - self._pointwise(eta_mu - h, eta_sigma)) / (2.0 * h)
        d_sigma = (self._pointwise(eta_mu, eta_sigma + h) - self._pointwise(eta_mu, eta_sigma - h)) / (2.0 * h)
        d_mu = np.nan_to_num(d_mu, nan=0.0, posinf=0.0, neginf=0.0)
        d_sigma = np.nan_to_num(d_sigma, nan=0.0, posinf=0.0, neginf=0.0)

        grad = np.zeros(self.size)
        for parameter, d in (("mu", d_mu), ("sigma", d_sigma)):
            b = self.blocks[parameter]
            fixed, rand = self.slices[parameter]
            grad[fixed] = -(b.X.T @ d)
            if b.Z is not None:
                grad[rand] = -(b.Z.T @ d) + self.lam[parameter] * theta[rand]
        return grad

    def hessian(self, theta: np.ndarray) -> np.ndarray:
        H = approx_fprime(theta, self.gradient, centered=True)
        return 0.5 * (H + H.T)


def _initial_theta(obj: _Objective) -> np.ndarray:
    y = obj.y
    family = obj.family
    theta = np.zeros(obj.size)
    m = float(np.clip(np.mean(y), 1e-3, 1.0 - 1e-3))
    theta[obj.slices["mu"][0].start] = float(family.mu_link.linkfun(m))
    theta[obj.slices["sigma"][0].start] = float(family.sigma_link.linkfun(family.initial_sigma(y)))
    return theta


def _minimize(obj: _Objective, theta0: np.ndarray, max_iter: int, tol: float) -> Tuple[np.ndarray, bool, int]:
    res = optimize.minimize(
        obj.value,
        theta0,
        jac=obj.gradient,
        method="BFGS",
        options={"maxiter": max_iter, "gtol": tol * max(1.0, obj.y.size)},
    )
    if not np.all(np.isfinite(res.x)) or not np.isfinite(res.fun):
        raise FitError(f"Optimizer returned non-finite values: {res.message}")
    # BFGS often stops on precision loss at an optimum; accept a small relative gradient.
    grad_ok = float(np.max(np.abs(obj.gradient(res.x)))) <= 1e-4 * max(1.0, abs(float(res.fun)))
    return res.x, bool(res.success or grad_ok), int(res.nit)


def _safe_inverse(H: np.ndarray) -> np.ndarray:
    try:
        return np.linalg.inv(H)
    except np.linalg.LinAlgError:
        return np.linalg.pinv(H)


@dataclass
class GamlssResult:
    spec: ModelSpec
    family: UnitFamily
    y: np.ndarray
    mu_fv: np.ndarray
    sigma_fv: np.ndarray
    coefficients: Dict[str, pd.Series]
    bse: Dict[str, pd.Series]
    cov: pd.DataFrame
    designs: Dict[str, pd.DataFrame]
    term_columns: Dict[str, Dict[str, List[str]]]
    random_effects: Dict[str, pd.Series]
    random_variance: Dict[str, float]
    edf_random: Dict[str, float]
    loglik: float
    df: float
    converged: bool
    n_iter: int
    residuals: np.ndarray

    @property
    def n(self) -> int:
        return int(self.y.size)

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def global_deviance(self) -> float:
        return -2.0 * self.loglik

    @property
    def aic(self) -> float:
        return self.gaic(2.0)

    @property
    def sbc(self) -> float:
        return self.gaic(float(np.log(self.n)))

    @property
    def df_residual(self) -> float:
        return self.n - self.df

    def gaic(self, k: float = 2.0) -> float:
        return self.global_deviance + k * self.df

    def terms(self, parameter: str) -> List[str]:
        return list(self.term_columns[parameter])

    def formula(self, parameter: str) -> str:
        rhs = " + ".join(self.terms(parameter)) or "1"
        group = self.spec.random(parameter)
        if group:
            rhs = f"{rhs} + random({group})"
        lhs = self.spec.response if parameter == "mu" else ""
        return f"{lhs} ~ {rhs}".strip()

    def summary(self) -> pd.DataFrame:
        rows = []
        for parameter in PARAMETERS:
            coef = self.coefficients[parameter]
            se = self.bse[parameter]
            for col in coef.index:
                t_value = coef[col] / se[col] if se[col] > 0 else np.nan
                p_value = 2.0 * stats.t.sf(abs(t_value), df=max(self.df_residual, 1.0)) if np.isfinite(t_value) else np.nan
                rows.append(
                    {
                        "parameter": parameter,
                        "term": col,
                        "estimate": float(coef[col]),
                        "std_error": float(se[col]),
                        "t_value": float(t_value),
                        "p_value": float(p_value),
                    }
                )
        return pd.DataFrame(rows)

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "family": self.family.name,
            "mu_link": self.family.mu_link.name,
            "sigma_link": self.family.sigma_link.name,
            "mu_formula": self.formula("mu"),
            "sigma_formula": self.formula("sigma"),
            "n": self.n,
            "df": round(self.df, 6),
            "loglik": self.loglik,
            "global_deviance": self.global_deviance,
            "aic": self.aic,
            "sbc": self.sbc,
            "converged": self.converged,
            "n_iter": self.n_iter,
            "random_variance": self.random_variance,
            "edf_random": self.edf_random,
        }


def _quantile_residuals(family: UnitFamily, y, mu, sigma) -> np.ndarray:
    u = np.clip(family.cdf(y, mu, sigma), 1e-15, 1.0 - 1e-15)
    return stats.norm.ppf(u)


def fit_gamlss(
    spec: ModelSpec,
    data: pd.DataFrame,
    max_iter: int = MAX_ITER,
    tol: float = TOL,
    re_max_iter: int = RE_MAX_ITER,
    re_tol: float = RE_TOL,
) -> GamlssResult:
    """Fit ``spec`` to ``data`` by (penalized) maximum likelihood."""

    assert_required_columns(data, [spec.response])
    data = data.reset_index(drop=True)
    y = data[spec.response].to_numpy(dtype=float)
    assert_unit_interval(y, spec.response)

    family = get_family(spec.family, mu_link=spec.mu_link, sigma_link=spec.sigma_link)
    blocks = {p: _build_block(spec, p, data) for p in PARAMETERS}
    obj = _Objective(family, y, blocks)
    random_params = [p for p in PARAMETERS if blocks[p].Z is not None]

    theta = _initial_theta(obj)
    converged = False
    n_iter = 0
    for _ in range(re_max_iter if random_params else 1):
        theta, converged, nit = _minimize(obj, theta, max_iter, tol)
        n_iter += nit
        if not random_params:
            break
        V = _safe_inverse(obj.hessian(theta))
        changed = False
        for p in random_params:
            _, rand = obj.slices[p]
            g = theta[rand]
            lam = obj.lam[p]
            edf = len(g) - lam * float(np.trace(V[rand, rand]))
            tau2 = float(g @ g) / max(edf, 1e-6)
            new_lam = float(np.clip(1.0 / max(tau2, 1e-12), *_LAMBDA_BOUNDS))
            if abs(np.log(new_lam) - np.log(lam)) > re_tol:
                changed = True
            obj.lam[p] = new_lam
        if not changed:
            break
    else:
        warnings.warn(f"{spec.name}: random-effect variances did not stabilize after {re_max_iter} iterations")

    if not converged:
        warnings.warn(f"{spec.name}: optimizer did not converge")

    H = obj.hessian(theta)
    V = _safe_inverse(H)

    coefficients: Dict[str, pd.Series] = {}
    bse: Dict[str, pd.Series] = {}
    designs: Dict[str, pd.DataFrame] = {}
    random_effects: Dict[str, pd.Series] = {}
    random_variance: Dict[str, float] = {}
    edf_random: Dict[str, float] = {}
    cov_blocks = []
    labels: List[str] = []
    maps = []
    fixed_index: List[int] = []
    for p in PARAMETERS:
        b = blocks[p]
        fixed, rand = obj.slices[p]
        beta, A = b.to_original(theta[fixed])
        coefficients[p] = pd.Series(beta, index=b.columns, name=p)
        maps.append(A)
        fixed_index.extend(range(fixed.start, fixed.stop))
        labels.extend(f"{p}:{c}" for c in b.columns)
        designs[p] = pd.DataFrame(b.raw, columns=b.columns)
        if b.Z is not None:
            g = theta[rand]
            random_effects[p] = pd.Series(g, index=b.groups, name=p)
            lam = obj.lam[p]
            random_variance[p] = 1.0 / lam
            edf_random[p] = float(len(g) - lam * np.trace(V[rand, rand]))

    V_fixed = V[np.ix_(fixed_index, fixed_index)]
    A_all = np.zeros((len(fixed_index), len(fixed_index)))
    start = 0
    for A in maps:
        k = A.shape[0]
        A_all[start:start + k, start:start + k] = A
        start += k
    cov = A_all @ V_fixed @ A_all.T
    cov_df = pd.DataFrame(cov, index=labels, columns=labels)
    se_all = np.sqrt(np.clip(np.diag(cov), 0.0, None))
    start = 0
    for p in PARAMETERS:
        k = len(coefficients[p])
        bse[p] = pd.Series(se_all[start:start + k], index=coefficients[p].index, name=p)
        start += k

    mu, sigma = obj.params(theta)
    loglik = obj.loglik(theta)
    if not np.isfinite(loglik):
        raise FitError(f"{spec.name}: non-finite log-likelihood at the optimum")
    df = float(sum(b.n_fixed for b in blocks.values()) + sum(edf_random.values()))

    return GamlssResult(
        spec=spec,
        family=family,
        y=y,
        mu_fv=mu,
        sigma_fv=sigma,
        coefficients=coefficients,
        bse=bse,
        cov=cov_df,
        designs=designs,
        term_columns={p: blocks[p].term_columns for p in PARAMETERS},
        random_effects=random_effects,
        random_variance=random_variance,
        edf_random=edf_random,
        loglik=loglik,
        df=df,
        converged=converged,
        n_iter=n_iter,
        residuals=_quantile_residuals(family, y, mu, sigma),
    )


def null_spec(spec: ModelSpec) -> ModelSpec:
    return replace(
        spec,
        name=f"{spec.name} (null)",
        mu_terms=(),
        sigma_terms=(),
        mu_random=None,
        sigma_random=None,
    )


def rsq(result: GamlssResult, data: pd.DataFrame) -> float:
    """Cox-Snell generalized R-squared against the intercept-only fit of the same family."""

    null = fit_gamlss(null_spec(result.spec), data)
    return float(1.0 - np.exp((2.0 / result.n) * (null.loglik - result.loglik)))


@dataclass(frozen=True)
class LRTestResult:
    null_model: str
    alternative_model: str
    statistic: float
    df: float
    p_value: float

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "null_model": self.null_model,
                    "alternative_model": self.alternative_model,
                    "lr_statistic": self.statistic,
                    "df": self.df,
                    "p_value": self.p_value,
                }
            ]
        )


def lr_test(null: GamlssResult, alternative: GamlssResult) -> LRTestResult:
    """Likelihood-ratio test of a nested (null) model against a larger one."""

    if null.n != alternative.n:
        raise ValueError(f"Models were fit on different samples: n={null.n} vs n={alternative.n}")
    df = alternative.df - null.df
    if df <= 0:
        raise ValueError(f"Alternative model must have more parameters than the null (df difference {df:.3f})")
    statistic = null.global_deviance - alternative.global_deviance
    p_value = float(stats.chi2.sf(statistic, df)) if statistic > 0 else 1.0
    return LRTestResult(
        null_model=null.name,
        alternative_model=alternative.name,
        statistic=float(statistic),
        df=float(df),
        p_value=p_value,
    )
