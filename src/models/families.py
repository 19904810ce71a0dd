"""Unit-interval distribution families for distributional regression.

Each family is parametrized by a location ``mu`` in (0, 1) and a shape or
dispersion parameter ``sigma`` > 0, following the GAMLSS parametrizations:

- BE: Beta with mean ``mu`` and variance ``sigma**2 * mu * (1 - mu)``
- SIMPLEX: Barndorff-Nielsen & Jorgensen simplex with mean ``mu``
- Kuma: Kumaraswamy parametrized by its median ``mu``
- UW: Unit Weibull parametrized by its median ``mu``
- RUBXII: Reflected Unit Burr XII parametrized by its median ``mu``
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional

import numpy as np
from scipy import integrate, optimize, special, stats


_EPS = 1e-12
LOG_HALF = np.log(0.5)


@dataclass(frozen=True)
class Link:
    name: str
    linkfun: Callable[[np.ndarray], np.ndarray]
    linkinv: Callable[[np.ndarray], np.ndarray]


# Module-level functions keep fitted results picklable.
def _logit(p):
    return special.logit(np.asarray(p, dtype=float))


def _expit(eta):
    return special.expit(np.asarray(eta, dtype=float))


def _log(x):
    return np.log(np.asarray(x, dtype=float))


def _exp_clipped(eta):
    return np.exp(np.clip(np.asarray(eta, dtype=float), -700.0, 700.0))


def _identity(x):
    return np.asarray(x, dtype=float)


def _probit(p):
    return special.ndtri(np.asarray(p, dtype=float))


def _probit_inv(eta):
    return special.ndtr(np.asarray(eta, dtype=float))


LINKS: Dict[str, Link] = {
    "logit": Link("logit", _logit, _expit),
    "log": Link("log", _log, _exp_clipped),
    "identity": Link("identity", _identity, _identity),
    "probit": Link("probit", _probit, _probit_inv),
}


def get_link(name: str) -> Link:
    try:
        return LINKS[name]
    except KeyError:
        raise ValueError(f"Unknown link: {name!r}; choices: {sorted(LINKS)}") from None


class UnitFamily:
    """Base class: subclasses implement ``logpdf`` and ``cdf`` vectorized over arrays."""

    name = ""
    default_sigma_link = "log"
    sigma_upper: Optional[float] = None

    def __init__(self, mu_link: Optional[str] = None, sigma_link: Optional[str] = None):
        self.mu_link = get_link(mu_link or "logit")
        self.sigma_link = get_link(sigma_link or self.default_sigma_link)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(mu_link={self.mu_link.name!r}, sigma_link={self.sigma_link.name!r})"

    def valid_params(self, mu, sigma) -> np.ndarray:
        mu = np.asarray(mu, dtype=float)
        sigma = np.asarray(sigma, dtype=float)
        ok = (mu > 0.0) & (mu < 1.0) & (sigma > 0.0)
        if self.sigma_upper is not None:
            ok &= sigma < self.sigma_upper
        return ok

    def logpdf(self, y, mu, sigma) -> np.ndarray:
        raise NotImplementedError

    def cdf(self, y, mu, sigma) -> np.ndarray:
        raise NotImplementedError

    def pdf(self, y, mu, sigma) -> np.ndarray:
        return np.exp(self.logpdf(y, mu, sigma))

    def ppf(self, q, mu, sigma) -> np.ndarray:
        """Quantile function by bracketed root finding on the cdf."""

        q, mu, sigma = np.broadcast_arrays(
            np.asarray(q, dtype=float), np.asarray(mu, dtype=float), np.asarray(sigma, dtype=float)
        )
        out = np.empty(q.shape, dtype=float)
        for idx in np.ndindex(q.shape):
            qi, mi, si = q[idx], mu[idx], sigma[idx]
            if not 0.0 < qi < 1.0:
                out[idx] = 0.0 if qi <= 0.0 else 1.0
                continue
            out[idx] = optimize.brentq(
                lambda y: float(self.cdf(y, mi, si)) - qi, 1e-12, 1.0 - 1e-12, xtol=1e-12
            )
        return out

    def initial_sigma(self, y: np.ndarray) -> float:
        return 1.0


class BetaFamily(UnitFamily):
    name = "BE"
    default_sigma_link = "logit"
    sigma_upper = 1.0

    @staticmethod
    def shapes(mu, sigma):
        mu = np.asarray(mu, dtype=float)
        sigma = np.asarray(sigma, dtype=float)
        a = mu * (1.0 - sigma**2) / sigma**2
        b = a * (1.0 - mu) / mu
        return a, b

    def logpdf(self, y, mu, sigma):
        a, b = self.shapes(mu, sigma)
        with np.errstate(invalid="ignore", divide="ignore"):
            out = stats.beta.logpdf(y, a, b)
        return np.where(self.valid_params(mu, sigma), out, -np.inf)

    def cdf(self, y, mu, sigma):
        a, b = self.shapes(mu, sigma)
        return stats.beta.cdf(y, a, b)

    def ppf(self, q, mu, sigma):
        a, b = self.shapes(mu, sigma)
        return stats.beta.ppf(q, a, b)

    def initial_sigma(self, y):
        m = float(np.mean(y))
        v = float(np.var(y))
        s2 = v / max(m * (1.0 - m), _EPS)
        return float(np.sqrt(np.clip(s2, 0.01, 0.81)))


class SimplexFamily(UnitFamily):
    name = "SIMPLEX"

    @staticmethod
    def _unit_deviance(y, mu):
        return (y - mu) ** 2 / (y * (1.0 - y) * mu**2 * (1.0 - mu) ** 2)

    def logpdf(self, y, mu, sigma):
        y = np.asarray(y, dtype=float)
        mu = np.asarray(mu, dtype=float)
        sigma = np.asarray(sigma, dtype=float)
        with np.errstate(invalid="ignore", divide="ignore"):
            out = (
                -0.5 * np.log(2.0 * np.pi)
                - np.log(sigma)
                - 1.5 * np.log(y * (1.0 - y))
                - self._unit_deviance(y, mu) / (2.0 * sigma**2)
            )
        return np.where(self.valid_params(mu, sigma), out, -np.inf)

    def cdf(self, y, mu, sigma):
        y, mu, sigma = np.broadcast_arrays(
            np.asarray(y, dtype=float), np.asarray(mu, dtype=float), np.asarray(sigma, dtype=float)
        )
        out = np.empty(y.shape, dtype=float)
        for idx in np.ndindex(y.shape):
            yi, mi, si = y[idx], mu[idx], sigma[idx]
            if yi <= 0.0:
                out[idx] = 0.0
                continue
            if yi >= 1.0:
                out[idx] = 1.0
                continue

            def dens(t):
                return float(np.exp(self.logpdf(t, mi, si)))

            # Integrate the tail that does not contain mu.
            if yi <= mi:
                val, _ = integrate.quad(dens, 0.0, yi, limit=200)
            else:
                upper, _ = integrate.quad(dens, yi, 1.0, limit=200)
                val = 1.0 - upper
            out[idx] = min(max(val, 0.0), 1.0)
        return out

    def initial_sigma(self, y):
        m = float(np.mean(y))
        d = self._unit_deviance(np.asarray(y, dtype=float), m)
        return float(np.sqrt(max(np.mean(d), 1e-4)))


class KumaraswamyFamily(UnitFamily):
    name = "Kuma"

    @staticmethod
    def _delta(mu, sigma):
        return LOG_HALF / np.log1p(-(mu**sigma))

    def logpdf(self, y, mu, sigma):
        y = np.asarray(y, dtype=float)
        mu = np.asarray(mu, dtype=float)
        sigma = np.asarray(sigma, dtype=float)
        with np.errstate(invalid="ignore", divide="ignore", over="ignore"):
            delta = self._delta(mu, sigma)
            out = (
                np.log(sigma)
                + np.log(delta)
                + (sigma - 1.0) * np.log(y)
                + (delta - 1.0) * np.log1p(-(y**sigma))
            )
        return np.where(self.valid_params(mu, sigma), out, -np.inf)

    def cdf(self, y, mu, sigma):
        y = np.asarray(y, dtype=float)
        with np.errstate(invalid="ignore", divide="ignore", over="ignore"):
            delta = self._delta(np.asarray(mu, dtype=float), np.asarray(sigma, dtype=float))
            return -np.expm1(delta * np.log1p(-(y**sigma)))

    def ppf(self, q, mu, sigma):
        delta = self._delta(np.asarray(mu, dtype=float), np.asarray(sigma, dtype=float))
        q = np.asarray(q, dtype=float)
        return (1.0 - (1.0 - q) ** (1.0 / delta)) ** (1.0 / np.asarray(sigma, dtype=float))

    def initial_sigma(self, y):
        return 2.0


class UnitWeibullFamily(UnitFamily):
    name = "UW"

    def logpdf(self, y, mu, sigma):
        y = np.asarray(y, dtype=float)
        mu = np.asarray(mu, dtype=float)
        sigma = np.asarray(sigma, dtype=float)
        with np.errstate(invalid="ignore", divide="ignore", over="ignore"):
            z = -np.log(y)
            z_mu = -np.log(mu)
            ratio = z / z_mu
            out = (
                np.log(sigma)
                - np.log(y)
                + np.log(-LOG_HALF)
                - np.log(z_mu)
                + (sigma - 1.0) * np.log(ratio)
                + LOG_HALF * ratio**sigma
            )
        return np.where(self.valid_params(mu, sigma), out, -np.inf)

    def cdf(self, y, mu, sigma):
        with np.errstate(invalid="ignore", divide="ignore", over="ignore"):
            ratio = np.log(np.asarray(y, dtype=float)) / np.log(np.asarray(mu, dtype=float))
            return np.exp(LOG_HALF * ratio ** np.asarray(sigma, dtype=float))

    def ppf(self, q, mu, sigma):
        q = np.asarray(q, dtype=float)
        mu = np.asarray(mu, dtype=float)
        sigma = np.asarray(sigma, dtype=float)
        return np.exp(np.log(mu) * (np.log(q) / LOG_HALF) ** (1.0 / sigma))

    def initial_sigma(self, y):
        return 2.0


class ReflectedUnitBurrXIIFamily(UnitFamily):
    name = "RUBXII"

    @staticmethod
    def _d(mu, sigma):
        z_mu = -np.log1p(-mu)
        return -LOG_HALF / np.log1p(z_mu**sigma)

    def logpdf(self, y, mu, sigma):
        y = np.asarray(y, dtype=float)
        mu = np.asarray(mu, dtype=float)
        sigma = np.asarray(sigma, dtype=float)
        with np.errstate(invalid="ignore", divide="ignore", over="ignore"):
            z = -np.log1p(-y)
            d = self._d(mu, sigma)
            out = (
                np.log(d)
                + np.log(sigma)
                + (sigma - 1.0) * np.log(z)
                - (d + 1.0) * np.log1p(z**sigma)
                - np.log1p(-y)
            )
        return np.where(self.valid_params(mu, sigma), out, -np.inf)

    def cdf(self, y, mu, sigma):
        y = np.asarray(y, dtype=float)
        mu = np.asarray(mu, dtype=float)
        sigma = np.asarray(sigma, dtype=float)
        with np.errstate(invalid="ignore", divide="ignore", over="ignore"):
            z = -np.log1p(-y)
            return -np.expm1(-self._d(mu, sigma) * np.log1p(z**sigma))

    def ppf(self, q, mu, sigma):
        q = np.asarray(q, dtype=float)
        sigma = np.asarray(sigma, dtype=float)
        d = self._d(np.asarray(mu, dtype=float), sigma)
        z = ((1.0 - q) ** (-1.0 / d) - 1.0) ** (1.0 / sigma)
        return -np.expm1(-z)

    def initial_sigma(self, y):
        return 2.0


FAMILY_CLASSES = {
    cls.name: cls
    for cls in (BetaFamily, SimplexFamily, KumaraswamyFamily, UnitWeibullFamily, ReflectedUnitBurrXIIFamily)
}


def get_family(name: str, mu_link: Optional[str] = None, sigma_link: Optional[str] = None) -> UnitFamily:
    try:
        cls = FAMILY_CLASSES[name]
    except KeyError:
        raise ValueError(f"Unknown family: {name!r}; choices: {sorted(FAMILY_CLASSES)}") from None
    return cls(mu_link=mu_link, sigma_link=sigma_link)
