from __future__ import annotations

import warnings
from typing import List, Optional, Sequence, Tuple

import pandas as pd

from src.config import GAIC_PENALTY
from src.models.gamlss import FitError, GamlssResult, fit_gamlss


def _try_fit(spec, data) -> Optional[GamlssResult]:
    try:
        return fit_gamlss(spec, data)
    except (FitError, ValueError, FloatingPointError) as exc:
        warnings.warn(f"stepwise: skipping {spec.name}: {exc}")
        return None


def step_gaic(
    result: GamlssResult,
    data: pd.DataFrame,
    parameter: str = "mu",
    k: float = GAIC_PENALTY,
    scope: Optional[Sequence[str]] = None,
    direction: str = "both",
    max_steps: int = 100,
    trace: bool = True,
) -> Tuple[GamlssResult, pd.DataFrame]:
    """Stepwise term selection for one distribution parameter by GAIC(k).

    Starts from ``result``. Each step evaluates dropping every current term
    (direction 'both' or 'backward') and adding every ``scope`` term not in
    the model (direction 'both' or 'forward'); the best move is taken while it
    lowers GAIC. ``scope`` defaults to the starting model's terms.

    Returns the selected fit and the path as a table.
    """

    if direction not in {"both", "backward", "forward"}:
        raise ValueError(f"direction must be both/backward/forward, got {direction!r}")
    if parameter not in {"mu", "sigma"}:
        raise ValueError(f"parameter must be 'mu' or 'sigma', got {parameter!r}")

    current = result
    terms: List[str] = current.terms(parameter)
    upper = list(scope) if scope is not None else list(terms)
    base_name = result.name

    path = [{"step": 0, "action": "start", "term": "", "gaic": current.gaic(k), "df": current.df}]
    if trace:
        print(f"Start: GAIC={current.gaic(k):.4f}  {parameter} ~ {' + '.join(terms) or '1'}")

    for step in range(1, max_steps + 1):
        candidates = []
        if direction in {"both", "backward"}:
            for term in terms:
                candidates.append(("drop", term, [t for t in terms if t != term]))
        if direction in {"both", "forward"}:
            for term in upper:
                if term not in terms:
                    candidates.append(("add", term, terms + [term]))

        best = None
        for action, term, new_terms in candidates:
            spec = current.spec.with_terms(parameter, new_terms, name=base_name)
            fit = _try_fit(spec, data)
            if fit is None:
                continue
            score = fit.gaic(k)
            if trace:
                sign = "-" if action == "drop" else "+"
                print(f"  {sign} {term:<12s} GAIC={score:.4f}")
            if best is None or score < best[0]:
                best = (score, action, term, new_terms, fit)

        if best is None or best[0] >= current.gaic(k):
            break

        score, action, term, new_terms, fit = best
        current = fit
        terms = list(new_terms)
        path.append({"step": step, "action": action, "term": term, "gaic": score, "df": fit.df})
        if trace:
            print(f"Step {step}: {action} {term}  GAIC={score:.4f}")

    return current, pd.DataFrame(path)
