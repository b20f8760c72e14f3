from __future__ import annotations

import logging
import warnings
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from statsmodels.tools.sm_exceptions import ConvergenceWarning, SingularMatrixWarning
from tqdm import tqdm

from .candidates import ModelSpec
from .collinearity import collinear_terms, compute_vif, design_matrices
from .config import VIF_THRESHOLD

logger = logging.getLogger(__name__)

# Random-intercept variance at or below this (relative to residual variance) is a singular fit.
SINGULAR_TOL = 1e-6
# Estimator warnings that mark a converged fit as unusable.
FAILURE_WARNINGS = (
    "Hessian matrix at the estimated parameter values is not positive definite",
    "random effects covariance matrix is singular",
    "Gradient optimization failed",
)


@dataclass(frozen=True)
class FitResult:
    spec: ModelSpec
    aic: float
    r2_marginal: float
    r2_conditional: float
    bic: float = float("nan")
    llf: float = float("nan")
    n_obs: int = 0
    n_groups: int = 0
    coefficients: pd.DataFrame = field(default_factory=pd.DataFrame, compare=False, repr=False)
    vif: pd.Series = field(default_factory=lambda: pd.Series(dtype=float), compare=False, repr=False)
    warnings: Tuple[str, ...] = ()
    result: Any = field(default=None, compare=False, repr=False)  # statsmodels MixedLMResults

    def r2(self, kind: str = "marginal") -> float:
        if kind == "marginal":
            return self.r2_marginal
        if kind == "conditional":
            return self.r2_conditional
        raise ValueError(f"Unknown R² kind: {kind}")

    @property
    def max_vif(self) -> float:
        return float(self.vif.max()) if len(self.vif) else float("nan")

    def is_collinear(self, threshold: float = VIF_THRESHOLD) -> bool:
        return bool(collinear_terms(self.vif, threshold))


@dataclass(frozen=True)
class FitFailure:
    spec: ModelSpec
    reason: str


Outcome = Union[FitResult, FitFailure]


def r_squared(result: Any) -> Tuple[float, float]:
    """Marginal and conditional R² for a random-intercept fit (Nakagawa & Schielzeth 2013)."""
    linear_predictor = np.asarray(result.model.exog) @ np.asarray(result.fe_params)
    var_fixed = float(np.var(linear_predictor, ddof=1))
    var_random = float(np.asarray(result.cov_re)[0, 0])
    var_residual = float(result.scale)
    total = var_fixed + var_random + var_residual
    return var_fixed / total, (var_fixed + var_random) / total


def fixed_effects(fit: FitResult) -> pd.DataFrame:
    """Return fixed-effect coefficients, standard errors, z and p-values."""
    if not fit.coefficients.empty:
        return fit.coefficients
    return _coefficient_table(fit.result)


def _coefficient_table(res: Any) -> pd.DataFrame:
    idx = res.fe_params.index
    return pd.DataFrame(
        {
            "coef": res.fe_params,
            "se": res.bse[idx],
            "z": res.tvalues[idx],
            "pvalue": res.pvalues[idx],
        }
    )


def fit_mixed_model(
    df: pd.DataFrame,
    spec: ModelSpec,
    method: str = "lbfgs",
    max_iter: int = 300,
    record_warnings: bool = True,
) -> Outcome:
    """Fit a linear mixed model with random intercept on spec.group.

    Fits by maximum likelihood so AIC is comparable across candidates. A FitFailure is
    returned for a rank-deficient design, an optimizer that does not converge, an estimator
    warning listed in FAILURE_WARNINGS, a singular random-intercept variance or non-finite
    fixed-effect standard errors; nothing is retried.

    record_warnings=False skips warnings.catch_warnings, which is not safe to enter from
    several threads at once; the result-based checks still apply.
    """
    missing = [col for col in spec.columns if col not in df.columns]
    if missing:
        raise ValueError(f"{spec.formula}: columns missing from data: {missing}")
    data = df[spec.columns].dropna().reset_index(drop=True)
    if data[spec.group].nunique() < 2:
        raise ValueError("At least two distinct groups are required for MixedLM.")

    _, X = design_matrices(spec.formula, data)
    rank = int(np.linalg.matrix_rank(X.values))
    if rank < X.shape[1]:
        return FitFailure(spec=spec, reason=f"rank-deficient design matrix (rank {rank} < {X.shape[1]} columns)")

    model = smf.mixedlm(formula=spec.formula, data=data, groups=data[spec.group])
    try:
        if record_warnings:
            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter("always", ConvergenceWarning)
                warnings.simplefilter("always", SingularMatrixWarning)
                result = model.fit(reml=False, method=method, maxiter=max_iter)
            messages = tuple(
                str(w.message) for w in caught if issubclass(w.category, (ConvergenceWarning, SingularMatrixWarning))
            )
        else:
            result = model.fit(reml=False, method=method, maxiter=max_iter)
            messages = ()
    except (np.linalg.LinAlgError, ValueError) as e:
        return FitFailure(spec=spec, reason=f"{type(e).__name__}: {e}")

    if not getattr(result, "converged", False):
        return FitFailure(spec=spec, reason="optimizer did not converge" + (f": {messages[0]}" if messages else ""))
    fatal = [m for m in messages if any(marker in m for marker in FAILURE_WARNINGS)]
    if fatal:
        return FitFailure(spec=spec, reason=f"estimator warning: {fatal[0]}")
    var_random = float(np.asarray(result.cov_re)[0, 0])
    if var_random <= SINGULAR_TOL * float(result.scale):
        return FitFailure(spec=spec, reason=f"singular random-effects covariance (group variance {var_random:.3g})")
    with np.errstate(invalid="ignore"):
        se = np.asarray(result.bse_fe, dtype=float)
    if not np.all(np.isfinite(se)):
        return FitFailure(spec=spec, reason="Hessian not positive definite (non-finite fixed-effect standard errors)")
    if not np.isfinite(result.aic):
        return FitFailure(spec=spec, reason="AIC is undefined for this fit")

    r2_m, r2_c = r_squared(result)
    return FitResult(
        spec=spec,
        aic=float(result.aic),
        bic=float(result.bic),
        llf=float(result.llf),
        r2_marginal=r2_m,
        r2_conditional=r2_c,
        n_obs=int(result.nobs),
        n_groups=len(result.model.group_labels),
        coefficients=_coefficient_table(result),
        vif=compute_vif(X),
        warnings=messages,
        result=result,
    )


def evaluate_candidates(
    specs: Sequence[ModelSpec],
    df: pd.DataFrame,
    method: str = "lbfgs",
    max_iter: int = 300,
    max_workers: int = 1,
) -> List[Outcome]:
    """Fit every spec independently; outcomes come back in spec order."""
    outcomes: List[Optional[Outcome]] = [None] * len(specs)
    if max_workers <= 1:
        for i, spec in enumerate(tqdm(specs, desc="Fitting candidates")):
            outcomes[i] = fit_mixed_model(df, spec, method=method, max_iter=max_iter)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as ex:
            futures = {ex.submit(fit_mixed_model, df, spec, method, max_iter, False): i for i, spec in enumerate(specs)}
            for fut in tqdm(as_completed(futures), total=len(futures), desc="Fitting candidates"):
                outcomes[futures[fut]] = fut.result()

    for outcome in outcomes:
        if isinstance(outcome, FitFailure):
            logger.warning(f"Fit failed for {outcome.spec.formula}: {outcome.reason}")
        elif outcome is not None:
            logger.info(f"{outcome.spec.formula}: AIC={outcome.aic:.2f} R2m={outcome.r2_marginal:.3f} R2c={outcome.r2_conditional:.3f}")
    return [o for o in outcomes if o is not None]


def model_diagnostics(fit: FitResult) -> Dict[str, float]:
    return {
        "aic": fit.aic,
        "bic": fit.bic,
        "llf": fit.llf,
        "r2_marginal": fit.r2_marginal,
        "r2_conditional": fit.r2_conditional,
        "max_vif": fit.max_vif,
        "converged": bool(getattr(fit.result, "converged", True)),
    }


def predict(fit: FitResult, new_data: pd.DataFrame) -> np.ndarray:
    """Fixed-effects (population-level) predictions."""
    return np.asarray(fit.result.predict(new_data))


def prediction_grid(
    fit: FitResult,
    feature_x: str,
    feature_y: str,
    num: int = 25,
    anchors: Mapping[str, Any] | None = None,
) -> pd.DataFrame:
    """Predictions over the observed range of two terms, other terms held at anchors.

    Numeric terms default to their mean, categorical terms to their most common level.
    """
    frame = fit.result.model.data.frame
    if anchors is None:
        anchors = {}
        for term in fit.spec.terms:
            col = frame[term]
            anchors[term] = col.mean() if pd.api.types.is_numeric_dtype(col) else col.mode().iloc[0]

    x_vals = np.linspace(frame[feature_x].min(), frame[feature_x].max(), num=num)
    y_vals = np.linspace(frame[feature_y].min(), frame[feature_y].max(), num=num)
    rows = []
    for x in x_vals:
        for y in y_vals:
            row = {term: anchors.get(term, 0.0) for term in fit.spec.terms}
            row[feature_x] = x
            row[feature_y] = y
            rows.append(row)
    grid = pd.DataFrame(rows)
    grid["prediction"] = predict(fit, grid)
    return grid[[feature_x, feature_y, "prediction"]]
