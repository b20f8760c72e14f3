from __future__ import annotations

import logging
from typing import Optional

import pandas as pd
import statsmodels.formula.api as smf

logger = logging.getLogger(__name__)


def fit_exploratory_ols(
    df: pd.DataFrame,
    outcome: str,
    predictor: str,
    by: Optional[str] = "species",
    min_obs: int = 3,
) -> pd.DataFrame:
    """Simple outcome ~ predictor OLS per group (or pooled when by is None).

    Groups with fewer than min_obs complete rows are skipped.
    """
    data = df.dropna(subset=[outcome, predictor])
    groups = [("all", data)] if by is None else list(data.groupby(by, sort=True))
    formula = f"{outcome} ~ {predictor}"

    rows = []
    for name, group in groups:
        if len(group) < min_obs:
            logger.info(f"Skipping {by}={name}: {len(group)} rows < {min_obs}")
            continue
        res = smf.ols(formula, data=group).fit()
        rows.append(
            {
                "group": name,
                "n": int(res.nobs),
                "intercept": float(res.params["Intercept"]),
                "slope": float(res.params[predictor]),
                "slope_se": float(res.bse[predictor]),
                "pvalue": float(res.pvalues[predictor]),
                "r2": float(res.rsquared),
            }
        )
    return pd.DataFrame(rows, columns=["group", "n", "intercept", "slope", "slope_se", "pvalue", "r2"])
