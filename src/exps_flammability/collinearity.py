from __future__ import annotations

from typing import Dict, List, Tuple

import numpy as np
import pandas as pd
import patsy
from statsmodels.stats.outliers_influence import variance_inflation_factor

from .config import VIF_THRESHOLD


def design_matrices(formula: str, data: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Return (endog, exog) frames; exog keeps patsy's design_info."""
    y, X = patsy.dmatrices(formula, data=data, return_type="dataframe")
    return y, X


def _term_slices(X: pd.DataFrame) -> Dict[str, slice]:
    design_info = getattr(X, "design_info", None)
    if design_info is None:
        return {col: slice(i, i + 1) for i, col in enumerate(X.columns)}
    return dict(design_info.term_name_slices)


def compute_vif(X: pd.DataFrame) -> pd.Series:
    """VIF per model term, intercept excluded.

    Categorical terms span several design columns; the term score is the max over them.
    """
    values = np.asarray(X, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        per_column = [variance_inflation_factor(values, i) for i in range(values.shape[1])]
    scores = {}
    for term, cols in _term_slices(X).items():
        # a single-level categorical contributes no design columns
        if term == "Intercept" or cols.stop <= cols.start:
            continue
        scores[term] = float(np.max(per_column[cols]))
    return pd.Series(scores, dtype=float, name="vif")


def vif_for_formula(formula: str, data: pd.DataFrame) -> pd.Series:
    _, X = design_matrices(formula, data)
    return compute_vif(X)


def collinear_terms(vif: pd.Series, threshold: float = VIF_THRESHOLD) -> List[str]:
    """Terms whose VIF exceeds the threshold."""
    return [str(term) for term, score in vif.items() if score > threshold]
