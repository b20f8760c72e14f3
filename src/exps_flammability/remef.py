"""Partial-effects removal for plotting one predictor against a cleaned response.

Subtracts the contribution of chosen fixed-effect terms (and optionally every
random intercept) from the response or from the fitted values, so the remaining
variation can be shown against the predictor of interest.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd

from .collinearity import design_matrices
from .mixed_model import FitResult


def remove_effects(
    fit: FitResult,
    fixed: Sequence[str] = (),
    random: bool = False,
    base: str = "response",
) -> pd.Series:
    """Return the base vector minus the named fixed-effect terms and, if random, the group intercepts.

    base is "response" (the observed outcome) or "fitted" (fitted values including random
    effects). Use "Intercept" in `fixed` to strip the intercept too. Removing nothing
    returns the base vector unchanged.
    """
    res = fit.result
    frame = res.model.data.frame
    if base == "response":
        values = frame[fit.spec.response].to_numpy(dtype=float)
    elif base == "fitted":
        values = np.asarray(res.fittedvalues, dtype=float)
    else:
        raise ValueError(f"base must be 'response' or 'fitted', got {base!r}")
    out = values.copy()

    if fixed:
        _, X = design_matrices(fit.spec.formula, frame)
        slices = dict(X.design_info.term_name_slices)
        for term in fixed:
            if term not in slices:
                raise KeyError(f"Unknown fixed-effect term {term!r}; available: {list(slices)}")
            cols = X.columns[slices[term]]
            out = out - X[cols].to_numpy() @ res.fe_params[cols].to_numpy()

    if random:
        intercepts = {group: float(effects.iloc[0]) for group, effects in res.random_effects.items()}
        out = out - frame[fit.spec.group].map(intercepts).to_numpy(dtype=float)

    return pd.Series(out, index=frame.index, name=f"{fit.spec.response}_partial")
