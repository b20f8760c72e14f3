"""Human-readable comparison tables for a selection run."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .mixed_model import FitFailure, FitResult, Outcome
from .selection import SelectionRun

logger = logging.getLogger(__name__)


def significance_stars(p_value: float) -> str:
    if p_value < 0.001:
        return "***"
    if p_value < 0.01:
        return "**"
    if p_value < 0.05:
        return "*"
    return ""


def comparison_table(
    outcomes: Sequence[Outcome],
    vif_threshold: Optional[float] = None,
    chosen: Optional[FitResult] = None,
) -> pd.DataFrame:
    """One row per candidate, in candidate order."""
    fitted = [o for o in outcomes if isinstance(o, FitResult)]
    best_aic = min((o.aic for o in fitted), default=np.nan)

    rows = []
    for i, o in enumerate(outcomes, start=1):
        row: Dict[str, object] = {"candidate": i, "label": o.spec.label, "formula": o.spec.formula}
        if isinstance(o, FitFailure):
            row.update(
                aic=np.nan,
                delta_aic=np.nan,
                r2_marginal=np.nan,
                r2_conditional=np.nan,
                max_vif=np.nan,
                status=f"failed: {o.reason}",
                selected=False,
            )
        else:
            collinear = vif_threshold is not None and o.is_collinear(vif_threshold)
            row.update(
                aic=o.aic,
                delta_aic=o.aic - best_aic,
                r2_marginal=o.r2_marginal,
                r2_conditional=o.r2_conditional,
                max_vif=o.max_vif,
                status="collinear" if collinear else "ok",
                selected=chosen is not None and o.spec == chosen.spec,
            )
        rows.append(row)
    return pd.DataFrame(rows)


def coefficient_table(results: Sequence[FitResult], digits: int = 3) -> pd.DataFrame:
    """Terms x candidates, cells are "coef (se)" with significance stars, fit statistics at the bottom."""
    terms: List[str] = []
    for r in results:
        for term in r.coefficients.index:
            if term not in terms:
                terms.append(term)

    columns = {}
    for i, r in enumerate(results, start=1):
        cells = {}
        for term in terms:
            if term in r.coefficients.index:
                c = r.coefficients.loc[term]
                cells[term] = f"{c['coef']:.{digits}f} ({c['se']:.{digits}f}){significance_stars(c['pvalue'])}"
            else:
                cells[term] = ""
        cells["AIC"] = f"{r.aic:.2f}"
        cells["R2 marginal"] = f"{r.r2_marginal:.{digits}f}"
        cells["R2 conditional"] = f"{r.r2_conditional:.{digits}f}"
        cells["N obs / groups"] = f"{r.n_obs} / {r.n_groups}"
        columns[f"({i}) {r.spec.label}"] = cells
    index = [*terms, "AIC", "R2 marginal", "R2 conditional", "N obs / groups"]
    return pd.DataFrame(columns, index=index)


def format_table(df: pd.DataFrame, index: bool = False) -> str:
    return df.to_string(index=index, float_format=lambda v: f"{v:.3f}")


def selection_summary(run: SelectionRun, aic_threshold: float, r2_kind: str) -> str:
    outcome = run.outcome
    lines = [
        f"Candidates: {len(run.specs)} | fitted: {len(run.results)} | failed: {len(run.failures)} | excluded (VIF): {len(outcome.excluded)}",
        f"Rule: lowest AIC; if ΔAIC < {aic_threshold} between the two best, higher {r2_kind} R².",
        f"Selected: {outcome.spec.formula}  [{outcome.spec.label}]",
        f"Decided by: {outcome.decided_by} (ΔAIC to runner-up: {outcome.delta_aic:.2f})",
        f"AIC={outcome.chosen.aic:.2f}  R2m={outcome.chosen.r2_marginal:.3f}  R2c={outcome.chosen.r2_conditional:.3f}",
    ]
    return "\n".join(lines)


def write_report(
    run: SelectionRun,
    output_dir: Path,
    aic_threshold: float,
    r2_kind: str,
    vif_threshold: Optional[float] = None,
    exploratory: Optional[pd.DataFrame] = None,
) -> List[Path]:
    """Write comparison, coefficient and summary tables as .txt files."""
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []

    comparison = comparison_table(run.outcomes, vif_threshold=vif_threshold, chosen=run.outcome.chosen)
    path = output_dir / "comparison.txt"
    path.write_text(format_table(comparison) + "\n", encoding="utf-8")
    written.append(path)

    path = output_dir / "coefficients.txt"
    path.write_text(format_table(coefficient_table(run.results), index=True) + "\n", encoding="utf-8")
    written.append(path)

    path = output_dir / "selection.txt"
    path.write_text(selection_summary(run, aic_threshold, r2_kind) + "\n", encoding="utf-8")
    written.append(path)

    if exploratory is not None:
        path = output_dir / "exploratory.txt"
        path.write_text(format_table(exploratory) + "\n", encoding="utf-8")
        written.append(path)

    for p in written:
        logger.info(f"Wrote {p}")
    return written
