"""AIC/R² model selection over mixed-model candidates.

The rule: rank by AIC; when the two best are within `aic_threshold` of each other,
take the one with the higher R², otherwise take the minimum-AIC model. Candidates
with a term above `vif_threshold` are removed before ranking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import pandas as pd

from .candidates import ModelSpec, generate_candidates
from .config import AIC_TIE_THRESHOLD, SelectionConfig
from .mixed_model import FitFailure, FitResult, Outcome, evaluate_candidates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionOutcome:
    chosen: FitResult
    ranked: Tuple[FitResult, ...]
    delta_aic: float  # AIC gap between the two best eligible candidates
    decided_by: str  # "aic", "r2_tiebreak" or "only_candidate"
    excluded: Tuple[FitResult, ...] = ()

    @property
    def spec(self) -> ModelSpec:
        return self.chosen.spec


@dataclass
class SelectionRun:
    specs: List[ModelSpec]
    outcomes: List[Outcome]
    results: List[FitResult]
    failures: List[FitFailure]
    outcome: SelectionOutcome


def rank_by_aic(results: Iterable[FitResult]) -> List[FitResult]:
    """Ascending AIC; ties keep candidate order."""
    return sorted(results, key=lambda r: r.aic)


def select_model(
    results: Iterable[FitResult],
    aic_threshold: float = AIC_TIE_THRESHOLD,
    r2_kind: str = "marginal",
    vif_threshold: Optional[float] = None,
) -> SelectionOutcome:
    results = list(results)
    excluded: List[FitResult] = []
    eligible = results
    if vif_threshold is not None:
        eligible = [r for r in results if not r.is_collinear(vif_threshold)]
        excluded = [r for r in results if r.is_collinear(vif_threshold)]
        for r in excluded:
            logger.info(f"Excluding {r.spec.formula}: VIF {r.max_vif:.2f} > {vif_threshold}")
    if not eligible:
        raise ValueError("No eligible candidates to select from.")

    ranked = rank_by_aic(eligible)
    if len(ranked) == 1:
        return SelectionOutcome(
            chosen=ranked[0], ranked=tuple(ranked), delta_aic=float("nan"), decided_by="only_candidate", excluded=tuple(excluded)
        )

    best, second = ranked[0], ranked[1]
    gap = second.aic - best.aic
    if gap < aic_threshold and second.r2(r2_kind) > best.r2(r2_kind):
        chosen, decided_by = second, "r2_tiebreak"
    else:
        chosen, decided_by = best, "aic"
    logger.info(f"Selected {chosen.spec.formula} (ΔAIC to runner-up {gap:.2f}, decided by {decided_by})")
    return SelectionOutcome(chosen=chosen, ranked=tuple(ranked), delta_aic=gap, decided_by=decided_by, excluded=tuple(excluded))


def run_selection(df: pd.DataFrame, config: SelectionConfig) -> SelectionRun:
    """Generate candidates, fit them all, then reduce to one model."""
    specs = generate_candidates(
        response=config.outcome,
        mandatory=config.mandatory,
        group=config.group,
        optional=config.optional,
        exclusive_pair=config.exclusive_pair,
    )
    outcomes = evaluate_candidates(specs, df, method=config.method, max_iter=config.max_iter, max_workers=config.workers)
    results = [o for o in outcomes if isinstance(o, FitResult)]
    failures = [o for o in outcomes if isinstance(o, FitFailure)]
    logger.info(f"{len(results)} of {len(specs)} candidates fitted, {len(failures)} failed")

    outcome = select_model(
        results,
        aic_threshold=config.aic_threshold,
        r2_kind=config.r2_kind,
        vif_threshold=config.vif_threshold,
    )
    return SelectionRun(specs=specs, outcomes=outcomes, results=results, failures=failures, outcome=outcome)
