#!/usr/bin/env python3
"""Configuration and argument parsing for the flammability model-selection run."""

import argparse
from dataclasses import dataclass
from typing import Optional

# Candidates whose AIC differ by less than this are treated as tied.
AIC_TIE_THRESHOLD: float = 2.0
# Any term scoring above this VIF excludes the candidate from selection.
VIF_THRESHOLD: float = 4.0

DEFAULT_OPTIONAL_COVARIATES: tuple[str, ...] = ("sample_wt_scaled", "start_temp_scaled", "year_month")
# lfm is computed from the dry weight; these two terms never share a model.
DEFAULT_EXCLUSIVE_PAIR: tuple[str, str] = ("lfm_scaled", "dry_wt_scaled")

SCALED_COLUMNS: tuple[str, ...] = ("lfm", "mpa", "dry_wt", "sample_wt", "start_temp")
OUTCOMES: tuple[str, ...] = ("tti", "fh", "fd", "temp_max")


@dataclass
class SelectionConfig:
    """Configuration for one model-selection round."""

    # Data sources
    data: Optional[str] = None
    simulate: bool = False
    seed: int = 0

    # Data preparation
    species: Optional[str] = None
    ignited_only: bool = True

    # Model structure
    outcome: str = "tti"
    mandatory: str = "mpa_scaled"
    group: str = "individual"
    optional: tuple[str, ...] = DEFAULT_OPTIONAL_COVARIATES
    exclusive_pair: tuple[str, str] = DEFAULT_EXCLUSIVE_PAIR

    # Selection policy
    aic_threshold: float = AIC_TIE_THRESHOLD
    vif_threshold: Optional[float] = VIF_THRESHOLD
    r2_kind: str = "marginal"  # marginal or conditional

    # Fitting
    method: str = "lbfgs"
    max_iter: int = 300
    workers: int = 1

    # Reporting
    output_dir: str = "results/flammability"
    plots: bool = True

    def __post_init__(self) -> None:
        if self.r2_kind not in ("marginal", "conditional"):
            raise ValueError(f"r2_kind must be 'marginal' or 'conditional', got {self.r2_kind!r}")
        if len(self.exclusive_pair) != 2:
            raise ValueError(f"exclusive_pair must name exactly two terms, got {self.exclusive_pair}")
        if self.data is None and not self.simulate:
            raise ValueError("Either a data path or simulate=True is required.")


def parse_args(argv: Optional[list[str]] = None) -> SelectionConfig:
    """Parse command-line arguments and return a SelectionConfig."""
    p = argparse.ArgumentParser(description="Stepwise mixed-effects model selection on plant flammability trials.")

    # Data sources
    p.add_argument("--data", type=str, default=None, help="CSV of flammability trials (one row per trial).")
    p.add_argument("--simulate", action="store_true", help="Skip the CSV; generate synthetic trials.")
    p.add_argument("--seed", type=int, default=0, help="Seed for --simulate.")

    # Data preparation
    p.add_argument("--species", type=str, default=None, help="Restrict the analysis to one species.")
    p.add_argument("--include-unignited", action="store_true", help="Keep trials that did not ignite.")

    # Model structure
    p.add_argument("--outcome", choices=list(OUTCOMES), default="tti")
    p.add_argument("--mandatory", type=str, default="mpa_scaled", help="Water-content term kept in every candidate.")
    p.add_argument("--group", type=str, default="individual", help="Random-intercept grouping column.")
    p.add_argument(
        "--optional",
        type=str,
        nargs="+",
        default=list(DEFAULT_OPTIONAL_COVARIATES),
        help="Covariates toggled on/off to build candidates.",
    )
    p.add_argument(
        "--exclusive-pair",
        type=str,
        nargs=2,
        default=list(DEFAULT_EXCLUSIVE_PAIR),
        metavar=("TERM_A", "TERM_B"),
        help="Two terms that may never appear in the same model.",
    )

    # Selection policy
    p.add_argument("--aic-threshold", type=float, default=AIC_TIE_THRESHOLD, help="ΔAIC below which R² breaks the tie.")
    p.add_argument("--vif-threshold", type=float, default=VIF_THRESHOLD, help="VIF above which a candidate is excluded.")
    p.add_argument("--no-vif-gate", action="store_true", help="Report VIF but do not exclude collinear candidates.")
    p.add_argument("--r2-kind", choices=["marginal", "conditional"], default="marginal")

    # Fitting
    p.add_argument("--method", type=str, default="lbfgs", help="statsmodels MixedLM optimizer.")
    p.add_argument("--max-iter", type=int, default=300)
    p.add_argument("--workers", type=int, default=1, help="Thread pool size for fitting candidates.")

    # Reporting
    p.add_argument("--output-dir", type=str, default="results/flammability")
    p.add_argument("--no-plots", action="store_true")

    args = p.parse_args(argv)

    return SelectionConfig(
        data=args.data,
        simulate=args.simulate,
        seed=args.seed,
        species=args.species,
        ignited_only=not args.include_unignited,
        outcome=args.outcome,
        mandatory=args.mandatory,
        group=args.group,
        optional=tuple(args.optional),
        exclusive_pair=(args.exclusive_pair[0], args.exclusive_pair[1]),
        aic_threshold=args.aic_threshold,
        vif_threshold=None if args.no_vif_gate else args.vif_threshold,
        r2_kind=args.r2_kind,
        method=args.method,
        max_iter=args.max_iter,
        workers=args.workers,
        output_dir=args.output_dir,
        plots=not args.no_plots,
    )
