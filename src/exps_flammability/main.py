#!/usr/bin/env python3
"""
Stepwise mixed-effects model selection on plant flammability trials.

Steps:
  1. load (or simulate) trials, filter, drop NA rows and z-score the measurements
  2. exploratory per-species OLS of the outcome on the water-content metric
  3. fit every candidate random-intercept model (optional covariates toggled on/off)
  4. rank by AIC, break near-ties by R², drop collinear candidates (VIF)
  5. write comparison tables and plots, including a partial-effect plot of the
     selected model with all other effects removed
"""

import logging
import time
from pathlib import Path
from typing import List

import pandas as pd

from .config import SelectionConfig, parse_args
from .data_loader import load_observations, prepare_observations, simulate_observations
from .exploratory import fit_exploratory_ols
from .mixed_model import prediction_grid
from .remef import remove_effects
from .reporting import comparison_table, write_report
from .selection import SelectionRun, run_selection
from .visualization import aic_comparison_plot, exploratory_scatter, partial_effect_plot, residual_plot, surface_plot

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

SCALED_SUFFIX = "_scaled"


def _raw_column(term: str) -> str:
    return term[: -len(SCALED_SUFFIX)] if term.endswith(SCALED_SUFFIX) else term


def required_columns(config: SelectionConfig) -> List[str]:
    """Raw columns that must be present (non-NA) for every candidate to be fitted on the same rows."""
    cols = [config.outcome, config.group, _raw_column(config.mandatory)]
    cols.extend(_raw_column(term) for term in config.optional)
    return list(dict.fromkeys(cols))


def load_trials(config: SelectionConfig) -> pd.DataFrame:
    if config.simulate:
        logger.info("Simulating synthetic trials...")
        return simulate_observations(seed=config.seed)
    return load_observations(config.data)


def make_plots(run: SelectionRun, processed: pd.DataFrame, config: SelectionConfig, output_dir: Path) -> None:
    chosen = run.outcome.chosen
    exploratory_scatter(
        processed,
        outcome=config.outcome,
        predictor=config.mandatory,
        hue=None if config.species else "species",
        output_png=output_dir / "exploratory.png",
    )

    comparison = comparison_table(run.outcomes, vif_threshold=config.vif_threshold, chosen=chosen)
    aic_comparison_plot(comparison, aic_threshold=config.aic_threshold, output_png=output_dir / "aic_comparison.png")

    others = [term for term in chosen.spec.terms if term != config.mandatory]
    partial = remove_effects(chosen, fixed=others, random=True)
    partial_effect_plot(chosen, partial, predictor=config.mandatory, output_png=output_dir / "partial_effect.png")

    residual_plot(chosen, output_png=output_dir / "residuals.png")

    numeric_terms = [t for t in chosen.spec.terms if pd.api.types.is_numeric_dtype(processed[t])]
    if len(numeric_terms) >= 2:
        feature_x, feature_y = numeric_terms[0], numeric_terms[1]
        grid = prediction_grid(chosen, feature_x=feature_x, feature_y=feature_y)
        surface_plot(
            grid,
            feature_x=feature_x,
            feature_y=feature_y,
            output_html=output_dir / f"surface_{feature_x}_{feature_y}.html",
            title=f"{config.outcome}: {feature_x} vs {feature_y}",
            z_title=f"Predicted {config.outcome}",
        )


def run(config: SelectionConfig) -> SelectionRun:
    """Main selection runner."""
    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    # Load and prepare data
    df = load_trials(config)
    processed = prepare_observations(
        df,
        required_columns=required_columns(config),
        species=config.species,
        ignited_only=config.ignited_only,
    )
    logger.info(f"Prepared {len(processed)} trials from {processed[config.group].nunique()} groups")

    # Exploratory regression
    exploratory = fit_exploratory_ols(processed, outcome=config.outcome, predictor=config.mandatory, by=None if config.species else "species")

    # Candidate fitting and selection
    selection = run_selection(processed, config)

    write_report(
        selection,
        output_dir,
        aic_threshold=config.aic_threshold,
        r2_kind=config.r2_kind,
        vif_threshold=config.vif_threshold,
        exploratory=exploratory,
    )
    if config.plots:
        make_plots(selection, processed, config, output_dir)
    return selection


def main() -> None:
    start_time = time.perf_counter()
    config = parse_args()
    run(config)
    elapsed = time.perf_counter() - start_time
    logger.info(f"Elapsed time: {elapsed:.4f} seconds")


if __name__ == "__main__":
    main()
