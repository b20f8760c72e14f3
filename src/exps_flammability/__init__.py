"""
Mixed-effects model selection for plant flammability trials.

The package provides:
- Trial loading, validation and an immutable cleaning/scaling pipeline.
- Declarative candidate generation (mandatory term, optional covariates, exclusive pair).
- Random-intercept model fitting with AIC, marginal/conditional R² and VIF.
- AIC/R² selection, partial-effects removal, comparison tables and plots.
"""

__all__ = [
    "candidates",
    "collinearity",
    "config",
    "data_loader",
    "exploratory",
    "mixed_model",
    "remef",
    "reporting",
    "selection",
    "visualization",
]
