"""Growth engine -- start values, curve fitting, model ranking and uncertainty.

This package provides the computational core of the multi-model inference
analysis:

- **Start values**: Ford-Walford linearisation plus a quadratic for L0.
- **Growth models**: von Bertalanffy, Gompertz and logistic curves in 3- and
  2-parameter (fixed L0) variants, collected in a named catalog.
- **Fitting**: nonlinear least squares with asymptotic standard errors.
- **Model selection**: AIC ranking, Akaike weights and the ranking table.
- **Uncertainty**: delta-method confidence and prediction intervals.
- **Analysis**: the end-to-end run tying the above together.
"""

from __future__ import annotations

from fish_growth_mmi.growth_engine.analysis import resolve_start_values, run_analysis
from fish_growth_mmi.growth_engine.fitting import fit_all_models, fit_model
from fish_growth_mmi.growth_engine.growth_models import (
    GrowthModelCatalog,
    build_spec,
    gompertz,
    logistic,
    von_bertalanffy,
)
from fish_growth_mmi.growth_engine.model_selection import (
    compute_aic,
    compute_akaike_weights,
    fit_diagnostics,
    model_averaged_prediction,
    rank_models,
    ranking_frame,
    select_best_model,
)
from fish_growth_mmi.growth_engine.start_values import (
    estimate_start_values,
    fallback_start_values,
    mean_length_at_age,
)
from fish_growth_mmi.growth_engine.uncertainty import (
    default_age_grid,
    predict_with_uncertainty,
    propagate_variance,
)

__all__ = [
    # Start values
    "estimate_start_values",
    "fallback_start_values",
    "mean_length_at_age",
    # Growth models
    "GrowthModelCatalog",
    "build_spec",
    "von_bertalanffy",
    "gompertz",
    "logistic",
    # Fitting
    "fit_model",
    "fit_all_models",
    # Model selection
    "compute_aic",
    "compute_akaike_weights",
    "rank_models",
    "select_best_model",
    "ranking_frame",
    "model_averaged_prediction",
    "fit_diagnostics",
    # Uncertainty
    "default_age_grid",
    "propagate_variance",
    "predict_with_uncertainty",
    # Analysis
    "resolve_start_values",
    "run_analysis",
]
