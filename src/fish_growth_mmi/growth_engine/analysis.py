"""One multi-model inference run, from cleaned sample to prediction table.

:func:`run_analysis` is stateless: everything it needs arrives through the
sample and an :class:`AnalysisConfig`, and everything it produces is
returned in an :class:`AnalysisResult`.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from fish_growth_mmi.domain.errors import DegenerateFitError, NoViableModelError
from fish_growth_mmi.domain.models import AnalysisConfig, AnalysisResult, Sample, StartValues
from fish_growth_mmi.growth_engine.fitting import fit_all_models
from fish_growth_mmi.growth_engine.growth_models import GrowthModelCatalog
from fish_growth_mmi.growth_engine.model_selection import rank_models
from fish_growth_mmi.growth_engine.start_values import (
    estimate_start_values,
    fallback_start_values,
)
from fish_growth_mmi.growth_engine.uncertainty import (
    default_age_grid,
    predict_with_uncertainty,
)

logger = logging.getLogger(__name__)


def resolve_start_values(sample: Sample, config: AnalysisConfig) -> StartValues:
    """Ford-Walford start values, or the heuristic fallback when allowed."""
    try:
        return estimate_start_values(sample, fixed_L0=config.fixed_L0)
    except DegenerateFitError as exc:
        if not config.start_value_fallback:
            raise
        logger.warning("Ford-Walford start values unavailable: %s", exc)
        return fallback_start_values(sample, config.fixed_L0)


def run_analysis(
    sample: Sample,
    config: AnalysisConfig,
    prediction_ages: Any = None,
) -> AnalysisResult:
    """Fit, rank and predict.

    Parameters
    ----------
    sample:
        Cleaned (already filtered) age-length sample.
    config:
        Analysis settings, including the fixed length at birth.
    prediction_ages:
        Ages for the prediction table.  Defaults to
        ``config.prediction_points`` ages from 0 to the oldest observation.

    Returns
    -------
    AnalysisResult
        Ranking (best first), prediction table of the best model and the
        models excluded by fit failures.

    Raises
    ------
    InsufficientDataError
        Too few age groups to derive start values.
    DegenerateFitError
        Start values are degenerate and the fallback is disabled.
    NoViableModelError
        None of the candidate models could be fitted.
    """
    logger.info(
        "Running analysis on %d observations with models %s (fixed L0=%.4g)",
        sample.n, ", ".join(config.candidates), config.fixed_L0,
    )
    start = resolve_start_values(sample, config)
    catalog = GrowthModelCatalog(config.fixed_L0, start, names=config.candidates)

    fits, failures = fit_all_models(
        catalog, sample, max_iterations=config.max_iterations, workers=config.workers,
    )
    if not fits:
        raise NoViableModelError("No candidate model could be fitted", failures)

    ranking = rank_models(fits)
    best = ranking[0]

    if prediction_ages is None:
        ages = default_age_grid(sample.max_age, config.prediction_points)
    else:
        ages = np.asarray(prediction_ages, dtype=np.float64)
    prediction = predict_with_uncertainty(
        best.fit,
        best.spec,
        ages,
        confidence_level=config.confidence_level,
        extrapolation_margin=config.extrapolation_margin,
        taylor_order=config.taylor_order,
    )

    if failures:
        logger.info(
            "%d of %d models excluded: %s",
            len(failures), len(catalog), ", ".join(f.model_name for f in failures),
        )
    return AnalysisResult(
        config=config,
        start_values=start,
        ranking=tuple(ranking),
        prediction=prediction,
        failures=tuple(failures),
    )
