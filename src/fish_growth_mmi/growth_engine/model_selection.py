"""Multi-model comparison with Akaike weights.

Ranks the successfully fitted candidate models by AIC, computes AIC
differences and Akaike weights (in percent), and builds the reporting
table.  Selection always uses unrounded criterion values; rounding to
significant figures happens only in :func:`ranking_frame`.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from typing import Any

import numpy as np
import pandas as pd
from scipy import stats

from fish_growth_mmi.domain.errors import EmptyCandidateSetError, IncomparableModelsError
from fish_growth_mmi.domain.models import FitResult, GrowthModelSpec, RankedModel, Sample

logger = logging.getLogger(__name__)

_PARAMETER_COLUMNS = ("Linf", "L0", "k")


# ---------------------------------------------------------------------------
# Information criterion
# ---------------------------------------------------------------------------


def gaussian_log_likelihood(rss: float, n: int) -> float:
    """Log-likelihood of a least-squares fit under i.i.d. Gaussian errors."""
    variance = max(rss / n, np.finfo(np.float64).tiny)
    return -0.5 * n * (math.log(2.0 * math.pi) + math.log(variance) + 1.0)


def compute_aic(fit: FitResult) -> float:
    """AIC counting the error variance as an extra parameter."""
    k = len(fit.parameter_names) + 1
    return 2.0 * k - 2.0 * gaussian_log_likelihood(fit.rss, fit.n_observations)


def compute_akaike_weights(aic_values: Sequence[float]) -> np.ndarray:
    """Akaike weights in percent.

    ``w_i = 100 * exp(-0.5 * delta_i) / sum_j exp(-0.5 * delta_j)`` with
    ``delta_i = AIC_i - min(AIC)``.
    """
    aic = np.asarray(aic_values, dtype=np.float64)
    if aic.size == 0:
        return np.empty(0, dtype=np.float64)
    raw = np.exp(-0.5 * (aic - np.min(aic)))
    return 100.0 * raw / np.sum(raw)


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------


def rank_models(fits: Sequence[tuple[GrowthModelSpec, FitResult]]) -> list[RankedModel]:
    """Rank fitted models best-first by AIC.

    Parameters
    ----------
    fits:
        ``(spec, fit)`` pairs, all fitted to the same sample.

    Returns
    -------
    list[RankedModel]
        Sorted ascending by AIC; ties keep input order.

    Raises
    ------
    EmptyCandidateSetError
        If *fits* is empty.
    IncomparableModelsError
        If the fits were made on samples of different sizes.
    """
    if not fits:
        raise EmptyCandidateSetError("No successfully fitted models to rank.")

    sizes = {fit.n_observations for _, fit in fits}
    if len(sizes) != 1:
        raise IncomparableModelsError(
            f"Models were fitted to samples of different sizes: {sorted(sizes)}"
        )

    aic = np.array([compute_aic(fit) for _, fit in fits])
    delta = aic - np.min(aic)
    weights = compute_akaike_weights(aic)

    ranked = [
        RankedModel(
            spec=spec,
            fit=fit,
            aic=float(aic[i]),
            delta_aic=float(delta[i]),
            weight=float(weights[i]),
            residual_standard_error=math.sqrt(fit.residual_variance),
            log_likelihood=gaussian_log_likelihood(fit.rss, fit.n_observations),
        )
        for i, (spec, fit) in enumerate(fits)
    ]
    ranked.sort(key=lambda r: r.aic)
    logger.info(
        "Best model %s (AIC=%.4g, weight=%.4g%%)",
        ranked[0].model_name, ranked[0].aic, ranked[0].weight,
    )
    return ranked


def select_best_model(ranked: Sequence[RankedModel]) -> RankedModel:
    """Return the model with the lowest AIC."""
    if not ranked:
        raise EmptyCandidateSetError("No ranked models to select from.")
    return min(ranked, key=lambda r: r.aic)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


def round_significant(values: Any, digits: int = 4) -> np.ndarray:
    """Round to *digits* significant figures; zeros and non-finite pass through."""
    arr = np.array(values, dtype=np.float64, ndmin=1)
    out = arr.copy()
    mask = np.isfinite(arr) & (arr != 0.0)
    magnitude = np.floor(np.log10(np.abs(arr[mask])))
    factor = 10.0 ** (digits - 1 - magnitude)
    out[mask] = np.round(arr[mask] * factor) / factor
    return out


def ranking_frame(ranked: Sequence[RankedModel], significant_digits: int | None = 4) -> pd.DataFrame:
    """Build the ranking table, one row per model, best first.

    Columns are ``AIC``, ``delta_AIC``, ``weight``, ``RSE`` followed by each
    parameter estimate and its standard error (``<name>_se``).  Parameters
    a model does not fit are NaN.  Pass ``significant_digits=None`` for
    full precision.
    """
    rows = []
    for r in ranked:
        row: dict[str, Any] = {
            "model": r.model_name,
            "AIC": r.aic,
            "delta_AIC": r.delta_aic,
            "weight": r.weight,
            "RSE": r.residual_standard_error,
        }
        for name in _PARAMETER_COLUMNS:
            row[name] = r.fit.parameters.get(name, np.nan)
            row[f"{name}_se"] = r.fit.standard_errors.get(name, np.nan)
        rows.append(row)

    frame = pd.DataFrame(rows).set_index("model")
    if significant_digits is not None:
        for column in frame.columns:
            frame[column] = round_significant(frame[column].to_numpy(), significant_digits)
    return frame


# ---------------------------------------------------------------------------
# Multi-model averaging and diagnostics
# ---------------------------------------------------------------------------


def model_averaged_prediction(ranked: Sequence[RankedModel], ages: Any) -> np.ndarray:
    """Akaike-weighted average of every ranked model's curve at *ages*."""
    ages = np.atleast_1d(np.asarray(ages, dtype=np.float64))
    if not ranked:
        raise EmptyCandidateSetError("No ranked models to average.")

    average = np.zeros_like(ages)
    total_weight = 0.0
    for r in ranked:
        if r.weight <= 0.0:
            continue
        average += r.weight * r.spec.predict(ages, r.fit.parameters)
        total_weight += r.weight
    return average / total_weight


def fit_diagnostics(fit: FitResult, sample: Sample) -> dict[str, Any]:
    """Residual checks for one fitted model.

    Checks:
    - R-squared > 0.5
    - Residuals approximately normal (Shapiro-Wilk p >= 0.05, needs n >= 3)
    - Fitted values finite and positive
    - Growth rate k positive

    Returns
    -------
    dict
        Keys: ok (bool), r_squared (float), shapiro_p (float or NaN),
        issues (list[str]).
    """
    issues: list[str] = []
    residuals = fit.residuals

    ss_res = float(np.sum(residuals ** 2))
    ss_tot = float(np.sum((sample.lengths - np.mean(sample.lengths)) ** 2))
    r_squared = 1.0 - ss_res / max(ss_tot, 1e-12)
    if r_squared < 0.5:
        issues.append(f"Low R-squared: {r_squared:.3f}")

    shapiro_p = math.nan
    if residuals.size >= 3 and np.ptp(residuals) > 0.0:
        shapiro_p = float(stats.shapiro(residuals).pvalue)
        if shapiro_p < 0.05:
            issues.append(f"Residuals depart from normality (Shapiro-Wilk p={shapiro_p:.3g})")

    if np.any(~np.isfinite(fit.fitted_values)):
        issues.append("Non-finite fitted values detected")
    elif np.any(fit.fitted_values <= 0.0):
        issues.append("Non-positive fitted lengths detected")

    k = fit.parameters.get("k")
    if k is not None and k <= 0.0:
        issues.append(f"Growth rate k={k:.6g} is non-positive")

    return {
        "ok": not issues,
        "r_squared": float(r_squared),
        "shapiro_p": shapiro_p,
        "issues": issues,
    }
