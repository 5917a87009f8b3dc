"""Confidence and prediction intervals for a fitted growth curve.

Parameter uncertainty is propagated into the predicted length with a
Taylor (delta-method) expansion of the curve around the fitted
parameters::

    Var[L(t)] ~ g' S g + 1/2 tr(H S H S)

where ``g`` and ``H`` are the gradient and Hessian of the curve with
respect to the parameters and ``S`` is the parameter covariance.  The
second-order term can be switched off (``taylor_order=1``).  Gradients are
analytic; Hessians are central differences of the analytic gradient.

Bands use the Student-t quantile with the fit's residual degrees of
freedom.  Prediction bands add the residual variance for a new
observation.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any

import numpy as np
from scipy import stats

from fish_growth_mmi.domain.errors import ExtrapolationWarning
from fish_growth_mmi.domain.models import (
    FitResult,
    GrowthModelSpec,
    PredictionPoint,
    PredictionTable,
    validate_confidence_level,
)

logger = logging.getLogger(__name__)

_STEP = 6e-6  # ~ eps ** (1/3), relative step (absolute below 1) for central differences


def default_age_grid(max_age: float, points: int = 50) -> np.ndarray:
    """Evenly spaced ages from 0 to *max_age* inclusive."""
    return np.linspace(0.0, float(max_age), int(points))


def parameter_hessians(spec: GrowthModelSpec, ages: np.ndarray, theta: np.ndarray) -> np.ndarray:
    """Second partial derivatives of the curve, shape ``(n_ages, p, p)``."""
    theta = np.asarray(theta, dtype=np.float64)
    p = theta.size
    hess = np.empty((ages.size, p, p), dtype=np.float64)
    for i in range(p):
        h = _STEP * max(abs(theta[i]), 1.0)
        up, down = theta.copy(), theta.copy()
        up[i] += h
        down[i] -= h
        hess[:, i, :] = (spec.gradient(ages, up) - spec.gradient(ages, down)) / (2.0 * h)
    return 0.5 * (hess + hess.transpose(0, 2, 1))


def propagate_variance(
    spec: GrowthModelSpec,
    fit: FitResult,
    ages: Any,
    taylor_order: int = 2,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Predicted lengths and their variance at *ages*.

    Returns
    -------
    tuple[np.ndarray, np.ndarray, np.ndarray]
        (predicted, variance, second_order_mean).  For ``taylor_order=1``
        the second-order mean equals the prediction.
    """
    ages = np.atleast_1d(np.asarray(ages, dtype=np.float64))
    theta = fit.theta
    cov = fit.covariance

    predicted = spec.form(ages, theta)
    grad = spec.gradient(ages, theta)
    variance = np.einsum("ni,ij,nj->n", grad, cov, grad)
    mean2 = predicted.copy()

    if taylor_order == 2:
        hess = parameter_hessians(spec, ages, theta)
        hs = hess @ cov
        variance = variance + 0.5 * np.einsum("nij,nji->n", hs, hs)
        mean2 = predicted + 0.5 * np.einsum("nij,ji->n", hess, cov)
    elif taylor_order != 1:
        raise ValueError(f"taylor_order must be 1 or 2, got {taylor_order}")

    return predicted, np.maximum(variance, 0.0), mean2


def predict_with_uncertainty(
    fit: FitResult,
    spec: GrowthModelSpec,
    ages: Any,
    confidence_level: float = 0.95,
    extrapolation_margin: float = 0.5,
    taylor_order: int = 2,
) -> PredictionTable:
    """Prediction table with confidence and prediction bands.

    Parameters
    ----------
    fit:
        Fit of the best model.
    spec:
        The matching model specification.
    ages:
        Ordered ages at which to predict.
    confidence_level:
        Coverage ``1 - alpha`` of both bands, in (0, 1).
    extrapolation_margin:
        Ages beyond ``max_observed_age * (1 + margin)`` are flagged and an
        :class:`ExtrapolationWarning` is issued; predictions are still made.
    taylor_order:
        1 for the first-order delta method, 2 to add the second-order term.

    Raises
    ------
    InvalidConfidenceLevelError
        If *confidence_level* is not in (0, 1).
    """
    level = validate_confidence_level(confidence_level)
    ages = np.atleast_1d(np.asarray(ages, dtype=np.float64))
    if fit.model_name != spec.name:
        raise ValueError(f"Fit {fit.model_name!r} does not belong to spec {spec.name!r}")

    extrapolated = np.zeros(ages.shape, dtype=bool)
    if np.isfinite(fit.max_observed_age):
        limit = fit.max_observed_age * (1.0 + extrapolation_margin)
        extrapolated = ages > limit
        if np.any(extrapolated):
            warnings.warn(
                f"{int(np.count_nonzero(extrapolated))} requested age(s) exceed "
                f"{limit:.4g}, the maximum observed age {fit.max_observed_age:.4g} "
                f"plus a {extrapolation_margin:.0%} margin",
                ExtrapolationWarning,
                stacklevel=2,
            )

    predicted, variance, mean2 = propagate_variance(spec, fit, ages, taylor_order)
    std_error = np.sqrt(variance)
    t_crit = float(stats.t.ppf(1.0 - (1.0 - level) / 2.0, fit.degrees_of_freedom))
    conf_half = t_crit * std_error
    pred_half = t_crit * np.sqrt(variance + fit.residual_variance)

    points = tuple(
        PredictionPoint(
            age=float(ages[i]),
            predicted_length=float(predicted[i]),
            standard_error=float(std_error[i]),
            confidence_lower=float(predicted[i] - conf_half[i]),
            confidence_upper=float(predicted[i] + conf_half[i]),
            prediction_lower=float(predicted[i] - pred_half[i]),
            prediction_upper=float(predicted[i] + pred_half[i]),
            second_order_mean=float(mean2[i]),
            extrapolated=bool(extrapolated[i]),
        )
        for i in range(ages.size)
    )
    logger.debug(
        "Predicted %s at %d ages (t=%.4g, df=%d)",
        spec.name, ages.size, t_crit, fit.degrees_of_freedom,
    )
    return PredictionTable(
        model_name=spec.name,
        confidence_level=level,
        degrees_of_freedom=fit.degrees_of_freedom,
        points=points,
    )
