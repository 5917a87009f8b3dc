"""Nonlinear least-squares fitting of the candidate growth models.

Each model is fitted with scipy's trust-region reflective solver using the
analytic Jacobian of its curve.  Parameter standard errors come from the
asymptotic covariance ``sigma^2 (J^T J)^-1`` evaluated at the solution.

A model that cannot be fitted raises :class:`FitFailure`;
:func:`fit_all_models` collects those failures so the remaining models can
still be compared.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor

import numpy as np
from scipy.optimize import least_squares

from fish_growth_mmi.domain.errors import FitFailure
from fish_growth_mmi.domain.models import FitResult, GrowthModelSpec, Sample

logger = logging.getLogger(__name__)

_DEFAULT_MAX_ITERATIONS = 2000


class _NonFiniteEvaluation(Exception):
    """Raised from inside the solver callbacks to abort the fit."""


def fit_model(
    spec: GrowthModelSpec,
    sample: Sample,
    max_iterations: int = _DEFAULT_MAX_ITERATIONS,
) -> FitResult:
    """Fit *spec* to *sample* by nonlinear least squares.

    Parameters
    ----------
    spec:
        Candidate growth model with its starting values.
    sample:
        Cleaned age-length sample.
    max_iterations:
        Hard ceiling on function evaluations passed to the solver.

    Returns
    -------
    FitResult
        Estimates, standard errors, covariance and residuals.

    Raises
    ------
    FitFailure
        When the solver runs out of evaluations, the curve or its Jacobian
        becomes non-finite, or the Jacobian at the solution is singular.
    """
    ages, lengths = sample.ages, sample.lengths
    n, p = sample.n, spec.parameter_count
    if n <= p:
        raise FitFailure(spec.name, f"{n} observations cannot support {p} parameters")

    theta0 = spec.initial_vector()
    if not np.all(np.isfinite(theta0)):
        raise FitFailure(spec.name, f"non-finite starting values {spec.initial_parameters}")

    def residuals(theta: np.ndarray) -> np.ndarray:
        with np.errstate(all="ignore"):
            predicted = spec.form(ages, theta)
        if not np.all(np.isfinite(predicted)):
            raise _NonFiniteEvaluation
        return predicted - lengths

    def jacobian(theta: np.ndarray) -> np.ndarray:
        with np.errstate(all="ignore"):
            jac = spec.gradient(ages, theta)
        if not np.all(np.isfinite(jac)):
            raise _NonFiniteEvaluation
        return jac

    try:
        solution = least_squares(
            residuals, theta0, jac=jacobian, method="trf",
            x_scale="jac", max_nfev=max_iterations,
        )
    except _NonFiniteEvaluation:
        raise FitFailure(spec.name, "non-finite predicted values during iteration") from None
    except (ValueError, np.linalg.LinAlgError) as exc:
        raise FitFailure(spec.name, f"solver error: {exc}") from exc

    if solution.status == 0:
        raise FitFailure(
            spec.name, f"no convergence within {max_iterations} function evaluations",
        )
    if solution.status < 0:
        raise FitFailure(spec.name, solution.message)

    theta = solution.x
    fitted = spec.form(ages, theta)
    jac = spec.gradient(ages, theta)
    if not (np.all(np.isfinite(fitted)) and np.all(np.isfinite(jac))):
        raise FitFailure(spec.name, "non-finite fit at the solution")

    covariance = _covariance(spec.name, jac, lengths - fitted, n - p)
    std_errors = np.sqrt(np.diag(covariance))

    result = FitResult(
        model_name=spec.name,
        parameter_names=spec.parameter_names,
        parameters={name: float(v) for name, v in zip(spec.parameter_names, theta)},
        standard_errors={name: float(v) for name, v in zip(spec.parameter_names, std_errors)},
        covariance=covariance,
        residuals=lengths - fitted,
        fitted_values=fitted,
        degrees_of_freedom=n - p,
        n_observations=n,
        max_observed_age=sample.max_age,
        converged=True,
        iterations=int(solution.nfev),
    )
    logger.info(
        "Fitted %s: %s, RSS=%.4g (%d evaluations)",
        spec.name,
        ", ".join(f"{k}={v:.4g}" for k, v in result.parameters.items()),
        result.rss,
        result.iterations,
    )
    return result


def _covariance(name: str, jac: np.ndarray, resid: np.ndarray, dof: int) -> np.ndarray:
    """Asymptotic covariance ``s^2 (J^T J)^-1`` via the SVD of *jac*."""
    try:
        _, s, vt = np.linalg.svd(jac, full_matrices=False)
    except np.linalg.LinAlgError as exc:
        raise FitFailure(name, f"SVD of the Jacobian failed: {exc}") from exc
    threshold = np.finfo(np.float64).eps * max(jac.shape) * s[0]
    if s[0] == 0.0 or s[-1] <= threshold:
        raise FitFailure(name, "singular Jacobian at the solution")

    sigma2 = float(np.sum(resid ** 2)) / dof
    covariance = (vt.T / s ** 2) @ vt * sigma2
    if not np.all(np.isfinite(covariance)):
        raise FitFailure(name, "non-finite parameter covariance")
    return covariance


def fit_all_models(
    specs: Iterable[GrowthModelSpec],
    sample: Sample,
    max_iterations: int = _DEFAULT_MAX_ITERATIONS,
    workers: int = 1,
) -> tuple[list[tuple[GrowthModelSpec, FitResult]], list[FitFailure]]:
    """Fit every spec against the same sample.

    Parameters
    ----------
    specs:
        Candidate models, usually a :class:`GrowthModelCatalog`.
    sample:
        The one sample all candidates are compared on.
    max_iterations:
        Function evaluation ceiling per model.
    workers:
        Number of threads; fits are independent so any value is safe.

    Returns
    -------
    tuple[list[tuple[GrowthModelSpec, FitResult]], list[FitFailure]]
        Successful fits and failures, each in input order.
    """
    spec_list = list(specs)

    def attempt(spec: GrowthModelSpec) -> FitResult | FitFailure:
        try:
            return fit_model(spec, sample, max_iterations=max_iterations)
        except FitFailure as failure:
            logger.warning("Excluding model %s: %s", spec.name, failure.reason)
            return failure

    if workers > 1 and len(spec_list) > 1:
        with ThreadPoolExecutor(max_workers=min(workers, len(spec_list))) as pool:
            outcomes = list(pool.map(attempt, spec_list))
    else:
        outcomes = [attempt(spec) for spec in spec_list]

    fits: list[tuple[GrowthModelSpec, FitResult]] = []
    failures: list[FitFailure] = []
    for spec, outcome in zip(spec_list, outcomes):
        if isinstance(outcome, FitFailure):
            failures.append(outcome)
        else:
            fits.append((spec, outcome))
    return fits, failures
