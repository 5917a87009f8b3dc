"""Starting values for the asymptotic growth models.

Linf and k come from the Ford-Walford plot: mean length at age t+1 is
regressed on mean length at age t, giving ``L(t+1) = a + b * L(t)`` with
``k = -ln(b)`` and ``Linf = a / (1 - b)``.  L0 is the intercept of a
quadratic fitted to mean length at age.
"""

from __future__ import annotations

import logging
import math

import numpy as np
from scipy import stats

from fish_growth_mmi.domain.errors import DegenerateFitError, InsufficientDataError
from fish_growth_mmi.domain.models import Sample, StartValues

logger = logging.getLogger(__name__)

_LINF_FLOOR = 1.05
_FALLBACK_LINF = 1.1
_L0_TOLERANCE = 0.5


def mean_length_at_age(sample: Sample) -> tuple[np.ndarray, np.ndarray]:
    """Mean length per whole-unit age group.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        Sorted rounded ages and the mean length of each group.
    """
    rounded = np.round(sample.ages)
    groups, inverse = np.unique(rounded, return_inverse=True)
    sums = np.bincount(inverse, weights=sample.lengths)
    counts = np.bincount(inverse)
    return groups, sums / counts


def estimate_start_values(sample: Sample, fixed_L0: float | None = None) -> StartValues:
    """Derive (k, Linf, L0) starting guesses from *sample*.

    Parameters
    ----------
    sample:
        Cleaned age-length sample.
    fixed_L0:
        Externally chosen length at birth.  Only used as a plausibility
        check on the quadratic intercept and as its replacement when the
        intercept is not positive.

    Raises
    ------
    InsufficientDataError
        Fewer than two distinct age groups.
    DegenerateFitError
        The Ford-Walford slope is undetermined or outside (0, 1).
    """
    groups, means = mean_length_at_age(sample)
    if groups.size < 2:
        raise InsufficientDataError(
            f"Need at least 2 distinct age groups, got {groups.size}"
        )

    l_t, l_t1 = means[:-1], means[1:]
    if l_t.size < 2 or np.ptp(l_t) == 0.0:
        raise DegenerateFitError(
            f"Ford-Walford regression needs 2+ distinct mean lengths, got {l_t.size} pair(s)"
        )

    fw = stats.linregress(l_t, l_t1)
    a, b = float(fw.intercept), float(fw.slope)
    if not (math.isfinite(a) and math.isfinite(b)):
        raise DegenerateFitError("Ford-Walford regression produced non-finite coefficients")
    if not 0.0 < b < 1.0:
        raise DegenerateFitError(
            f"Ford-Walford slope {b:.6g} is outside the usable range (0, 1)"
        )

    start_k = abs(-math.log(b))
    start_linf = abs(a / (1.0 - b))
    if start_linf <= sample.max_length:
        floor = sample.max_length * _LINF_FLOOR
        logger.info(
            "Ford-Walford Linf %.4g not above max length %.4g; using %.4g",
            start_linf, sample.max_length, floor,
        )
        start_linf = floor

    degree = min(2, groups.size - 1)
    coeffs = np.polynomial.polynomial.polyfit(groups, means, degree)
    start_l0 = float(coeffs[0])
    start_l0 = _check_l0(start_l0, fixed_L0)

    start = StartValues(k=start_k, Linf=start_linf, L0=start_l0)
    logger.info(
        "Start values: Linf=%.4g, L0=%.4g, k=%.4g (%d age groups)",
        start.Linf, start.L0, start.k, groups.size,
    )
    return start


def _check_l0(start_l0: float, fixed_L0: float | None) -> float:
    """Sanity-check the quadratic intercept against the external L0."""
    if not math.isfinite(start_l0) or start_l0 <= 0.0:
        if fixed_L0 is None:
            raise DegenerateFitError(f"Quadratic intercept L0={start_l0:.4g} is not positive")
        logger.warning(
            "Quadratic intercept L0=%.4g is not positive; using fixed L0=%.4g",
            start_l0, fixed_L0,
        )
        return float(fixed_L0)
    if fixed_L0 is not None and abs(start_l0 - fixed_L0) > _L0_TOLERANCE * fixed_L0:
        logger.warning(
            "Estimated L0=%.4g differs from fixed L0=%.4g by more than %d%%",
            start_l0, fixed_L0, int(_L0_TOLERANCE * 100),
        )
    return start_l0


def fallback_start_values(sample: Sample, fixed_L0: float) -> StartValues:
    """Heuristic start values used when Ford-Walford is degenerate.

    Linf is set 10% above the largest length and L0 to *fixed_L0*; k is the
    von Bertalanffy rate that reaches the L0-Linf midpoint at the mean age.
    """
    mean_age = float(np.mean(sample.ages))
    start_k = math.log(2.0) / mean_age if mean_age > 0.0 else 1.0
    start = StartValues(
        k=start_k,
        Linf=sample.max_length * _FALLBACK_LINF,
        L0=float(fixed_L0),
        fallback=True,
    )
    logger.warning(
        "Using fallback start values: Linf=%.4g, L0=%.4g, k=%.4g",
        start.Linf, start.L0, start.k,
    )
    return start
