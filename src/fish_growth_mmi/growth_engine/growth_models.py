"""Length-at-age growth curves and the candidate model catalog.

All three curves use the length-at-birth (L0) parameterisation rather than
the hypothetical age at zero length (t0):

- von Bertalanffy: ``L(t) = Linf + (L0 - Linf) * exp(-k t)``
- Gompertz:        ``L(t) = L0 * exp(ln(Linf / L0) * (1 - exp(-k t)))``
- Logistic:        ``L(t) = Linf L0 exp(k t) / (Linf + L0 (exp(k t) - 1))``

Each curve comes in a 3-parameter variant (Linf, L0, k fitted) and a
2-parameter variant with L0 bound to an externally supplied constant.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Iterator

import numpy as np

from fish_growth_mmi.domain.errors import ConfigurationError
from fish_growth_mmi.domain.models import MODEL_NAMES, GrowthModelSpec, StartValues

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Curve functions and analytic gradients (columns: Linf, L0, k)
# ---------------------------------------------------------------------------


def von_bertalanffy(ages: np.ndarray, linf: float, l0: float, k: float) -> np.ndarray:
    return linf + (l0 - linf) * np.exp(-k * ages)


def von_bertalanffy_gradient(ages: np.ndarray, linf: float, l0: float, k: float) -> np.ndarray:
    e = np.exp(-k * ages)
    return np.column_stack([1.0 - e, e, (linf - l0) * ages * e])


def gompertz(ages: np.ndarray, linf: float, l0: float, k: float) -> np.ndarray:
    return l0 * np.exp(np.log(linf / l0) * (1.0 - np.exp(-k * ages)))


def gompertz_gradient(ages: np.ndarray, linf: float, l0: float, k: float) -> np.ndarray:
    e = np.exp(-k * ages)
    length = gompertz(ages, linf, l0, k)
    return np.column_stack([
        length * (1.0 - e) / linf,
        length * e / l0,
        length * np.log(linf / l0) * ages * e,
    ])


def logistic(ages: np.ndarray, linf: float, l0: float, k: float) -> np.ndarray:
    growth = np.exp(k * ages)
    return (linf * l0 * growth) / (linf + l0 * (growth - 1.0))


def logistic_gradient(ages: np.ndarray, linf: float, l0: float, k: float) -> np.ndarray:
    growth = np.exp(k * ages)
    denom_sq = (linf + l0 * (growth - 1.0)) ** 2
    return np.column_stack([
        l0 ** 2 * growth * (growth - 1.0) / denom_sq,
        linf ** 2 * growth / denom_sq,
        linf * l0 * (linf - l0) * ages * growth / denom_sq,
    ])


CURVES = {
    "von_bertalanffy": (von_bertalanffy, von_bertalanffy_gradient),
    "gompertz": (gompertz, gompertz_gradient),
    "logistic": (logistic, logistic_gradient),
}

# name -> (curve, parameter count); order is the catalog order
_DEFINITIONS: dict[str, tuple[str, int]] = {
    "VB3": ("von_bertalanffy", 3),
    "VB2": ("von_bertalanffy", 2),
    "GOM3": ("gompertz", 3),
    "GOM2": ("gompertz", 2),
    "LOGI3": ("logistic", 3),
    "LOGI2": ("logistic", 2),
}

THREE_PARAMETERS = ("Linf", "L0", "k")
TWO_PARAMETERS = ("Linf", "k")


# ---------------------------------------------------------------------------
# Spec construction
# ---------------------------------------------------------------------------


def build_spec(name: str, fixed_L0: float, start_values: StartValues) -> GrowthModelSpec:
    """Create the :class:`GrowthModelSpec` called *name*.

    The 2-parameter variants bind *fixed_L0* into their curve and gradient
    at construction time.
    """
    if name not in _DEFINITIONS:
        raise ConfigurationError(f"Unknown growth model {name!r}")
    curve, n_params = _DEFINITIONS[name]
    func, grad = CURVES[curve]
    start = start_values.as_dict()

    if n_params == 3:
        def form(ages: np.ndarray, theta: np.ndarray) -> np.ndarray:
            return func(ages, theta[0], theta[1], theta[2])

        def gradient(ages: np.ndarray, theta: np.ndarray) -> np.ndarray:
            return grad(ages, theta[0], theta[1], theta[2])

        return GrowthModelSpec(
            name=name,
            curve=curve,
            parameter_names=THREE_PARAMETERS,
            form=form,
            gradient=gradient,
            initial_parameters={p: start[p] for p in THREE_PARAMETERS},
        )

    l0 = float(fixed_L0)

    def form_fixed(ages: np.ndarray, theta: np.ndarray) -> np.ndarray:
        return func(ages, theta[0], l0, theta[1])

    def gradient_fixed(ages: np.ndarray, theta: np.ndarray) -> np.ndarray:
        return grad(ages, theta[0], l0, theta[1])[:, [0, 2]]

    return GrowthModelSpec(
        name=name,
        curve=curve,
        parameter_names=TWO_PARAMETERS,
        form=form_fixed,
        gradient=gradient_fixed,
        initial_parameters={p: start[p] for p in TWO_PARAMETERS},
        fixed_L0=l0,
    )


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class GrowthModelCatalog:
    """Ordered, name-keyed set of candidate growth models for one run.

    Parameters
    ----------
    fixed_L0:
        Length at birth shared by all 2-parameter variants.  Must be
        positive.
    start_values:
        Starting guesses from the Ford-Walford estimator.
    names:
        Subset of model names to include, in the desired order.  Defaults
        to all six models.
    """

    def __init__(
        self,
        fixed_L0: float,
        start_values: StartValues,
        names: Iterable[str] | None = None,
    ) -> None:
        if not math.isfinite(fixed_L0) or fixed_L0 <= 0.0:
            raise ConfigurationError(f"fixed_L0 must be positive, got {fixed_L0!r}")
        selected = tuple(names) if names is not None else MODEL_NAMES
        if not selected:
            raise ConfigurationError("The catalog needs at least one model.")
        duplicates = sorted({name for name in selected if selected.count(name) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate model name(s) in catalog: {duplicates}")
        self.fixed_L0 = float(fixed_L0)
        self.start_values = start_values
        self._specs: dict[str, GrowthModelSpec] = {
            name: build_spec(name, self.fixed_L0, start_values) for name in selected
        }
        logger.debug("Catalog built with models %s", list(self._specs))

    def enumerate(self) -> tuple[GrowthModelSpec, ...]:
        return tuple(self._specs.values())

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._specs)

    def __getitem__(self, name: str) -> GrowthModelSpec:
        try:
            return self._specs[name]
        except KeyError:
            raise KeyError(f"Model {name!r} is not in the catalog") from None

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __iter__(self) -> Iterator[GrowthModelSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)
