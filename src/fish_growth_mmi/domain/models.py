"""Domain models for the fish growth multi-model inference engine.

All models are frozen dataclasses to enforce immutability.  Mutable default
values (numpy arrays, dicts, tuples of records) use
``field(default_factory=...)``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
import yaml

from fish_growth_mmi.domain.errors import (
    ConfigurationError,
    InsufficientDataError,
    InvalidConfidenceLevelError,
)

logger = logging.getLogger(__name__)

MODEL_NAMES: tuple[str, ...] = ("VB3", "VB2", "GOM3", "GOM2", "LOGI3", "LOGI2")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _empty_array() -> np.ndarray:
    """Return an empty float64 array."""
    return np.empty(0, dtype=np.float64)


def _empty_dict() -> dict[str, Any]:
    """Return an empty dictionary."""
    return {}


def _as_float_array(values: Iterable[Any]) -> np.ndarray:
    """Convert a sequence, array or Series to a 1-D float64 array (missing -> NaN)."""
    if not hasattr(values, "__len__"):
        values = list(values)
    return np.asarray(
        [np.nan if v is None else v for v in values], dtype=np.float64,
    ).ravel()


# ---------------------------------------------------------------------------
# Observations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Observation:
    """A single aged and measured animal."""

    age: float
    length: float


@dataclass(frozen=True)
class Sample:
    """Cleaned age-length sample shared by every candidate model of a run.

    Use :meth:`from_arrays` or :meth:`from_observations` rather than the
    constructor so that invalid pairs are dropped consistently.
    """

    ages: np.ndarray = field(default_factory=_empty_array)
    lengths: np.ndarray = field(default_factory=_empty_array)

    @classmethod
    def from_arrays(cls, ages: Iterable[float], lengths: Iterable[float]) -> Sample:
        """Pair *ages* with *lengths*, dropping missing or invalid pairs.

        A pair is kept when both members are finite, the age is
        non-negative and the length strictly positive.

        Raises
        ------
        InsufficientDataError
            If the arrays differ in length or nothing survives cleaning.
        """
        a = _as_float_array(ages)
        lens = _as_float_array(lengths)
        if a.shape != lens.shape:
            raise InsufficientDataError(
                f"Ages and lengths must pair up: {a.shape} vs {lens.shape}"
            )
        valid = np.isfinite(a) & np.isfinite(lens) & (a >= 0.0) & (lens > 0.0)
        dropped = int(a.size - np.count_nonzero(valid))
        if dropped:
            logger.debug("Dropped %d invalid age-length pairs", dropped)
        if not np.any(valid):
            raise InsufficientDataError("No valid age-length pairs in sample.")
        return cls(ages=a[valid].copy(), lengths=lens[valid].copy())

    @classmethod
    def from_observations(cls, observations: Iterable[Observation]) -> Sample:
        """Build a sample from :class:`Observation` records."""
        obs = list(observations)
        return cls.from_arrays([o.age for o in obs], [o.length for o in obs])

    @property
    def n(self) -> int:
        return int(self.ages.size)

    @property
    def max_age(self) -> float:
        return float(np.max(self.ages))

    @property
    def max_length(self) -> float:
        return float(np.max(self.lengths))

    def observations(self) -> list[Observation]:
        """Return the sample as a list of :class:`Observation`."""
        return [
            Observation(float(age), float(length))
            for age, length in zip(self.ages, self.lengths)
        ]


# ---------------------------------------------------------------------------
# Growth model specification
# ---------------------------------------------------------------------------

CurveFunction = Callable[[np.ndarray, np.ndarray], np.ndarray]


@dataclass(frozen=True)
class StartValues:
    """Initial parameter guesses shared by all candidate models."""

    k: float
    Linf: float
    L0: float
    fallback: bool = False

    def as_dict(self) -> dict[str, float]:
        return {"Linf": self.Linf, "L0": self.L0, "k": self.k}


@dataclass(frozen=True)
class GrowthModelSpec:
    """One candidate growth curve with its parameterisation.

    ``form(ages, theta)`` returns predicted lengths and ``gradient(ages,
    theta)`` the ``(n_ages, n_params)`` matrix of first partial
    derivatives, with ``theta`` ordered as ``parameter_names``.  For the
    2-parameter variants both callables close over ``fixed_L0``.
    """

    name: str
    curve: str
    parameter_names: tuple[str, ...]
    form: CurveFunction
    gradient: CurveFunction
    initial_parameters: dict[str, float] = field(default_factory=_empty_dict)
    fixed_L0: float | None = None

    @property
    def parameter_count(self) -> int:
        return len(self.parameter_names)

    def initial_vector(self) -> np.ndarray:
        return np.array(
            [self.initial_parameters[p] for p in self.parameter_names], dtype=np.float64,
        )

    def as_vector(self, params: Mapping[str, float] | np.ndarray) -> np.ndarray:
        if isinstance(params, Mapping):
            return np.array([params[p] for p in self.parameter_names], dtype=np.float64)
        return np.asarray(params, dtype=np.float64)

    def predict(self, ages: Any, params: Mapping[str, float] | np.ndarray) -> np.ndarray:
        """Evaluate the curve at *ages* for named or positional *params*."""
        ages = np.atleast_1d(np.asarray(ages, dtype=np.float64))
        return self.form(ages, self.as_vector(params))


# ---------------------------------------------------------------------------
# Fit and ranking results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FitResult:
    """Nonlinear least-squares fit of one :class:`GrowthModelSpec`.

    ``residuals`` are observed minus fitted lengths.
    """

    model_name: str = ""
    parameter_names: tuple[str, ...] = ()
    parameters: dict[str, float] = field(default_factory=_empty_dict)
    standard_errors: dict[str, float] = field(default_factory=_empty_dict)
    covariance: np.ndarray = field(default_factory=lambda: np.empty((0, 0)))
    residuals: np.ndarray = field(default_factory=_empty_array)
    fitted_values: np.ndarray = field(default_factory=_empty_array)
    degrees_of_freedom: int = 0
    n_observations: int = 0
    max_observed_age: float = math.nan
    converged: bool = True
    iterations: int = 0

    @property
    def theta(self) -> np.ndarray:
        return np.array([self.parameters[p] for p in self.parameter_names], dtype=np.float64)

    @property
    def rss(self) -> float:
        return float(np.sum(self.residuals ** 2))

    @property
    def residual_variance(self) -> float:
        """Residual variance ``RSS / df``."""
        return self.rss / self.degrees_of_freedom


@dataclass(frozen=True)
class RankedModel:
    """A fitted model placed in the multi-model comparison."""

    spec: GrowthModelSpec
    fit: FitResult
    aic: float
    delta_aic: float
    weight: float
    residual_standard_error: float
    log_likelihood: float

    @property
    def model_name(self) -> str:
        return self.spec.name

    @property
    def is_best(self) -> bool:
        return self.delta_aic == 0.0


# ---------------------------------------------------------------------------
# Predictions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PredictionPoint:
    """Predicted length at one age with its uncertainty bands."""

    age: float
    predicted_length: float
    standard_error: float
    confidence_lower: float
    confidence_upper: float
    prediction_lower: float
    prediction_upper: float
    second_order_mean: float = math.nan
    extrapolated: bool = False


PREDICTION_COLUMNS: tuple[str, ...] = (
    "age",
    "predicted_length",
    "prediction_standard_error",
    "confidence_lower",
    "confidence_upper",
    "prediction_lower",
    "prediction_upper",
)


@dataclass(frozen=True)
class PredictionTable:
    """Ordered predictions of the best model over an age grid."""

    model_name: str = ""
    confidence_level: float = 0.95
    degrees_of_freedom: int = 0
    points: tuple[PredictionPoint, ...] = ()

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self):
        return iter(self.points)

    def column(self, name: str) -> np.ndarray:
        """Return one attribute of every point as a float array."""
        return np.array([getattr(p, name) for p in self.points], dtype=np.float64)

    @property
    def ages(self) -> np.ndarray:
        return self.column("age")

    @property
    def predicted_lengths(self) -> np.ndarray:
        return self.column("predicted_length")

    def to_frame(self) -> pd.DataFrame:
        """Export as a DataFrame with one row per requested age."""
        frame = pd.DataFrame(
            {
                "age": self.ages,
                "predicted_length": self.predicted_lengths,
                "prediction_standard_error": self.column("standard_error"),
                "confidence_lower": self.column("confidence_lower"),
                "confidence_upper": self.column("confidence_upper"),
                "prediction_lower": self.column("prediction_lower"),
                "prediction_upper": self.column("prediction_upper"),
            },
            columns=list(PREDICTION_COLUMNS),
        )
        frame["extrapolated"] = [p.extrapolated for p in self.points]
        return frame


# ---------------------------------------------------------------------------
# Analysis configuration and result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AnalysisConfig:
    """Everything one analysis run needs besides the sample itself."""

    fixed_L0: float
    confidence_level: float = 0.95
    candidates: tuple[str, ...] = MODEL_NAMES
    extrapolation_margin: float = 0.5
    max_iterations: int = 2000
    workers: int = 1
    prediction_points: int = 50
    taylor_order: int = 2
    significant_digits: int = 4
    start_value_fallback: bool = True

    def __post_init__(self) -> None:
        if not math.isfinite(self.fixed_L0) or self.fixed_L0 <= 0.0:
            raise ConfigurationError(f"fixed_L0 must be positive, got {self.fixed_L0!r}")
        validate_confidence_level(self.confidence_level)
        if not self.candidates:
            raise ConfigurationError("At least one candidate model is required.")
        unknown = [c for c in self.candidates if c not in MODEL_NAMES]
        if unknown:
            raise ConfigurationError(
                f"Unknown candidate model(s) {unknown}; expected a subset of {list(MODEL_NAMES)}"
            )
        if len(set(self.candidates)) != len(self.candidates):
            raise ConfigurationError("Candidate models must not repeat.")
        if self.extrapolation_margin < 0.0:
            raise ConfigurationError("extrapolation_margin must be non-negative.")
        if self.max_iterations < 1 or self.workers < 1 or self.prediction_points < 1:
            raise ConfigurationError(
                "max_iterations, workers and prediction_points must be at least 1."
            )
        if self.taylor_order not in (1, 2):
            raise ConfigurationError(f"taylor_order must be 1 or 2, got {self.taylor_order}")
        if self.significant_digits < 1:
            raise ConfigurationError("significant_digits must be at least 1.")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> AnalysisConfig:
        """Build from a configuration section, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown analysis setting(s): {unknown}")
        if "fixed_L0" not in data:
            raise ConfigurationError("Missing required setting 'fixed_L0'.")
        kwargs = dict(data)
        if "candidates" in kwargs:
            candidates = kwargs["candidates"]
            if isinstance(candidates, str):
                candidates = [c.strip() for c in candidates.split(",") if c.strip()]
            kwargs["candidates"] = tuple(str(c) for c in candidates)
        try:
            kwargs["fixed_L0"] = float(kwargs["fixed_L0"])
            if "confidence_level" in kwargs:
                kwargs["confidence_level"] = float(kwargs["confidence_level"])
            if "extrapolation_margin" in kwargs:
                kwargs["extrapolation_margin"] = float(kwargs["extrapolation_margin"])
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid numeric setting: {exc}") from exc
        return cls(**kwargs)


def validate_confidence_level(level: float) -> float:
    """Return *level* if it lies in (0, 1), else raise."""
    try:
        value = float(level)
    except (TypeError, ValueError) as exc:
        raise InvalidConfidenceLevelError(
            f"Confidence level must be a number, got {level!r}"
        ) from exc
    if not 0.0 < value < 1.0:
        raise InvalidConfidenceLevelError(
            f"Confidence level must lie in (0, 1), got {level!r}"
        )
    return value


@dataclass(frozen=True)
class AnalysisResult:
    """Aggregate output of one analysis run."""

    config: AnalysisConfig
    start_values: StartValues
    ranking: tuple[RankedModel, ...] = ()
    prediction: PredictionTable | None = None
    failures: tuple[Any, ...] = ()

    @property
    def best(self) -> RankedModel:
        return self.ranking[0]

    @property
    def excluded_models(self) -> list[str]:
        return [f.model_name for f in self.failures]


# ---------------------------------------------------------------------------
# Application configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AppConfig:
    """Application configuration loaded from YAML with environment overlays.

    Configuration is resolved in order:
      1. ``config/default.yaml``
      2. Optional overlay file
      3. Environment variables prefixed with ``FGM_``
    """

    data: dict[str, Any] = field(default_factory=_empty_dict)

    # -- factory -----------------------------------------------------------

    @staticmethod
    def load(
        default_path: str | Path = "config/default.yaml",
        overlay_path: str | Path | None = None,
        env_prefix: str = "FGM_",
        environ: Mapping[str, str] | None = None,
    ) -> AppConfig:
        """Load configuration from YAML files and environment variables.

        Parameters
        ----------
        default_path:
            Path to the base configuration file.
        overlay_path:
            Optional path to a site- or study-specific overlay.
        env_prefix:
            Prefix for environment variable overrides.  A variable named
            ``FGM_ANALYSIS__CONFIDENCE_LEVEL`` maps to
            ``config["analysis"]["confidence_level"]``.
        environ:
            Mapping used instead of ``os.environ`` (mainly for tests).

        Returns
        -------
        AppConfig
            Frozen configuration object.
        """
        import os

        merged: dict[str, Any] = {}

        for path in (default_path, overlay_path):
            if path is None:
                continue
            p = Path(path)
            if p.exists():
                with open(p, "r", encoding="utf-8") as fh:
                    raw = yaml.safe_load(fh) or {}
                if not isinstance(raw, dict):
                    raise ConfigurationError(f"{p} must contain a mapping at top level.")
                merged = _deep_merge(merged, raw)
            elif path is overlay_path:
                raise ConfigurationError(f"Configuration file not found: {p}")

        env = os.environ if environ is None else environ
        for key, value in env.items():
            if key.startswith(env_prefix):
                parts = key[len(env_prefix):].lower().split("__")
                _set_nested(merged, _canonical_keys(merged, parts), _coerce(value))

        return AppConfig(data=merged)

    # -- typed accessors ---------------------------------------------------

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """Retrieve a value using a dot-separated path, e.g. ``analysis.fixed_L0``."""
        node: Any = self.data
        for part in dotted_key.split("."):
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node

    def section(self, name: str) -> dict[str, Any]:
        """Return a top-level section as a dict (empty dict if missing)."""
        val = self.data.get(name)
        if isinstance(val, dict):
            return dict(val)
        return {}


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overlay* into *base* (non-destructive)."""
    merged = dict(base)
    for key, value in overlay.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _canonical_keys(tree: dict[str, Any], parts: list[str]) -> list[str]:
    """Map lower-cased env key parts onto existing keys (``fixed_l0`` -> ``fixed_L0``)."""
    out: list[str] = []
    node: Any = tree
    for part in parts:
        match = part
        if isinstance(node, dict):
            match = next((k for k in node if str(k).lower() == part), part)
            node = node.get(match)
        else:
            node = None
        out.append(match)
    if parts and out[-1] == "fixed_l0":
        out[-1] = "fixed_L0"
    return out


def _set_nested(d: dict[str, Any], parts: list[str], value: Any) -> None:
    """Set a value in a nested dict using a list of keys."""
    for part in parts[:-1]:
        d = d.setdefault(part, {})
    if parts:
        d[parts[-1]] = value


def _coerce(value: str) -> Any:
    """Best-effort coercion from string to bool / int / float / str."""
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
