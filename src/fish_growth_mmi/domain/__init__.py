"""Domain layer -- models and errors.

Re-exports all public domain types for convenient access::

    from fish_growth_mmi.domain import Sample, AnalysisConfig, FitFailure
"""

from __future__ import annotations

from fish_growth_mmi.domain.errors import (
    ConfigurationError,
    DegenerateFitError,
    EmptyCandidateSetError,
    ExtrapolationWarning,
    FitFailure,
    GrowthAnalysisError,
    IncomparableModelsError,
    InsufficientDataError,
    InvalidConfidenceLevelError,
    NoViableModelError,
)
from fish_growth_mmi.domain.models import (
    MODEL_NAMES,
    AnalysisConfig,
    AnalysisResult,
    AppConfig,
    FitResult,
    GrowthModelSpec,
    Observation,
    PredictionPoint,
    PredictionTable,
    RankedModel,
    Sample,
    StartValues,
)

__all__ = [
    # Models
    "MODEL_NAMES",
    "AnalysisConfig",
    "AnalysisResult",
    "AppConfig",
    "FitResult",
    "GrowthModelSpec",
    "Observation",
    "PredictionPoint",
    "PredictionTable",
    "RankedModel",
    "Sample",
    "StartValues",
    # Errors
    "ConfigurationError",
    "DegenerateFitError",
    "EmptyCandidateSetError",
    "IncomparableModelsError",
    "ExtrapolationWarning",
    "FitFailure",
    "GrowthAnalysisError",
    "InsufficientDataError",
    "InvalidConfidenceLevelError",
    "NoViableModelError",
]
