"""Error and warning types raised by the growth analysis engine.

Per-model problems (:class:`FitFailure`) are recoverable: the run drops the
model and carries on.  Everything else terminates the analysis run.
"""

from __future__ import annotations


class GrowthAnalysisError(Exception):
    """Base class for all analysis errors."""


# ---------------------------------------------------------------------------
# Start values
# ---------------------------------------------------------------------------


class InsufficientDataError(GrowthAnalysisError):
    """The sample does not hold enough distinct age groups."""


class DegenerateFitError(GrowthAnalysisError):
    """The Ford-Walford regression cannot produce usable start values."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(GrowthAnalysisError, ValueError):
    """Invalid analysis configuration (e.g. non-positive fixed L0)."""


class InvalidConfidenceLevelError(ConfigurationError):
    """Confidence level outside the open interval (0, 1)."""


# ---------------------------------------------------------------------------
# Fitting / ranking
# ---------------------------------------------------------------------------


class FitFailure(GrowthAnalysisError):
    """A single candidate model could not be fitted."""

    def __init__(self, model_name: str, reason: str) -> None:
        super().__init__(f"{model_name}: {reason}")
        self.model_name = model_name
        self.reason = reason


class NoViableModelError(GrowthAnalysisError):
    """No candidate model could be fitted; the analysis aborts."""

    def __init__(self, message: str, failures: list[FitFailure] | None = None) -> None:
        details = "; ".join(str(f) for f in failures or [])
        super().__init__(f"{message} ({details})" if details else message)
        self.failures = list(failures or [])


class EmptyCandidateSetError(NoViableModelError):
    """The ranker was handed zero successful fits."""


class IncomparableModelsError(GrowthAnalysisError, ValueError):
    """Fits handed to the ranker were not made on the same sample."""


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------


class ExtrapolationWarning(UserWarning):
    """A prediction was requested well beyond the oldest observed age."""
