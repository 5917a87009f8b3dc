"""Settings module -- single entry point for analysis configuration.

:func:`get_config` returns the merged configuration dictionary.  It loads
``config/default.yaml``, overlays the file named by the
``FISH_GROWTH_CONFIG`` environment variable (or an explicit path), and
finally applies any ``FGM_`` prefixed environment variable overrides.
"""

from __future__ import annotations

import functools
import os
from pathlib import Path
from typing import Any

from fish_growth_mmi.domain.models import AnalysisConfig, AppConfig

# Project root is three levels up from ``src/fish_growth_mmi/config/``.
_PROJECT_ROOT = Path(__file__).resolve().parents[3]

DEFAULT_CONFIG_PATH = _PROJECT_ROOT / "config" / "default.yaml"
OVERLAY_ENV_VAR = "FISH_GROWTH_CONFIG"


def _overlay_path(overlay_path: str | Path | None) -> str | Path | None:
    if overlay_path is not None:
        return overlay_path
    return os.environ.get(OVERLAY_ENV_VAR) or None


@functools.lru_cache(maxsize=4)
def get_config(overlay_path: str | Path | None = None) -> dict[str, Any]:
    """Return the fully merged configuration dictionary.

    The result is cached so that repeated calls within the same process are
    essentially free.

    Resolution order:

    1. ``config/default.yaml``
    2. *overlay_path*, else the file named by ``FISH_GROWTH_CONFIG``
    3. Environment variables with ``FGM_`` prefix

    Returns
    -------
    dict[str, Any]
        The merged configuration tree.
    """
    return get_typed_config(overlay_path).data


def get_typed_config(overlay_path: str | Path | None = None) -> AppConfig:
    """Return the :class:`AppConfig` wrapper for typed access (not cached)."""
    return AppConfig.load(
        default_path=DEFAULT_CONFIG_PATH,
        overlay_path=_overlay_path(overlay_path),
        env_prefix="FGM_",
    )


def get_analysis_config(
    overlay_path: str | Path | None = None,
    **overrides: Any,
) -> AnalysisConfig:
    """Build a validated :class:`AnalysisConfig` from the ``analysis`` section.

    Keyword *overrides* (e.g. from command-line flags) win over every file
    and environment source; ``None`` values are ignored.

    Raises
    ------
    ConfigurationError
        Missing ``fixed_L0``, unknown keys or invalid values.
    """
    section = get_typed_config(overlay_path).section("analysis")
    section.update({k: v for k, v in overrides.items() if v is not None})
    return AnalysisConfig.from_mapping(section)
