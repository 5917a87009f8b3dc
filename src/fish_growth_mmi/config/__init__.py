"""Configuration sub-package.

Provides settings loading and typed configuration access.

Quick usage::

    from fish_growth_mmi.config import get_analysis_config

    cfg = get_analysis_config()
    print(cfg.fixed_L0, cfg.confidence_level)
"""

from __future__ import annotations

from fish_growth_mmi.config.settings import (
    get_analysis_config,
    get_config,
    get_typed_config,
)

__all__ = [
    "get_analysis_config",
    "get_config",
    "get_typed_config",
]
