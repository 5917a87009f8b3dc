"""Data sub-package -- synthetic age-length samples."""

from __future__ import annotations

from fish_growth_mmi.data.synthetic import DEFAULT_PARAMETERS, generate_growth_sample

__all__ = [
    "DEFAULT_PARAMETERS",
    "generate_growth_sample",
]
