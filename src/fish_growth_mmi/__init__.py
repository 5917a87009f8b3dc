"""Multi-model inference for fish growth.

Fits competing length-at-age growth curves by nonlinear least squares,
ranks them by AIC with Akaike weights and propagates parameter uncertainty
of the best model into confidence and prediction intervals.
"""

from __future__ import annotations

__version__ = "0.1.0"
