"""Shared pytest fixtures for the fish growth MMI test suite."""

from __future__ import annotations

import numpy as np
import pytest

from fish_growth_mmi.data.synthetic import generate_growth_sample
from fish_growth_mmi.domain.models import AnalysisConfig, FitResult, Sample, StartValues
from fish_growth_mmi.growth_engine.fitting import fit_model
from fish_growth_mmi.growth_engine.growth_models import GrowthModelCatalog
from fish_growth_mmi.growth_engine.start_values import estimate_start_values


# ---------------------------------------------------------------------------
# Sample fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def vb_sample() -> Sample:
    """110 noisy observations from L(t) = 100 + (20 - 100) exp(-0.3 t), ages 0-10."""
    return generate_growth_sample(
        model="VB3",
        parameters={"Linf": 100.0, "L0": 20.0, "k": 0.3},
        ages=np.arange(0.0, 11.0),
        per_age=10,
        noise_sd=2.0,
        seed=7,
    )


@pytest.fixture()
def exact_vb_sample() -> Sample:
    """Noise-free von Bertalanffy lengths at ages 0-10."""
    return generate_growth_sample(
        model="VB3",
        parameters={"Linf": 100.0, "L0": 20.0, "k": 0.3},
        per_age=1,
        noise_sd=0.0,
    )


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def start_values(vb_sample: Sample) -> StartValues:
    return estimate_start_values(vb_sample, fixed_L0=20.0)


@pytest.fixture()
def catalog(start_values: StartValues) -> GrowthModelCatalog:
    """All six candidate models with fixed L0 equal to the true L0."""
    return GrowthModelCatalog(fixed_L0=20.0, start_values=start_values)


@pytest.fixture()
def vb3_fit(catalog: GrowthModelCatalog, vb_sample: Sample) -> FitResult:
    return fit_model(catalog["VB3"], vb_sample)


@pytest.fixture()
def analysis_config() -> AnalysisConfig:
    """Config whose fixed L0 is deliberately off so the 2-parameter models fit worse."""
    return AnalysisConfig(fixed_L0=10.0)
