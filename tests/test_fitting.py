"""Tests for nonlinear least-squares fitting of the candidate models."""

from __future__ import annotations

import numpy as np
import numpy.testing as npt
import pytest

from fish_growth_mmi.data.synthetic import generate_growth_sample
from fish_growth_mmi.domain.errors import FitFailure
from fish_growth_mmi.domain.models import Sample, StartValues
from fish_growth_mmi.growth_engine.fitting import fit_all_models, fit_model
from fish_growth_mmi.growth_engine.growth_models import GrowthModelCatalog, build_spec

START = StartValues(k=0.3, Linf=100.0, L0=20.0)


# =====================================================================
# fit_model
# =====================================================================


class TestFitModel:
    """Single-model fits."""

    def test_vb3_recovers_parameters(self, vb3_fit):
        assert vb3_fit.converged
        assert abs(vb3_fit.parameters["Linf"] - 100.0) < 5.0
        assert abs(vb3_fit.parameters["L0"] - 20.0) < 3.0
        assert abs(vb3_fit.parameters["k"] - 0.3) < 0.05

    def test_degrees_of_freedom(self, vb3_fit, vb_sample):
        assert vb3_fit.n_observations == vb_sample.n
        assert vb3_fit.degrees_of_freedom == vb_sample.n - 3
        assert vb3_fit.max_observed_age == pytest.approx(10.0)

    def test_standard_errors_from_covariance(self, vb3_fit):
        cov = vb3_fit.covariance
        assert cov.shape == (3, 3)
        npt.assert_allclose(cov, cov.T, rtol=1e-10, atol=1e-14)
        for i, name in enumerate(vb3_fit.parameter_names):
            assert vb3_fit.standard_errors[name] > 0.0
            npt.assert_allclose(vb3_fit.standard_errors[name], np.sqrt(cov[i, i]))

    def test_residuals_reproduced_by_curve(self, catalog, vb3_fit, vb_sample):
        predicted = catalog["VB3"].predict(vb_sample.ages, vb3_fit.parameters)
        npt.assert_allclose(vb_sample.lengths - predicted, vb3_fit.residuals, atol=1e-10)
        npt.assert_allclose(predicted, vb3_fit.fitted_values, atol=1e-10)

    def test_residual_variance(self, vb3_fit):
        expected = np.sum(vb3_fit.residuals ** 2) / vb3_fit.degrees_of_freedom
        npt.assert_allclose(vb3_fit.residual_variance, expected)
        # noise sd is 2.0
        assert 1.0 < np.sqrt(vb3_fit.residual_variance) < 3.0

    def test_exact_data_fit(self, exact_vb_sample):
        spec = build_spec("VB3", fixed_L0=20.0, start_values=StartValues(k=0.25, Linf=110.0, L0=25.0))
        fit = fit_model(spec, exact_vb_sample)
        npt.assert_allclose(fit.theta, [100.0, 20.0, 0.3], rtol=1e-5)

    def test_iteration_budget_exhausted(self, catalog, vb_sample):
        with pytest.raises(FitFailure, match="no convergence") as info:
            fit_model(catalog["GOM3"], vb_sample, max_iterations=1)
        assert info.value.model_name == "GOM3"

    def test_too_few_observations(self):
        sample = Sample.from_arrays([1.0, 2.0, 3.0], [30.0, 45.0, 55.0])
        with pytest.raises(FitFailure, match="cannot support"):
            fit_model(build_spec("VB3", 20.0, START), sample)

    def test_newborns_only_is_not_identifiable(self):
        sample = Sample.from_arrays([0.0] * 6, [19.0, 21.0, 20.5, 19.5, 20.0, 20.2])
        with pytest.raises(FitFailure, match="singular"):
            fit_model(build_spec("VB3", 20.0, START), sample)

    def test_non_finite_start_values(self, vb_sample):
        spec = build_spec("VB3", 20.0, StartValues(k=float("nan"), Linf=100.0, L0=20.0))
        with pytest.raises(FitFailure, match="non-finite starting values"):
            fit_model(spec, vb_sample)


# =====================================================================
# fit_all_models
# =====================================================================


class TestFitAllModels:
    """Fan-out over the catalog with per-model failure isolation."""

    def test_every_model_accounted_for(self, catalog, vb_sample):
        fits, failures = fit_all_models(catalog, vb_sample)
        names = [spec.name for spec, _ in fits] + [f.model_name for f in failures]
        assert sorted(names) == sorted(catalog.names)
        assert "VB3" in [spec.name for spec, _ in fits]

    def test_fits_keep_catalog_order(self, catalog, vb_sample):
        fits, _ = fit_all_models(catalog, vb_sample)
        order = [spec.name for spec, _ in fits]
        assert order == [n for n in catalog.names if n in order]

    def test_failures_do_not_abort(self, vb_sample):
        catalog = GrowthModelCatalog(fixed_L0=20.0, start_values=START, names=["VB3", "GOM3"])
        fits, failures = fit_all_models(catalog, vb_sample, max_iterations=1)
        assert fits == []
        assert [f.model_name for f in failures] == ["VB3", "GOM3"]

    def test_parallel_matches_serial(self, catalog, vb_sample):
        serial, serial_failures = fit_all_models(catalog, vb_sample, workers=1)
        parallel, parallel_failures = fit_all_models(catalog, vb_sample, workers=4)
        assert [s.name for s, _ in serial] == [s.name for s, _ in parallel]
        assert [f.model_name for f in serial_failures] == [
            f.model_name for f in parallel_failures
        ]
        for (_, a), (_, b) in zip(serial, parallel):
            npt.assert_allclose(a.theta, b.theta)

    def test_all_fits_share_the_sample(self, catalog, vb_sample):
        fits, _ = fit_all_models(catalog, vb_sample)
        assert {fit.n_observations for _, fit in fits} == {vb_sample.n}


# =====================================================================
# Nested variants
# =====================================================================


class TestFixedL0Variants:
    """A 2-parameter fit matches its 3-parameter sibling when the free L0
    lands on the fixed value."""

    AGES = np.linspace(0.0, 10.0, 41)

    def test_von_bertalanffy_pair(self, catalog, vb_sample):
        vb3 = fit_model(catalog["VB3"], vb_sample)
        vb2 = fit_model(catalog["VB2"], vb_sample)
        assert abs(vb3.parameters["L0"] - 20.0) < 1.5
        gap = np.abs(
            catalog["VB3"].predict(self.AGES, vb3.parameters)
            - catalog["VB2"].predict(self.AGES, vb2.parameters)
        )
        # noise sd is 2.0
        assert gap.max() < 2.0

    @pytest.mark.parametrize("three, two", [("GOM3", "GOM2"), ("LOGI3", "LOGI2")])
    def test_sigmoid_pairs(self, three, two):
        sample = generate_growth_sample(
            model=three,
            parameters={"Linf": 100.0, "L0": 20.0, "k": 0.3},
            per_age=10,
            noise_sd=2.0,
            seed=7,
        )
        catalog = GrowthModelCatalog(
            fixed_L0=20.0,
            start_values=StartValues(k=0.25, Linf=110.0, L0=25.0),
            names=[three, two],
        )
        full = fit_model(catalog[three], sample)
        nested = fit_model(catalog[two], sample)
        assert abs(full.parameters["L0"] - 20.0) < 2.0
        gap = np.abs(
            catalog[three].predict(self.AGES, full.parameters)
            - catalog[two].predict(self.AGES, nested.parameters)
        )
        assert gap.max() < 4.0
