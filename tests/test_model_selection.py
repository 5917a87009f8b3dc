"""Tests for AIC ranking, Akaike weights and the reporting table."""

from __future__ import annotations

import math

import numpy as np
import numpy.testing as npt
import pytest

from fish_growth_mmi.domain.errors import (
    EmptyCandidateSetError,
    GrowthAnalysisError,
    IncomparableModelsError,
)
from fish_growth_mmi.domain.models import FitResult, StartValues
from fish_growth_mmi.growth_engine.fitting import fit_all_models
from fish_growth_mmi.growth_engine.growth_models import build_spec
from fish_growth_mmi.growth_engine.model_selection import (
    compute_aic,
    compute_akaike_weights,
    fit_diagnostics,
    model_averaged_prediction,
    rank_models,
    ranking_frame,
    round_significant,
    select_best_model,
)

START = StartValues(k=0.3, Linf=100.0, L0=20.0)


def _pair(name: str, rss: float, n: int = 10):
    """A (spec, fit) pair whose residuals sum to *rss*."""
    spec = build_spec(name, fixed_L0=20.0, start_values=START)
    p = spec.parameter_count
    fit = FitResult(
        model_name=name,
        parameter_names=spec.parameter_names,
        parameters=dict(spec.initial_parameters),
        standard_errors={k: 0.1 for k in spec.parameter_names},
        covariance=np.eye(p) * 0.01,
        residuals=np.full(n, math.sqrt(rss / n)),
        fitted_values=np.full(n, 50.0),
        degrees_of_freedom=n - p,
        n_observations=n,
        max_observed_age=10.0,
    )
    return spec, fit


# =====================================================================
# AIC and weights
# =====================================================================


class TestComputeAic:
    """Gaussian-likelihood AIC with the variance counted as a parameter."""

    def test_matches_closed_form(self):
        _, fit = _pair("VB3", rss=40.0, n=10)
        expected = 10 * math.log(2 * math.pi) + 10 * math.log(40.0 / 10) + 10 + 2 * 4
        npt.assert_allclose(compute_aic(fit), expected)

    def test_two_parameter_penalty_smaller(self):
        _, fit3 = _pair("VB3", rss=40.0)
        _, fit2 = _pair("VB2", rss=40.0)
        npt.assert_allclose(compute_aic(fit3) - compute_aic(fit2), 2.0)


class TestComputeAkaikeWeights:
    """Akaike weights in percent."""

    def test_weights_sum_to_hundred(self):
        weights = compute_akaike_weights([100.0, 102.0, 110.0])
        npt.assert_allclose(weights.sum(), 100.0, atol=1e-10)

    def test_best_model_has_highest_weight(self):
        weights = compute_akaike_weights([50.0, 100.0, 200.0])
        assert weights[0] > weights[1] > weights[2]

    def test_identical_aic_equal_weights(self):
        npt.assert_allclose(compute_akaike_weights([7.0, 7.0]), [50.0, 50.0])

    def test_known_value(self):
        weights = compute_akaike_weights([0.0, 2.0])
        expected = 100.0 / (1.0 + math.exp(-1.0))
        npt.assert_allclose(weights[0], expected)

    def test_empty(self):
        assert compute_akaike_weights([]).size == 0


# =====================================================================
# rank_models
# =====================================================================


class TestRankModels:
    """Best-first ranking."""

    def test_sorted_best_first(self):
        ranked = rank_models([_pair("GOM3", 90.0), _pair("VB3", 40.0), _pair("LOGI3", 60.0)])
        assert [r.model_name for r in ranked] == ["VB3", "LOGI3", "GOM3"]
        aics = [r.aic for r in ranked]
        assert aics == sorted(aics)

    def test_delta_and_weights(self):
        ranked = rank_models([_pair("GOM3", 90.0), _pair("VB3", 40.0), _pair("VB2", 45.0)])
        assert min(r.delta_aic for r in ranked) == 0.0
        assert ranked[0].delta_aic == 0.0
        assert all(r.delta_aic >= 0.0 for r in ranked)
        npt.assert_allclose(sum(r.weight for r in ranked), 100.0, atol=0.01)
        assert all(0.0 <= r.weight <= 100.0 for r in ranked)

    def test_residual_standard_error(self):
        ranked = rank_models([_pair("VB3", 70.0, n=10)])
        npt.assert_allclose(ranked[0].residual_standard_error, math.sqrt(70.0 / 7))
        npt.assert_allclose(ranked[0].weight, 100.0)
        npt.assert_allclose(ranked[0].aic, 2 * 4 - 2 * ranked[0].log_likelihood)

    def test_selection_uses_unrounded_aic(self):
        worse, better = _pair("GOM3", 100.001), _pair("LOGI3", 100.0)
        ranked = rank_models([worse, better])
        assert round_significant(ranked[0].aic, 4)[0] == round_significant(ranked[1].aic, 4)[0]
        assert ranked[0].model_name == "LOGI3"
        assert select_best_model(ranked).model_name == "LOGI3"

    def test_ties_keep_input_order(self):
        ranked = rank_models([_pair("GOM3", 50.0), _pair("LOGI3", 50.0)])
        assert [r.model_name for r in ranked] == ["GOM3", "LOGI3"]

    def test_empty_raises(self):
        with pytest.raises(EmptyCandidateSetError):
            rank_models([])
        with pytest.raises(EmptyCandidateSetError):
            select_best_model([])

    def test_mismatched_samples_rejected(self):
        with pytest.raises(IncomparableModelsError, match="different sizes") as info:
            rank_models([_pair("VB3", 40.0, n=10), _pair("GOM3", 40.0, n=12)])
        assert isinstance(info.value, GrowthAnalysisError)

    def test_real_fits(self, catalog, vb_sample):
        fits, _ = fit_all_models(catalog, vb_sample)
        ranked = rank_models(fits)
        npt.assert_allclose(sum(r.weight for r in ranked), 100.0, atol=0.01)
        assert ranked[0].delta_aic == 0.0


# =====================================================================
# Reporting
# =====================================================================


class TestRankingFrame:
    """Ranking table export."""

    def test_columns_and_index(self):
        frame = ranking_frame(rank_models([_pair("VB3", 40.0), _pair("VB2", 45.0)]))
        assert list(frame.index) == ["VB3", "VB2"] or list(frame.index) == ["VB2", "VB3"]
        assert list(frame.columns) == [
            "AIC", "delta_AIC", "weight", "RSE",
            "Linf", "Linf_se", "L0", "L0_se", "k", "k_se",
        ]

    def test_two_parameter_models_have_no_l0(self):
        frame = ranking_frame(rank_models([_pair("VB2", 45.0)]))
        assert np.isnan(frame.loc["VB2", "L0"])
        assert np.isnan(frame.loc["VB2", "L0_se"])
        assert frame.loc["VB2", "Linf"] == 100.0

    def test_rounded_to_significant_digits(self):
        ranked = rank_models([_pair("VB3", 40.0), _pair("GOM3", 41.234567)])
        frame = ranking_frame(ranked, significant_digits=4)
        for value in frame["AIC"]:
            assert value == float(f"{value:.4g}")

    def test_full_precision(self):
        ranked = rank_models([_pair("VB3", 40.0), _pair("GOM3", 41.234567)])
        frame = ranking_frame(ranked, significant_digits=None)
        assert frame.loc["GOM3", "AIC"] == ranked[1].aic


class TestRoundSignificant:
    """Significant-figure rounding."""

    def test_values(self):
        npt.assert_allclose(
            round_significant([123456.0, 0.00123456, -98.7654, 0.0], 4),
            [123500.0, 0.001235, -98.77, 0.0],
        )

    def test_non_finite_pass_through(self):
        out = round_significant([np.nan, np.inf], 4)
        assert np.isnan(out[0]) and np.isinf(out[1])


# =====================================================================
# Model averaging and diagnostics
# =====================================================================


class TestModelAveragedPrediction:
    """Akaike-weighted multi-model curve."""

    def test_equal_weights_average(self):
        ranked = rank_models([_pair("VB3", 50.0), _pair("GOM3", 50.0)])
        ages = np.array([0.0, 5.0, 10.0])
        expected = 0.5 * (ranked[0].spec.predict(ages, ranked[0].fit.parameters)
                          + ranked[1].spec.predict(ages, ranked[1].fit.parameters))
        npt.assert_allclose(model_averaged_prediction(ranked, ages), expected)

    def test_single_model(self):
        ranked = rank_models([_pair("LOGI3", 50.0)])
        ages = np.linspace(0, 10, 5)
        npt.assert_allclose(
            model_averaged_prediction(ranked, ages),
            ranked[0].spec.predict(ages, ranked[0].fit.parameters),
        )

    def test_empty_raises(self):
        with pytest.raises(EmptyCandidateSetError):
            model_averaged_prediction([], [1.0])


class TestFitDiagnostics:
    """Residual diagnostics."""

    def test_good_fit(self, vb3_fit, vb_sample):
        diag = fit_diagnostics(vb3_fit, vb_sample)
        assert diag["r_squared"] > 0.95
        assert 0.0 <= diag["shapiro_p"] <= 1.0
        assert not any("R-squared" in issue for issue in diag["issues"])

    def test_negative_growth_rate_flagged(self, vb_sample):
        spec, fit = _pair("VB3", 40.0, n=vb_sample.n)
        bad = FitResult(
            model_name=fit.model_name,
            parameter_names=fit.parameter_names,
            parameters={**fit.parameters, "k": -0.1},
            residuals=np.linspace(-30.0, 30.0, vb_sample.n),
            fitted_values=fit.fitted_values[:1].repeat(vb_sample.n),
            degrees_of_freedom=fit.degrees_of_freedom,
            n_observations=fit.n_observations,
        )
        diag = fit_diagnostics(bad, vb_sample)
        assert diag["ok"] is False
        assert any("non-positive" in issue for issue in diag["issues"])
