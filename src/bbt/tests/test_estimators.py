"""Tests for the four ovulation estimators and the estimator registry."""

from __future__ import annotations

import math
from datetime import timedelta

import pytest

from src.bbt.base import EstimatorKind, EstimatorStatus
from src.bbt.config_loader import EngineConfig
from src.bbt.estimators import (
    ESTIMATOR_REGISTRY,
    BayesianEstimator,
    CoverlineEstimator,
    ThermalShiftEstimator,
    TrendForecastEstimator,
    build_estimators,
    get_estimator,
)
from src.bbt.estimators.bayesian import compute_posterior, follicular_baseline
from src.bbt.estimators.coverline import find_coverline, find_crossing
from src.bbt.estimators.thermal_shift import detect_thermal_shifts, latest_shift
from src.bbt.estimators.trend_forecast import extract_features
from src.bbt.tests.conftest import SHIFT_TEMPS, make_window

FLAT_TEMPS = [97.3] * 14


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestEstimatorRegistry:
    def test_all_kinds_registered(self) -> None:
        assert set(ESTIMATOR_REGISTRY) == set(EstimatorKind)

    def test_get_estimator_by_name(self) -> None:
        assert get_estimator("coverline") is CoverlineEstimator
        assert get_estimator(EstimatorKind.BAYESIAN) is BayesianEstimator

    def test_unknown_estimator_raises(self) -> None:
        with pytest.raises(KeyError, match="No estimator registered"):
            get_estimator("lstm")

    def test_build_estimators(self, engine_config: EngineConfig) -> None:
        kinds = [e.kind for e in build_estimators(engine_config)]
        assert kinds == [
            EstimatorKind.THERMAL_SHIFT,
            EstimatorKind.COVERLINE,
            EstimatorKind.BAYESIAN,
            EstimatorKind.TREND_FORECAST,
        ]

    @pytest.mark.parametrize("kind", list(EstimatorKind))
    def test_insufficient_data(self, engine_config: EngineConfig, kind: EstimatorKind) -> None:
        estimator = get_estimator(kind)(engine_config)
        result = estimator.estimate(make_window([97.3] * 3))
        assert result.status == EstimatorStatus.INSUFFICIENT_DATA
        assert result.ovulation_date is None
        assert result.details == {"readings": 3, "required": estimator.min_readings}


# ---------------------------------------------------------------------------
# Thermal shift
# ---------------------------------------------------------------------------


class TestThermalShiftEstimator:
    def test_detects_clean_shift(self, engine_config: EngineConfig) -> None:
        window = make_window(SHIFT_TEMPS)
        result = ThermalShiftEstimator(engine_config).estimate(window)
        assert result.status == EstimatorStatus.OK
        transition = window[20].reading_date
        assert abs((result.ovulation_date - transition).days) <= 1
        assert result.confidence >= 0.7
        assert result.details["shift_index"] == 20
        assert result.details["shift_magnitude_f"] == pytest.approx(0.4)

    def test_no_shift_in_flat_series(self, engine_config: EngineConfig) -> None:
        result = ThermalShiftEstimator(engine_config).estimate(make_window(FLAT_TEMPS))
        assert result.status == EstimatorStatus.NO_SIGNAL
        assert result.ovulation_date is None

    def test_strength_capped(self, engine_config: EngineConfig) -> None:
        shifts = detect_thermal_shifts([97.0] * 6 + [98.0] * 4, engine_config.estimators.thermal_shift)
        assert shifts
        assert max(s.strength for s in shifts) == 0.95

    def test_latest_episode_wins(self, engine_config: EngineConfig) -> None:
        temps = [97.0] * 8 + [97.5] * 4 + [97.0] * 8 + [97.4] * 4
        shifts = detect_thermal_shifts(temps, engine_config.estimators.thermal_shift)
        best = latest_shift(shifts)
        assert best is not None
        assert best.index >= 20

    def test_latest_shift_empty(self) -> None:
        assert latest_shift([]) is None


# ---------------------------------------------------------------------------
# Coverline
# ---------------------------------------------------------------------------


class TestCoverlineEstimator:
    def test_three_over_six(self, engine_config: EngineConfig) -> None:
        window = make_window([97.2] * 6 + [97.5, 97.6, 97.5])
        result = CoverlineEstimator(engine_config).estimate(window)
        assert result.status == EstimatorStatus.OK
        assert result.confidence == 0.8
        assert result.details["ovulation_index"] == 6
        assert result.details["coverline_f"] == pytest.approx(97.3)
        assert result.ovulation_date == window[6].reading_date

    def test_shift_scenario(self, engine_config: EngineConfig) -> None:
        window = make_window(SHIFT_TEMPS)
        result = CoverlineEstimator(engine_config).estimate(window)
        assert result.details["ovulation_index"] == 20
        assert result.details["rise_index"] == 19

    def test_no_rise(self, engine_config: EngineConfig) -> None:
        result = CoverlineEstimator(engine_config).estimate(make_window(FLAT_TEMPS))
        assert result.status == EstimatorStatus.NO_SIGNAL

    def test_coverline_uses_highest_low(self, engine_config: EngineConfig) -> None:
        temps = [97.1, 97.2, 97.25, 97.1, 97.0, 97.2, 97.6, 97.7, 97.6]
        coverline = find_coverline(temps, engine_config.estimators.coverline)
        assert coverline is not None
        assert coverline.value == pytest.approx(97.35)
        assert coverline.base_index == 0

    def test_crossing_needs_confirmation(self) -> None:
        assert find_crossing([97.2, 97.5, 97.2, 97.2], 97.3) is None
        assert find_crossing([97.2, 97.5, 97.5], 97.3) == 1


# ---------------------------------------------------------------------------
# Bayesian
# ---------------------------------------------------------------------------


class TestBayesianEstimator:
    def test_posterior_is_normalized(self, engine_config: EngineConfig) -> None:
        cfg = engine_config.estimators.bayesian
        observations = [(d, 97.3 if d < 15 else 97.7) for d in range(1, 29)]
        posterior = compute_posterior(observations, 97.3, cfg)
        assert posterior.days == list(range(10, 21))
        assert math.isclose(sum(posterior.probability), 1.0)
        assert posterior.map_day == 15
        assert posterior.lower <= posterior.map_day <= posterior.upper

    def test_prior_dominates_without_shift(self, engine_config: EngineConfig) -> None:
        cfg = engine_config.estimators.bayesian
        posterior = compute_posterior([(d, 97.3) for d in range(1, 9)], 97.3, cfg)
        assert posterior.map_day == 14

    def test_shift_scenario(self, engine_config: EngineConfig) -> None:
        window = make_window(SHIFT_TEMPS)
        result = BayesianEstimator(engine_config).estimate(window)
        assert result.status == EstimatorStatus.OK
        assert result.details["map_cycle_day"] == 19
        assert result.details["current_cycle_day"] == 28
        assert result.ovulation_date == window[20].reading_date
        assert 0.0 <= result.confidence <= 1.0

    def test_short_window_uses_first_reading_as_day_one(self, engine_config: EngineConfig) -> None:
        window = make_window([97.3] * 10)
        result = BayesianEstimator(engine_config).estimate(window)
        assert result.details["current_cycle_day"] == 10
        assert result.ovulation_date == window[-1].reading_date + timedelta(days=4)

    def test_follicular_baseline(self) -> None:
        assert follicular_baseline([97.0, 97.2, 97.8, 98.0], 97.5) == pytest.approx(97.1)
        assert follicular_baseline([], 97.5) == 97.5


# ---------------------------------------------------------------------------
# Trend forecast
# ---------------------------------------------------------------------------


class TestTrendForecastEstimator:
    def test_flat_low_series_abstains(self, engine_config: EngineConfig) -> None:
        result = TrendForecastEstimator(engine_config).estimate(make_window(FLAT_TEMPS))
        assert result.status == EstimatorStatus.NO_SIGNAL
        assert result.ovulation_date is None
        assert result.details["ovulation_probability"] == pytest.approx(0.212, abs=0.01)

    def test_high_plateau_predicts_yesterday(self, engine_config: EngineConfig) -> None:
        window = make_window([97.8] * 14)
        result = TrendForecastEstimator(engine_config).estimate(window)
        assert result.details["ovulation_probability"] > 0.7
        assert result.ovulation_date == window[-1].reading_date - timedelta(days=1)

    def test_middle_band_predicts_two_days_ahead(self, engine_config: EngineConfig) -> None:
        window = make_window([97.45] * 14)
        result = TrendForecastEstimator(engine_config).estimate(window)
        assert 0.3 < result.details["ovulation_probability"] <= 0.7
        assert result.ovulation_date == window[-1].reading_date + timedelta(days=2)

    def test_confidence_from_probability(self, engine_config: EngineConfig) -> None:
        result = TrendForecastEstimator(engine_config).estimate(make_window([97.8] * 14))
        p = result.details["ovulation_probability"]
        assert result.confidence == pytest.approx(abs(p - 0.5) * 2, abs=1e-5)

    def test_forecast_shape(self, engine_config: EngineConfig) -> None:
        result = TrendForecastEstimator(engine_config).estimate(make_window(FLAT_TEMPS))
        forecast = result.details["forecast"]
        assert [f["day"] for f in forecast] == list(range(1, 8))
        assert forecast[0]["uncertainty_f"] == pytest.approx(0.12)
        assert forecast[-1]["uncertainty_f"] == pytest.approx(0.24)

    def test_deterministic(self, engine_config: EngineConfig) -> None:
        estimator = TrendForecastEstimator(engine_config)
        window = make_window(SHIFT_TEMPS)
        assert estimator.estimate(window) == estimator.estimate(window)

    def test_features_use_last_fourteen(self) -> None:
        features = extract_features(make_window([96.0] * 6 + [97.3] * 14), 14)
        assert features.window_length == 14
        assert features.moving_average == pytest.approx(97.3)
        assert features.trend == pytest.approx(0.0)
        assert features.mean_quality == pytest.approx(0.7)
