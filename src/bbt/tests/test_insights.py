"""Tests for trend analysis, recommendations, and insight reports."""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.bbt.config_loader import EngineConfig
from src.bbt.history import HistoryStore
from src.bbt.insights import (
    STATUS_NEED_MORE_DATA,
    STATUS_OK,
    InsightGenerator,
    TrendSummary,
    analyze_trends,
    generate_recommendations,
    next_measurement_advice,
    overall_data_quality,
)
from src.bbt.phase import PHASE_FOLLICULAR, PHASE_LUTEAL, PhaseAssessment
from src.bbt.tests.conftest import SHIFT_TEMPS, make_reading, make_window


def store_of(engine_config: EngineConfig, readings) -> HistoryStore:
    return HistoryStore(engine_config, readings)


def trends(**overrides) -> TrendSummary:
    values = dict(
        readings_used=14,
        mean_f=97.4,
        min_f=97.3,
        max_f=97.5,
        slope_f_per_day=0.0,
        direction="stable",
        consistency=0.95,
        timing_consistency=1.0,
        data_quality=0.9,
        late_measurement_rate=0.0,
    )
    values.update(overrides)
    return TrendSummary(**values)


def types(recommendations) -> list[str]:
    return [r.type for r in recommendations]


# ---------------------------------------------------------------------------
# Trend analysis
# ---------------------------------------------------------------------------


class TestAnalyzeTrends:
    def test_rising_after_shift(self, engine_config: EngineConfig) -> None:
        window = make_window(SHIFT_TEMPS)[-14:]
        summary = analyze_trends(window, window, engine_config)
        assert summary.readings_used == 14
        assert summary.direction == "rising"
        assert summary.min_f == 97.3
        assert summary.max_f == 97.7
        assert summary.consistency == pytest.approx(1 - (0.4 / 13) / 0.5, abs=1e-5)
        assert summary.timing_consistency == 1.0
        assert summary.data_quality == pytest.approx(0.7)
        assert summary.late_measurement_rate == 0.0

    def test_flat_is_stable(self, engine_config: EngineConfig) -> None:
        window = make_window([97.3] * 14)
        summary = analyze_trends(window, window, engine_config)
        assert summary.direction == "stable"
        assert summary.slope_f_per_day == pytest.approx(0.0)
        assert summary.consistency == 1.0

    def test_falling(self, engine_config: EngineConfig) -> None:
        window = make_window([97.8 - 0.05 * i for i in range(14)])
        assert analyze_trends(window, window, engine_config).direction == "falling"

    def test_erratic_readings_score_low_consistency(self, engine_config: EngineConfig) -> None:
        window = make_window([97.0, 97.6] * 7)
        summary = analyze_trends(window, window, engine_config)
        assert summary.consistency == pytest.approx(0.0)

    def test_timing_and_late_rate_use_all_recent(self, engine_config: EngineConfig) -> None:
        valid = make_window([97.3] * 12)
        late = [make_reading(97.5, day=12 + i, hour=9, is_valid=False) for i in range(2)]
        summary = analyze_trends(valid, valid + late, engine_config)
        assert summary.late_measurement_rate == pytest.approx(2 / 14)
        assert summary.timing_consistency < 1.0
        assert summary.readings_used == 12

    def test_single_reading(self, engine_config: EngineConfig) -> None:
        window = make_window([97.3])
        summary = analyze_trends(window, window, engine_config)
        assert summary.slope_f_per_day == 0.0
        assert summary.consistency == 1.0


class TestDataQuality:
    def test_mean_quality(self) -> None:
        readings = [make_reading(97.3, quality=0.9), make_reading(97.3, day=1, quality=0.5)]
        assert overall_data_quality(readings) == pytest.approx(0.7)

    def test_empty(self) -> None:
        assert overall_data_quality([]) == 0.0


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------


class TestRecommendations:
    def test_follicular(self, engine_config: EngineConfig) -> None:
        phase = PhaseAssessment(phase=PHASE_FOLLICULAR, description="", confidence=0.6)
        recs = generate_recommendations(phase, trends(), engine_config)
        assert types(recs) == ["measurement", "timing"]
        assert [r.priority for r in recs] == ["high", "medium"]

    def test_luteal_counts_down_to_period(self, engine_config: EngineConfig) -> None:
        phase = PhaseAssessment(
            phase=PHASE_LUTEAL, description="", confidence=0.9, days_post_ovulation=9
        )
        recs = generate_recommendations(phase, trends(), engine_config)
        assert types(recs) == ["confirmation", "timing"]
        assert recs[1].message == "Expect period in 5 days if not pregnant"

    def test_luteal_countdown_never_negative(self, engine_config: EngineConfig) -> None:
        phase = PhaseAssessment(
            phase=PHASE_LUTEAL, description="", confidence=0.9, days_post_ovulation=20
        )
        recs = generate_recommendations(phase, trends(), engine_config)
        assert recs[1].message == "Expect period in 0 days if not pregnant"

    def test_low_consistency_suggests_better_device(self, engine_config: EngineConfig) -> None:
        phase = PhaseAssessment(phase=PHASE_FOLLICULAR, description="", confidence=0.6)
        recs = generate_recommendations(phase, trends(consistency=0.5), engine_config)
        assert "improvement" in types(recs)
        assert "smart thermometer" in recs[-1].message

    def test_low_quality_suggests_technique(self, engine_config: EngineConfig) -> None:
        phase = PhaseAssessment(phase=PHASE_FOLLICULAR, description="", confidence=0.6)
        recs = generate_recommendations(phase, trends(data_quality=0.5), engine_config)
        technique = [r for r in recs if r.type == "technique"]
        assert technique
        assert "3+ hours of sleep" in technique[0].message
        assert technique[0].priority == "high"

    def test_late_measurements_suggest_timing(self, engine_config: EngineConfig) -> None:
        phase = PhaseAssessment(phase=PHASE_FOLLICULAR, description="", confidence=0.6)
        recs = generate_recommendations(phase, trends(late_measurement_rate=0.2), engine_config)
        assert types(recs)[-1] == "timing_technique"


class TestNextMeasurementAdvice:
    def test_keeps_usual_hour(self, engine_config: EngineConfig) -> None:
        recent = [make_reading(97.3, day=i, hour=5) for i in range(5)]
        advice = next_measurement_advice(recent, engine_config)
        assert advice is not None
        assert advice.target_hour == 5
        assert advice.measure_on == recent[-1].reading_date + timedelta(days=1)

    def test_late_habit_replaced_by_preferred_hour(self, engine_config: EngineConfig) -> None:
        recent = [make_reading(97.3, day=i, hour=9) for i in range(5)]
        advice = next_measurement_advice(recent, engine_config)
        assert advice.target_hour == 6

    def test_no_readings(self, engine_config: EngineConfig) -> None:
        assert next_measurement_advice([], engine_config) is None


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class TestInsightGenerator:
    def test_need_more_data(self, engine_config: EngineConfig) -> None:
        store = store_of(engine_config, make_window([97.3] * 3))
        report = InsightGenerator(engine_config).report(store, None)
        assert report.status == STATUS_NEED_MORE_DATA
        assert report.readings_count == 3
        assert report.valid_readings == 3
        assert report.required_readings == 10
        assert report.prediction is None
        assert report.current_phase is None
        assert report.next_measurement is not None

    def test_invalid_readings_do_not_count(self, engine_config: EngineConfig) -> None:
        readings = make_window([97.3] * 9) + [make_reading(103.0, day=9, is_valid=False)]
        report = InsightGenerator(engine_config).report(store_of(engine_config, readings), None)
        assert report.status == STATUS_NEED_MORE_DATA
        assert report.readings_count == 10
        assert report.valid_readings == 9

    def test_full_report(self, engine_config: EngineConfig) -> None:
        store = store_of(engine_config, make_window(SHIFT_TEMPS))
        report = InsightGenerator(engine_config).report(store, None)
        assert report.status == STATUS_OK
        assert report.current_phase.phase == PHASE_LUTEAL
        assert report.message == report.current_phase.description
        assert report.trends.direction == "rising"
        assert report.data_quality == pytest.approx(0.7)
        assert types(report.recommendations) == ["confirmation", "timing"]

    def test_report_is_deterministic(self, engine_config: EngineConfig) -> None:
        store = store_of(engine_config, make_window(SHIFT_TEMPS))
        generator = InsightGenerator(engine_config)
        assert generator.report(store, None) == generator.report(store, None)
