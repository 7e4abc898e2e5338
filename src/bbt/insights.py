"""Insight report generation.

Turns the history, the current phase, and the latest ensemble prediction into
the report returned to callers: trend summary, recommendations, aggregate data
quality, and next-measurement advice.  Everything here is a deterministic
function of the stored history, so two queries without a new reading in
between return identical reports.
"""

from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Sequence

from src.bbt.base import EnsemblePrediction, ProcessedReading
from src.bbt.config_loader import EngineConfig, get_engine_config
from src.bbt.history import HistoryStore
from src.bbt.phase import (
    PHASE_FOLLICULAR,
    PHASE_LUTEAL,
    PHASE_MENSTRUAL,
    PhaseAssessment,
    PhaseClassifier,
)

logger = logging.getLogger("bbt.insights")

STATUS_OK = "ok"
STATUS_NEED_MORE_DATA = "need_more_data"


@dataclass
class TrendSummary:
    """Summary of the recent temperature trend and measurement habits.

    Attributes:
        readings_used:         Valid readings in the trend window.
        mean_f:                Mean temperature.
        min_f:                 Lowest temperature.
        max_f:                 Highest temperature.
        slope_f_per_day:       Least-squares slope in °F per day.
        direction:             'rising', 'falling', or 'stable'.
        consistency:           1 − (mean day-to-day change / 0.5°F), clamped to [0, 1].
        timing_consistency:    1 − (stdev of measurement hour / 3h), clamped to [0, 1].
        data_quality:          Mean quality of the most recent readings (valid or not).
        late_measurement_rate: Share of recent readings taken after the latest valid hour.
    """

    readings_used: int
    mean_f: float
    min_f: float
    max_f: float
    slope_f_per_day: float
    direction: str
    consistency: float
    timing_consistency: float
    data_quality: float
    late_measurement_rate: float


@dataclass
class Recommendation:
    type: str
    message: str
    priority: str


@dataclass
class NextMeasurementAdvice:
    measure_on: date
    target_hour: int
    message: str


@dataclass
class InsightReport:
    """Report returned by every submission and insight query.

    Attributes:
        status:            'ok' or 'need_more_data'.
        message:           Headline for the caller.
        readings_count:    All stored readings (valid or not).
        valid_readings:    Readings usable by the estimators.
        required_readings: Usable readings needed before predictions appear.
        data_quality:      Mean quality over the whole history.
        current_phase:     Phase assessment (None while more data is needed).
        trends:            Trend summary (None while more data is needed).
        prediction:        Latest ensemble prediction (None while more data is needed).
        recommendations:   Ordered list of recommendations.
        next_measurement:  Advice for the next reading (None with no history).
    """

    status: str
    message: str
    readings_count: int
    valid_readings: int
    required_readings: int
    data_quality: float
    current_phase: PhaseAssessment | None = None
    trends: TrendSummary | None = None
    prediction: EnsemblePrediction | None = None
    recommendations: list[Recommendation] = field(default_factory=list)
    next_measurement: NextMeasurementAdvice | None = None


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def overall_data_quality(readings: Sequence[ProcessedReading]) -> float:
    """Mean quality over all readings (0.0 with no readings)."""
    if not readings:
        return 0.0
    return round(statistics.fmean(r.quality for r in readings), 6)


def _slope_per_day(window: Sequence[ProcessedReading]) -> float:
    if len(window) < 2:
        return 0.0
    start = window[0].timestamp
    days = [(r.timestamp - start).total_seconds() / 86400 for r in window]
    temps = [r.temperature_f for r in window]
    try:
        return statistics.linear_regression(days, temps).slope
    except statistics.StatisticsError:
        # All readings at the same instant
        return 0.0


def analyze_trends(
    valid_recent: Sequence[ProcessedReading],
    all_recent: Sequence[ProcessedReading],
    config: EngineConfig,
) -> TrendSummary:
    """Summarize the recent trend.

    Args:
        valid_recent: Most recent valid readings (temperature statistics).
        all_recent:   Most recent readings of any validity (habit statistics).
        config:       Engine config.

    Returns:
        TrendSummary.
    """
    cfg = config.insights
    temps = [r.temperature_f for r in valid_recent]

    slope = _slope_per_day(valid_recent)
    if slope > cfg.stable_slope_f_per_day:
        direction = "rising"
    elif slope < -cfg.stable_slope_f_per_day:
        direction = "falling"
    else:
        direction = "stable"

    diffs = [abs(b - a) for a, b in zip(temps, temps[1:])]
    consistency = _clamp(1.0 - statistics.fmean(diffs) / cfg.consistency_scale_f) if diffs else 1.0

    hours = [r.measurement_hour for r in all_recent]
    timing = _clamp(1.0 - statistics.pstdev(hours) / cfg.timing_scale_hours) if hours else 1.0

    late = sum(1 for h in hours if h > config.validation.latest_hour)

    return TrendSummary(
        readings_used=len(temps),
        mean_f=round(statistics.fmean(temps), 4) if temps else 0.0,
        min_f=min(temps) if temps else 0.0,
        max_f=max(temps) if temps else 0.0,
        slope_f_per_day=round(slope, 6),
        direction=direction,
        consistency=round(consistency, 6),
        timing_consistency=round(timing, 6),
        data_quality=overall_data_quality(all_recent),
        late_measurement_rate=round(late / len(hours), 6) if hours else 0.0,
    )


# ---------------------------------------------------------------------------
# Recommendations and advice
# ---------------------------------------------------------------------------


def generate_recommendations(
    phase: PhaseAssessment,
    trends: TrendSummary,
    config: EngineConfig,
) -> list[Recommendation]:
    """Build recommendations from the phase and trend-quality metrics."""
    cfg = config.insights
    recommendations: list[Recommendation] = []

    if phase.phase == PHASE_FOLLICULAR:
        recommendations.append(Recommendation(
            type="measurement",
            message="Take temperature at the same time daily for best accuracy",
            priority="high",
        ))
        recommendations.append(Recommendation(
            type="timing",
            message="Ovulation may occur soon - watch for temperature rise",
            priority="medium",
        ))
    elif phase.phase == PHASE_LUTEAL:
        days_left = max(0, config.ensemble.luteal_phase_days - (phase.days_post_ovulation or 0))
        recommendations.append(Recommendation(
            type="confirmation",
            message="Sustained temperature rise confirms ovulation",
            priority="high",
        ))
        recommendations.append(Recommendation(
            type="timing",
            message=f"Expect period in {days_left} days if not pregnant",
            priority="medium",
        ))
    elif phase.phase == PHASE_MENSTRUAL:
        recommendations.append(Recommendation(
            type="tracking",
            message="Keep measuring daily - a new follicular baseline forms after your period",
            priority="medium",
        ))

    if trends.consistency < cfg.consistency_threshold:
        recommendations.append(Recommendation(
            type="improvement",
            message="Consider using a smart thermometer for more consistent readings",
            priority="medium",
        ))

    if trends.data_quality < cfg.quality_threshold:
        recommendations.append(Recommendation(
            type="technique",
            message="Ensure 3+ hours of sleep before measuring and measure immediately upon waking",
            priority="high",
        ))

    if trends.late_measurement_rate > 0:
        latest = config.validation.latest_hour
        recommendations.append(Recommendation(
            type="timing_technique",
            message=(
                f"Measure before {latest}:00 AM, right after waking and before getting up - "
                "later readings run warm and are excluded from predictions"
            ),
            priority="high",
        ))

    return recommendations


def next_measurement_advice(
    recent: Sequence[ProcessedReading],
    config: EngineConfig,
) -> NextMeasurementAdvice | None:
    """Advise when to take the next reading, keeping the user's usual hour."""
    if not recent:
        return None

    cfg = config.insights
    target = statistics.median_low([r.measurement_hour for r in recent])
    if target > config.quality.late_hour:
        target = cfg.preferred_hour

    measure_on = recent[-1].reading_date + timedelta(days=1)
    return NextMeasurementAdvice(
        measure_on=measure_on,
        target_hour=target,
        message=(
            f"Measure on {measure_on.isoformat()} at about {target:02d}:00, "
            "immediately on waking and before getting out of bed"
        ),
    )


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class InsightGenerator:
    """Assemble InsightReports from the history and latest prediction."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self._config = config or get_engine_config()
        self._classifier = PhaseClassifier(self._config)

    def report(
        self,
        history: HistoryStore,
        prediction: EnsemblePrediction | None,
    ) -> InsightReport:
        """Build the insight report.

        Args:
            history:    The user's history store.
            prediction: Latest ensemble prediction (None below the threshold).

        Returns:
            InsightReport; ``need_more_data`` below the usable-reading minimum.
        """
        cfg = self._config.insights
        window = history.recent_window()
        recent = history.recent(cfg.trend_window)
        quality = overall_data_quality(history.readings)

        if len(window) < cfg.min_readings:
            return InsightReport(
                status=STATUS_NEED_MORE_DATA,
                message=(
                    "Need more data for meaningful insights "
                    f"({len(window)} of {cfg.min_readings} usable readings)"
                ),
                readings_count=len(history),
                valid_readings=len(window),
                required_readings=cfg.min_readings,
                data_quality=quality,
                next_measurement=next_measurement_advice(recent, self._config),
            )

        phase = self._classifier.classify(window)
        trends = analyze_trends(window[-cfg.trend_window:], recent, self._config)
        logger.debug(
            "Insights over %d valid readings: phase=%s, trend=%s, quality=%.2f",
            len(window), phase.phase, trends.direction, quality,
        )

        return InsightReport(
            status=STATUS_OK,
            message=phase.description,
            readings_count=len(history),
            valid_readings=len(window),
            required_readings=cfg.min_readings,
            data_quality=quality,
            current_phase=phase,
            trends=trends,
            prediction=prediction,
            recommendations=generate_recommendations(phase, trends, self._config),
            next_measurement=next_measurement_advice(recent, self._config),
        )
