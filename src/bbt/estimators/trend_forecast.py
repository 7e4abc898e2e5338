"""Trend forecast estimator.

A fixed-weight two-unit network over six features of the last 14 readings:

    h1 = tanh(w0·(latest − c) + w1·trend + w2·variance + b0)
    h2 = tanh(w3·(moving_avg − c) + w4·length + w5·quality + b1)
    p  = sigmoid(v0·h1 + v1·h2 + b)

``c`` centres the temperature features.  The weights are constants from
bbt_config.yaml; no training happens at runtime, so the output is
reproducible for a given window.

    p > 0.7        → ovulation yesterday
    0.3 < p ≤ 0.7  → ovulation in two days
    otherwise      → no prediction
"""

from __future__ import annotations

import logging
import math
import statistics
from dataclasses import dataclass
from datetime import timedelta

from src.bbt.base import EstimatorKind, EstimatorResult, EstimatorStatus, ProcessedReading
from src.bbt.config_loader import TrendForecastConfig
from src.bbt.estimators.base import Estimator, reference_date

logger = logging.getLogger("bbt.estimators.trend_forecast")


@dataclass
class TrendFeatures:
    latest: float
    trend: float
    variance: float
    moving_average: float
    window_length: int
    mean_quality: float


def extract_features(window: list[ProcessedReading], feature_window: int) -> TrendFeatures:
    """Compute the six network features from the most recent readings."""
    recent = window[-feature_window:]
    temps = [r.temperature_f for r in recent]

    last_three = temps[-3:]
    earlier = temps[-6:-3]
    trend = statistics.fmean(last_three) - statistics.fmean(earlier) if earlier else 0.0

    return TrendFeatures(
        latest=temps[-1],
        trend=trend,
        variance=statistics.pvariance(temps),
        moving_average=statistics.fmean(temps),
        window_length=len(recent),
        mean_quality=statistics.fmean(r.quality for r in recent),
    )


def hidden_layer(features: TrendFeatures, cfg: TrendForecastConfig) -> tuple[float, float]:
    w = cfg.hidden_weights
    h1 = math.tanh(
        (features.latest - cfg.feature_center_f) * w[0]
        + features.trend * w[1]
        + features.variance * w[2]
        + cfg.hidden_bias[0]
    )
    h2 = math.tanh(
        (features.moving_average - cfg.feature_center_f) * w[3]
        + features.window_length * w[4]
        + features.mean_quality * w[5]
        + cfg.hidden_bias[1]
    )
    return h1, h2


def ovulation_probability(hidden: tuple[float, float], cfg: TrendForecastConfig) -> float:
    z = hidden[0] * cfg.output_weights[0] + hidden[1] * cfg.output_weights[1] + cfg.output_bias
    return 1.0 / (1.0 + math.exp(-z))


def temperature_forecast(h1: float, cfg: TrendForecastConfig) -> list[dict[str, float]]:
    """Deterministic forecast for the next ``forecast_days`` days."""
    forecast = []
    for day in range(1, cfg.forecast_days + 1):
        predicted = (
            cfg.forecast_baseline_f
            + h1 * cfg.forecast_hidden_scale_f
            + math.sin(day / cfg.forecast_days * math.pi) * cfg.forecast_amplitude_f
        )
        forecast.append(
            {
                "day": day,
                "temperature_f": round(predicted, 4),
                "uncertainty_f": round(
                    cfg.forecast_base_uncertainty_f + day * cfg.forecast_uncertainty_step_f, 4
                ),
            }
        )
    return forecast


class TrendForecastEstimator(Estimator):
    """Classify the recent trend into an ovulation timing hypothesis."""

    kind = EstimatorKind.TREND_FORECAST

    @property
    def _cfg(self) -> TrendForecastConfig:
        return self._config.estimators.trend_forecast

    @property
    def min_readings(self) -> int:
        return self._cfg.min_readings

    def _estimate(self, window: list[ProcessedReading]) -> EstimatorResult:
        cfg = self._cfg
        features = extract_features(window, cfg.feature_window)
        h1, h2 = hidden_layer(features, cfg)
        probability = ovulation_probability((h1, h2), cfg)
        confidence = abs(probability - 0.5) * 2

        today = reference_date(window)
        if probability > cfg.high_probability:
            ovulation_date = today - timedelta(days=1)
        elif probability > cfg.low_probability:
            ovulation_date = today + timedelta(days=2)
        else:
            ovulation_date = None

        logger.debug("Trend forecast p=%.3f (h1=%.3f, h2=%.3f)", probability, h1, h2)

        return EstimatorResult(
            kind=self.kind,
            ovulation_date=ovulation_date,
            confidence=confidence,
            status=EstimatorStatus.OK if ovulation_date else EstimatorStatus.NO_SIGNAL,
            details={
                "ovulation_probability": round(probability, 6),
                "hidden": [round(h1, 6), round(h2, 6)],
                "forecast": temperature_forecast(h1, cfg),
            },
        )
