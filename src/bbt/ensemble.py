"""Ensemble combiner.

Runs the four estimators over the same window and merges their hypotheses
with fixed weights (thermal shift 0.30, coverline 0.25, Bayesian 0.25,
trend forecast 0.20).  Estimators that abstain drop out and the remaining
weights are renormalized to sum to 1.0.

All weights are read from bbt_config.yaml via the config_loader module.
"""

from __future__ import annotations

import logging
import math
import statistics
from datetime import date, timedelta
from typing import Iterable, Sequence

from src.bbt.base import (
    EnsemblePrediction,
    EstimatorResult,
    EstimatorStatus,
    NextPeriodProjection,
    ProcessedReading,
)
from src.bbt.config_loader import EngineConfig, EnsembleConfig, get_engine_config
from src.bbt.estimators import Estimator, build_estimators
from src.bbt.estimators.base import reference_date

logger = logging.getLogger("bbt.ensemble")

STATUS_OK = "ok"
STATUS_NO_CONSENSUS = "no_consensus"
STATUS_INSUFFICIENT = "insufficient_data"


# ---------------------------------------------------------------------------
# Combination helpers
# ---------------------------------------------------------------------------


def _weighted_average(values: dict[str, float], weights: dict[str, float]) -> float:
    """Compute a weighted average of values.

    Args:
        values:  key → value.
        weights: key → weight (need not sum to 1).

    Returns:
        Weighted average value.
    """
    total_weight = sum(weights.get(k, 0.0) for k in values)
    if total_weight == 0.0:
        # Fall back to simple average
        return sum(values.values()) / len(values)
    return sum(val * weights.get(k, 0.0) for k, val in values.items()) / total_weight


def renormalize(weights: dict[str, float], keys: Iterable[str]) -> dict[str, float]:
    """Restrict weights to ``keys`` and rescale them to sum to 1.0."""
    subset = {k: weights.get(k, 0.0) for k in keys}
    total = sum(subset.values())
    if total == 0.0:
        return {k: 1.0 / len(subset) for k in subset} if subset else {}
    return {k: w / total for k, w in subset.items()}


def _average_date(dates: dict[str, date], weights: dict[str, float]) -> date:
    ordinal = _weighted_average({k: float(d.toordinal()) for k, d in dates.items()}, weights)
    return date.fromordinal(math.floor(ordinal + 0.5))


def follicular_baseline_temperature(
    window: Sequence[ProcessedReading],
    cfg: EnsembleConfig,
) -> float:
    """Mean of recent low readings, used as the follicular baseline.

    A reading counts as low when it sits below the moving average of the last
    six readings plus 0.1°F.  Falls back to 97.5°F with too few low readings.
    """
    temps = [r.temperature_f for r in window]
    if len(temps) < cfg.baseline_moving_average:
        return cfg.default_baseline_f

    moving_average = statistics.fmean(temps[-cfg.baseline_moving_average:])
    lows = [t for t in temps if t < moving_average + cfg.baseline_margin_f]
    lows = lows[-cfg.baseline_lookback:]
    if len(lows) < cfg.min_baseline_readings:
        return cfg.default_baseline_f
    return statistics.fmean(lows)


def project_next_period(
    window: Sequence[ProcessedReading],
    cfg: EnsembleConfig,
) -> NextPeriodProjection:
    """Project the temperature at the next period, one luteal phase from now."""
    baseline = follicular_baseline_temperature(window, cfg)
    expected = baseline + cfg.next_period_offset_f
    return NextPeriodProjection(
        expected_date=reference_date(window) + timedelta(days=cfg.luteal_phase_days),
        expected_temperature_f=round(expected, 4),
        low_f=round(expected - cfg.next_period_band_f, 4),
        high_f=round(expected + cfg.next_period_band_f, 4),
        confidence=cfg.next_period_confidence,
    )


# ---------------------------------------------------------------------------
# Combiner
# ---------------------------------------------------------------------------


class EnsembleCombiner:
    """Run all estimators and merge their results.

    Usage::

        combiner = EnsembleCombiner()
        prediction = combiner.predict(history.recent_window())
        print(prediction.ovulation_date, prediction.fertile_window_start)
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        estimators: list[Estimator] | None = None,
    ) -> None:
        self._config = config or get_engine_config()
        self._estimators = estimators if estimators is not None else build_estimators(self._config)

    @property
    def _cfg(self) -> EnsembleConfig:
        return self._config.ensemble

    def predict(self, window: Sequence[ProcessedReading]) -> EnsemblePrediction:
        """Run every estimator over ``window`` and combine the results."""
        results = [estimator.estimate(window) for estimator in self._estimators]
        return self.combine(results, window)

    def combine(
        self,
        results: Iterable[EstimatorResult],
        window: Sequence[ProcessedReading],
    ) -> EnsemblePrediction:
        """Merge estimator results into one prediction.

        Args:
            results: One result per estimator.
            window:  The window the results were computed from.

        Returns:
            EnsemblePrediction.  ``insufficient_data`` when the window is
            below the minimum or every estimator lacked data;
            ``no_consensus`` when no estimator produced a date.
        """
        cfg = self._cfg
        by_kind = {str(r.kind): r for r in results}

        if len(window) < cfg.min_readings or all(
            r.status == EstimatorStatus.INSUFFICIENT_DATA for r in by_kind.values()
        ):
            return EnsemblePrediction(status=STATUS_INSUFFICIENT, estimator_results=by_kind)

        next_period = project_next_period(window, cfg)
        contributing = {k: r for k, r in by_kind.items() if r.has_prediction}

        if not contributing:
            logger.info("No estimator produced an ovulation date over %d readings", len(window))
            return EnsemblePrediction(
                next_period=next_period,
                estimator_results=by_kind,
                status=STATUS_NO_CONSENSUS,
            )

        weights = renormalize(cfg.weights, contributing)
        ovulation_date = _average_date(
            {k: r.ovulation_date for k, r in contributing.items()},  # type: ignore[misc]
            weights,
        )
        confidence = _weighted_average({k: r.confidence for k, r in contributing.items()}, weights)
        confidence = min(max(confidence, 0.0), 1.0)

        fertile_start = ovulation_date - timedelta(days=cfg.fertile_window_days - 1)

        logger.info(
            "Ensemble ovulation ~%s (confidence=%.2f, %d/%d estimators)",
            ovulation_date, confidence, len(contributing), len(by_kind),
        )

        return EnsemblePrediction(
            ovulation_date=ovulation_date,
            confidence=round(confidence, 6),
            fertile_window_start=fertile_start,
            fertile_window_end=ovulation_date,
            next_period=next_period,
            weights_applied=weights,
            estimator_results=by_kind,
            status=STATUS_OK,
        )
