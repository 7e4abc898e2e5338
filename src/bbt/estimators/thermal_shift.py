"""Thermal shift estimator.

Slides a 6-vs-3 reading window across the history.  Wherever the mean of the
three readings starting at *i* exceeds the mean of the six readings before
*i* by more than 0.2°F, *i* is a candidate shift.  Adjacent candidates
describe the same rise, so they are grouped into episodes; the most recent
episode wins and is dated at its strongest candidate.

    strength = min(0.95, 0.5 + 2 × magnitude)
"""

from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass
from typing import Sequence

from src.bbt.base import EstimatorKind, EstimatorResult, EstimatorStatus, ProcessedReading
from src.bbt.config_loader import ThermalShiftConfig
from src.bbt.estimators.base import Estimator, temperatures

logger = logging.getLogger("bbt.estimators.thermal_shift")


@dataclass
class ThermalShift:
    """One candidate shift.

    Attributes:
        index:     Window index of the first elevated reading.
        magnitude: post_mean − pre_mean in °F.
        strength:  Confidence derived from the magnitude.
        pre_mean:  Mean of the readings before the shift.
        post_mean: Mean of the readings from the shift onward.
    """

    index: int
    magnitude: float
    strength: float
    pre_mean: float
    post_mean: float


def detect_thermal_shifts(temps: Sequence[float], cfg: ThermalShiftConfig) -> list[ThermalShift]:
    """Return every candidate shift in index order.

    Args:
        temps: Temperatures, oldest first.
        cfg:   Thermal shift settings.

    Returns:
        Candidate shifts (possibly empty).
    """
    shifts: list[ThermalShift] = []
    for i in range(cfg.pre_window, len(temps) - 1):
        pre = statistics.fmean(temps[i - cfg.pre_window:i])
        post = statistics.fmean(temps[i:i + cfg.post_window])
        magnitude = post - pre
        if magnitude > cfg.shift_threshold_f:
            shifts.append(
                ThermalShift(
                    index=i,
                    magnitude=magnitude,
                    strength=min(cfg.max_strength, cfg.base_strength + magnitude * cfg.strength_per_degree),
                    pre_mean=pre,
                    post_mean=post,
                )
            )
    return shifts


def latest_shift(shifts: Sequence[ThermalShift]) -> ThermalShift | None:
    """Pick the strongest candidate of the most recent shift episode.

    An episode is a run of candidates at consecutive indices.  Ties on
    magnitude resolve to the earliest index.
    """
    if not shifts:
        return None

    episode = [shifts[-1]]
    for shift in reversed(shifts[:-1]):
        if shift.index != episode[-1].index - 1:
            break
        episode.append(shift)

    episode.reverse()
    return max(episode, key=lambda s: s.magnitude)


class ThermalShiftEstimator(Estimator):
    """Date ovulation at the most recent sustained temperature rise."""

    kind = EstimatorKind.THERMAL_SHIFT

    @property
    def _cfg(self) -> ThermalShiftConfig:
        return self._config.estimators.thermal_shift

    @property
    def min_readings(self) -> int:
        return self._cfg.min_readings

    def _estimate(self, window: list[ProcessedReading]) -> EstimatorResult:
        shifts = detect_thermal_shifts(temperatures(window), self._cfg)
        best = latest_shift(shifts)

        if best is None:
            return EstimatorResult(
                kind=self.kind,
                status=EstimatorStatus.NO_SIGNAL,
                details={"candidates": 0},
            )

        ovulation_date = window[best.index].reading_date
        logger.debug(
            "Thermal shift at index %d (%s): +%.3f°F, strength=%.2f",
            best.index, ovulation_date, best.magnitude, best.strength,
        )
        return EstimatorResult(
            kind=self.kind,
            ovulation_date=ovulation_date,
            confidence=best.strength,
            details={
                "shift_index": best.index,
                "shift_magnitude_f": round(best.magnitude, 4),
                "pre_shift_mean_f": round(best.pre_mean, 4),
                "post_shift_mean_f": round(best.post_mean, 4),
                "candidates": len(shifts),
            },
        )
