"""Coverline estimator (Fertility Awareness "three over six" rule).

1. Find the most recent sustained rise: the mean of 3 readings beats the mean
   of the 6 before them by more than 0.2°F.  The first index of that rise
   episode anchors the coverline.
2. Coverline = highest of those 6 low readings + 0.1°F.
3. From the anchor's low run onward, ovulation is the first reading at or
   above the coverline that follows a reading below it and is itself followed
   by another reading at or above it.
"""

from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass
from typing import Sequence

from src.bbt.base import EstimatorKind, EstimatorResult, EstimatorStatus, ProcessedReading
from src.bbt.config_loader import CoverlineConfig
from src.bbt.estimators.base import Estimator, temperatures

logger = logging.getLogger("bbt.estimators.coverline")


@dataclass
class Coverline:
    value: float
    base_index: int
    rise_index: int


def find_coverline(temps: Sequence[float], cfg: CoverlineConfig) -> Coverline | None:
    """Locate the coverline below the most recent sustained rise."""
    rises: list[int] = []
    for i in range(cfg.pre_window, len(temps) - cfg.post_window + 1):
        pre = statistics.fmean(temps[i - cfg.pre_window:i])
        post = statistics.fmean(temps[i:i + cfg.post_window])
        if post - pre > cfg.rise_threshold_f:
            rises.append(i)

    if not rises:
        return None

    # Walk back to the start of the latest run of consecutive rise indices
    rise_index = rises[-1]
    for i in reversed(rises[:-1]):
        if i != rise_index - 1:
            break
        rise_index = i

    base_index = rise_index - cfg.pre_window
    highest_low = max(temps[base_index:rise_index])
    return Coverline(value=highest_low + cfg.margin_f, base_index=base_index, rise_index=rise_index)


def find_crossing(temps: Sequence[float], coverline: float, start: int = 0) -> int | None:
    """Return the index of the first reading confirming a crossing, or None."""
    for i in range(start, len(temps) - 2):
        if temps[i] < coverline and temps[i + 1] >= coverline and temps[i + 2] >= coverline:
            return i + 1
    return None


class CoverlineEstimator(Estimator):
    """Date ovulation where temperatures cross above the coverline."""

    kind = EstimatorKind.COVERLINE

    @property
    def _cfg(self) -> CoverlineConfig:
        return self._config.estimators.coverline

    @property
    def min_readings(self) -> int:
        return self._cfg.min_readings

    def _estimate(self, window: list[ProcessedReading]) -> EstimatorResult:
        temps = temperatures(window)
        coverline = find_coverline(temps, self._cfg)
        if coverline is None:
            return EstimatorResult(kind=self.kind, status=EstimatorStatus.NO_SIGNAL)

        index = find_crossing(temps, coverline.value, start=coverline.base_index)
        if index is None:
            return EstimatorResult(
                kind=self.kind,
                status=EstimatorStatus.NO_SIGNAL,
                details={"coverline_f": round(coverline.value, 4)},
            )

        logger.debug("Coverline %.2f°F crossed at index %d", coverline.value, index)
        return EstimatorResult(
            kind=self.kind,
            ovulation_date=window[index].reading_date,
            confidence=self._cfg.confidence,
            details={
                "coverline_f": round(coverline.value, 4),
                "ovulation_index": index,
                "rise_index": coverline.rise_index,
            },
        )
