"""Estimator interface shared by the four ensemble members.

Every estimator consumes the same time-ordered window of valid
ProcessedReadings and returns an EstimatorResult.  Estimators hold only
their configuration; there is no state between calls.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Sequence

from src.bbt.base import EstimatorKind, EstimatorResult, ProcessedReading
from src.bbt.config_loader import EngineConfig, get_engine_config


class Estimator(ABC):
    """Abstract base class for ovulation estimators.

    Subclasses set ``kind`` and implement ``_estimate``.  The public
    ``estimate`` applies the insufficient-data guard first.
    """

    kind: EstimatorKind

    def __init__(self, config: EngineConfig | None = None) -> None:
        self._config = config or get_engine_config()

    @property
    @abstractmethod
    def min_readings(self) -> int:
        """Fewest readings this estimator needs to produce a hypothesis."""
        ...

    def estimate(self, window: Sequence[ProcessedReading]) -> EstimatorResult:
        """Estimate ovulation from a time-ordered window of valid readings.

        Args:
            window: Valid processed readings, oldest first.

        Returns:
            EstimatorResult; ``insufficient_data`` below ``min_readings``.
        """
        if len(window) < self.min_readings:
            return EstimatorResult.insufficient(self.kind, len(window), self.min_readings)
        return self._estimate(list(window))

    @abstractmethod
    def _estimate(self, window: list[ProcessedReading]) -> EstimatorResult:
        ...


# ---------------------------------------------------------------------------
# Helpers shared by estimators
# ---------------------------------------------------------------------------


def temperatures(window: Sequence[ProcessedReading]) -> list[float]:
    return [r.temperature_f for r in window]


def reference_date(window: Sequence[ProcessedReading]) -> date:
    """The engine's notion of "today": the date of the latest reading."""
    return window[-1].reading_date
