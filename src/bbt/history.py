"""Append-only, time-ordered store of processed readings.

Readings are inserted in timestamp order (equal timestamps keep arrival
order), so out-of-order submissions are accepted and sorted logically.
Invalid readings are retained for audit and export but never appear in an
estimator window.
"""

from __future__ import annotations

import bisect
import logging
from datetime import datetime
from operator import attrgetter
from typing import Iterable

from src.bbt.base import ProcessedReading
from src.bbt.config_loader import EngineConfig, get_engine_config

logger = logging.getLogger("bbt.history")

_by_timestamp = attrgetter("timestamp")


class HistoryStore:
    """Processed-reading history for a single user.

    Single-writer: callers must serialize ``append`` for the same store.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        readings: Iterable[ProcessedReading] = (),
    ) -> None:
        self._config = config or get_engine_config()
        self._readings: list[ProcessedReading] = sorted(readings, key=_by_timestamp)

    def __len__(self) -> int:
        return len(self._readings)

    @property
    def readings(self) -> list[ProcessedReading]:
        """All stored readings in time order (a copy)."""
        return list(self._readings)

    @property
    def valid_count(self) -> int:
        return sum(1 for r in self._readings if r.is_valid)

    def append(self, reading: ProcessedReading) -> None:
        """Insert a reading in time order and apply the retention limit."""
        bisect.insort_right(self._readings, reading, key=_by_timestamp)

        limit = self._config.history.retention_limit
        if limit is not None and len(self._readings) > limit:
            dropped = len(self._readings) - limit
            del self._readings[:dropped]
            logger.debug("Retention limit %d reached: dropped %d oldest readings", limit, dropped)

    def recent_window(self, n: int | None = None) -> list[ProcessedReading]:
        """Return the last ``n`` valid readings in time order.

        Args:
            n: Window size.  Defaults to history.window_size (60).

        Returns:
            Up to ``n`` valid readings, oldest first.
        """
        size = n if n is not None else self._config.history.window_size
        window: list[ProcessedReading] = []
        for reading in reversed(self._readings):
            if len(window) >= size:
                break
            if reading.is_valid:
                window.append(reading)
        window.reverse()
        return window

    def recent(self, n: int) -> list[ProcessedReading]:
        """Return the last ``n`` readings regardless of validity."""
        return self._readings[-n:] if n > 0 else []

    def device_readings(
        self,
        device_id: str,
        limit: int | None = None,
        before: datetime | None = None,
    ) -> list[ProcessedReading]:
        """Return the most recent readings from one device, oldest first.

        Readings of any validity are included.  With ``before``, only readings
        taken strictly earlier than that instant are considered.
        """
        end = len(self._readings)
        if before is not None:
            end = bisect.bisect_left(self._readings, before, key=_by_timestamp)
        matches = [r for r in self._readings[:end] if r.device_id == device_id]
        if limit is not None:
            matches = matches[-limit:]
        return matches
