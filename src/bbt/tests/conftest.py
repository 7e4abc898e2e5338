"""Shared fixtures and reading builders for BBT engine tests."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Sequence

import pytest

from src.bbt.base import DeviceCalibrationProfile, ProcessedReading, ReadingContext
from src.bbt.config_loader import EngineConfig, load_engine_config
from src.bbt.engine import BBTPredictionEngine
from src.bbt.insights import InsightReport

# Canonical first reading: 06:00, the reference measurement hour
TEST_START = datetime(2026, 2, 1, 6, 0)

# 20 follicular readings then a clean +0.4°F sustained rise
SHIFT_TEMPS = [97.3] * 20 + [97.7] * 10

MANUAL_PROFILE = DeviceCalibrationProfile(
    profile="manual", offset_f=0.0, reliability=0.7, precision_f=0.1
)


# ---------------------------------------------------------------------------
# Config / engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine_config() -> EngineConfig:
    """Load the real engine config for tests."""
    return load_engine_config()


@pytest.fixture
def engine(engine_config: EngineConfig) -> BBTPredictionEngine:
    return BBTPredictionEngine(engine_config)


@pytest.fixture
def shifted_engine(engine: BBTPredictionEngine) -> BBTPredictionEngine:
    """Engine holding the 20 × 97.3°F + 10 × 97.7°F shift scenario."""
    submit_series(engine, SHIFT_TEMPS)
    return engine


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_reading(
    temp: float,
    day: int = 0,
    hour: int = 6,
    device_id: str = "manual",
    quality: float = 0.7,
    is_valid: bool = True,
) -> ProcessedReading:
    """A processed reading as the normalizer would store it for a manual device."""
    timestamp = TEST_START.replace(hour=hour) + timedelta(days=day)
    return ProcessedReading(
        timestamp=timestamp,
        device_id=device_id,
        original_temperature_f=temp,
        adjusted_temperature_f=temp,
        temperature_f=temp,
        calibration=MANUAL_PROFILE,
        validation_issues=() if is_valid else ("temperature_out_of_range",),
        is_valid=is_valid,
        quality=quality,
        reliability=MANUAL_PROFILE.reliability,
        measurement_hour=hour,
        context=ReadingContext(),
    )


def make_window(temps: Sequence[float], quality: float = 0.7) -> list[ProcessedReading]:
    """One valid reading per day, oldest first."""
    return [make_reading(t, day=i, quality=quality) for i, t in enumerate(temps)]


def submit_series(
    engine: BBTPredictionEngine,
    temps: Sequence[float],
    start: datetime = TEST_START,
    device_id: str = "manual",
    **context: Any,
) -> InsightReport | None:
    """Submit one reading per day and return the last report."""
    report = None
    for i, temp in enumerate(temps):
        report = engine.submit_reading(temp, start + timedelta(days=i), device_id=device_id, **context)
    return report
