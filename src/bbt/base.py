"""Canonical data models for the BBT ensemble prediction engine.

Raw readings arrive from an external collaborator, are normalized once into
ProcessedReading records, and are consumed by the estimators, combiner, and
insight generator.  These types are the single source of truth shared by
every module and by the export/import schema.

All temperatures are in °F.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class EstimatorKind(str, Enum):
    """The closed set of ensemble estimators."""

    THERMAL_SHIFT = "thermal_shift"
    COVERLINE = "coverline"
    BAYESIAN = "bayesian"
    TREND_FORECAST = "trend_forecast"

    def __str__(self) -> str:
        return self.value


class EstimatorStatus(str, Enum):
    OK = "ok"
    INSUFFICIENT_DATA = "insufficient_data"
    NO_SIGNAL = "no_signal"

    def __str__(self) -> str:
        return self.value


# ---------------------------------------------------------------------------
# Device calibration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DeviceCalibrationProfile:
    """Calibration profile for one device identifier.

    Attributes:
        profile:     Known profile name this device resolved to ('manual' for
                     unrecognized ids).
        offset_f:    Additive offset applied to adjusted temperatures.
        reliability: Device reliability multiplier (0.0–1.0).
        precision_f: Measurement precision of the device.
    """

    profile: str
    offset_f: float
    reliability: float
    precision_f: float


# ---------------------------------------------------------------------------
# Readings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReadingContext:
    """Behavioral and environmental confounds recorded with a reading.

    Attributes:
        time_of_day:           Measurement hour (0–23).  None = use the timestamp hour.
        sleep_quality:         Self-reported sleep quality (0–10).
        alcohol:               Alcohol consumed the evening before.
        illness:               Currently ill (fever, infection).
        stress_level:          Self-reported stress (0–10).
        medication:            Taking medication that may affect BBT.
        ambient_temperature_f: Room temperature at measurement time.
        location:              Free-form measurement location ('oral', 'vaginal').
    """

    time_of_day: int | None = None
    sleep_quality: float | None = None
    alcohol: bool = False
    illness: bool = False
    stress_level: float | None = None
    medication: bool = False
    ambient_temperature_f: float | None = None
    location: str | None = None


@dataclass(frozen=True)
class RawReading:
    """A single unprocessed BBT measurement as supplied by the caller."""

    temperature_f: float
    timestamp: datetime
    device_id: str = "manual"
    context: ReadingContext = field(default_factory=ReadingContext)

    @property
    def measurement_hour(self) -> int:
        if self.context.time_of_day is not None:
            return self.context.time_of_day
        return self.timestamp.hour


@dataclass(frozen=True)
class ProcessedReading:
    """A normalized reading stored in the history.

    Attributes:
        timestamp:              When the temperature was taken.
        device_id:              Device identifier as submitted.
        original_temperature_f: Raw submitted temperature (kept for audit).
        adjusted_temperature_f: Confound-adjusted temperature before calibration.
        temperature_f:          Calibrated temperature consumed by estimators.
        calibration:            Calibration profile applied to this reading.
        validation_issues:      Issue codes raised by validation.
        is_valid:               True if no validation issue was raised.
        quality:                Data quality score (0.0–1.0).
        reliability:            Trust in the measurement (0.0–1.0).
        measurement_hour:       Hour of day the reading was taken.
        context:                Confounds recorded with the reading.
    """

    timestamp: datetime
    device_id: str
    original_temperature_f: float
    adjusted_temperature_f: float
    temperature_f: float
    calibration: DeviceCalibrationProfile
    validation_issues: tuple[str, ...] = ()
    is_valid: bool = True
    quality: float = 1.0
    reliability: float = 1.0
    measurement_hour: int = 6
    context: ReadingContext = field(default_factory=ReadingContext)

    @property
    def reading_date(self) -> date:
        return self.timestamp.date()


# ---------------------------------------------------------------------------
# Estimator / ensemble results
# ---------------------------------------------------------------------------


@dataclass
class EstimatorResult:
    """Ovulation hypothesis produced by one estimator.

    Attributes:
        kind:           Which estimator produced this result.
        ovulation_date: Hypothesized ovulation date (None = abstain).
        confidence:     0.0–1.0 confidence in the hypothesis.
        status:         'ok', 'insufficient_data', or 'no_signal'.
        details:        Method-specific auxiliary values (JSON-safe).
    """

    kind: EstimatorKind
    ovulation_date: date | None = None
    confidence: float = 0.0
    status: EstimatorStatus = EstimatorStatus.OK
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def has_prediction(self) -> bool:
        return self.ovulation_date is not None

    @classmethod
    def insufficient(cls, kind: EstimatorKind, available: int, required: int) -> EstimatorResult:
        return cls(
            kind=kind,
            status=EstimatorStatus.INSUFFICIENT_DATA,
            details={"readings": available, "required": required},
        )


@dataclass
class NextPeriodProjection:
    """Projected temperature around the next expected period.

    Attributes:
        expected_date:           Projected period start.
        expected_temperature_f:  Expected BBT at period start.
        low_f:                   Lower edge of the expected band.
        high_f:                  Upper edge of the expected band.
        confidence:              Confidence in the projection.
    """

    expected_date: date
    expected_temperature_f: float
    low_f: float
    high_f: float
    confidence: float


@dataclass
class EnsemblePrediction:
    """Combined, confidence-weighted ovulation prediction.

    Attributes:
        ovulation_date:       Weighted ovulation date (None if no estimator contributed).
        confidence:           Weighted confidence of contributing estimators.
        fertile_window_start: First fertile day (ovulation − 5 days).
        fertile_window_end:   Last fertile day (ovulation day).
        next_period:          Projection of next-period temperature.
        weights_applied:      Renormalized weight per contributing estimator.
        estimator_results:    All four estimator results keyed by kind.
        status:               'ok', 'no_consensus', or 'insufficient_data'.
    """

    ovulation_date: date | None = None
    confidence: float = 0.0
    fertile_window_start: date | None = None
    fertile_window_end: date | None = None
    next_period: NextPeriodProjection | None = None
    weights_applied: dict[str, float] = field(default_factory=dict)
    estimator_results: dict[str, EstimatorResult] = field(default_factory=dict)
    status: str = "ok"
