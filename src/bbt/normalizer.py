"""Normalize raw BBT readings into ProcessedReading records.

Pipeline (each step a pure function of its inputs):

1. Confound adjustment: compensate for late measurement, poor sleep,
   alcohol, illness, and stress.
2. Validation: range check, late-measurement check, and a consistency check
   against the same device's recent readings.
3. Calibration: add the device's offset.
4. Quality and reliability scoring.

The normalizer never raises: out-of-range or anomalous readings come back
marked invalid with a reduced quality score.
"""

from __future__ import annotations

import logging
import statistics
from typing import Sequence

from src.bbt.base import DeviceCalibrationProfile, ProcessedReading, RawReading
from src.bbt.calibration import DeviceCalibrationRegistry
from src.bbt.config_loader import (
    ConfoundConfig,
    EngineConfig,
    QualityConfig,
    ValidationConfig,
    get_engine_config,
)
from src.bbt.history import HistoryStore

logger = logging.getLogger("bbt.normalizer")

ISSUE_OUT_OF_RANGE = "temperature_out_of_range"
ISSUE_LATE_MEASUREMENT = "late_measurement"
ISSUE_ANOMALY = "temperature_anomaly"


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


# ---------------------------------------------------------------------------
# Pipeline steps
# ---------------------------------------------------------------------------


def adjust_for_confounds(raw: RawReading, cfg: ConfoundConfig) -> float:
    """Return the confound-adjusted temperature for a raw reading.

    Args:
        raw: The submitted reading.
        cfg: Confound coefficients.

    Returns:
        Adjusted temperature in °F.
    """
    ctx = raw.context
    adjusted = raw.temperature_f

    hour = raw.measurement_hour
    if hour > cfg.reference_hour:
        # BBT climbs once awake
        adjusted -= (hour - cfg.reference_hour) * cfg.drift_per_hour_f

    if ctx.sleep_quality is not None and ctx.sleep_quality < cfg.sleep_quality_target:
        adjusted += (cfg.sleep_quality_target - ctx.sleep_quality) * cfg.sleep_deficit_per_point_f

    if ctx.alcohol:
        adjusted += cfg.alcohol_adjustment_f

    if ctx.illness:
        adjusted += cfg.illness_adjustment_f

    if ctx.stress_level is not None and ctx.stress_level > cfg.stress_threshold:
        adjusted += (ctx.stress_level - cfg.stress_threshold) * cfg.stress_per_point_f

    return adjusted


def validate_reading(
    adjusted_temp: float,
    measurement_hour: int,
    device_history: Sequence[ProcessedReading],
    cfg: ValidationConfig,
) -> list[str]:
    """Collect validation issues for an adjusted temperature.

    Args:
        adjusted_temp:    Confound-adjusted temperature (pre-calibration).
        measurement_hour: Hour the reading was taken.
        device_history:   Earlier readings from the same device, oldest first.
        cfg:              Validation thresholds.

    Returns:
        List of issue codes (empty = valid).
    """
    issues: list[str] = []

    if adjusted_temp < cfg.min_temp_f or adjusted_temp > cfg.max_temp_f:
        issues.append(ISSUE_OUT_OF_RANGE)

    if measurement_hour > cfg.latest_hour:
        issues.append(ISSUE_LATE_MEASUREMENT)

    trailing = list(device_history)[-cfg.consistency_window:]
    if len(trailing) >= cfg.min_device_history:
        trailing_mean = statistics.mean(r.adjusted_temperature_f for r in trailing)
        if abs(adjusted_temp - trailing_mean) > cfg.anomaly_threshold_f:
            issues.append(ISSUE_ANOMALY)

    return issues


def score_quality(
    raw: RawReading,
    issues: Sequence[str],
    calibration: DeviceCalibrationProfile,
    cfg: QualityConfig,
) -> float:
    """Score data quality in [0.0, 1.0]."""
    ctx = raw.context
    quality = 1.0 - len(issues) * cfg.issue_penalty

    if raw.measurement_hour > cfg.late_hour:
        quality -= cfg.late_penalty
    if ctx.sleep_quality is not None and ctx.sleep_quality < cfg.poor_sleep_threshold:
        quality -= cfg.poor_sleep_penalty
    if ctx.alcohol:
        quality -= cfg.alcohol_penalty
    if ctx.illness:
        quality -= cfg.illness_penalty
    if ctx.stress_level is not None and ctx.stress_level > cfg.high_stress_threshold:
        quality -= cfg.high_stress_penalty

    return _clamp(quality * calibration.reliability)


def score_reliability(
    raw: RawReading,
    calibration: DeviceCalibrationProfile,
    cfg: QualityConfig,
) -> float:
    """Score trust in the measurement in [0.0, 1.0].

    Starts from the device reliability; illness and medication reduce trust.
    """
    reliability = calibration.reliability
    if raw.context.illness:
        reliability *= cfg.illness_trust_factor
    if raw.context.medication:
        reliability *= cfg.medication_trust_factor
    return _clamp(reliability)


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------


class ReadingNormalizer:
    """Turn RawReading into ProcessedReading.

    Usage::

        normalizer = ReadingNormalizer(config, registry)
        processed = normalizer.process(raw, history)
        if not processed.is_valid:
            print(processed.validation_issues)
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        registry: DeviceCalibrationRegistry | None = None,
    ) -> None:
        self._config = config or get_engine_config()
        self._registry = registry or DeviceCalibrationRegistry(self._config)

    @property
    def registry(self) -> DeviceCalibrationRegistry:
        return self._registry

    def process(self, raw: RawReading, history: HistoryStore | None = None) -> ProcessedReading:
        """Normalize one raw reading.

        Args:
            raw:     Reading as submitted.
            history: Existing history, used for the device consistency check.

        Returns:
            ProcessedReading (possibly invalid / low quality).
        """
        cfg = self._config
        hour = raw.measurement_hour

        adjusted = adjust_for_confounds(raw, cfg.confounds)

        device_history = (
            history.device_readings(
                raw.device_id,
                limit=cfg.validation.consistency_window,
                before=raw.timestamp,
            )
            if history is not None
            else []
        )
        issues = validate_reading(adjusted, hour, device_history, cfg.validation)

        calibration = self._registry.get_or_create(raw.device_id)
        calibrated = adjusted + calibration.offset_f

        quality = score_quality(raw, issues, calibration, cfg.quality)
        reliability = score_reliability(raw, calibration, cfg.quality)

        if issues:
            logger.warning(
                "Reading %.2f°F at %s from %r flagged: %s",
                raw.temperature_f, raw.timestamp.isoformat(), raw.device_id, ", ".join(issues),
            )
        else:
            logger.debug(
                "Processed %.2f°F → %.3f°F (device=%r, quality=%.2f)",
                raw.temperature_f, calibrated, raw.device_id, quality,
            )

        return ProcessedReading(
            timestamp=raw.timestamp,
            device_id=raw.device_id,
            original_temperature_f=raw.temperature_f,
            adjusted_temperature_f=adjusted,
            temperature_f=calibrated,
            calibration=calibration,
            validation_issues=tuple(issues),
            is_valid=not issues,
            quality=quality,
            reliability=reliability,
            measurement_hour=hour,
            context=raw.context,
        )
