"""BBTPredictionEngine: the single entry point for one user's BBT tracking.

Orchestrates the per-reading pipeline:

    RawReading → ReadingNormalizer → HistoryStore → EnsembleCombiner → InsightGenerator

The engine is synchronous and performs no I/O.  One instance serves one
user; callers serialize writes to the same instance.

Usage::

    engine = BBTPredictionEngine()
    report = engine.submit_reading(97.4, datetime(2024, 3, 1, 6, 0), device_id="wearable")
    if report.status == "ok":
        print(report.prediction.ovulation_date)

    saved = engine.export_state()
    restored = BBTPredictionEngine.from_state(saved)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from src.bbt.base import (
    DeviceCalibrationProfile,
    EnsemblePrediction,
    RawReading,
    ReadingContext,
)
from src.bbt.calibration import DeviceCalibrationRegistry
from src.bbt.config_loader import EngineConfig, get_engine_config
from src.bbt.ensemble import EnsembleCombiner
from src.bbt.history import HistoryStore
from src.bbt.insights import InsightGenerator, InsightReport
from src.bbt.normalizer import ReadingNormalizer
from src.bbt.schemas import ExportedState, build_metadata, parse_state

logger = logging.getLogger("bbt.engine")


@dataclass
class EngineState:
    """Everything one user's engine owns."""

    history: HistoryStore
    calibrations: DeviceCalibrationRegistry
    prediction: EnsemblePrediction | None = None


class BBTPredictionEngine:
    """Ensemble ovulation and phase prediction for one user."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        state: EngineState | None = None,
    ) -> None:
        self._config = config or get_engine_config()
        self._state = state or EngineState(
            history=HistoryStore(self._config),
            calibrations=DeviceCalibrationRegistry(self._config),
        )
        self._normalizer = ReadingNormalizer(self._config, self._state.calibrations)
        self._combiner = EnsembleCombiner(self._config)
        self._insights = InsightGenerator(self._config)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def history(self) -> HistoryStore:
        return self._state.history

    @property
    def calibrations(self) -> DeviceCalibrationRegistry:
        return self._state.calibrations

    @property
    def prediction(self) -> EnsemblePrediction | None:
        """Latest ensemble prediction (None below the usable-reading minimum)."""
        return self._state.prediction

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit_reading(
        self,
        temperature_f: float,
        timestamp: datetime,
        device_id: str = "manual",
        **context: Any,
    ) -> InsightReport:
        """Record one reading and return the refreshed insights.

        Args:
            temperature_f: Measured temperature in °F.
            timestamp:     When the reading was taken.
            device_id:     Device identifier (unknown ids use the manual profile).
            **context:     ReadingContext fields (sleep_quality, alcohol, illness,
                           stress_level, medication, time_of_day, ...).

        Returns:
            The InsightReport after the reading was stored.

        Raises:
            TypeError: If ``context`` contains an unknown field.
        """
        raw = RawReading(
            temperature_f=float(temperature_f),
            timestamp=timestamp,
            device_id=device_id,
            context=ReadingContext(**context),
        )
        return self.add_reading(raw)

    def add_reading(self, raw: RawReading) -> InsightReport:
        """Normalize, store, and re-predict from an already-built RawReading."""
        processed = self._normalizer.process(raw, self._state.history)
        self._state.history.append(processed)
        self._refresh_prediction()
        return self.insights()

    def _refresh_prediction(self) -> None:
        window = self._state.history.recent_window()
        if len(window) < self._config.insights.min_readings:
            self._state.prediction = None
            return
        self._state.prediction = self._combiner.predict(window)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def insights(self) -> InsightReport:
        """Return the current insight report.  Read-only."""
        return self._insights.report(self._state.history, self._state.prediction)

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    def calibrate_device(
        self,
        device_id: str,
        *,
        offset_f: float | None = None,
        reliability: float | None = None,
        precision_f: float | None = None,
    ) -> DeviceCalibrationProfile:
        """Explicitly recalibrate a device for future readings.

        Raises:
            ValueError: If reliability or precision is out of range.
        """
        return self._state.calibrations.update(
            device_id,
            offset_f=offset_f,
            reliability=reliability,
            precision_f=precision_f,
        )

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_state(self) -> dict[str, Any]:
        """Export the full engine state as a JSON-safe dict."""
        readings = self._state.history.readings
        calibrations = self._state.calibrations.profiles()
        document = ExportedState(
            config_version=self._config.version,
            readings=readings,
            prediction=self._state.prediction,
            device_calibrations=calibrations,
            metadata=build_metadata(readings, calibrations),
        )
        logger.debug("Exported %d readings and %d device profiles", len(readings), len(calibrations))
        return document.model_dump(mode="json")

    @classmethod
    def from_state(
        cls,
        data: Mapping[str, Any],
        config: EngineConfig | None = None,
    ) -> BBTPredictionEngine:
        """Rebuild an engine from ``export_state()`` output.

        The prediction is recomputed from the restored history; the exported
        prediction is only compared against it.

        Args:
            data:   Exported state (dict, possibly after a JSON round trip).
            config: Engine config.  Defaults to the global config.

        Returns:
            A new engine whose subsequent insights match the exporter's.

        Raises:
            StateImportError: If ``data`` is malformed.
        """
        exported = parse_state(data)
        config = config or get_engine_config()

        if exported.config_version != config.version:
            logger.warning(
                "Importing state exported under config v%s into config v%s",
                exported.config_version, config.version,
            )

        registry = DeviceCalibrationRegistry(config)
        registry.restore(exported.device_calibrations)
        state = EngineState(
            history=HistoryStore(config, exported.readings),
            calibrations=registry,
        )
        engine = cls(config, state)
        engine._refresh_prediction()

        if exported.prediction is not None and exported.prediction != engine.prediction:
            logger.warning("Exported prediction differs from the recomputed one; using recomputed")

        logger.info(
            "Restored engine with %d readings (%d valid)",
            len(state.history), state.history.valid_count,
        )
        return engine
