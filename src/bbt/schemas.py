"""Pydantic schemas for state export/import and report serialization.

The engine's dataclasses are used directly as pydantic field types, so the
exported document is exactly the in-memory model rendered as JSON-safe
values (dates as ISO strings, enums as their values).  ``parse_state`` is
the only place exported state is validated; everything it returns is
already typed.
"""

from __future__ import annotations

import logging
import statistics
from datetime import date
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from src.bbt.base import DeviceCalibrationProfile, EnsemblePrediction, ProcessedReading
from src.bbt.insights import InsightReport

logger = logging.getLogger("bbt.schemas")

SCHEMA_VERSION = 1


class StateImportError(ValueError):
    """Raised when exported engine state cannot be restored."""


class BBTBase(BaseModel):
    """Base model with shared config for all export schemas."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


# ---------- Export document ----------


class DateRange(BBTBase):
    start: date
    end: date
    total_days: int = Field(ge=1)


class ExportMetadata(BBTBase):
    total_readings: int = Field(default=0, ge=0)
    valid_readings: int = Field(default=0, ge=0)
    average_quality: float = Field(default=0.0, ge=0.0, le=1.0)
    device_count: int = Field(default=0, ge=0)
    date_range: DateRange | None = None


class ExportedState(BBTBase):
    """Full engine state as exported by ``BBTPredictionEngine.export_state``."""

    schema_version: int = SCHEMA_VERSION
    config_version: str
    readings: list[ProcessedReading] = Field(default_factory=list)
    prediction: EnsemblePrediction | None = None
    device_calibrations: dict[str, DeviceCalibrationProfile] = Field(default_factory=dict)
    metadata: ExportMetadata = Field(default_factory=ExportMetadata)


def build_metadata(
    readings: Iterable[ProcessedReading],
    calibrations: Mapping[str, DeviceCalibrationProfile],
) -> ExportMetadata:
    """Summarize the history for the export document."""
    readings = list(readings)
    if not readings:
        return ExportMetadata(device_count=len(calibrations))

    start = readings[0].reading_date
    end = readings[-1].reading_date
    return ExportMetadata(
        total_readings=len(readings),
        valid_readings=sum(1 for r in readings if r.is_valid),
        average_quality=round(statistics.fmean(r.quality for r in readings), 6),
        device_count=len(calibrations),
        date_range=DateRange(start=start, end=end, total_days=(end - start).days + 1),
    )


def parse_state(data: Mapping[str, Any]) -> ExportedState:
    """Validate an exported state document.

    Args:
        data: Output of ``export_state()`` (possibly after a JSON round trip).

    Returns:
        Validated ExportedState.

    Raises:
        StateImportError: If the document is malformed or from a newer schema.
    """
    if not isinstance(data, Mapping):
        raise StateImportError(f"Exported state must be a mapping, got {type(data).__name__}")

    try:
        state = ExportedState.model_validate(dict(data))
    except ValidationError as exc:
        raise StateImportError(f"Invalid exported state: {exc}") from exc

    if state.schema_version > SCHEMA_VERSION:
        raise StateImportError(
            f"Exported state uses schema v{state.schema_version}; "
            f"this engine supports up to v{SCHEMA_VERSION}"
        )
    logger.debug(
        "Parsed exported state v%d: %d readings, %d device profiles",
        state.schema_version, len(state.readings), len(state.device_calibrations),
    )
    return state


# ---------- Report serialization ----------

_report_adapter: TypeAdapter[InsightReport] = TypeAdapter(InsightReport)


def report_to_dict(report: InsightReport) -> dict[str, Any]:
    """Render an InsightReport as JSON-safe primitives."""
    return _report_adapter.dump_python(report, mode="json")


def report_to_json(report: InsightReport, indent: int | None = None) -> str:
    """Render an InsightReport as a JSON string."""
    return _report_adapter.dump_json(report, indent=indent).decode("utf-8")
