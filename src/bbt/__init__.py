"""BBT Ensemble Prediction Engine.

Estimates ovulation timing and the current cycle phase from a series of
basal body temperature readings, combining four independent estimators into
one confidence-weighted prediction.

Subpackages:
    estimators/ : Thermal shift, coverline, Bayesian, and trend forecast estimators

Core modules:
    base          : Canonical data models (readings, results, predictions)
    config_loader : Load/validate/hot-reload bbt_config.yaml
    calibration   : Per-device calibration registry
    normalizer    : Confound adjustment, validation, quality scoring
    history       : Time-ordered reading store
    ensemble      : Weighted combination of estimator results
    phase         : Current cycle phase classification
    insights      : Trends, recommendations, next-measurement advice
    schemas       : Pydantic export/import and report serialization
    engine        : BBTPredictionEngine orchestration
"""

from src.bbt.base import (
    DeviceCalibrationProfile,
    EnsemblePrediction,
    EstimatorKind,
    EstimatorResult,
    EstimatorStatus,
    NextPeriodProjection,
    ProcessedReading,
    RawReading,
    ReadingContext,
)
from src.bbt.config_loader import (
    ConfigValidationError,
    EngineConfig,
    get_engine_config,
    load_engine_config,
    reload_engine_config,
)
from src.bbt.engine import BBTPredictionEngine
from src.bbt.insights import InsightReport
from src.bbt.schemas import StateImportError, report_to_dict, report_to_json

__all__ = [
    "BBTPredictionEngine",
    "RawReading",
    "ReadingContext",
    "ProcessedReading",
    "DeviceCalibrationProfile",
    "EstimatorKind",
    "EstimatorStatus",
    "EstimatorResult",
    "EnsemblePrediction",
    "NextPeriodProjection",
    "InsightReport",
    "EngineConfig",
    "ConfigValidationError",
    "StateImportError",
    "get_engine_config",
    "load_engine_config",
    "reload_engine_config",
    "report_to_dict",
    "report_to_json",
]
