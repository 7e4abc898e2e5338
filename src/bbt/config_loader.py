"""Load, validate, and hot-reload the BBT engine configuration.

The config lives in ``bbt_config.yaml`` alongside this module.  At startup
it is loaded once and cached.  Call ``reload_engine_config()`` to re-read from
disk after an update; no restart is required.

Usage::

    from src.bbt.config_loader import get_engine_config

    config = get_engine_config()
    weight = config.ensemble.weight("thermal_shift")     # 0.30
    profile = config.device_profile("wearable")          # offset -0.1°F
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import MISSING, dataclass, field, fields
from pathlib import Path
from typing import Any

from src.bbt.base import DeviceCalibrationProfile, EstimatorKind

logger = logging.getLogger("bbt.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "bbt_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class ConfoundConfig:
    """Additive confound corrections applied to raw temperatures."""

    reference_hour: int = 6
    drift_per_hour_f: float = 0.02
    sleep_quality_target: int = 7
    sleep_deficit_per_point_f: float = 0.01
    alcohol_adjustment_f: float = -0.1
    illness_adjustment_f: float = -0.2
    stress_threshold: int = 7
    stress_per_point_f: float = 0.015


@dataclass
class ValidationConfig:
    """Range and consistency checks on adjusted temperatures."""

    min_temp_f: float = 96.0
    max_temp_f: float = 100.0
    latest_hour: int = 8
    anomaly_threshold_f: float = 0.5
    consistency_window: int = 7
    min_device_history: int = 4


@dataclass
class QualityConfig:
    """Quality score penalties and reliability trust factors."""

    issue_penalty: float = 0.2
    late_hour: int = 7
    late_penalty: float = 0.2
    poor_sleep_threshold: int = 6
    poor_sleep_penalty: float = 0.15
    alcohol_penalty: float = 0.1
    illness_penalty: float = 0.3
    high_stress_threshold: int = 8
    high_stress_penalty: float = 0.1
    illness_trust_factor: float = 0.5
    medication_trust_factor: float = 0.85


@dataclass
class HistoryConfig:
    """History store window and retention."""

    window_size: int = 60
    retention_limit: int | None = None


@dataclass
class ThermalShiftConfig:
    min_readings: int = 10
    pre_window: int = 6
    post_window: int = 3
    shift_threshold_f: float = 0.2
    base_strength: float = 0.5
    strength_per_degree: float = 2.0
    max_strength: float = 0.95


@dataclass
class CoverlineConfig:
    min_readings: int = 9
    pre_window: int = 6
    post_window: int = 3
    rise_threshold_f: float = 0.2
    margin_f: float = 0.1
    confidence: float = 0.8


@dataclass
class BayesianConfig:
    min_readings: int = 10
    first_candidate_day: int = 10
    last_candidate_day: int = 20
    prior_mean_day: int = 14
    prior_variance: float = 9.0
    luteal_rise_f: float = 0.4
    noise_variance: float = 0.01
    credible_mass: float = 0.9
    cycle_length_days: int = 28
    default_baseline_f: float = 97.5


@dataclass
class TrendForecastConfig:
    """Fixed-weight two-unit network used by the trend forecast estimator.

    ``hidden_weights`` holds six weights: the first three combine
    (latest, trend, variance) into h1, the last three combine
    (moving_average, window_length, mean_quality) into h2.
    """

    min_readings: int = 10
    feature_window: int = 14
    feature_center_f: float = 97.4
    hidden_weights: list[float] = field(
        default_factory=lambda: [3.0, 6.0, -10.0, -3.0, 0.02, 0.5]
    )
    hidden_bias: list[float] = field(default_factory=lambda: [0.0, 0.0])
    output_weights: list[float] = field(default_factory=lambda: [2.0, -1.0])
    output_bias: float = 0.0
    high_probability: float = 0.7
    low_probability: float = 0.3
    forecast_days: int = 7
    forecast_baseline_f: float = 97.5
    forecast_hidden_scale_f: float = 0.3
    forecast_amplitude_f: float = 0.2
    forecast_base_uncertainty_f: float = 0.1
    forecast_uncertainty_step_f: float = 0.02


@dataclass
class EstimatorsConfig:
    thermal_shift: ThermalShiftConfig
    coverline: CoverlineConfig
    bayesian: BayesianConfig
    trend_forecast: TrendForecastConfig


@dataclass
class EnsembleConfig:
    """Ensemble combination and derived projections."""

    min_readings: int = 10
    weights: dict[str, float] = field(
        default_factory=lambda: {
            "thermal_shift": 0.30,
            "coverline": 0.25,
            "bayesian": 0.25,
            "trend_forecast": 0.20,
        }
    )
    fertile_window_days: int = 6
    luteal_phase_days: int = 14
    next_period_offset_f: float = -0.1
    next_period_band_f: float = 0.2
    next_period_confidence: float = 0.75
    default_baseline_f: float = 97.5
    baseline_lookback: int = 30
    baseline_moving_average: int = 6
    baseline_margin_f: float = 0.1
    min_baseline_readings: int = 5

    @property
    def total_weight(self) -> float:
        return sum(self.weights.values())

    def weight(self, kind: str) -> float:
        """Return the ensemble weight for an estimator kind (0.0 if absent)."""
        return self.weights.get(str(kind), 0.0)


@dataclass
class PhaseConfig:
    recent_readings: int = 3
    reference_readings: int = 10
    luteal_shift_f: float = 0.2
    menstrual_drop_f: float = -0.1
    luteal_base_confidence: float = 0.5
    luteal_confidence_per_degree: float = 2.0
    luteal_max_confidence: float = 0.9
    menstrual_confidence: float = 0.7
    follicular_confidence: float = 0.6


@dataclass
class InsightsConfig:
    min_readings: int = 10
    trend_window: int = 14
    stable_slope_f_per_day: float = 0.02
    consistency_scale_f: float = 0.5
    timing_scale_hours: float = 3.0
    consistency_threshold: float = 0.7
    quality_threshold: float = 0.6
    preferred_hour: int = 6


@dataclass
class EngineConfig:
    """Complete, validated engine configuration.

    This is the single in-memory representation of bbt_config.yaml.
    The normalizer, estimators, combiner, and insight generator all read
    their thresholds from this object.

    Attributes:
        version:          Config schema version string.
        default_device:   Profile used for device ids with no known profile.
        device_profiles:  Profile name → calibration profile.
        confounds:        Confound adjustment coefficients.
        validation:       Reading validation thresholds.
        quality:          Quality score penalties.
        history:          History window and retention.
        estimators:       Per-estimator settings.
        ensemble:         Ensemble weights and projections.
        phase:            Phase classification thresholds.
        insights:         Trend and recommendation thresholds.
    """

    version: str
    default_device: str
    device_profiles: dict[str, DeviceCalibrationProfile]
    confounds: ConfoundConfig
    validation: ValidationConfig
    quality: QualityConfig
    history: HistoryConfig
    estimators: EstimatorsConfig
    ensemble: EnsembleConfig
    phase: PhaseConfig
    insights: InsightsConfig
    _raw: dict = field(default_factory=dict, repr=False)

    def device_profile(self, device_id: str) -> DeviceCalibrationProfile:
        """Return the known profile for a device id, or the default profile.

        Args:
            device_id: Device identifier (e.g. 'wearable', 'fertility_tracker').

        Returns:
            DeviceCalibrationProfile (never None).
        """
        profile = self.device_profiles.get(device_id)
        if profile is None:
            profile = self.device_profiles[self.default_device]
        return profile


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when bbt_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed dict.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    import yaml  # pyyaml

    if not path.exists():
        raise FileNotFoundError(f"BBT config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _coerce(value: Any, default: Any) -> Any:
    """Coerce a YAML scalar/list to the type of the field's default."""
    if isinstance(default, bool):
        return bool(value)
    if isinstance(value, bool):
        raise TypeError(f"expected a number, got {value!r}")
    if default is None:
        return None if value is None else int(value)
    if isinstance(default, int):
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"expected an integer, got {value!r}")
        return int(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, list):
        if not isinstance(value, list):
            raise TypeError(f"expected a list, got {value!r}")
        return [float(v) for v in value]
    if isinstance(default, dict):
        if not isinstance(value, dict):
            raise TypeError(f"expected a mapping, got {value!r}")
        return {str(k): float(v) for k, v in value.items()}
    return value


def _build_section(cls: type, raw: Any, section: str, errors: list[str]) -> Any:
    """Build a section dataclass from its YAML mapping, applying defaults.

    Unknown keys and values that cannot be coerced are recorded in ``errors``.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        errors.append(f"'{section}' must be a mapping, got {type(raw).__name__}")
        raw = {}

    known = {f.name for f in fields(cls)}
    for key in sorted(set(raw) - known):
        errors.append(f"Unknown key '{key}' in section '{section}'")

    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in raw:
            continue
        default = f.default if f.default is not MISSING else f.default_factory()  # type: ignore[misc]
        try:
            kwargs[f.name] = _coerce(raw[f.name], default)
        except (TypeError, ValueError):
            errors.append(
                f"{section}.{f.name} must be a {type(default).__name__}, got {raw[f.name]!r}"
            )
    return cls(**kwargs)


def _validate_and_build(raw: dict) -> EngineConfig:
    """Validate the raw YAML dict and construct an EngineConfig.

    Performs structural validation and applies defaults for optional fields.

    Args:
        raw: Parsed YAML dict.

    Returns:
        Validated EngineConfig instance.

    Raises:
        ConfigValidationError: If required fields are missing or invalid.
    """
    errors: list[str] = []

    version = str(raw.get("version", "1.0"))

    # ── Device profiles ──
    profiles_raw = raw.get("device_profiles", {})
    if not profiles_raw:
        errors.append("'device_profiles' section is missing or empty")

    device_profiles: dict[str, DeviceCalibrationProfile] = {}
    for name, cfg in (profiles_raw or {}).items():
        if not isinstance(cfg, dict):
            errors.append(f"device_profiles.{name} must be a mapping")
            continue
        try:
            offset = float(cfg.get("offset_f", 0.0))
            reliability = float(cfg.get("reliability", 0.7))
            precision = float(cfg.get("precision_f", 0.1))
        except (TypeError, ValueError):
            errors.append(f"device_profiles.{name} values must be numbers, got {cfg!r}")
            continue
        if not (0.0 <= reliability <= 1.0):
            errors.append(
                f"device_profiles.{name}.reliability = {reliability} is out of range [0.0, 1.0]"
            )
        if precision <= 0.0:
            errors.append(f"device_profiles.{name}.precision_f must be positive")
        device_profiles[str(name)] = DeviceCalibrationProfile(
            profile=str(name),
            offset_f=offset,
            reliability=reliability,
            precision_f=precision,
        )

    default_device = str(raw.get("default_device", "manual"))
    if device_profiles and default_device not in device_profiles:
        errors.append(f"default_device '{default_device}' has no entry in device_profiles")

    # ── Simple sections ──
    confounds = _build_section(ConfoundConfig, raw.get("confounds"), "confounds", errors)
    validation = _build_section(ValidationConfig, raw.get("validation"), "validation", errors)
    quality = _build_section(QualityConfig, raw.get("quality"), "quality", errors)
    history = _build_section(HistoryConfig, raw.get("history"), "history", errors)
    phase = _build_section(PhaseConfig, raw.get("phase"), "phase", errors)
    insights = _build_section(InsightsConfig, raw.get("insights"), "insights", errors)

    if validation.min_temp_f >= validation.max_temp_f:
        errors.append("validation.min_temp_f must be below validation.max_temp_f")
    if history.window_size < 1:
        errors.append("history.window_size must be at least 1")
    if history.retention_limit is not None and history.retention_limit < history.window_size:
        errors.append("history.retention_limit must be None or >= history.window_size")

    # ── Estimators ──
    est_raw = raw.get("estimators", {}) or {}
    estimators = EstimatorsConfig(
        thermal_shift=_build_section(
            ThermalShiftConfig, est_raw.get("thermal_shift"), "estimators.thermal_shift", errors
        ),
        coverline=_build_section(
            CoverlineConfig, est_raw.get("coverline"), "estimators.coverline", errors
        ),
        bayesian=_build_section(
            BayesianConfig, est_raw.get("bayesian"), "estimators.bayesian", errors
        ),
        trend_forecast=_build_section(
            TrendForecastConfig, est_raw.get("trend_forecast"), "estimators.trend_forecast", errors
        ),
    )

    by = estimators.bayesian
    if by.first_candidate_day > by.last_candidate_day:
        errors.append("estimators.bayesian candidate day range is empty")
    if by.prior_variance <= 0 or by.noise_variance <= 0:
        errors.append("estimators.bayesian variances must be positive")
    if not (0.0 < by.credible_mass < 1.0):
        errors.append("estimators.bayesian.credible_mass must be in (0, 1)")

    tf = estimators.trend_forecast
    if len(tf.hidden_weights) != 6:
        errors.append("estimators.trend_forecast.hidden_weights must have 6 entries")
    if len(tf.hidden_bias) != 2 or len(tf.output_weights) != 2:
        errors.append("estimators.trend_forecast needs 2 hidden biases and 2 output weights")
    if not (0.0 <= tf.low_probability < tf.high_probability <= 1.0):
        errors.append("estimators.trend_forecast probabilities must satisfy 0 <= low < high <= 1")

    # ── Ensemble ──
    ensemble = _build_section(EnsembleConfig, raw.get("ensemble"), "ensemble", errors)
    expected_kinds = {k.value for k in EstimatorKind}
    if set(ensemble.weights) != expected_kinds:
        errors.append(
            f"ensemble.weights must define exactly {sorted(expected_kinds)}, "
            f"got {sorted(ensemble.weights)}"
        )
    for kind, w in ensemble.weights.items():
        if not (0.0 <= w <= 1.0):
            errors.append(f"ensemble.weights.{kind} = {w} is out of range [0.0, 1.0]")
    if ensemble.weights and not math.isclose(ensemble.total_weight, 1.0, abs_tol=1e-9):
        errors.append(f"ensemble.weights sum to {ensemble.total_weight:.3f} (must be 1.0)")

    if errors:
        raise ConfigValidationError(
            f"bbt_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return EngineConfig(
        version=version,
        default_device=default_device,
        device_profiles=device_profiles,
        confounds=confounds,
        validation=validation,
        quality=quality,
        history=history,
        estimators=estimators,
        ensemble=ensemble,
        phase=phase,
        insights=insights,
        _raw=raw,
    )


def load_engine_config(path: Path | None = None) -> EngineConfig:
    """Load and validate the engine config from disk.

    Args:
        path: Override path to YAML. Uses the bundled bbt_config.yaml by default.

    Returns:
        Validated EngineConfig instance.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded BBT engine config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: EngineConfig | None = None
_config_lock = threading.Lock()


def get_engine_config() -> EngineConfig:
    """Return the global EngineConfig singleton, loading it on first call.

    Thread-safe.  Use ``reload_engine_config()`` to refresh after YAML changes.

    Returns:
        The current EngineConfig instance.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_engine_config()
    return _config


def reload_engine_config(path: Path | None = None) -> EngineConfig:
    """Reload the engine config from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is re-raised.

    Args:
        path: Override path to YAML. Defaults to bundled bbt_config.yaml.

    Returns:
        The newly loaded EngineConfig.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_engine_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info(
        "Reloaded BBT engine config: %s → %s",
        old_version,
        new_config.version,
    )
    return new_config
