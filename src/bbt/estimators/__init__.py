"""Ovulation estimators combined by the ensemble.

Each estimator implements the Estimator ABC and maps a window of valid
processed readings to an EstimatorResult.

Available estimators:
    ThermalShiftEstimator   : 6-vs-3 sustained shift detection
    CoverlineEstimator      : "three over six" coverline crossing
    BayesianEstimator       : MAP cycle day under a Gaussian prior
    TrendForecastEstimator  : fixed-weight trend network + 7-day forecast
"""

from __future__ import annotations

from src.bbt.base import EstimatorKind
from src.bbt.config_loader import EngineConfig
from src.bbt.estimators.base import Estimator
from src.bbt.estimators.bayesian import BayesianEstimator
from src.bbt.estimators.coverline import CoverlineEstimator
from src.bbt.estimators.thermal_shift import ThermalShiftEstimator
from src.bbt.estimators.trend_forecast import TrendForecastEstimator

__all__ = [
    "Estimator",
    "ThermalShiftEstimator",
    "CoverlineEstimator",
    "BayesianEstimator",
    "TrendForecastEstimator",
    "ESTIMATOR_REGISTRY",
    "get_estimator",
    "build_estimators",
]

# Registry: estimator kind → estimator class
ESTIMATOR_REGISTRY: dict[EstimatorKind, type[Estimator]] = {
    EstimatorKind.THERMAL_SHIFT: ThermalShiftEstimator,
    EstimatorKind.COVERLINE: CoverlineEstimator,
    EstimatorKind.BAYESIAN: BayesianEstimator,
    EstimatorKind.TREND_FORECAST: TrendForecastEstimator,
}


def get_estimator(kind: EstimatorKind | str) -> type[Estimator]:
    """Return the estimator class for a kind.

    Args:
        kind: e.g. 'thermal_shift', 'coverline', 'bayesian', 'trend_forecast'

    Returns:
        The estimator class (not an instance).

    Raises:
        KeyError: If the kind is not registered.
    """
    try:
        return ESTIMATOR_REGISTRY[EstimatorKind(kind)]
    except ValueError:
        raise KeyError(
            f"No estimator registered for '{kind}'. "
            f"Available: {[k.value for k in ESTIMATOR_REGISTRY]}"
        ) from None


def build_estimators(config: EngineConfig) -> list[Estimator]:
    """Instantiate every registered estimator with the given config."""
    return [cls(config) for cls in ESTIMATOR_REGISTRY.values()]
