"""BBT Ensemble: application entry point.

Configures logging from the environment and builds engines wired to the
configured thresholds file.

    from src.main import create_engine

    engine = create_engine()
    report = engine.submit_reading(97.4, datetime(2024, 3, 1, 6, 0))
"""

from __future__ import annotations

import logging
import sys

from src.bbt.config_loader import get_engine_config, reload_engine_config
from src.bbt.engine import BBTPredictionEngine
from src.config import Settings, get_settings

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("bbt")


# ---------- Engine factory ----------

def create_engine(settings: Settings | None = None) -> BBTPredictionEngine:
    """Build a new engine for one user.

    Applies the configured log level and, when ``config_path`` is set,
    loads that thresholds file into the global config first.
    """
    settings = settings or get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    if settings.config_path is not None:
        config = reload_engine_config(settings.config_path)
    else:
        config = get_engine_config()

    logger.info(
        "Starting %s v%s [%s] with engine config v%s",
        settings.app_name,
        settings.app_version,
        settings.environment,
        config.version,
    )
    return BBTPredictionEngine(config)
