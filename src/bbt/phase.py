"""Current cycle phase classification from recent BBT readings.

The phase is re-derived from the window on every call; no phase state is
stored.  Two shifts are measured against the mean of the last 3 readings:

- immediate shift: against the 10 readings just before those 3
- sustained shift: against the 10 readings before the latest detected
  thermal shift, so a luteal plateau keeps classifying as luteal after the
  pre-shift readings have scrolled out of the immediate comparison

Rules, in order:
    immediate > +0.2°F  → luteal
    immediate < −0.1°F  → menstrual
    sustained > +0.2°F  → luteal
    otherwise           → follicular
"""

from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass
from typing import Sequence

from src.bbt.base import ProcessedReading
from src.bbt.config_loader import EngineConfig, PhaseConfig, get_engine_config
from src.bbt.estimators.base import reference_date, temperatures
from src.bbt.estimators.thermal_shift import detect_thermal_shifts, latest_shift

logger = logging.getLogger("bbt.phase")

PHASE_FOLLICULAR = "follicular"
PHASE_LUTEAL = "luteal"
PHASE_MENSTRUAL = "menstrual"
PHASE_UNKNOWN = "unknown"


@dataclass
class PhaseAssessment:
    """Classified cycle phase.

    Attributes:
        phase:               'follicular', 'luteal', 'menstrual', or 'unknown'.
        description:         Human-readable description of the phase.
        confidence:          0.0–1.0 confidence in the label.
        shift_f:             Temperature shift that drove the decision.
        days_post_ovulation: Days since the shift began (luteal only).
        recommendation:      Phase-specific expectation, if any.
    """

    phase: str
    description: str
    confidence: float
    shift_f: float | None = None
    days_post_ovulation: int | None = None
    recommendation: str | None = None


class PhaseClassifier:
    """Label the current phase from a window of valid readings."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self._config = config or get_engine_config()

    @property
    def _cfg(self) -> PhaseConfig:
        return self._config.phase

    def classify(self, window: Sequence[ProcessedReading]) -> PhaseAssessment:
        """Classify the current phase.

        Args:
            window: Valid processed readings, oldest first.

        Returns:
            PhaseAssessment ('unknown' when there are too few readings).
        """
        cfg = self._cfg
        temps = temperatures(window)
        if len(temps) <= cfg.recent_readings:
            return PhaseAssessment(
                phase=PHASE_UNKNOWN,
                description="Not enough readings to determine the cycle phase",
                confidence=0.0,
            )

        recent_avg = statistics.fmean(temps[-cfg.recent_readings:])
        reference = temps[-(cfg.recent_readings + cfg.reference_readings):-cfg.recent_readings]
        immediate = recent_avg - statistics.fmean(reference)

        shift = latest_shift(detect_thermal_shifts(temps, self._config.estimators.thermal_shift))
        sustained: float | None = None
        if shift is not None:
            pre_shift = temps[max(0, shift.index - cfg.reference_readings):shift.index]
            sustained = recent_avg - statistics.fmean(pre_shift)

        if immediate > cfg.luteal_shift_f:
            start = shift.index if shift is not None else len(temps) - cfg.recent_readings
            return self._luteal(window, immediate, start)

        if immediate < cfg.menstrual_drop_f:
            return PhaseAssessment(
                phase=PHASE_MENSTRUAL,
                description="Menstrual phase likely starting",
                confidence=cfg.menstrual_confidence,
                shift_f=round(immediate, 4),
                recommendation="Expect temperature to remain low",
            )

        if shift is not None and sustained is not None and sustained > cfg.luteal_shift_f:
            return self._luteal(window, sustained, shift.index)

        return PhaseAssessment(
            phase=PHASE_FOLLICULAR,
            description="Pre-ovulation phase",
            confidence=cfg.follicular_confidence,
            shift_f=round(immediate, 4),
            recommendation="Watch for temperature rise indicating ovulation",
        )

    def _luteal(
        self,
        window: Sequence[ProcessedReading],
        shift_f: float,
        start_index: int,
    ) -> PhaseAssessment:
        cfg = self._cfg
        confidence = min(
            cfg.luteal_max_confidence,
            cfg.luteal_base_confidence + shift_f * cfg.luteal_confidence_per_degree,
        )
        days_post = (reference_date(window) - window[start_index].reading_date).days
        logger.debug("Luteal phase: shift=+%.3f°F, %d days post ovulation", shift_f, days_post)
        return PhaseAssessment(
            phase=PHASE_LUTEAL,
            description="Post-ovulation phase detected",
            confidence=round(confidence, 6),
            shift_f=round(shift_f, 4),
            days_post_ovulation=days_post,
        )
