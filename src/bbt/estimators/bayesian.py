"""Bayesian posterior estimator for the ovulation cycle day.

Model:
    prior(d)        ∝ exp(−(d − 14)² / (2 · 9))           for d in 10..20
    expected(t, d)  = baseline            if cycle_day(t) < d
                      baseline + 0.4°F    otherwise
    likelihood(d)   = Π exp(−(temp − expected)² / (2 · 0.01))

The cycle span is the last 28 days of the window; its first reading is
cycle day 1.  Everything is computed in log space because a 28-reading
product of Gaussians underflows in linear space.
"""

from __future__ import annotations

import logging
import math
import statistics
from dataclasses import dataclass
from datetime import timedelta

from src.bbt.base import EstimatorKind, EstimatorResult, ProcessedReading
from src.bbt.config_loader import BayesianConfig
from src.bbt.estimators.base import Estimator, reference_date

logger = logging.getLogger("bbt.estimators.bayesian")


@dataclass
class Posterior:
    """Normalized posterior over candidate cycle days.

    Attributes:
        days:        Candidate cycle days, ascending.
        probability: Posterior mass per candidate day (sums to 1).
        map_day:     Maximum-a-posteriori day.
        lower:       Lower bound of the credible interval.
        upper:       Upper bound of the credible interval.
    """

    days: list[int]
    probability: list[float]
    map_day: int
    lower: int
    upper: int

    @property
    def map_probability(self) -> float:
        return self.probability[self.days.index(self.map_day)]


def follicular_baseline(temps: list[float], default: float) -> float:
    """Mean of the lower half of the temperatures (``default`` if empty)."""
    if not temps:
        return default
    low_half = sorted(temps)[: max(1, len(temps) // 2)]
    return statistics.fmean(low_half)


def compute_posterior(
    observations: list[tuple[int, float]],
    baseline: float,
    cfg: BayesianConfig,
) -> Posterior:
    """Combine the Gaussian prior with the two-level likelihood.

    Args:
        observations: (cycle_day, temperature) pairs.
        baseline:     Follicular baseline temperature.
        cfg:          Bayesian settings.

    Returns:
        Posterior over candidate days.
    """
    days = list(range(cfg.first_candidate_day, cfg.last_candidate_day + 1))
    log_post: list[float] = []
    for d in days:
        log_prior = -((d - cfg.prior_mean_day) ** 2) / (2 * cfg.prior_variance)
        log_lik = 0.0
        for cycle_day, temp in observations:
            expected = baseline if cycle_day < d else baseline + cfg.luteal_rise_f
            log_lik -= (temp - expected) ** 2 / (2 * cfg.noise_variance)
        log_post.append(log_prior + log_lik)

    peak = max(log_post)
    unnormalized = [math.exp(lp - peak) for lp in log_post]
    total = sum(unnormalized)
    probability = [u / total for u in unnormalized]

    map_day = days[max(range(len(days)), key=lambda i: probability[i])]

    tail = (1.0 - cfg.credible_mass) / 2
    lower, upper = days[0], days[-1]
    cumulative = 0.0
    found_lower = False
    for d, p in zip(days, probability):
        cumulative += p
        if not found_lower and cumulative >= tail:
            lower = d
            found_lower = True
        if cumulative >= 1.0 - tail:
            upper = d
            break

    return Posterior(days=days, probability=probability, map_day=map_day, lower=lower, upper=upper)


class BayesianEstimator(Estimator):
    """MAP ovulation cycle day under a Gaussian prior and two-level BBT model."""

    kind = EstimatorKind.BAYESIAN

    @property
    def _cfg(self) -> BayesianConfig:
        return self._config.estimators.bayesian

    @property
    def min_readings(self) -> int:
        return self._cfg.min_readings

    def _estimate(self, window: list[ProcessedReading]) -> EstimatorResult:
        cfg = self._cfg
        today = reference_date(window)

        span = [r for r in window if (today - r.reading_date).days < cfg.cycle_length_days]
        anchor = span[0].reading_date
        observations = [((r.reading_date - anchor).days + 1, r.temperature_f) for r in span]
        current_cycle_day = (today - anchor).days + 1

        baseline = follicular_baseline([t for _, t in observations], cfg.default_baseline_f)
        posterior = compute_posterior(observations, baseline, cfg)

        ovulation_date = today - timedelta(days=current_cycle_day - posterior.map_day)
        logger.debug(
            "Bayesian MAP day %d (p=%.3f, 90%% CI %d–%d), cycle day %d",
            posterior.map_day, posterior.map_probability,
            posterior.lower, posterior.upper, current_cycle_day,
        )

        return EstimatorResult(
            kind=self.kind,
            ovulation_date=ovulation_date,
            confidence=min(1.0, max(0.0, posterior.map_probability)),
            details={
                "map_cycle_day": posterior.map_day,
                "current_cycle_day": current_cycle_day,
                "baseline_f": round(baseline, 4),
                "credible_interval": [posterior.lower, posterior.upper],
                "posterior": [
                    {"day": d, "probability": round(p, 6)}
                    for d, p in zip(posterior.days, posterior.probability)
                ],
            },
        )
