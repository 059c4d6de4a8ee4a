"""Sample size planning for A/B experiments.

Uses the two-proportion z-test formula (two-tailed):

    n = ceil(2 * p_bar * (1 - p_bar) * (z_alpha + z_beta)^2 / (p1 - p2)^2)

where p1 is the baseline rate, p2 = p1 * (1 + relative effect) and p_bar their
mean.
"""

import math
from dataclasses import dataclass
from typing import Any

from scipy import stats

# Standard normal quantiles for common confidence levels
Z_SCORES: dict[float, float] = {
    0.80: 0.8416,
    0.90: 1.2816,
    0.95: 1.6449,
    0.975: 1.9600,
    0.99: 2.3263,
    0.995: 2.5758,
}


def z_score(p: float) -> float:
    """Standard normal quantile for a cumulative probability.

    Common levels come from a fixed table; other values use the inverse
    normal CDF.

    Raises:
        ValueError: If ``p`` is not in (0, 1).
    """
    if not 0 < p < 1:
        raise ValueError(f"Probability must be in (0, 1), got {p}")

    key = round(p, 4)
    if key in Z_SCORES:
        return Z_SCORES[key]
    return float(stats.norm.ppf(p))


def required_sample_size(
    baseline_rate: float,
    minimum_detectable_effect: float,
    power: float = 0.8,
    alpha: float = 0.05,
) -> int:
    """Calculate the sample size needed per variant.

    Args:
        baseline_rate: Current conversion rate (0-1).
        minimum_detectable_effect: Minimum relative change to detect
            (e.g. 0.1 for 10%).
        power: Statistical power (1 - beta).
        alpha: Significance level, two-tailed.

    Returns:
        Required sample size per variant.

    Raises:
        ValueError: If the inputs do not describe a detectable change.
    """
    if not 0 < baseline_rate < 1:
        raise ValueError(f"Baseline rate must be in (0, 1), got {baseline_rate}")
    if minimum_detectable_effect == 0:
        raise ValueError("Minimum detectable effect must be non-zero")

    p1 = baseline_rate
    p2 = baseline_rate * (1 + minimum_detectable_effect)
    if not 0 < p2 < 1:
        raise ValueError(f"Treatment rate must be in (0, 1), got {p2}")

    z_alpha = z_score(1 - alpha / 2)
    z_beta = z_score(power)

    p_bar = (p1 + p2) / 2
    numerator = 2 * p_bar * (1 - p_bar) * (z_alpha + z_beta) ** 2
    denominator = (p1 - p2) ** 2

    return int(math.ceil(numerator / denominator))


@dataclass
class SampleSizeResult:
    """Result of sample size calculation."""

    required_sample_size: int
    per_variant: int
    baseline_rate: float
    minimum_detectable_effect: float
    power: float
    significance_level: float
    n_variants: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "required_sample_size": self.required_sample_size,
            "per_variant": self.per_variant,
            "baseline_rate": self.baseline_rate,
            "minimum_detectable_effect": self.minimum_detectable_effect,
            "power": self.power,
            "significance_level": self.significance_level,
            "n_variants": self.n_variants,
        }


class SampleSizePlanner:
    """Plans experiment sizes before launch."""

    def __init__(self, power: float = 0.8, significance_level: float = 0.05):
        """Initialize planner.

        Args:
            power: Default statistical power.
            significance_level: Default significance level (alpha).
        """
        self.power = power
        self.significance_level = significance_level

    def plan(
        self,
        baseline_rate: float,
        minimum_detectable_effect: float,
        power: float | None = None,
        significance_level: float | None = None,
        n_variants: int = 2,
    ) -> SampleSizeResult:
        """Calculate the sample size for an experiment.

        Args:
            baseline_rate: Expected baseline conversion rate.
            minimum_detectable_effect: Minimum relative effect to detect.
            power: Statistical power. Defaults to the planner's.
            significance_level: Alpha. Defaults to the planner's.
            n_variants: Number of variants (including control).
        """
        if n_variants < 2:
            raise ValueError("Experiment must have at least 2 variants")

        power = self.power if power is None else power
        significance_level = (
            self.significance_level if significance_level is None else significance_level
        )

        per_variant = required_sample_size(
            baseline_rate,
            minimum_detectable_effect,
            power=power,
            alpha=significance_level,
        )

        return SampleSizeResult(
            required_sample_size=per_variant * n_variants,
            per_variant=per_variant,
            baseline_rate=baseline_rate,
            minimum_detectable_effect=minimum_detectable_effect,
            power=power,
            significance_level=significance_level,
            n_variants=n_variants,
        )
