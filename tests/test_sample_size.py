"""Tests for sample size planning."""

import pytest

from src.ab_testing.sample_size import (
    Z_SCORES,
    SampleSizePlanner,
    required_sample_size,
    z_score,
)


class TestZScore:
    """Tests for normal quantiles."""

    @pytest.mark.parametrize("p,expected", sorted(Z_SCORES.items()))
    def test_common_levels_are_exact(self, p, expected):
        """Common confidence levels use the fixed table."""
        assert z_score(p) == expected

    def test_other_levels_use_inverse_cdf(self):
        """Uncommon levels fall back to the inverse normal CDF."""
        assert z_score(0.85) == pytest.approx(1.0364, abs=1e-4)
        assert z_score(0.5) == pytest.approx(0.0, abs=1e-9)

    def test_monotonic(self):
        """Higher probabilities give larger quantiles."""
        probabilities = [0.6, 0.8, 0.85, 0.9, 0.95, 0.975, 0.98, 0.99, 0.995]
        scores = [z_score(p) for p in probabilities]
        assert scores == sorted(scores)

    @pytest.mark.parametrize("p", [0, 1, -0.5, 1.5])
    def test_out_of_range(self, p):
        """Probabilities outside (0, 1) are rejected."""
        with pytest.raises(ValueError):
            z_score(p)


class TestRequiredSampleSize:
    """Tests for required_sample_size."""

    def test_reference_value(self):
        """10% baseline, 20% relative lift, 80% power, alpha 0.05."""
        assert required_sample_size(0.1, 0.2) == 3843

    def test_smaller_effect_needs_more_users(self):
        """Smaller effects need larger samples."""
        assert required_sample_size(0.1, 0.5) < required_sample_size(0.1, 0.1)

    def test_higher_power_needs_more_users(self):
        """Higher power needs larger samples."""
        assert required_sample_size(0.1, 0.2, power=0.99) > required_sample_size(0.1, 0.2, power=0.8)

    def test_lower_alpha_needs_more_users(self):
        """Stricter significance needs larger samples."""
        assert required_sample_size(0.1, 0.2, alpha=0.01) > required_sample_size(0.1, 0.2, alpha=0.05)

    def test_negative_effect(self):
        """Decreases are planned like increases."""
        assert required_sample_size(0.5, -0.1) > 0

    @pytest.mark.parametrize(
        "baseline,effect",
        [(0, 0.1), (1, 0.1), (-0.2, 0.1), (0.1, 0), (0.6, 1.0), (0.5, -1.0)],
    )
    def test_invalid_inputs(self, baseline, effect):
        """Degenerate inputs are rejected."""
        with pytest.raises(ValueError):
            required_sample_size(baseline, effect)


class TestSampleSizePlanner:
    """Tests for SampleSizePlanner."""

    def test_plan_totals(self):
        """Total sample is per-variant times variant count."""
        result = SampleSizePlanner().plan(0.1, 0.2, n_variants=3)

        assert result.per_variant == 3843
        assert result.required_sample_size == 3843 * 3
        assert result.to_dict()["n_variants"] == 3

    def test_planner_defaults(self):
        """Planner-level power and alpha apply unless overridden."""
        planner = SampleSizePlanner(power=0.9, significance_level=0.01)

        assert planner.plan(0.1, 0.2).power == 0.9
        assert planner.plan(0.1, 0.2).per_variant == required_sample_size(
            0.1, 0.2, power=0.9, alpha=0.01
        )
        assert planner.plan(0.1, 0.2, power=0.8).power == 0.8

    def test_requires_two_variants(self):
        """A single arm cannot be compared."""
        with pytest.raises(ValueError, match="at least 2 variants"):
            SampleSizePlanner().plan(0.1, 0.2, n_variants=1)
