#!/usr/bin/env python
"""Plan the sample size of a conversion-rate experiment.

Usage:
    python scripts/plan_sample_size.py --baseline 0.1 --effect 0.2
    python scripts/plan_sample_size.py --baseline 0.05 --effect 0.1 --power 0.9 --variants 3
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from loguru import logger

from src.ab_testing.sample_size import SampleSizePlanner


def main(args: list[str] | None = None) -> int:
    """Print the required sample size."""
    parser = argparse.ArgumentParser(
        description="Plan A/B experiment sample size (two-proportion z-test)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--baseline",
        type=float,
        required=True,
        help="Baseline conversion rate (0-1)",
    )
    parser.add_argument(
        "--effect",
        type=float,
        required=True,
        help="Minimum detectable relative effect (0.1 = 10%%)",
    )
    parser.add_argument("--power", type=float, default=0.8, help="Statistical power")
    parser.add_argument("--alpha", type=float, default=0.05, help="Significance level (two-tailed)")
    parser.add_argument("--variants", type=int, default=2, help="Number of variants incl. control")
    opts = parser.parse_args(args)

    try:
        result = SampleSizePlanner().plan(
            opts.baseline,
            opts.effect,
            power=opts.power,
            significance_level=opts.alpha,
            n_variants=opts.variants,
        )
    except ValueError as e:
        logger.error(f"Cannot plan experiment: {e}")
        return 1

    logger.info(
        f"Baseline {result.baseline_rate:.2%}, detecting {result.minimum_detectable_effect:+.1%} "
        f"relative change (power={result.power}, alpha={result.significance_level})"
    )
    logger.info(f"Per variant: {result.per_variant:,}")
    logger.info(f"Total ({result.n_variants} variants): {result.required_sample_size:,}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
