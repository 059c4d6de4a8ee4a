#!/usr/bin/env python
"""Validate an experiment configuration payload before publishing it.

Reads a JSON payload (``{"experiments": {...}, "lastUpdated": "..."}``) and
reports, per experiment, every configuration error that would exclude it from
assignment. Exits non-zero when any experiment is invalid.

Usage:
    python scripts/validate_experiments.py config/experiments.json
    python scripts/validate_experiments.py config/experiments.json --publish
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from loguru import logger

from src.ab_testing.models import Experiment, validate_experiment
from src.ab_testing.sources import ConfigSourceError, RedisConfigSource, load_payload_file
from src.config import settings


def collect_errors(payload: dict) -> dict[str, list[str]]:
    """Validation errors per experiment id (valid experiments omitted)."""
    experiments = payload.get("experiments")
    if not isinstance(experiments, dict):
        return {"<payload>": ["Payload must contain an 'experiments' object"]}

    errors: dict[str, list[str]] = {}
    for experiment_id, definition in experiments.items():
        try:
            experiment = Experiment.from_dict(definition, experiment_id=experiment_id)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            errors[experiment_id] = [f"Unparseable definition: {e}"]
            continue

        experiment_errors = validate_experiment(experiment)
        if experiment_errors:
            errors[experiment_id] = experiment_errors

    return errors


def main(args: list[str] | None = None) -> int:
    """Validate and optionally publish a payload."""
    parser = argparse.ArgumentParser(
        description="Validate experiment configuration",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("path", type=Path, help="JSON payload file")
    parser.add_argument(
        "--publish",
        action="store_true",
        help="Publish to Redis under the configured key when valid",
    )
    opts = parser.parse_args(args)

    try:
        payload = load_payload_file(opts.path)
    except ConfigSourceError as e:
        logger.error(str(e))
        return 1

    errors = collect_errors(payload)
    total = len(payload.get("experiments") or {})

    if errors:
        logger.error(f"{len(errors)} of {total} experiment(s) invalid:")
        for experiment_id, experiment_errors in errors.items():
            for error in experiment_errors:
                logger.error(f"  {experiment_id}: {error}")
        return 1

    logger.info(f"All {total} experiment(s) valid")

    if opts.publish:
        source = RedisConfigSource(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password,
        )
        try:
            source.publish(settings.experiments_config_key, payload)
        finally:
            source.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
