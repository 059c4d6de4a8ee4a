"""Deterministic variant assignment.

Uses a SHA-256 digest of ``"{user_id}:{experiment_id}"`` to place each user in
a stable bucket in [0, 100), then maps the bucket onto variants by cumulative
weight in declaration order. No randomness and no lookups are involved, so the
same user always lands in the same variant for a given experiment definition.
"""

import hashlib
from datetime import datetime, timezone
from typing import Callable

from loguru import logger

from src.ab_testing.models import Experiment, ExperimentVariant, VariantAssignment

HashFunction = Callable[[str], bytes]
Clock = Callable[[], datetime]

BUCKET_COUNT = 100
# Width of the digest prefix interpreted as an unsigned integer
HASH_PREFIX_BYTES = 4


class InvalidWeightsError(ValueError):
    """Variant weights do not sum to exactly 100."""

    def __init__(self, total_weight: int):
        self.total_weight = total_weight
        super().__init__(
            f"Variant weights must sum to 100, but got {total_weight}. "
            f"Check experiment configuration."
        )


def sha256_digest(value: str) -> bytes:
    """SHA-256 digest of a UTF-8 string."""
    return hashlib.sha256(value.encode("utf-8")).digest()


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def compute_bucket(
    user_id: str,
    experiment_id: str,
    hash_function: HashFunction = sha256_digest,
) -> int:
    """Compute the bucket for a user-experiment pair.

    Args:
        user_id: User identifier.
        experiment_id: Experiment identifier.
        hash_function: Digest function, SHA-256 by default.

    Returns:
        Bucket in range [0, 100).
    """
    hash_bytes = hash_function(f"{user_id}:{experiment_id}")
    hash_int = int.from_bytes(hash_bytes[:HASH_PREFIX_BYTES], byteorder="big")
    return hash_int % BUCKET_COUNT


def validate_variant_weights(variants: list[ExperimentVariant]) -> None:
    """Check that variant weights sum to exactly 100.

    Raises:
        InvalidWeightsError: If the weights sum to anything else.
    """
    total_weight = sum(v.weight for v in variants)
    if total_weight != BUCKET_COUNT:
        raise InvalidWeightsError(total_weight)


def select_variant(bucket: int, variants: list[ExperimentVariant]) -> str:
    """Select a variant id for a bucket.

    Variants are walked in declaration order; the bucket falls into the first
    variant whose cumulative weight exceeds it.
    """
    cumulative_weight = 0
    for variant in variants:
        cumulative_weight += variant.weight
        if bucket < cumulative_weight:
            return variant.id

    # Fallback to last variant (unreachable with valid weights)
    return variants[-1].id


class VariantAssigner:
    """Assigns users to experiment variants.

    Eligibility gates are checked in order: status, start date, end date,
    variant weights. Each failing gate yields ``None``. Both date bounds are
    inclusive: a user is eligible at exactly ``start_date`` and at exactly
    ``end_date``.
    """

    def __init__(
        self,
        hash_function: HashFunction = sha256_digest,
        clock: Clock = utc_now,
    ):
        """Initialize assigner.

        Args:
            hash_function: Digest function used for bucketing.
            clock: Returns the current aware datetime.
        """
        self.hash_function = hash_function
        self.clock = clock

    def assign(self, user_id: str, experiment: Experiment) -> VariantAssignment | None:
        """Get deterministic variant assignment for a user.

        Args:
            user_id: User identifier.
            experiment: Experiment configuration.

        Returns:
            Variant assignment or None if the user is not eligible.
        """
        if not experiment.is_active:
            logger.debug(
                f"Experiment '{experiment.id}' not active "
                f"(status: {experiment.status.value})"
            )
            return None

        now = self.clock()
        if experiment.start_date and now < experiment.start_date:
            return None
        if experiment.end_date and now > experiment.end_date:
            return None

        if not experiment.variants:
            logger.error(f"Experiment '{experiment.id}' has no variants")
            return None

        try:
            validate_variant_weights(experiment.variants)
        except InvalidWeightsError as e:
            logger.error(f"Invalid experiment configuration for {experiment.id}: {e}")
            return None

        bucket = compute_bucket(user_id, experiment.id, self.hash_function)
        variant_id = select_variant(bucket, experiment.variants)

        return VariantAssignment(
            experiment_id=experiment.id,
            variant_id=variant_id,
            user_id=user_id,
            assigned_at=now,
        )

    def bucket_for(self, user_id: str, experiment_id: str) -> int:
        """Bucket for a user-experiment pair using this assigner's hash."""
        return compute_bucket(user_id, experiment_id, self.hash_function)
