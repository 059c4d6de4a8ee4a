"""Experiment data model.

Experiments arrive from the remote configuration store as plain dictionaries
(camelCase keys, ISO-8601 date strings). They are parsed into the dataclasses
below and validated separately, so that an invalid definition can be reported
instead of failing at construction time.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any


class ExperimentStatus(str, Enum):
    """Experiment status enum."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class TargetingOperator(str, Enum):
    """Targeting rule operator."""

    EQUALS = "equals"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    REGEX = "regex"


def parse_datetime(value: Any) -> datetime | None:
    """Normalize a date value to a timezone-aware UTC datetime.

    Accepts ISO-8601 strings (with or without a trailing ``Z``, date-only
    strings included), ``date`` and ``datetime`` objects. Naive values are
    taken to be UTC.

    Raises:
        ValueError: If the value cannot be interpreted as a date.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported date value: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class ExperimentVariant:
    """One arm of an experiment."""

    id: str
    name: str
    weight: int  # Traffic percentage (0-100)
    config: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "weight": self.weight,
        }
        if self.config is not None:
            data["config"] = self.config
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExperimentVariant":
        """Create from a raw definition."""
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            weight=data["weight"],
            config=data.get("config"),
        )


@dataclass
class TargetingRule:
    """Predicate over a single context field."""

    type: str  # Context field key
    operator: str
    value: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"type": self.type, "operator": self.operator, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TargetingRule":
        """Create from a raw definition."""
        return cls(
            type=str(data["type"]),
            operator=str(data["operator"]),
            value=str(data["value"]),
        )


@dataclass
class Experiment:
    """Experiment configuration."""

    id: str
    name: str
    status: ExperimentStatus
    variants: list[ExperimentVariant]
    start_date: datetime | None = None
    end_date: datetime | None = None
    targeting_rules: list[TargetingRule] = field(default_factory=list)
    minimum_sample_size: int | None = None
    description: str = ""

    @property
    def is_active(self) -> bool:
        """Whether the experiment status allows assignment."""
        return self.status == ExperimentStatus.ACTIVE

    def get_variant(self, variant_id: str) -> ExperimentVariant | None:
        """Get variant by id."""
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (wire format)."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "variants": [v.to_dict() for v in self.variants],
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "targetingRules": [r.to_dict() for r in self.targeting_rules],
            "minimumSampleSize": self.minimum_sample_size,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], experiment_id: str | None = None) -> "Experiment":
        """Create from a raw definition.

        Args:
            data: Raw experiment definition from the configuration store.
            experiment_id: Id to use when the definition does not carry one
                (the store keys experiments by id).

        Raises:
            KeyError: If a required field is missing.
            ValueError: If a field has an invalid value.
        """
        variants = data.get("variants")
        if not variants:
            raise ValueError("Experiment has no variants")

        rules = data.get("targetingRules") or []

        return cls(
            id=str(data.get("id") or experiment_id or ""),
            name=str(data.get("name") or ""),
            status=ExperimentStatus(data["status"]),
            variants=[ExperimentVariant.from_dict(v) for v in variants],
            start_date=parse_datetime(data.get("startDate")),
            end_date=parse_datetime(data.get("endDate")),
            targeting_rules=[TargetingRule.from_dict(r) for r in rules],
            minimum_sample_size=data.get("minimumSampleSize"),
            description=str(data.get("description") or ""),
        )


@dataclass(frozen=True)
class VariantAssignment:
    """Result of variant assignment for a user."""

    experiment_id: str
    variant_id: str
    user_id: str
    assigned_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "experiment_id": self.experiment_id,
            "variant_id": self.variant_id,
            "user_id": self.user_id,
            "assigned_at": self.assigned_at.isoformat(),
        }


def validate_experiment(experiment: Experiment) -> list[str]:
    """Validate an experiment configuration.

    Returns:
        List of validation errors, empty if the experiment is valid.
    """
    errors: list[str] = []

    if not experiment.id:
        errors.append("Experiment must have an ID")

    if not experiment.name:
        errors.append("Experiment must have a name")

    if not experiment.variants or len(experiment.variants) < 2:
        errors.append("Experiment must have at least 2 variants")

    if experiment.variants:
        weights_are_integers = True
        for variant in experiment.variants:
            if isinstance(variant.weight, bool) or not isinstance(variant.weight, int):
                errors.append(f"Variant {variant.id} weight must be an integer")
                weights_are_integers = False
            elif not 0 <= variant.weight <= 100:
                errors.append(f"Variant {variant.id} weight must be between 0 and 100")

        if weights_are_integers:
            total_weight = sum(v.weight for v in experiment.variants)
            if total_weight != 100:
                errors.append(f"Variant weights must sum to 100, but got {total_weight}")

        variant_ids = [v.id for v in experiment.variants]
        if len(variant_ids) != len(set(variant_ids)):
            errors.append("Variant IDs must be unique")

    if experiment.start_date and experiment.end_date:
        if experiment.start_date >= experiment.end_date:
            errors.append("Start date must be before end date")

    return errors
