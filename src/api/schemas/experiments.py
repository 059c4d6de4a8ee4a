"""Experiment schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.ab_testing.models import Experiment


class VariantResponse(BaseModel):
    """Experiment variant."""

    id: str = Field(..., description="Variant ID")
    name: str = Field(..., description="Variant name")
    weight: int = Field(..., description="Traffic percentage (0-100)")
    config: dict[str, Any] | None = Field(None, description="Variant configuration")


class TargetingRuleResponse(BaseModel):
    """Targeting rule."""

    type: str = Field(..., description="Context field key")
    operator: str = Field(..., description="Match operator")
    value: str = Field(..., description="Value to match")


class ExperimentResponse(BaseModel):
    """Experiment response."""

    id: str
    name: str
    status: str
    variants: list[VariantResponse]
    start_date: datetime | None = None
    end_date: datetime | None = None
    targeting_rules: list[TargetingRuleResponse] = []
    minimum_sample_size: int | None = None
    description: str = ""

    @classmethod
    def from_experiment(cls, experiment: Experiment) -> "ExperimentResponse":
        """Build from an experiment definition."""
        return cls(
            id=experiment.id,
            name=experiment.name,
            status=experiment.status.value,
            variants=[VariantResponse(**v.to_dict()) for v in experiment.variants],
            start_date=experiment.start_date,
            end_date=experiment.end_date,
            targeting_rules=[TargetingRuleResponse(**r.to_dict()) for r in experiment.targeting_rules],
            minimum_sample_size=experiment.minimum_sample_size,
            description=experiment.description,
        )


class AssignmentsResponse(BaseModel):
    """Assignments of the requesting visitor."""

    user_id: str = Field(..., description="Visitor ID")
    assignments: dict[str, str] = Field(..., description="Experiment ID to variant ID")

    model_config = {"json_schema_extra": {
        "example": {
            "user_id": "user_3f2a9c0e5b7d4e1f8a6b2c9d0e1f2a3b",
            "assignments": {"homepage-hero": "variant-a"},
        }
    }}


class ExposureRequest(BaseModel):
    """Server-side exposure report."""

    path: str | None = Field(None, description="Viewing context (page path)")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Extra event properties")


class ConversionRequest(BaseModel):
    """Server-side conversion report."""

    value: float | None = Field(None, description="Conversion value")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Extra event properties")


class TrackingResponse(BaseModel):
    """Result of an exposure or conversion report."""

    status: str
    experiment_id: str
    variant_id: str


class RefreshResponse(BaseModel):
    """Result of a configuration refresh."""

    status: str
    experiments: int
    last_updated: datetime | None = None


class SampleSizeResponse(BaseModel):
    """Sample size plan."""

    required_sample_size: int = Field(..., description="Total across all variants")
    per_variant: int = Field(..., description="Required sample per variant")
    baseline_rate: float
    minimum_detectable_effect: float
    power: float
    significance_level: float
    n_variants: int

    model_config = {"json_schema_extra": {
        "example": {
            "required_sample_size": 7686,
            "per_variant": 3843,
            "baseline_rate": 0.1,
            "minimum_detectable_effect": 0.2,
            "power": 0.8,
            "significance_level": 0.05,
            "n_variants": 2,
        }
    }}

