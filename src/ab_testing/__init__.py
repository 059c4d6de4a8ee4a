"""A/B testing module for deterministic experiment assignment.

Components:
- VariantAssigner: Hash-based bucketing of users into variants
- TargetingEvaluator: Qualification of visitors by targeting rules
- ExperimentConfigCache: TTL cache over the remote experiment configuration
- AssignmentCoordinator: Single and batch assignment across experiments
- PersistenceBridge: Durable per-visitor assignments (cookies, Redis)
- ExposureTracker: Exposure reporting once per viewing context
- SampleSizePlanner: Sample size planning for proportion tests
"""

from src.ab_testing.analytics import (
    AnalyticsSink,
    InMemoryAnalyticsSink,
    LoggingAnalyticsSink,
    PostHogAnalyticsSink,
)
from src.ab_testing.assignment import (
    InvalidWeightsError,
    VariantAssigner,
    compute_bucket,
    select_variant,
)
from src.ab_testing.client import ExperimentClient
from src.ab_testing.config_cache import ExperimentConfigCache, parse_experiments
from src.ab_testing.coordinator import AssignmentCoordinator
from src.ab_testing.exposure import ExposureEvent, ExposureTracker
from src.ab_testing.models import (
    Experiment,
    ExperimentStatus,
    ExperimentVariant,
    TargetingRule,
    VariantAssignment,
    validate_experiment,
)
from src.ab_testing.persistence import (
    AssignmentStore,
    CookieAssignmentStore,
    InMemoryAssignmentStore,
    PersistenceBridge,
    RedisAssignmentStore,
)
from src.ab_testing.sample_size import SampleSizePlanner, required_sample_size
from src.ab_testing.sources import (
    ConfigSourceError,
    ExperimentConfigSource,
    HttpConfigSource,
    InMemoryConfigSource,
    RedisConfigSource,
)
from src.ab_testing.targeting import TargetingEvaluator, build_targeting_context

__all__ = [
    "AnalyticsSink",
    "AssignmentCoordinator",
    "AssignmentStore",
    "ConfigSourceError",
    "CookieAssignmentStore",
    "Experiment",
    "ExperimentClient",
    "ExperimentConfigCache",
    "ExperimentConfigSource",
    "ExperimentStatus",
    "ExperimentVariant",
    "ExposureEvent",
    "ExposureTracker",
    "HttpConfigSource",
    "InMemoryAnalyticsSink",
    "InMemoryAssignmentStore",
    "InMemoryConfigSource",
    "InvalidWeightsError",
    "LoggingAnalyticsSink",
    "PersistenceBridge",
    "PostHogAnalyticsSink",
    "RedisAssignmentStore",
    "RedisConfigSource",
    "SampleSizePlanner",
    "TargetingEvaluator",
    "TargetingRule",
    "VariantAssigner",
    "VariantAssignment",
    "build_targeting_context",
    "compute_bucket",
    "parse_experiments",
    "required_sample_size",
    "select_variant",
    "validate_experiment",
]
