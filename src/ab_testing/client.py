"""Rendering-layer access to a visitor's assignments."""

from collections.abc import Mapping
from typing import Any, Callable, TypeVar

from loguru import logger

from src.ab_testing.coordinator import AssignmentCoordinator
from src.ab_testing.config_cache import ExperimentConfigCache
from src.ab_testing.exposure import ExposureTracker
from src.ab_testing.models import Experiment

T = TypeVar("T")


class ExperimentClient:
    """Read assignments and report exposures for one visitor.

    The client starts from the assignments resolved at the request boundary
    (experiment id to variant id) and only computes assignments for
    experiments that have none.

    Usage:
        client = ExperimentClient.from_assignments(
            user_id, request.state.ab_assignments, cache, tracker
        )
        if client.is_in_variant("homepage-hero", "variant-a"):
            client.track_exposure("homepage-hero")
    """

    def __init__(
        self,
        user_id: str,
        assignments: Mapping[str, str],
        config_cache: ExperimentConfigCache,
        tracker: ExposureTracker,
        coordinator: AssignmentCoordinator | None = None,
    ):
        """Initialize client.

        Args:
            user_id: Visitor identifier.
            assignments: Map of experiment id to variant id.
            config_cache: Experiment configuration cache.
            tracker: Exposure tracker for this visitor.
            coordinator: Coordinator used when refreshing experiments.
        """
        self.user_id = user_id
        self.config_cache = config_cache
        self.tracker = tracker
        self.coordinator = coordinator or AssignmentCoordinator(config_cache)
        self._assignments: dict[str, str] = dict(assignments)

    @classmethod
    def from_assignments(
        cls,
        user_id: str,
        assignments: Mapping[str, str],
        config_cache: ExperimentConfigCache,
        tracker: ExposureTracker | None = None,
    ) -> "ExperimentClient":
        """Build a client from a propagated assignments map."""
        return cls(
            user_id=user_id,
            assignments=assignments,
            config_cache=config_cache,
            tracker=tracker or ExposureTracker(user_id),
        )

    @property
    def assignments(self) -> dict[str, str]:
        """Copy of the current assignments."""
        return dict(self._assignments)

    def get_variant(self, experiment_id: str) -> str | None:
        """Variant id for an experiment, or None if not assigned."""
        return self._assignments.get(experiment_id)

    def is_in_variant(self, experiment_id: str, variant_id: str) -> bool:
        """Whether the visitor is in a given variant."""
        return self._assignments.get(experiment_id) == variant_id

    def active_experiments(self) -> list[str]:
        """Experiment ids the visitor is enrolled in."""
        return list(self._assignments)

    def get_experiment_details(self, experiment_id: str) -> Experiment | None:
        """Full experiment definition, or None if unknown."""
        return self.config_cache.get_experiment(experiment_id)

    def get_variant_config(self, experiment_id: str) -> dict[str, Any] | None:
        """Configuration payload of the assigned variant."""
        variant_id = self.get_variant(experiment_id)
        experiment = self.get_experiment_details(experiment_id)
        if not variant_id or not experiment:
            return None

        variant = experiment.get_variant(variant_id)
        return variant.config if variant else None

    def track_exposure(
        self,
        experiment_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Report exposure to the assigned variant once per viewing context.

        Returns:
            True if an exposure was reported.
        """
        variant_id = self.get_variant(experiment_id)
        if not variant_id:
            return False
        return self.tracker.track_exposure_once(experiment_id, variant_id, metadata=metadata)

    def track_conversion(
        self,
        experiment_id: str,
        value: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Report a conversion for the assigned variant.

        Returns:
            True if the visitor is assigned and the event was forwarded.
        """
        variant_id = self.get_variant(experiment_id)
        if not variant_id:
            logger.warning(
                f"Cannot track conversion: no assignment for user {self.user_id} "
                f"in experiment {experiment_id}"
            )
            return False
        self.tracker.track_conversion(experiment_id, variant_id, value, metadata)
        return True

    def render_variant(
        self,
        experiment_id: str,
        renderers: Mapping[str, Callable[[], T]],
        default: Callable[[], T],
        track: bool = True,
    ) -> T:
        """Render content for the assigned variant.

        Args:
            experiment_id: Experiment identifier.
            renderers: Map of variant id to render function.
            default: Render function used without a matching assignment.
            track: Report exposure when a variant renderer is used.
        """
        variant_id = self.get_variant(experiment_id)
        if not variant_id or variant_id not in renderers:
            return default()

        if track:
            self.track_exposure(experiment_id)
        return renderers[variant_id]()

    def refresh_experiments(self, context: Mapping[str, Any] | None = None) -> dict[str, str]:
        """Reload experiments and assign any newly eligible ones.

        Existing assignments are kept as they are.

        Returns:
            The updated assignments.
        """
        experiments = self.config_cache.fetch(force_refresh=True)
        pending = {
            experiment_id: experiment
            for experiment_id, experiment in experiments.items()
            if experiment_id not in self._assignments
        }

        for experiment_id, assignment in self.coordinator.assign_all(
            self.user_id, pending, context
        ).items():
            self._assignments[experiment_id] = assignment.variant_id

        return self.assignments
