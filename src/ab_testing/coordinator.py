"""Assignment coordination across the experiment set."""

from collections.abc import Mapping
from typing import Any

from loguru import logger

from src.ab_testing.assignment import VariantAssigner
from src.ab_testing.config_cache import ExperimentConfigCache
from src.ab_testing.models import Experiment, VariantAssignment
from src.ab_testing.targeting import TargetingEvaluator


class AssignmentCoordinator:
    """Combines configuration, targeting and hashing into assignments.

    Usage:
        coordinator = AssignmentCoordinator(ExperimentConfigCache(source))

        assignment = coordinator.assign_one("user-1", "homepage-hero")
        assignments = coordinator.assign_all("user-1", context={"url": "/"})
    """

    def __init__(
        self,
        config_cache: ExperimentConfigCache,
        assigner: VariantAssigner | None = None,
        evaluator: TargetingEvaluator | None = None,
    ):
        """Initialize coordinator.

        Args:
            config_cache: Source of the current experiment set.
            assigner: Variant assigner. Defaults to SHA-256 bucketing.
            evaluator: Targeting evaluator.
        """
        self.config_cache = config_cache
        self.assigner = assigner or VariantAssigner()
        self.evaluator = evaluator or TargetingEvaluator()

    def assign_one(
        self,
        user_id: str,
        experiment_id: str,
        context: Mapping[str, Any] | None = None,
    ) -> VariantAssignment | None:
        """Assign a user to one experiment.

        Args:
            user_id: User identifier.
            experiment_id: Experiment identifier.
            context: Targeting context. When omitted, targeting is skipped.

        Returns:
            Variant assignment or None if the experiment is unknown or the
            user is not eligible.
        """
        experiment = self.config_cache.get_experiment(experiment_id)
        if experiment is None:
            logger.debug(f"Experiment '{experiment_id}' not found")
            return None

        return self.assign_experiment(user_id, experiment, context)

    def assign_experiment(
        self,
        user_id: str,
        experiment: Experiment,
        context: Mapping[str, Any] | None = None,
    ) -> VariantAssignment | None:
        """Assign a user to a given experiment definition.

        Qualification is always evaluated before hashing.
        """
        if context is not None and not self.evaluator.evaluate(experiment, context):
            return None
        return self.assigner.assign(user_id, experiment)

    def assign_all(
        self,
        user_id: str,
        experiments: Mapping[str, Experiment] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> dict[str, VariantAssignment]:
        """Assign a user across a set of experiments.

        A failure in one experiment is logged and does not affect the others.

        Args:
            user_id: User identifier.
            experiments: Experiments to assign. Defaults to the cached set.
            context: Targeting context. When omitted, targeting is skipped.

        Returns:
            Map of experiment id to assignment, eligible experiments only.
        """
        if experiments is None:
            experiments = self.config_cache.fetch()

        assignments: dict[str, VariantAssignment] = {}

        for experiment_id, experiment in experiments.items():
            try:
                assignment = self.assign_experiment(user_id, experiment, context)
            except Exception as e:
                logger.error(f"Failed to assign experiment {experiment_id} for user {user_id}: {e}")
                continue

            if assignment:
                assignments[experiment_id] = assignment

        return assignments
