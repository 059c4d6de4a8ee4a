"""Targeting rule evaluation.

A visitor qualifies for an experiment when every targeting rule matches the
flat request context (logical AND). A rule whose context field is missing does
not match.
"""

import re
from collections.abc import Mapping
from functools import lru_cache
from typing import Any

from loguru import logger

from src.ab_testing.models import Experiment, TargetingOperator, TargetingRule

PATTERN_CACHE_SIZE = 256


def build_targeting_context(
    path: str,
    cookies: Mapping[str, str] | None = None,
    headers: Mapping[str, str] | None = None,
    query: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Flatten request data into a targeting context.

    Keys: ``url`` and ``path`` (the URL path), ``cookie.<name>``,
    ``header.<lower-cased name>`` and ``query.<name>``.
    """
    context: dict[str, str] = {"url": path, "path": path}

    for name, value in (cookies or {}).items():
        context[f"cookie.{name}"] = value
    for name, value in (headers or {}).items():
        context[f"header.{name.lower()}"] = value
    for name, value in (query or {}).items():
        context[f"query.{name}"] = value

    return context


@lru_cache(maxsize=PATTERN_CACHE_SIZE)
def compile_pattern(expression: str) -> re.Pattern[str] | None:
    """Compile a targeting regex, or None if it is invalid.

    Results, failures included, are kept in a bounded LRU cache.
    """
    try:
        return re.compile(expression)
    except re.error as e:
        logger.error(f"Invalid regex in targeting rule: {expression} ({e})")
        return None


class TargetingEvaluator:
    """Evaluates experiment targeting rules against a request context."""

    def evaluate(self, experiment: Experiment, context: Mapping[str, Any]) -> bool:
        """Check if a visitor qualifies for an experiment.

        Args:
            experiment: Experiment configuration.
            context: Flat map of context field to value.

        Returns:
            True if all rules match (or there are none).
        """
        if not experiment.targeting_rules:
            return True

        return all(self.matches(rule, context) for rule in experiment.targeting_rules)

    def matches(self, rule: TargetingRule, context: Mapping[str, Any]) -> bool:
        """Evaluate a single rule."""
        if rule.type not in context or context[rule.type] is None:
            return False

        value = str(context[rule.type])

        try:
            operator = TargetingOperator(rule.operator)
        except ValueError:
            logger.warning(f"Unknown targeting operator: {rule.operator}")
            return False

        if operator == TargetingOperator.EQUALS:
            return value == rule.value
        if operator == TargetingOperator.CONTAINS:
            return rule.value in value
        if operator == TargetingOperator.STARTS_WITH:
            return value.startswith(rule.value)
        if operator == TargetingOperator.ENDS_WITH:
            return value.endswith(rule.value)

        pattern = compile_pattern(rule.value)
        if pattern is None:
            return False
        return pattern.search(value) is not None


_default_evaluator = TargetingEvaluator()


def evaluate_targeting(experiment: Experiment, context: Mapping[str, Any]) -> bool:
    """Check targeting with a shared evaluator."""
    return _default_evaluator.evaluate(experiment, context)
