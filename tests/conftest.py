"""Pytest fixtures for tests."""

import pytest
from loguru import logger

from src.ab_testing.config_cache import ExperimentConfigCache
from src.ab_testing.models import Experiment, ExperimentStatus, ExperimentVariant
from src.ab_testing.sources import InMemoryConfigSource

CONFIG_KEY = "ab-experiments"


@pytest.fixture
def experiment_payload() -> dict:
    """Raw configuration payload with two valid experiments."""
    return {
        "experiments": {
            "homepage-hero": {
                "id": "homepage-hero",
                "name": "Homepage Hero Test",
                "status": "active",
                "variants": [
                    {"id": "control", "name": "Control", "weight": 50},
                    {
                        "id": "variant-a",
                        "name": "New Hero",
                        "weight": 50,
                        "config": {"headline": "Ship faster"},
                    },
                ],
            },
            "cta-color": {
                "id": "cta-color",
                "name": "CTA Color Test",
                "status": "active",
                "variants": [
                    {"id": "blue", "name": "Blue", "weight": 33},
                    {"id": "green", "name": "Green", "weight": 33},
                    {"id": "red", "name": "Red", "weight": 34},
                ],
                "startDate": "2024-01-01T00:00:00Z",
                "endDate": "2099-12-31T23:59:59Z",
            },
        },
        "lastUpdated": "2025-01-15T10:00:00Z",
    }


@pytest.fixture
def config_source(experiment_payload) -> InMemoryConfigSource:
    """In-memory configuration store holding the payload."""
    return InMemoryConfigSource({CONFIG_KEY: experiment_payload})


@pytest.fixture
def config_cache(config_source) -> ExperimentConfigCache:
    """Cache over the in-memory store."""
    return ExperimentConfigCache(config_source, key=CONFIG_KEY)


@pytest.fixture
def make_experiment():
    """Factory for experiments with weighted variants."""

    def _make(
        experiment_id: str = "exp1",
        weights: tuple[int, ...] = (50, 50),
        variant_ids: tuple[str, ...] | None = None,
        status: ExperimentStatus = ExperimentStatus.ACTIVE,
        **kwargs,
    ) -> Experiment:
        ids = variant_ids or ("control", "b", "c", "d", "e")[: len(weights)]
        return Experiment(
            id=experiment_id,
            name=f"Experiment {experiment_id}",
            status=status,
            variants=[
                ExperimentVariant(id=variant_id, name=variant_id.title(), weight=weight)
                for variant_id, weight in zip(ids, weights)
            ],
            **kwargs,
        )

    return _make


@pytest.fixture
def log_messages():
    """Capture loguru messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(
        lambda message: messages.append(message.record["message"]),
        level="DEBUG",
    )
    yield messages
    logger.remove(handler_id)
