"""Experiment configuration cache.

Fetches experiment definitions from a configuration source, validates them and
keeps the result for a TTL. On fetch failure the last good set is served
(even if expired); only when nothing was ever cached does the cache fall back
to an empty set.
"""

import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable

from loguru import logger

from src.ab_testing.models import Experiment, parse_datetime, validate_experiment
from src.ab_testing.sources import ExperimentConfigSource

DEFAULT_CONFIG_KEY = "ab-experiments"
DEFAULT_TTL_SECONDS = 60.0

EMPTY_EXPERIMENTS: Mapping[str, Experiment] = MappingProxyType({})


@dataclass(frozen=True)
class CachedExperimentSet:
    """Immutable snapshot of a successful fetch."""

    data: Mapping[str, Experiment]
    timestamp: float
    last_updated: datetime | None = None


def parse_experiments(payload: Any) -> dict[str, Experiment]:
    """Parse a raw configuration payload into experiments.

    Each experiment is parsed and validated independently; invalid ones are
    logged and excluded without affecting the rest.

    Args:
        payload: ``{"experiments": {id: definition}, "lastUpdated": ...}``.

    Returns:
        Map of experiment id to experiment.
    """
    experiments: dict[str, Experiment] = {}

    if not isinstance(payload, dict) or not isinstance(payload.get("experiments"), dict):
        logger.warning("Invalid experiment configuration payload")
        return experiments

    for experiment_id, definition in payload["experiments"].items():
        try:
            if not isinstance(definition, dict):
                raise ValueError("Experiment definition must be an object")
            if not definition.get("variants"):
                logger.error(f"Experiment {experiment_id} has no variants")
                continue

            experiment = Experiment.from_dict(definition, experiment_id=experiment_id)
            errors = validate_experiment(experiment)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to parse experiment {experiment_id}: {e}")
            continue

        if errors:
            logger.error(f"Excluding invalid experiment {experiment_id}: {'; '.join(errors)}")
            continue

        experiments[experiment_id] = experiment

    return experiments


class ExperimentConfigCache:
    """TTL cache over an experiment configuration source.

    Each instance owns its cached set; pass it to the components that need it
    instead of sharing module state. Refreshes replace the cached snapshot in
    a single assignment, so concurrent readers see either the old or the new
    set, never a partial one. Refreshes are serialized by a lock: a caller that
    waited for an in-flight refresh reuses its result unless it forces a new
    fetch.
    """

    def __init__(
        self,
        source: ExperimentConfigSource,
        key: str = DEFAULT_CONFIG_KEY,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize cache.

        Args:
            source: Remote configuration source.
            key: Key holding the experiment payload.
            ttl_seconds: Freshness window for the cached set.
            clock: Monotonic clock in seconds.
        """
        self.source = source
        self.key = key
        self.ttl_seconds = ttl_seconds
        self.clock = clock

        self._cache: CachedExperimentSet | None = None
        self._refresh_lock = threading.Lock()

    @property
    def cached(self) -> CachedExperimentSet | None:
        """Current snapshot, if any fetch has succeeded."""
        return self._cache

    @property
    def last_updated(self) -> datetime | None:
        """``lastUpdated`` of the cached payload."""
        return self._cache.last_updated if self._cache else None

    def fetch(self, force_refresh: bool = False) -> Mapping[str, Experiment]:
        """Get experiments, using the cache while it is fresh.

        Args:
            force_refresh: Bypass the cache and fetch from the source.

        Returns:
            Read-only map of experiment id to experiment.
        """
        if not force_refresh and self._is_fresh(self._cache):
            return self._cache.data

        with self._refresh_lock:
            if not force_refresh and self._is_fresh(self._cache):
                return self._cache.data
            return self._refresh()

    def get_experiment(self, experiment_id: str) -> Experiment | None:
        """Get a single experiment by id."""
        return self.fetch().get(experiment_id)

    def clear_cache(self) -> None:
        """Drop the cached set."""
        self._cache = None
        logger.debug("Experiment cache cleared")

    def subscribe(
        self,
        callback: Callable[[Mapping[str, Experiment]], None],
        interval_seconds: float = DEFAULT_TTL_SECONDS,
    ) -> Callable[[], None]:
        """Poll the source and report the experiment set periodically.

        Args:
            callback: Called with the refreshed experiments after every poll.
            interval_seconds: Polling interval.

        Returns:
            Function that stops polling.
        """
        stop = threading.Event()

        def poll() -> None:
            while not stop.wait(interval_seconds):
                experiments = self.fetch(force_refresh=True)
                try:
                    callback(experiments)
                except Exception as e:
                    logger.error(f"Experiment change callback failed: {e}")

        thread = threading.Thread(target=poll, name="experiment-config-poller", daemon=True)
        thread.start()
        logger.info(f"Polling experiment configuration every {interval_seconds}s")

        def unsubscribe() -> None:
            stop.set()
            thread.join(timeout=interval_seconds)

        return unsubscribe

    def _is_fresh(self, cached: CachedExperimentSet | None) -> bool:
        if cached is None:
            return False
        return self.clock() - cached.timestamp < self.ttl_seconds

    def _refresh(self) -> Mapping[str, Experiment]:
        try:
            payload = self.source.get(self.key)
        except Exception as e:
            logger.error(f"Failed to fetch experiments from config store: {e}")

            if self._cache is not None:
                logger.warning("Using stale cached experiments due to fetch error")
                return self._cache.data

            logger.warning("Using fallback experiments")
            return EMPTY_EXPERIMENTS

        if payload is None:
            logger.warning(f"No experiment configuration found under key '{self.key}'")
            return EMPTY_EXPERIMENTS

        experiments = parse_experiments(payload)

        raw_last_updated = payload.get("lastUpdated") if isinstance(payload, dict) else None
        last_updated = None
        try:
            last_updated = parse_datetime(raw_last_updated)
        except ValueError:
            logger.warning(f"Ignoring malformed lastUpdated: {raw_last_updated!r}")

        self._cache = CachedExperimentSet(
            data=MappingProxyType(experiments),
            timestamp=self.clock(),
            last_updated=last_updated,
        )

        logger.info(f"Loaded {len(experiments)} experiments from config store")
        return self._cache.data
