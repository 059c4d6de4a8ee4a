"""Tests for the experiment configuration cache."""

import threading
import time
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from src.ab_testing.config_cache import ExperimentConfigCache, parse_experiments
from src.ab_testing.models import ExperimentStatus
from src.ab_testing.sources import ConfigSourceError, InMemoryConfigSource

CONFIG_KEY = "ab-experiments"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SlowConfigSource(InMemoryConfigSource):
    """In-memory source with a fetch delay."""

    def get(self, key):
        time.sleep(0.05)
        return super().get(key)


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock."""
    return FakeClock()


@pytest.fixture
def timed_cache(config_source, clock) -> ExperimentConfigCache:
    """Cache driven by the fake clock."""
    return ExperimentConfigCache(config_source, key=CONFIG_KEY, ttl_seconds=60, clock=clock)


class TestFetch:
    """Tests for fetching and TTL behavior."""

    def test_fetch_parses_experiments(self, config_cache):
        """Valid experiments are parsed into models."""
        experiments = config_cache.fetch()

        assert set(experiments) == {"homepage-hero", "cta-color"}
        hero = experiments["homepage-hero"]
        assert hero.status == ExperimentStatus.ACTIVE
        assert [v.id for v in hero.variants] == ["control", "variant-a"]
        assert hero.variants[1].config == {"headline": "Ship faster"}

    def test_dates_are_parsed(self, config_cache):
        """Date strings become aware datetimes."""
        cta = config_cache.fetch()["cta-color"]

        assert cta.start_date == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert cta.end_date == datetime(2099, 12, 31, 23, 59, 59, tzinfo=timezone.utc)

    def test_last_updated(self, config_cache):
        """lastUpdated is kept alongside the cached set."""
        assert config_cache.last_updated is None
        config_cache.fetch()
        assert config_cache.last_updated == datetime(2025, 1, 15, 10, tzinfo=timezone.utc)

    def test_fresh_cache_is_reused(self, timed_cache, config_source, clock):
        """Calls within the TTL do not hit the source."""
        timed_cache.fetch()
        clock.advance(59)
        timed_cache.fetch()

        assert config_source.fetch_count == 1

    def test_expired_cache_is_refetched(self, timed_cache, config_source, clock):
        """Calls after the TTL fetch again."""
        timed_cache.fetch()
        clock.advance(60)
        timed_cache.fetch()

        assert config_source.fetch_count == 2

    def test_force_refresh_bypasses_cache(self, timed_cache, config_source):
        """Forced refreshes always fetch."""
        timed_cache.fetch()
        timed_cache.fetch(force_refresh=True)

        assert config_source.fetch_count == 2

    def test_clear_cache(self, config_cache, config_source):
        """Clearing drops the cached set."""
        config_cache.fetch()
        config_cache.clear_cache()

        assert config_cache.cached is None
        config_cache.fetch()
        assert config_source.fetch_count == 2

    def test_get_experiment(self, config_cache):
        """Single experiment lookup."""
        assert config_cache.get_experiment("cta-color").name == "CTA Color Test"
        assert config_cache.get_experiment("missing") is None

    def test_result_is_read_only(self, config_cache):
        """Callers cannot mutate the cached set."""
        experiments = config_cache.fetch()

        with pytest.raises(TypeError):
            experiments["new"] = experiments["cta-color"]

    def test_refresh_replaces_snapshot(self, config_cache, config_source, experiment_payload):
        """A refresh swaps the snapshot without touching earlier results."""
        before = config_cache.fetch()

        del experiment_payload["experiments"]["cta-color"]
        config_source.set(CONFIG_KEY, experiment_payload)
        after = config_cache.fetch(force_refresh=True)

        assert set(before) == {"homepage-hero", "cta-color"}
        assert set(after) == {"homepage-hero"}

    def test_concurrent_fetches_share_one_refresh(self, experiment_payload):
        """Concurrent callers on a cold cache trigger a single fetch."""
        source = SlowConfigSource({CONFIG_KEY: experiment_payload})
        cache = ExperimentConfigCache(source, key=CONFIG_KEY)
        results = []

        threads = [
            threading.Thread(target=lambda: results.append(cache.fetch())) for _ in range(5)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert source.fetch_count == 1
        assert all(len(r) == 2 for r in results)


class TestFallback:
    """Tests for fetch failure handling."""

    def test_stale_cache_served_on_error(self, timed_cache, config_source, clock, log_messages):
        """After a failure the last good set is returned, even if expired."""
        timed_cache.fetch()
        clock.advance(3600)

        with patch.object(config_source, "get", side_effect=ConfigSourceError("down")):
            experiments = timed_cache.fetch()

        assert set(experiments) == {"homepage-hero", "cta-color"}
        assert "Using stale cached experiments due to fetch error" in log_messages

    def test_empty_fallback_without_cache(self, config_cache, config_source, log_messages):
        """With nothing cached a failure yields an empty set."""
        with patch.object(config_source, "get", side_effect=RuntimeError("boom")):
            experiments = config_cache.fetch()

        assert dict(experiments) == {}
        assert "Using fallback experiments" in log_messages
        assert config_cache.cached is None

    def test_missing_key(self, log_messages):
        """A missing key yields an empty set."""
        cache = ExperimentConfigCache(InMemoryConfigSource(), key=CONFIG_KEY)

        assert dict(cache.fetch()) == {}
        assert any("No experiment configuration found" in m for m in log_messages)

    def test_non_numeric_weight_is_excluded(self, experiment_payload, log_messages):
        """A variant weight of the wrong type excludes only its experiment."""
        experiment_payload["experiments"]["cta-color"]["variants"][0]["weight"] = None
        cache = ExperimentConfigCache(
            InMemoryConfigSource({CONFIG_KEY: experiment_payload}), key=CONFIG_KEY
        )

        assert set(cache.fetch()) == {"homepage-hero"}
        assert cache.cached is not None
        assert any("Excluding invalid experiment cta-color" in m for m in log_messages)

    def test_malformed_last_updated(self, experiment_payload, log_messages):
        """A bad lastUpdated does not discard the experiments."""
        experiment_payload["lastUpdated"] = "yesterday"
        cache = ExperimentConfigCache(
            InMemoryConfigSource({CONFIG_KEY: experiment_payload}), key=CONFIG_KEY
        )

        assert len(cache.fetch()) == 2
        assert cache.last_updated is None


class TestParseExperiments:
    """Tests for payload parsing and validation."""

    def _definition(self, **overrides) -> dict:
        definition = {
            "name": "Test",
            "status": "active",
            "variants": [
                {"id": "a", "name": "A", "weight": 50},
                {"id": "b", "name": "B", "weight": 50},
            ],
        }
        definition.update(overrides)
        return definition

    def test_invalid_experiments_are_excluded(self, log_messages):
        """Invalid definitions are dropped; valid ones survive."""
        payload = {
            "experiments": {
                "good": self._definition(),
                "no-variants": self._definition(variants=[]),
                "bad-weights": self._definition(
                    variants=[
                        {"id": "a", "name": "A", "weight": 45},
                        {"id": "b", "name": "B", "weight": 45},
                    ]
                ),
                "single-variant": self._definition(
                    variants=[{"id": "a", "name": "A", "weight": 100}]
                ),
                "duplicate-ids": self._definition(
                    variants=[
                        {"id": "a", "name": "A", "weight": 50},
                        {"id": "a", "name": "A2", "weight": 50},
                    ]
                ),
                "inverted-dates": self._definition(
                    startDate="2025-02-01T00:00:00Z", endDate="2025-01-01T00:00:00Z"
                ),
                "bad-status": self._definition(status="draft"),
                "string-weight": self._definition(
                    variants=[
                        {"id": "a", "name": "A", "weight": "50"},
                        {"id": "b", "name": "B", "weight": 50},
                    ]
                ),
                "null-weight": self._definition(
                    variants=[
                        {"id": "a", "name": "A", "weight": None},
                        {"id": "b", "name": "B", "weight": 100},
                    ]
                ),
            }
        }

        experiments = parse_experiments(payload)

        assert list(experiments) == ["good"]
        assert any("Variant a weight must be an integer" in m for m in log_messages)
        assert "Experiment no-variants has no variants" in log_messages
        assert any("got 90" in m for m in log_messages)

    def test_id_defaults_to_key(self):
        """Experiments keyed by id may omit the id field."""
        experiments = parse_experiments({"experiments": {"keyed": self._definition()}})
        assert experiments["keyed"].id == "keyed"

    def test_targeting_rules_parsed(self):
        """targetingRules become rule models."""
        definition = self._definition(
            targetingRules=[{"type": "path", "operator": "regex", "value": "^/p/"}]
        )
        experiment = parse_experiments({"experiments": {"t": definition}})["t"]

        assert experiment.targeting_rules[0].operator == "regex"
        assert experiment.targeting_rules[0].value == "^/p/"

    @pytest.mark.parametrize("payload", [None, [], {"experiments": []}, {"other": {}}])
    def test_invalid_payload(self, payload, log_messages):
        """Payloads without an experiments map yield nothing."""
        assert parse_experiments(payload) == {}
        assert "Invalid experiment configuration payload" in log_messages


class TestSubscribe:
    """Tests for configuration polling."""

    def test_subscribe_polls_and_unsubscribes(self, config_cache, config_source):
        """Callback receives refreshed experiments until unsubscribed."""
        received = threading.Event()
        snapshots = []

        def on_change(experiments):
            snapshots.append(experiments)
            received.set()

        unsubscribe = config_cache.subscribe(on_change, interval_seconds=0.01)
        try:
            assert received.wait(timeout=2)
        finally:
            unsubscribe()

        assert set(snapshots[0]) == {"homepage-hero", "cta-color"}

        time.sleep(0.05)
        count = config_source.fetch_count
        time.sleep(0.05)
        assert config_source.fetch_count == count
