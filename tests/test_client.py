"""Tests for the rendering-layer experiment client."""

import pytest

from src.ab_testing.analytics import CONVERSION_EVENT, EXPOSURE_EVENT, InMemoryAnalyticsSink
from src.ab_testing.client import ExperimentClient
from src.ab_testing.exposure import ExposureTracker


@pytest.fixture
def sink() -> InMemoryAnalyticsSink:
    """In-memory sink."""
    return InMemoryAnalyticsSink()


@pytest.fixture
def client(config_cache, sink) -> ExperimentClient:
    """Client for a visitor enrolled in the hero experiment."""
    return ExperimentClient(
        user_id="u1",
        assignments={"homepage-hero": "variant-a"},
        config_cache=config_cache,
        tracker=ExposureTracker("u1", sink=sink, path="/"),
    )


class TestAssignmentAccess:
    """Tests for reading assignments."""

    def test_get_variant(self, client):
        """Assigned experiments return their variant."""
        assert client.get_variant("homepage-hero") == "variant-a"
        assert client.get_variant("cta-color") is None

    def test_is_in_variant(self, client):
        """Variant membership check."""
        assert client.is_in_variant("homepage-hero", "variant-a")
        assert not client.is_in_variant("homepage-hero", "control")
        assert not client.is_in_variant("cta-color", "blue")

    def test_active_experiments(self, client):
        """Enrolled experiment ids."""
        assert client.active_experiments() == ["homepage-hero"]

    def test_assignments_are_copied(self, client):
        """Mutating the returned map does not change the client."""
        client.assignments["homepage-hero"] = "control"
        assert client.get_variant("homepage-hero") == "variant-a"

    def test_experiment_details(self, client):
        """Full definitions come from the cache."""
        assert client.get_experiment_details("homepage-hero").name == "Homepage Hero Test"
        assert client.get_experiment_details("missing") is None

    def test_variant_config(self, client):
        """The assigned variant's configuration payload."""
        assert client.get_variant_config("homepage-hero") == {"headline": "Ship faster"}
        assert client.get_variant_config("cta-color") is None

    def test_from_assignments(self, config_cache):
        """Factory creates its own tracker."""
        client = ExperimentClient.from_assignments("u9", {"cta-color": "red"}, config_cache)

        assert client.tracker.user_id == "u9"
        assert client.get_variant("cta-color") == "red"


class TestTracking:
    """Tests for exposure and conversion reporting."""

    def test_track_exposure_once(self, client, sink):
        """Exposure is reported once per viewing context."""
        assert client.track_exposure("homepage-hero")
        assert not client.track_exposure("homepage-hero")

        [event] = sink.named(EXPOSURE_EVENT)
        assert event.properties["variant_id"] == "variant-a"

    def test_track_exposure_unassigned(self, client, sink):
        """Unassigned experiments report nothing."""
        assert not client.track_exposure("cta-color")
        assert sink.events == []

    def test_track_conversion(self, client, sink):
        """Conversions are forwarded for assigned experiments."""
        assert client.track_conversion("homepage-hero", value=10.0)
        assert sink.named(CONVERSION_EVENT)[0].properties["conversion_value"] == 10.0

    def test_track_conversion_unassigned(self, client, sink, log_messages):
        """Conversions for unassigned experiments are dropped with a warning."""
        assert not client.track_conversion("cta-color")
        assert sink.events == []
        assert any("Cannot track conversion" in m for m in log_messages)


class TestRenderVariant:
    """Tests for variant rendering."""

    def test_renders_assigned_variant(self, client, sink):
        """The matching renderer runs and exposure is tracked."""
        html = client.render_variant(
            "homepage-hero",
            {"control": lambda: "<h1>Old</h1>", "variant-a": lambda: "<h1>New</h1>"},
            default=lambda: "<h1>Default</h1>",
        )

        assert html == "<h1>New</h1>"
        assert len(sink.named(EXPOSURE_EVENT)) == 1

    def test_default_when_unassigned(self, client, sink):
        """Unassigned experiments render the default without tracking."""
        html = client.render_variant("cta-color", {"blue": lambda: "blue"}, default=lambda: "none")

        assert html == "none"
        assert sink.events == []

    def test_default_when_no_renderer(self, client):
        """Variants without a renderer fall back to the default."""
        html = client.render_variant("homepage-hero", {"control": lambda: "old"}, lambda: "d")
        assert html == "d"

    def test_tracking_can_be_disabled(self, client, sink):
        """track=False skips the exposure."""
        client.render_variant("homepage-hero", {"variant-a": lambda: "new"}, lambda: "d", track=False)
        assert sink.events == []


class TestRefreshExperiments:
    """Tests for refreshing assignments."""

    def test_assigns_new_experiments_only(self, client, config_source, experiment_payload):
        """Existing assignments are kept; new experiments are assigned."""
        experiment_payload["experiments"]["checkout-flow"] = {
            "id": "checkout-flow",
            "name": "Checkout Flow",
            "status": "active",
            "variants": [
                {"id": "one-step", "name": "One Step", "weight": 50},
                {"id": "two-step", "name": "Two Step", "weight": 50},
            ],
        }
        config_source.set("ab-experiments", experiment_payload)

        assignments = client.refresh_experiments()

        assert assignments["homepage-hero"] == "variant-a"
        assert assignments["checkout-flow"] in {"one-step", "two-step"}
        assert assignments["cta-color"] in {"blue", "green", "red"}
        assert client.get_variant("checkout-flow") == assignments["checkout-flow"]

    def test_refresh_respects_targeting(self, client, config_source, experiment_payload):
        """Targeted experiments are only assigned when the context matches."""
        experiment_payload["experiments"]["product-layout"] = {
            "id": "product-layout",
            "name": "Product Layout",
            "status": "active",
            "variants": [
                {"id": "grid", "name": "Grid", "weight": 50},
                {"id": "list", "name": "List", "weight": 50},
            ],
            "targetingRules": [
                {"type": "path", "operator": "regex", "value": "^/product/[0-9]+$"}
            ],
        }
        config_source.set("ab-experiments", experiment_payload)

        assert "product-layout" not in client.refresh_experiments({"path": "/"})
        assert "product-layout" in client.refresh_experiments({"path": "/product/12"})
