"""Analytics sinks receiving exposure and conversion events.

Delivery is best effort: sinks log failures and never raise into the caller.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
from loguru import logger

EXPOSURE_EVENT = "experiment_viewed"
CONVERSION_EVENT = "experiment_conversion"


@dataclass
class AnalyticsEvent:
    """Single analytics event."""

    name: str
    properties: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "event": self.name,
            "properties": self.properties,
            "timestamp": self.timestamp.isoformat(),
        }


class AnalyticsSink(ABC):
    """Abstract base class for analytics backends."""

    @abstractmethod
    def track(self, event_name: str, properties: dict[str, Any]) -> None:
        """Forward a named event."""
        pass


class InMemoryAnalyticsSink(AnalyticsSink):
    """Keeps events in memory for development/testing."""

    def __init__(self, max_events: int = 100000):
        self.max_events = max_events
        self.events: list[AnalyticsEvent] = []
        self._lock = threading.Lock()

    def track(self, event_name: str, properties: dict[str, Any]) -> None:
        """Record an event."""
        with self._lock:
            self.events.append(AnalyticsEvent(name=event_name, properties=dict(properties)))

            if len(self.events) > self.max_events:
                self.events = self.events[-self.max_events:]

    def named(self, event_name: str) -> list[AnalyticsEvent]:
        """Events with a given name."""
        with self._lock:
            return [e for e in self.events if e.name == event_name]

    def clear(self) -> None:
        """Clear all events."""
        with self._lock:
            self.events.clear()


class LoggingAnalyticsSink(AnalyticsSink):
    """Writes events to the log only."""

    def track(self, event_name: str, properties: dict[str, Any]) -> None:
        """Log an event."""
        logger.info(f"Analytics event {event_name}: {properties}")


class PostHogAnalyticsSink(AnalyticsSink):
    """Sends events to the PostHog capture endpoint."""

    def __init__(
        self,
        api_key: str,
        host: str = "https://app.posthog.com",
        timeout: float = 2.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize PostHog sink.

        Args:
            api_key: Project API key.
            host: PostHog host.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.api_key = api_key
        self._client = httpx.Client(
            base_url=host.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    def track(self, event_name: str, properties: dict[str, Any]) -> None:
        """Capture an event in PostHog."""
        properties = dict(properties)
        timestamp = properties.pop("timestamp", None) or datetime.now(timezone.utc).isoformat()

        body = {
            "api_key": self.api_key,
            "event": event_name,
            "distinct_id": properties.get("user_id") or "anonymous",
            "properties": properties,
            "timestamp": timestamp,
        }

        try:
            response = self._client.post("/capture/", json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send {event_name} to PostHog: {e}")

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()
