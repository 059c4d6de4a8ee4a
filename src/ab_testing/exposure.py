"""Exposure tracking, at most once per viewing context.

Every (experiment, variant) pair moves from not-exposed to exposed at most once
within a viewing context (a page view). Entering a different viewing context
resets all pairs to not-exposed.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from loguru import logger

from src.ab_testing.analytics import CONVERSION_EVENT, EXPOSURE_EVENT, AnalyticsSink
from src.ab_testing.assignment import Clock, utc_now


@dataclass(frozen=True)
class ExposureEvent:
    """A visitor observed a variant-dependent surface."""

    experiment_id: str
    variant_id: str
    user_id: str
    timestamp: datetime
    path: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_properties(self) -> dict[str, Any]:
        """Event properties for the analytics sink."""
        return {
            **self.metadata,
            "experiment_id": self.experiment_id,
            "variant_id": self.variant_id,
            "user_id": self.user_id,
            "timestamp": self.timestamp.isoformat(),
            "path": self.path,
        }


ExposureCallback = Callable[[ExposureEvent], None]


class ExposureTracker:
    """Deduplicates exposure notifications per viewing context.

    Usage:
        tracker = ExposureTracker(user_id, sink=sink, path="/pricing")
        tracker.track_exposure_once("pricing-page", "treatment")  # True
        tracker.track_exposure_once("pricing-page", "treatment")  # False
        tracker.enter_context("/checkout")
        tracker.track_exposure_once("pricing-page", "treatment")  # True
    """

    def __init__(
        self,
        user_id: str,
        sink: AnalyticsSink | None = None,
        on_exposure: ExposureCallback | None = None,
        path: str | None = None,
        clock: Clock = utc_now,
    ):
        """Initialize tracker.

        Args:
            user_id: Visitor the exposures belong to.
            sink: Analytics sink receiving ``experiment_viewed`` events.
            on_exposure: Callback invoked on each first exposure.
            path: Initial viewing context.
            clock: Returns the current aware datetime.
        """
        self.user_id = user_id
        self.sink = sink
        self.on_exposure = on_exposure
        self.clock = clock

        self._context = path
        self._exposed: set[tuple[str, str]] = set()
        self._lock = threading.Lock()

    @property
    def context(self) -> str | None:
        """Current viewing context."""
        return self._context

    def enter_context(self, path: str | None) -> None:
        """Switch viewing context; a different context resets exposures."""
        with self._lock:
            if path == self._context:
                return
            self._context = path
            self._exposed = set()

    def has_exposed(self, experiment_id: str, variant_id: str) -> bool:
        """Whether the pair was already exposed in the current context."""
        with self._lock:
            return (experiment_id, variant_id) in self._exposed

    def track_exposure_once(
        self,
        experiment_id: str,
        variant_id: str,
        context: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Report an exposure unless already reported in this viewing context.

        Args:
            experiment_id: Experiment identifier.
            variant_id: Variant the visitor observed.
            context: Viewing context of the call. A context different from the
                current one is entered first.
            metadata: Extra event properties.

        Returns:
            True if this call performed the transition to exposed.
        """
        if context is not None:
            self.enter_context(context)

        key = (experiment_id, variant_id)
        with self._lock:
            if key in self._exposed:
                return False
            self._exposed.add(key)
            path = self._context

        event = ExposureEvent(
            experiment_id=experiment_id,
            variant_id=variant_id,
            user_id=self.user_id,
            timestamp=self.clock(),
            path=path,
            metadata=dict(metadata or {}),
        )

        if self.on_exposure:
            try:
                self.on_exposure(event)
            except Exception as e:
                logger.error(f"Exposure callback failed for {experiment_id}: {e}")

        self._send(EXPOSURE_EVENT, event.to_properties())
        return True

    def track_event(
        self,
        event_name: str,
        experiment_id: str,
        variant_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Forward a custom event with experiment context."""
        self._send(
            event_name,
            {
                **(metadata or {}),
                "experiment_id": experiment_id,
                "variant_id": variant_id,
                "user_id": self.user_id,
                "timestamp": self.clock().isoformat(),
                "path": self._context,
            },
        )

    def track_conversion(
        self,
        experiment_id: str,
        variant_id: str,
        value: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Forward an ``experiment_conversion`` event."""
        self.track_event(
            CONVERSION_EVENT,
            experiment_id,
            variant_id,
            {"conversion_value": value, **(metadata or {})},
        )

    def _send(self, event_name: str, properties: dict[str, Any]) -> None:
        if self.sink is None:
            return
        try:
            self.sink.track(event_name, properties)
        except Exception as e:
            logger.error(f"Failed to forward {event_name} event: {e}")
