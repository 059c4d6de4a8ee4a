"""Durable assignment persistence at the request boundary.

Once a user has been assigned to a variant the assignment is stored, and later
requests reuse the stored variant verbatim instead of recomputing it. This
keeps users pinned even if an experiment's weights change afterwards.
"""

import json
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import redis
from loguru import logger

from src.ab_testing.coordinator import AssignmentCoordinator
from src.ab_testing.models import Experiment

ONE_YEAR_SECONDS = 365 * 24 * 60 * 60
DEFAULT_ASSIGNMENT_COOKIE_PREFIX = "ab_exp_"


def generate_user_id() -> str:
    """Mint an opaque identifier for an anonymous visitor."""
    return f"user_{uuid.uuid4().hex}"


def assignment_cookie_name(
    experiment_id: str,
    prefix: str = DEFAULT_ASSIGNMENT_COOKIE_PREFIX,
) -> str:
    """Cookie name holding the assignment for an experiment."""
    return f"{prefix}{experiment_id}"


def serialize_assignments(assignments: Mapping[str, str]) -> str:
    """Serialize an experiment id to variant id map for propagation."""
    return json.dumps(dict(assignments), separators=(",", ":"), sort_keys=True)


def parse_assignments_header(value: str | None) -> dict[str, str]:
    """Read a propagated assignments map; anything malformed yields ``{}``."""
    if not value:
        return {}

    try:
        data = json.loads(value)
    except ValueError:
        logger.warning("Ignoring malformed assignments header")
        return {}

    if not isinstance(data, dict):
        return {}
    return {str(k): str(v) for k, v in data.items() if isinstance(v, str)}


class AssignmentStore(ABC):
    """Abstract base class for durable assignment storage."""

    @abstractmethod
    def get(self, user_id: str, experiment_id: str) -> str | None:
        """Get the persisted variant id, if any."""
        pass

    @abstractmethod
    def set(self, user_id: str, experiment_id: str, variant_id: str, ttl_seconds: int) -> None:
        """Persist a variant id."""
        pass


class InMemoryAssignmentStore(AssignmentStore):
    """In-memory assignment storage for development/testing."""

    def __init__(self, clock=time.monotonic):
        self.clock = clock
        self._assignments: dict[tuple[str, str], tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str, experiment_id: str) -> str | None:
        """Get the persisted variant id, if not expired."""
        with self._lock:
            entry = self._assignments.get((user_id, experiment_id))
            if entry is None:
                return None

            variant_id, expires_at = entry
            if self.clock() >= expires_at:
                del self._assignments[(user_id, experiment_id)]
                return None
            return variant_id

    def set(self, user_id: str, experiment_id: str, variant_id: str, ttl_seconds: int) -> None:
        """Persist a variant id."""
        with self._lock:
            self._assignments[(user_id, experiment_id)] = (
                variant_id,
                self.clock() + ttl_seconds,
            )

    def clear(self) -> None:
        """Clear all assignments."""
        with self._lock:
            self._assignments.clear()


class RedisAssignmentStore(AssignmentStore):
    """Server-side assignment storage in Redis.

    Keys: ``ab:assignment:{user_id}:{experiment_id}`` with a TTL.
    """

    PREFIX = "ab:assignment"

    def __init__(self, client: redis.Redis):
        self._redis = client

    def _key(self, user_id: str, experiment_id: str) -> str:
        return f"{self.PREFIX}:{user_id}:{experiment_id}"

    def get(self, user_id: str, experiment_id: str) -> str | None:
        """Get the persisted variant id, if any."""
        value = self._redis.get(self._key(user_id, experiment_id))
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, user_id: str, experiment_id: str, variant_id: str, ttl_seconds: int) -> None:
        """Persist a variant id."""
        self._redis.setex(self._key(user_id, experiment_id), ttl_seconds, variant_id)


class CookieResponse(Protocol):
    """Anything that can set a cookie (e.g. a Starlette response)."""

    def set_cookie(self, key: str, value: str = "", **kwargs: Any) -> None: ...


@dataclass(frozen=True)
class PendingCookie:
    """Cookie queued for the response."""

    name: str
    value: str
    max_age: int


class CookieAssignmentStore(AssignmentStore):
    """Request-scoped assignment storage in HTTP cookies.

    Reads come from the incoming request's cookies; writes are queued and
    applied to the outgoing response with ``apply``. Cookies belong to a
    single visitor, so ``user_id`` does not take part in the cookie name.
    """

    def __init__(
        self,
        request_cookies: Mapping[str, str],
        prefix: str = DEFAULT_ASSIGNMENT_COOKIE_PREFIX,
        secure: bool = False,
    ):
        """Initialize cookie store.

        Args:
            request_cookies: Cookies of the incoming request.
            prefix: Assignment cookie name prefix.
            secure: Mark cookies Secure (HTTPS only).
        """
        self.request_cookies = request_cookies
        self.prefix = prefix
        self.secure = secure
        self.pending: list[PendingCookie] = []

    def get(self, user_id: str, experiment_id: str) -> str | None:
        """Get the variant id from the request cookie."""
        name = assignment_cookie_name(experiment_id, self.prefix)
        for cookie in reversed(self.pending):
            if cookie.name == name:
                return cookie.value
        return self.request_cookies.get(name) or None

    def set(self, user_id: str, experiment_id: str, variant_id: str, ttl_seconds: int) -> None:
        """Queue an assignment cookie."""
        self.pending.append(
            PendingCookie(
                name=assignment_cookie_name(experiment_id, self.prefix),
                value=variant_id,
                max_age=ttl_seconds,
            )
        )

    def queue(self, name: str, value: str, max_age: int) -> None:
        """Queue an arbitrary cookie (e.g. the user id)."""
        self.pending.append(PendingCookie(name=name, value=value, max_age=max_age))

    def apply(self, response: CookieResponse) -> None:
        """Write queued cookies to a response."""
        for cookie in self.pending:
            response.set_cookie(
                cookie.name,
                cookie.value,
                max_age=cookie.max_age,
                httponly=True,
                secure=self.secure,
                samesite="lax",
            )


class PersistenceBridge:
    """Resolves a visitor's assignments against durable storage.

    For each known experiment an existing persisted assignment is reused as
    is; otherwise a fresh assignment is computed (targeting first) and
    persisted.
    """

    def __init__(
        self,
        coordinator: AssignmentCoordinator,
        ttl_seconds: int = ONE_YEAR_SECONDS,
    ):
        """Initialize bridge.

        Args:
            coordinator: Computes fresh assignments.
            ttl_seconds: Lifetime of persisted assignments.
        """
        self.coordinator = coordinator
        self.ttl_seconds = ttl_seconds

    def resolve(
        self,
        user_id: str,
        store: AssignmentStore,
        context: Mapping[str, Any] | None = None,
        experiments: Mapping[str, Experiment] | None = None,
    ) -> dict[str, str]:
        """Resolve assignments for a visitor.

        Args:
            user_id: Visitor identifier.
            store: Durable assignment storage.
            context: Targeting context of the current request.
            experiments: Experiment set. Defaults to the cached set.

        Returns:
            Map of experiment id to variant id.
        """
        if experiments is None:
            experiments = self.coordinator.config_cache.fetch()

        assignments: dict[str, str] = {}

        for experiment_id, experiment in experiments.items():
            try:
                existing = store.get(user_id, experiment_id)
                if existing:
                    assignments[experiment_id] = existing
                    continue

                assignment = self.coordinator.assign_experiment(user_id, experiment, context)
                if assignment is None:
                    continue

                store.set(user_id, experiment_id, assignment.variant_id, self.ttl_seconds)
                assignments[experiment_id] = assignment.variant_id
                logger.debug(
                    f"Assigned user {user_id} to {experiment_id}/{assignment.variant_id}"
                )
            except Exception as e:
                logger.error(f"Failed to resolve assignment for {experiment_id}: {e}")

        return assignments
