"""Remote configuration sources for experiment definitions.

A source is a key-value fetch: ``get(key)`` returns the decoded payload stored
under ``key`` (``{"experiments": {...}, "lastUpdated": "..."}``), ``None`` when
the key does not exist, and raises ``ConfigSourceError`` when the store cannot
be reached or returns something undecodable.
"""

import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import httpx
import redis
from loguru import logger


class ConfigSourceError(Exception):
    """The configuration store could not be read."""


class ExperimentConfigSource(ABC):
    """Abstract base class for experiment configuration stores."""

    @abstractmethod
    def get(self, key: str) -> dict[str, Any] | None:
        """Fetch the payload stored under a key."""
        pass

    def close(self) -> None:
        """Release any held connections."""
        pass


class InMemoryConfigSource(ExperimentConfigSource):
    """In-memory configuration store for development/testing."""

    def __init__(self, items: dict[str, dict[str, Any]] | None = None):
        self._items: dict[str, dict[str, Any]] = dict(items or {})
        self._lock = threading.Lock()
        self.fetch_count = 0

    def get(self, key: str) -> dict[str, Any] | None:
        """Fetch the payload stored under a key."""
        with self._lock:
            self.fetch_count += 1
            return self._items.get(key)

    def set(self, key: str, payload: dict[str, Any]) -> None:
        """Replace the payload stored under a key."""
        with self._lock:
            self._items[key] = payload

    def delete(self, key: str) -> None:
        """Remove a key."""
        with self._lock:
            self._items.pop(key, None)

    @classmethod
    def from_file(cls, path: Path, key: str) -> "InMemoryConfigSource":
        """Load a payload from a JSON file and serve it under a key."""
        return cls({key: load_payload_file(path)})


def _decode_payload(raw: str | bytes, origin: str) -> dict[str, Any]:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ConfigSourceError(f"Malformed payload from {origin}: {e}") from e

    if not isinstance(payload, dict):
        raise ConfigSourceError(f"Malformed payload from {origin}: expected an object")
    return payload


def load_payload_file(path: Path) -> dict[str, Any]:
    """Read an experiment payload from a JSON file.

    Raises:
        ConfigSourceError: If the file is missing or malformed.
    """
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigSourceError(f"Cannot read {path}: {e}") from e
    return _decode_payload(raw, str(path))


class RedisConfigSource(ExperimentConfigSource):
    """Experiment configuration stored as a JSON string in Redis."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: str | None = None,
        socket_timeout: float = 2.0,
        client: redis.Redis | None = None,
    ):
        """Initialize Redis source.

        Args:
            host: Redis host.
            port: Redis port.
            db: Redis database number.
            password: Redis password.
            socket_timeout: Socket timeout in seconds.
            client: Pre-built client (overrides connection arguments).
        """
        self.host = host
        self.port = port
        self._redis = client or redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            socket_timeout=socket_timeout,
            decode_responses=True,
        )

    def get(self, key: str) -> dict[str, Any] | None:
        """Fetch the payload stored under a key."""
        try:
            raw = self._redis.get(key)
        except redis.RedisError as e:
            raise ConfigSourceError(f"Redis unavailable at {self.host}:{self.port}: {e}") from e

        if raw is None:
            return None
        return _decode_payload(raw, f"redis key '{key}'")

    def publish(self, key: str, payload: dict[str, Any]) -> None:
        """Store a payload under a key."""
        self._redis.set(key, json.dumps(payload))
        logger.info(f"Published experiment configuration to redis key '{key}'")

    def close(self) -> None:
        """Close the Redis connection."""
        self._redis.close()


class HttpConfigSource(ExperimentConfigSource):
    """Experiment configuration served over HTTP.

    Reads ``GET {base_url}/item/{key}`` with a bearer token, the layout used by
    edge key-value configuration services.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 2.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize HTTP source.

        Args:
            base_url: Base URL of the configuration store.
            token: Bearer token for the store.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def get(self, key: str) -> dict[str, Any] | None:
        """Fetch the payload stored under a key."""
        try:
            response = self._client.get(f"/item/{key}")
        except httpx.HTTPError as e:
            raise ConfigSourceError(f"Config store request failed: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise ConfigSourceError(
                f"Config store returned status {response.status_code} for '{key}'"
            )
        return _decode_payload(response.content, f"{self.base_url}/item/{key}")

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()
