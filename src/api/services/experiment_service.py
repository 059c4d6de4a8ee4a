"""Experiment service wiring the assignment components together."""

from loguru import logger

from src.ab_testing.analytics import AnalyticsSink, LoggingAnalyticsSink, PostHogAnalyticsSink
from src.ab_testing.client import ExperimentClient
from src.ab_testing.config_cache import ExperimentConfigCache
from src.ab_testing.coordinator import AssignmentCoordinator
from src.ab_testing.exposure import ExposureTracker
from src.ab_testing.persistence import PersistenceBridge
from src.ab_testing.sample_size import SampleSizePlanner
from src.ab_testing.sources import (
    ExperimentConfigSource,
    HttpConfigSource,
    InMemoryConfigSource,
    RedisConfigSource,
)
from src.config import Settings


def build_config_source(settings: Settings) -> ExperimentConfigSource:
    """Create the configuration source selected in settings.

    Raises:
        ValueError: If the configured source kind is unknown.
    """
    kind = settings.config_source.lower()

    if kind == "memory":
        if settings.experiments_file:
            return InMemoryConfigSource.from_file(
                settings.experiments_file, settings.experiments_config_key
            )
        return InMemoryConfigSource()

    if kind == "redis":
        return RedisConfigSource(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password,
        )

    if kind == "http":
        return HttpConfigSource(
            base_url=settings.config_http_url,
            token=settings.config_http_token,
            timeout=settings.config_http_timeout_seconds,
        )

    raise ValueError(f"Unknown config source: {settings.config_source}")


def build_analytics_sink(settings: Settings) -> AnalyticsSink:
    """Create the analytics sink: PostHog when configured, else the log."""
    if settings.posthog_api_key:
        return PostHogAnalyticsSink(
            api_key=settings.posthog_api_key,
            host=settings.posthog_host,
            timeout=settings.analytics_timeout_seconds,
        )
    return LoggingAnalyticsSink()


class ExperimentService:
    """Owns the per-process experiment components."""

    def __init__(
        self,
        settings: Settings,
        config_source: ExperimentConfigSource | None = None,
        analytics_sink: AnalyticsSink | None = None,
    ):
        """Initialize experiment service.

        Args:
            settings: Application settings.
            config_source: Configuration source. Default: built from settings.
            analytics_sink: Analytics sink. Default: built from settings.
        """
        self.settings = settings
        self.config_source = config_source or build_config_source(settings)
        self.analytics_sink = analytics_sink or build_analytics_sink(settings)

        self.config_cache = ExperimentConfigCache(
            self.config_source,
            key=settings.experiments_config_key,
            ttl_seconds=settings.experiments_cache_ttl_seconds,
        )
        self.coordinator = AssignmentCoordinator(self.config_cache)
        self.bridge = PersistenceBridge(
            self.coordinator,
            ttl_seconds=settings.cookie_max_age_seconds,
        )
        self.planner = SampleSizePlanner()

        self._unsubscribe = None

    def start(self) -> None:
        """Warm the cache and start background polling if enabled."""
        experiments = self.config_cache.fetch()
        logger.info(f"Experiment service started with {len(experiments)} experiments")

        if self.settings.experiments_poll_enabled and self._unsubscribe is None:
            self._unsubscribe = self.config_cache.subscribe(
                lambda experiments: logger.debug(
                    f"Experiment configuration polled: {len(experiments)} experiments"
                ),
                interval_seconds=self.settings.experiments_poll_interval_seconds,
            )

    def stop(self) -> None:
        """Stop polling and release connections."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.config_source.close()
        logger.info("Experiment service stopped")

    def client_for(
        self,
        user_id: str,
        assignments: dict[str, str],
        path: str | None = None,
    ) -> ExperimentClient:
        """Build a client for one visitor in one viewing context."""
        tracker = ExposureTracker(user_id, sink=self.analytics_sink, path=path)
        return ExperimentClient(
            user_id=user_id,
            assignments=assignments,
            config_cache=self.config_cache,
            tracker=tracker,
            coordinator=self.coordinator,
        )
