"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from src.ab_testing.analytics import AnalyticsSink
from src.ab_testing.sources import ExperimentConfigSource
from src.api.config import get_api_settings
from src.api.middleware import ABTestingMiddleware
from src.api.routes import experiments, health
from src.api.services.experiment_service import ExperimentService
from src.config import Settings, settings as default_settings

api_settings = get_api_settings()


def create_app(
    settings: Settings | None = None,
    config_source: ExperimentConfigSource | None = None,
    analytics_sink: AnalyticsSink | None = None,
) -> FastAPI:
    """Create the API application with its own experiment service.

    Args:
        settings: Application settings. Default: environment settings.
        config_source: Experiment configuration source override.
        analytics_sink: Analytics sink override.
    """
    service = ExperimentService(
        settings or default_settings,
        config_source=config_source,
        analytics_sink=analytics_sink,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler.

        Warms the experiment cache on startup and stops polling on shutdown.
        """
        logger.info("Starting up API server...")
        service.start()

        yield

        logger.info("Shutting down API server...")
        service.stop()

    app = FastAPI(
        title=api_settings.api_title,
        version=api_settings.api_version,
        description=api_settings.api_description,
        lifespan=lifespan,
    )
    app.state.experiment_service = service

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[service.settings.assignments_header],
    )
    app.add_middleware(
        ABTestingMiddleware,
        service=service,
        excluded_paths=api_settings.ab_excluded_paths,
    )

    # Include routers
    app.include_router(health.router)
    app.include_router(experiments.router)

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": api_settings.api_title,
            "version": api_settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
