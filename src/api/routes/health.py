"""Health check endpoint."""

from fastapi import APIRouter, Request

from src.api.config import get_api_settings
from src.api.schemas.health import HealthResponse

router = APIRouter(tags=["health"])
api_settings = get_api_settings()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint.

    Reports the cached experiment set without triggering a fetch; the service
    is degraded until a configuration fetch has succeeded.
    """
    cache = request.app.state.experiment_service.config_cache
    cached = cache.cached

    return HealthResponse(
        status="healthy" if cached is not None else "degraded",
        experiments_loaded=len(cached.data) if cached else 0,
        version=api_settings.api_version,
        last_updated=cache.last_updated,
    )
