"""API routes for experiment assignment and tracking.

Assignments are resolved by the A/B testing middleware before these handlers
run; handlers read them from ``request.state``.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from starlette.concurrency import run_in_threadpool

from src.ab_testing.client import ExperimentClient
from src.api.schemas.experiments import (
    AssignmentsResponse,
    ConversionRequest,
    ExperimentResponse,
    ExposureRequest,
    RefreshResponse,
    SampleSizeResponse,
    TrackingResponse,
)
from src.api.services.experiment_service import ExperimentService

router = APIRouter(prefix="/experiments", tags=["experiments"])


def get_experiment_service(request: Request) -> ExperimentService:
    """Experiment service of the running application."""
    return request.app.state.experiment_service


def get_experiment_client(
    request: Request,
    service: ExperimentService = Depends(get_experiment_service),
) -> ExperimentClient:
    """Client for the requesting visitor."""
    user_id = getattr(request.state, "ab_user_id", None)
    if not user_id:
        raise HTTPException(status_code=400, detail="No visitor identifier for this request")

    assignments = getattr(request.state, "ab_assignments", {})
    return service.client_for(user_id, assignments, path=request.url.path)


async def _require_experiment(service: ExperimentService, experiment_id: str) -> None:
    experiment = await run_in_threadpool(service.config_cache.get_experiment, experiment_id)
    if experiment is None:
        raise HTTPException(
            status_code=404,
            detail=f"Experiment '{experiment_id}' not found",
        )


@router.get("", response_model=list[ExperimentResponse])
async def list_experiments(
    status: str | None = None,
    service: ExperimentService = Depends(get_experiment_service),
):
    """List the current valid experiments.

    Args:
        status: Optional filter by status (active, paused, completed).
    """
    experiments = await run_in_threadpool(service.config_cache.fetch)

    results = list(experiments.values())
    if status:
        results = [e for e in results if e.status.value == status]

    return [ExperimentResponse.from_experiment(e) for e in results]


@router.get("/assignments", response_model=AssignmentsResponse)
async def get_assignments(client: ExperimentClient = Depends(get_experiment_client)):
    """Get the requesting visitor's assignments."""
    return AssignmentsResponse(user_id=client.user_id, assignments=client.assignments)


@router.get("/sample-size", response_model=SampleSizeResponse)
async def get_sample_size(
    baseline_rate: float = Query(..., gt=0, lt=1, description="Baseline conversion rate"),
    minimum_detectable_effect: float = Query(..., description="Minimum relative effect"),
    power: float = Query(0.8, gt=0, lt=1),
    alpha: float = Query(0.05, gt=0, lt=1),
    n_variants: int = Query(2, ge=2),
    service: ExperimentService = Depends(get_experiment_service),
):
    """Plan the sample size for a conversion-rate experiment."""
    try:
        result = service.planner.plan(
            baseline_rate,
            minimum_detectable_effect,
            power=power,
            significance_level=alpha,
            n_variants=n_variants,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return SampleSizeResponse(**result.to_dict())


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_experiments(service: ExperimentService = Depends(get_experiment_service)):
    """Force a refresh of the experiment configuration."""
    experiments = await run_in_threadpool(service.config_cache.fetch, True)
    return RefreshResponse(
        status="refreshed",
        experiments=len(experiments),
        last_updated=service.config_cache.last_updated,
    )


@router.get("/{experiment_id}", response_model=ExperimentResponse)
async def get_experiment(
    experiment_id: str,
    service: ExperimentService = Depends(get_experiment_service),
):
    """Get experiment details.

    Args:
        experiment_id: Experiment ID.
    """
    experiment = await run_in_threadpool(service.config_cache.get_experiment, experiment_id)
    if experiment is None:
        raise HTTPException(
            status_code=404,
            detail=f"Experiment '{experiment_id}' not found",
        )
    return ExperimentResponse.from_experiment(experiment)


@router.post("/{experiment_id}/exposure", response_model=TrackingResponse)
async def track_exposure(
    experiment_id: str,
    body: ExposureRequest,
    service: ExperimentService = Depends(get_experiment_service),
    client: ExperimentClient = Depends(get_experiment_client),
):
    """Report that the visitor observed their variant.

    Exposure is tracked once per request. Deduplication only applies within
    a single request's tracker, so repeated calls for the same viewing
    context each emit an event; clients report once per view.

    Args:
        experiment_id: Experiment ID.
        body: Viewing context and metadata.
    """
    await _require_experiment(service, experiment_id)

    variant_id = client.get_variant(experiment_id)
    if not variant_id:
        raise HTTPException(
            status_code=404,
            detail=f"No assignment for experiment '{experiment_id}'",
        )

    if body.path:
        client.tracker.enter_context(body.path)
    await run_in_threadpool(client.track_exposure, experiment_id, metadata=body.metadata)

    return TrackingResponse(status="tracked", experiment_id=experiment_id, variant_id=variant_id)


@router.post("/{experiment_id}/conversion", response_model=TrackingResponse)
async def track_conversion(
    experiment_id: str,
    body: ConversionRequest,
    service: ExperimentService = Depends(get_experiment_service),
    client: ExperimentClient = Depends(get_experiment_client),
):
    """Report a conversion for the visitor's variant.

    Args:
        experiment_id: Experiment ID.
        body: Conversion value and metadata.
    """
    await _require_experiment(service, experiment_id)

    tracked = await run_in_threadpool(
        client.track_conversion, experiment_id, value=body.value, metadata=body.metadata
    )
    if not tracked:
        raise HTTPException(
            status_code=404,
            detail=f"No assignment for experiment '{experiment_id}'",
        )

    return TrackingResponse(
        status="tracked",
        experiment_id=experiment_id,
        variant_id=client.get_variant(experiment_id),
    )
