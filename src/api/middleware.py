"""A/B testing middleware.

Resolves the visitor id and experiment assignments for each request, persists
new assignments in cookies and exposes the result to handlers
(``request.state.ab_assignments``) and to the rendering layer (the
``X-AB-Assignments`` response header).
"""

from collections.abc import Iterable

from fastapi import Request
from loguru import logger
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from src.ab_testing.persistence import (
    CookieAssignmentStore,
    generate_user_id,
    serialize_assignments,
)
from src.ab_testing.targeting import build_targeting_context
from src.api.services.experiment_service import ExperimentService


class ABTestingMiddleware(BaseHTTPMiddleware):
    """Assigns experiments at the request boundary.

    Failures never block the request: the request proceeds without
    assignments.
    """

    def __init__(
        self,
        app: ASGIApp,
        service: ExperimentService,
        excluded_paths: Iterable[str] = (),
    ):
        super().__init__(app)
        self.service = service
        self.excluded_paths = tuple(excluded_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if self.excluded_paths and request.url.path.startswith(self.excluded_paths):
            return await call_next(request)

        settings = self.service.settings

        user_id = request.cookies.get(settings.user_id_cookie)
        store = CookieAssignmentStore(
            request.cookies,
            prefix=settings.assignment_cookie_prefix,
            secure=settings.secure_cookies,
        )
        if not user_id:
            user_id = generate_user_id()
            store.queue(settings.user_id_cookie, user_id, settings.cookie_max_age_seconds)

        assignments: dict[str, str] = {}
        try:
            context = build_targeting_context(
                request.url.path,
                cookies=request.cookies,
                headers=request.headers,
                query=request.query_params,
            )
            experiments = await run_in_threadpool(self.service.config_cache.fetch)
            assignments = self.service.bridge.resolve(user_id, store, context, experiments)
        except Exception:
            logger.exception("A/B testing middleware error")

        request.state.ab_user_id = user_id
        request.state.ab_assignments = assignments

        response = await call_next(request)

        store.apply(response)
        if assignments:
            response.headers[settings.assignments_header] = serialize_assignments(assignments)

        return response
