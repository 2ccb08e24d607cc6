"""FastAPI route handlers for the Solskin REST API.

``router`` is mounted under ``/api/v1``; ``metrics_router`` serves the
Prometheus exposition at the root ``/metrics`` path.

Error code conventions:
    503 NOT_READY       -- controller components are not wired yet
    500 INTERNAL_ERROR  -- unexpected server-side failure
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from solskin.api.schemas import ControllerStatusResponse, ErrorResponse, HealthStatus
from solskin.models.compliance import CheckName

_log = structlog.get_logger(component="api.routes")

router = APIRouter()
metrics_router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _not_ready(detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content=ErrorResponse(error="NOT_READY", detail=detail).model_dump(),
    )


def _ordered_checks(enabled: frozenset[CheckName]) -> list[str]:
    return [check.value for check in CheckName if check in enabled]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@metrics_router.get("/metrics", include_in_schema=False)
async def get_metrics(request: Request) -> Response:
    """Prometheus text exposition of the controller's registry."""
    metrics = getattr(request.app.state, "metrics", None)
    if metrics is None:
        return _not_ready("metrics registry is not available")
    return Response(content=generate_latest(metrics.registry), media_type=CONTENT_TYPE_LATEST)


@router.get(
    "/health",
    response_model=HealthStatus,
    summary="Health check",
    description="Liveness probe. Reports ``degraded`` while the event queue is not running.",
)
async def get_health(request: Request) -> HealthStatus:
    """``GET /api/v1/health``"""
    from solskin import __version__

    queue = getattr(request.app.state, "queue", None)
    healthy = queue is not None and bool(getattr(queue, "running", False))
    return HealthStatus(status="ok" if healthy else "degraded", version=__version__)


@router.get(
    "/status",
    response_model=ControllerStatusResponse,
    summary="Get controller status",
    description="Returns the active mode, enabled checks, cache size and queue depth.",
    responses={500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def get_status(request: Request) -> ControllerStatusResponse:
    """``GET /api/v1/status``"""
    from solskin import __version__

    state = request.app.state
    reconciler = getattr(state, "reconciler", None)
    evaluator = getattr(state, "evaluator", None)
    if reconciler is None or evaluator is None:
        return _not_ready("controller is still starting")  # type: ignore[return-value]

    try:
        queue = getattr(state, "queue", None)
        config = getattr(state, "config", None)
        return ControllerStatusResponse(
            version=__version__,
            cluster_id=config.cluster_id if config is not None else "",
            mode=reconciler.mode.value,
            enabled_checks=_ordered_checks(evaluator.enabled_checks),
            state_cache_entries=len(reconciler.state_cache),
            queue_depth=queue.depth if queue is not None else 0,
            watchers=[w.name for w in getattr(state, "watchers", ())],
        )
    except Exception as exc:
        _log.error("status_endpoint_error", error=str(exc))
        return JSONResponse(  # type: ignore[return-value]
            status_code=500,
            content=ErrorResponse(error="INTERNAL_ERROR", detail="An unexpected error occurred.").model_dump(),
        )
