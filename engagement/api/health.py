"""Liveness and readiness.

/health reports per-dependency status and always answers 200: a Redis
outage degrades caching but the service still serves from the activity
API.  /ready is 503 until the service has been wired at startup.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response, status

from engagement.db.redis import ping

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict:
    checks: dict[str, str] = {}
    overall = "ok"

    redis_client = getattr(request.app.state, "redis", None)
    if redis_client is None:
        checks["redis"] = "not_configured"
    elif await ping(redis_client):
        checks["redis"] = "ok"
    else:
        checks["redis"] = "degraded"
        overall = "degraded"

    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready(request: Request) -> Response:
    if getattr(request.app.state, "engagement_service", None) is None:
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
