from __future__ import annotations

from fastapi import HTTPException, Request, status

from engagement.services.engagement_service import EngagementService


def get_engagement_service(request: Request) -> EngagementService:
    """The service instance built at startup (see engagement.main.lifespan)."""
    service = getattr(request.app.state, "engagement_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Engagement service not initialised",
        )
    return service
