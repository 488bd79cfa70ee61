"""User activity and engagement endpoints.

Thin translation between HTTP and EngagementService: parse the request,
call one service method, shape the JSON.  Error mapping lives in
engagement.main (ValidationError → 400, UpstreamError → 502,
CacheError → 503).
"""

from __future__ import annotations

import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from engagement.api.dependencies import get_engagement_service
from engagement.models.activity import ActivityFilter, ActivityKind
from engagement.services.engagement_service import EngagementService

router = APIRouter(prefix="/v1/users", tags=["engagement"])

ServiceDep = Annotated[EngagementService, Depends(get_engagement_service)]


class BulkEngagementIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_ids: list[str] = Field(alias="userIds")
    time_range: int | None = Field(default=None, alias="timeRange", gt=0)


class UserMetricsOut(BaseModel):
    userId: str
    metrics: dict[str, Any]


class EngagementOut(UserMetricsOut):
    timeRangeInDays: int | None


class BulkEngagementOut(BaseModel):
    results: list[UserMetricsOut]
    processed: int
    requested: int
    timeRangeInDays: int | None


class ActivityOut(BaseModel):
    userId: str
    activities: list[dict[str, Any]]
    filter: dict[str, Any]


class InvalidateOut(BaseModel):
    success: bool
    message: str
    keysDeleted: int


@router.get("/{user_id}/engagement", response_model=EngagementOut)
async def get_engagement(
    user_id: str,
    service: ServiceDep,
    time_range: Annotated[int | None, Query(alias="timeRange", gt=0)] = None,
) -> EngagementOut:
    metrics = await service.compute_metrics(user_id, time_range)
    return EngagementOut(
        userId=user_id, metrics=metrics.to_payload(), timeRangeInDays=time_range
    )


@router.get("/{user_id}/activity", response_model=ActivityOut)
async def get_activity(
    user_id: str,
    service: ServiceDep,
    start_date: Annotated[datetime.datetime | None, Query(alias="startDate")] = None,
    end_date: Annotated[datetime.datetime | None, Query(alias="endDate")] = None,
    kind: Annotated[ActivityKind | None, Query(alias="type")] = None,
    path: Annotated[str | None, Query()] = None,
    limit: Annotated[int | None, Query()] = None,
) -> ActivityOut:
    activity_filter = ActivityFilter(
        start_date=start_date,
        end_date=end_date,
        kind=kind,
        location=path,
        limit=limit,
    )
    activities = await service.fetch_activity(user_id, activity_filter)
    return ActivityOut(
        userId=user_id,
        activities=[a.to_payload() for a in activities],
        filter=activity_filter.as_params(),
    )


@router.post("/bulk/engagement", response_model=BulkEngagementOut)
async def bulk_engagement(
    body: BulkEngagementIn,
    service: ServiceDep,
) -> BulkEngagementOut:
    if not body.user_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User IDs array is required",
        )

    metrics_by_user = await service.bulk_compute_metrics(body.user_ids, body.time_range)
    results = [
        UserMetricsOut(userId=user_id, metrics=metrics.to_payload())
        for user_id, metrics in metrics_by_user.items()
    ]
    return BulkEngagementOut(
        results=results,
        processed=len(results),
        requested=len(body.user_ids),
        timeRangeInDays=body.time_range,
    )


@router.post("/{user_id}/cache/invalidate", response_model=InvalidateOut)
async def invalidate_cache(user_id: str, service: ServiceDep) -> InvalidateOut:
    deleted = await service.invalidate(user_id)
    return InvalidateOut(
        success=True,
        message=f"Cache invalidated for user {user_id}",
        keysDeleted=deleted,
    )
