"""
Activity ledger router.

POST   /users/{user_id}/activities                    — create
GET    /users/{user_id}/activities                    — list (names + counters)
POST   /users/{user_id}/activities/notified           — record delivered reminders
GET    /users/{user_id}/activities/{name}             — stats
DELETE /users/{user_id}/activities/{name}             — delete
POST   /users/{user_id}/activities/{name}/posts       — post (+1)
GET    /users/{user_id}/activities/{name}/posts       — post history
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from starlette import status

from app.dependencies import Services, get_services, request_deadline
from app.schemas.common import error_responses
from app.schemas.activities import (
    ActivityListResponse,
    ActivityStatsResponse,
    CreateActivityRequest,
    MarkNotifiedRequest,
    MarkNotifiedResponse,
    PostHistoryResponse,
    PostRecordResponse,
)

router = APIRouter(prefix="/users/{user_id}/activities", tags=["activities"])


@router.post(
    "",
    response_model=ActivityStatsResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an activity with zeroed counters",
    responses=error_responses({
        404: "User not registered.",
        409: "Activity name already used by this user.",
    }),
)
def create_activity(
    user_id: int,
    payload: CreateActivityRequest,
    services: Services = Depends(get_services),
    deadline: Optional[float] = Depends(request_deadline),
):
    stats = services.ledger.create(user_id, payload.name, deadline=deadline)
    return ActivityStatsResponse.model_validate(stats)


@router.get(
    "",
    response_model=ActivityListResponse,
    summary="List a user's activities in lexicographic order",
    responses=error_responses({404: "User not registered."}),
)
def list_activities(
    user_id: int,
    services: Services = Depends(get_services),
    deadline: Optional[float] = Depends(request_deadline),
):
    items = services.ledger.list_activities(user_id, deadline=deadline)
    return ActivityListResponse(
        user_id=user_id,
        names=[a.name for a in items],
        items=[ActivityStatsResponse.model_validate(a) for a in items],
    )


@router.post(
    "/notified",
    response_model=MarkNotifiedResponse,
    summary="Record that stall reminders were delivered",
    responses=error_responses({404: "User not registered."}),
)
def mark_notified(
    user_id: int,
    payload: MarkNotifiedRequest,
    services: Services = Depends(get_services),
    deadline: Optional[float] = Depends(request_deadline),
):
    """
    Call after the front-end actually delivered a reminder. Stamps
    `last_notified_at` so the activities stay quiet for the freeze window.
    Unknown activity names are ignored.
    """
    at = payload.at or services.clock()
    stamped = services.ledger.mark_notified(user_id, payload.activities, at, deadline=deadline)
    return MarkNotifiedResponse(user_id=user_id, stamped=stamped)


@router.get(
    "/{name}",
    response_model=ActivityStatsResponse,
    summary="Counters of one activity",
    responses=error_responses({404: "User or activity not found."}),
)
def activity_stats(
    user_id: int,
    name: str,
    services: Services = Depends(get_services),
    deadline: Optional[float] = Depends(request_deadline),
):
    return ActivityStatsResponse.model_validate(services.ledger.stats(user_id, name, deadline=deadline))


@router.delete(
    "/{name}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an activity",
    responses=error_responses({404: "User or activity not found."}),
)
def delete_activity(
    user_id: int,
    name: str,
    services: Services = Depends(get_services),
    deadline: Optional[float] = Depends(request_deadline),
):
    services.ledger.delete(user_id, name, deadline=deadline)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{name}/posts",
    response_model=ActivityStatsResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post the activity for today (current += 1)",
    responses=error_responses({404: "User or activity not found."}),
)
def post_activity(
    user_id: int,
    name: str,
    services: Services = Depends(get_services),
    deadline: Optional[float] = Depends(request_deadline),
):
    return ActivityStatsResponse.model_validate(services.ledger.post(user_id, name, deadline=deadline))


@router.get(
    "/{name}/posts",
    response_model=PostHistoryResponse,
    summary="Post history, newest first",
    responses=error_responses({404: "User or activity not found."}),
)
def post_history(
    user_id: int,
    name: str,
    limit: int = Query(default=50, ge=1, le=500, description="Page size."),
    services: Services = Depends(get_services),
    deadline: Optional[float] = Depends(request_deadline),
):
    items = services.ledger.history(user_id, name, limit=limit, deadline=deadline)
    return PostHistoryResponse(
        total=len(items),
        items=[PostRecordResponse.model_validate(p) for p in items],
    )
