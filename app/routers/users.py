"""
User registry router.

POST   /users                              — register (idempotent upsert)
GET    /users/without-activities           — registered users with no activity yet
GET    /users/{user_id}                    — fetch one user
DELETE /users/{user_id}                    — deregister (cascades)
PUT    /users/{user_id}/rotation-hour      — set UTC rotation hour
POST   /users/{user_id}/rotate             — rotate this user now
"""
from typing import Optional

from fastapi import APIRouter, Depends, Response
from starlette import status

from app.dependencies import Services, get_services, request_deadline
from app.schemas.common import error_responses
from app.schemas.activities import RotationSummaryResponse
from app.schemas.users import RegisterRequest, RotationHourRequest, UserIdsResponse, UserResponse

router = APIRouter(prefix="/users", tags=["users"])


@router.post(
    "",
    response_model=UserResponse,
    summary="Register a user or update its notification target",
    responses=error_responses({422: "Invalid user id or target."}),
)
def register_user(
    payload: RegisterRequest,
    services: Services = Depends(get_services),
    deadline: Optional[float] = Depends(request_deadline),
):
    """
    Creates the user with the default rotation hour. Registering an existing
    user only updates `notification_target`; rotation hour and activities
    are preserved.
    """
    user = services.registry.register(payload.user_id, payload.notification_target, deadline=deadline)
    return UserResponse.model_validate(user)


@router.get(
    "/without-activities",
    response_model=UserIdsResponse,
    summary="Users that registered but never created an activity",
)
def users_without_activities(
    services: Services = Depends(get_services),
    deadline: Optional[float] = Depends(request_deadline),
):
    ids = sorted(services.registry.users_without_activities(deadline=deadline))
    return UserIdsResponse(total=len(ids), user_ids=ids)


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Fetch a user",
    responses=error_responses({404: "User not registered."}),
)
def get_user(
    user_id: int,
    services: Services = Depends(get_services),
    deadline: Optional[float] = Depends(request_deadline),
):
    return UserResponse.model_validate(services.registry.get(user_id, deadline=deadline))


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Deregister a user and delete all of its activities",
    responses=error_responses({404: "User not registered."}),
)
def deregister_user(
    user_id: int,
    services: Services = Depends(get_services),
    deadline: Optional[float] = Depends(request_deadline),
):
    services.registry.deregister(user_id, deadline=deadline)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(
    "/{user_id}/rotation-hour",
    response_model=UserResponse,
    summary="Set the UTC hour at which the user's counters roll over",
    responses=error_responses({
        404: "User not registered.",
        422: "Hour outside 0..23.",
    }),
)
def set_rotation_hour(
    user_id: int,
    payload: RotationHourRequest,
    services: Services = Depends(get_services),
    deadline: Optional[float] = Depends(request_deadline),
):
    user = services.registry.set_rotation_hour(user_id, payload.hour, deadline=deadline)
    return UserResponse.model_validate(user)


@router.post(
    "/{user_id}/rotate",
    response_model=RotationSummaryResponse,
    summary="Rotate this user's counters immediately",
    responses=error_responses({404: "User not registered."}),
)
def rotate_user(
    user_id: int,
    services: Services = Depends(get_services),
    deadline: Optional[float] = Depends(request_deadline),
):
    """
    Same transaction the hourly batch runs: activities with `current == 0`
    lose their streak, the rest bank `current` into `total`. Runs even when
    the user already rotated in the current window.
    """
    summary = services.ledger.rotate(user_id, deadline=deadline, force=True)
    return RotationSummaryResponse.model_validate(summary)
