"""
Scheduled triggers, called once per hour by an external scheduler.

POST /triggers/rotation       — RunRotationBatch(now)
POST /triggers/notification   — users due a stall reminder (delivery is external)

Both accept an optional `now` so a delayed scheduler can replay the hour it
missed. When TRIGGER_TOKEN is configured the X-Trigger-Token header must match.
"""
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Body, Depends

from app.core.clock import as_utc
from app.dependencies import Services, get_services, request_deadline, require_trigger_token
from app.schemas.common import error_responses
from app.schemas.triggers import (
    NotificationBatchResponse,
    NotificationTriggerRequest,
    PendingNotificationResponse,
    RotationBatchResponse,
    TriggerRequest,
    UserOutcomeResponse,
)

router = APIRouter(
    prefix="/triggers",
    tags=["triggers"],
    dependencies=[Depends(require_trigger_token)],
)


@router.post(
    "/rotation",
    response_model=RotationBatchResponse,
    summary="Rotate every user due in the current UTC hour",
    responses=error_responses({403: "Trigger token missing or wrong."}),
)
def trigger_rotation(
    payload: Optional[TriggerRequest] = Body(default=None),
    services: Services = Depends(get_services),
    deadline: Optional[float] = Depends(request_deadline),
):
    """
    Per-user failures do not abort the batch; each one is reported in
    `items` with `ok=false` and its error code.
    """
    now = payload.now if payload and payload.now else None
    report = services.rotation.run(now, deadline=deadline)
    return RotationBatchResponse(
        hour=report.hour,
        now=report.now,
        total=len(report.outcomes),
        succeeded=report.succeeded,
        skipped=report.skipped,
        failed=report.failed,
        items=[UserOutcomeResponse.model_validate(o) for o in report.outcomes],
    )


@router.post(
    "/notification",
    response_model=NotificationBatchResponse,
    summary="List users with stalled activities outside the freeze window",
    responses=error_responses({403: "Trigger token missing or wrong."}),
)
def trigger_notification(
    payload: Optional[NotificationTriggerRequest] = Body(default=None),
    services: Services = Depends(get_services),
    deadline: Optional[float] = Depends(request_deadline),
):
    """
    Returns who to remind and where. The caller delivers the reminders and
    confirms each one with `POST /users/{user_id}/activities/notified`.
    """
    now = as_utc(payload.now) if payload and payload.now else as_utc(services.clock())
    freeze_hours = (
        payload.freeze_hours
        if payload and payload.freeze_hours
        else services.settings.FREEZE_HOURS
    )
    pending = services.notifications.pending(
        now, timedelta(hours=freeze_hours), deadline=deadline,
    )
    return NotificationBatchResponse(
        now=now,
        freeze_hours=freeze_hours,
        total=len(pending),
        items=[PendingNotificationResponse.model_validate(p) for p in pending],
    )
