"""
Scheduled trigger schemas.

POST /triggers/rotation       ← TriggerRequest → RotationBatchResponse
POST /triggers/notification   ← NotificationTriggerRequest → NotificationBatchResponse
"""
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class TriggerRequest(BaseModel):
    now: Optional[datetime] = Field(
        default=None,
        description="Instant the trigger represents; defaults to the server clock.",
    )


class NotificationTriggerRequest(TriggerRequest):
    freeze_hours: Optional[int] = Field(
        default=None, ge=1, le=24 * 30,
        description="Override FREEZE_HOURS for this run.",
    )


class UserOutcomeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    ok: bool
    error_code: Optional[str] = None
    error: Optional[str] = None
    detail: dict[str, Any] = Field(default_factory=dict)


class RotationBatchResponse(BaseModel):
    hour: int
    now: datetime
    total: int
    succeeded: int
    skipped: int = Field(default=0, description="Users another run had already rotated.")
    failed: int
    items: list[UserOutcomeResponse]


class PendingNotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    notification_target: Optional[str]
    activities: list[str]


class NotificationBatchResponse(BaseModel):
    now: datetime
    freeze_hours: int
    total: int
    items: list[PendingNotificationResponse]
