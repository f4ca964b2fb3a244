"""
User registry schemas.

POST /users                        ← RegisterRequest      → UserResponse
PUT  /users/{id}/rotation-hour     ← RotationHourRequest  → UserResponse
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    user_id: int = Field(gt=0, description="Stable chat user id.")
    notification_target: Optional[str] = Field(
        default=None,
        max_length=128,
        description="Where stall reminders go (chat id). Omit to keep the stored one.",
    )


class RotationHourRequest(BaseModel):
    hour: int = Field(description="UTC hour 0..23 at which counters roll over.")


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    rotation_hour: int
    notification_target: Optional[str]
    last_rotation_at: Optional[datetime]
    last_post_at: Optional[datetime]


class UserIdsResponse(BaseModel):
    total: int
    user_ids: list[int]
