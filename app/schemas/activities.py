"""
Activity ledger schemas.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class CreateActivityRequest(BaseModel):
    name: str = Field(min_length=1, max_length=64)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be blank")
        return v


class ActivityStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    total: int = Field(description="Banked streak days.")
    current: int = Field(description="Posts since the last rotation.")
    last_notified_at: Optional[datetime] = None


class ActivityListResponse(BaseModel):
    user_id: int
    names: list[str]
    items: list[ActivityStatsResponse]


class PostRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    activity_name: str
    posted_at: datetime


class PostHistoryResponse(BaseModel):
    total: int
    items: list[PostRecordResponse]


class MarkNotifiedRequest(BaseModel):
    activities: list[str] = Field(min_length=1)
    at: Optional[datetime] = Field(
        default=None,
        description="Delivery time; defaults to now (UTC).",
    )


class MarkNotifiedResponse(BaseModel):
    user_id: int
    stamped: int


class RotationSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    rotated_at: datetime
    extended: int
    reset: int
    skipped: bool = False
