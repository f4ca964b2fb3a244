"""
Activity — one named habit per (user_id, activity_name).

Counters
--------
  current : posts since the last rotation; zeroed by every rotation.
  total   : banked streak days; grows by `current` on rotation, or drops to 0
            when a rotation finds `current == 0`.

Both counters are non-negative (CHECK constraints). Rows are deleted with
their user (ON DELETE CASCADE).
"""
from datetime import datetime
from sqlalchemy import (
    BigInteger, Integer, String, DateTime, ForeignKey, CheckConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base

ACTIVITY_NAME_MAX_LENGTH = 64


class Activity(Base):
    __tablename__ = "activities"
    __table_args__ = (
        CheckConstraint("total >= 0", name="ck_activities_total_non_negative"),
        CheckConstraint("current >= 0", name="ck_activities_current_non_negative"),
    )

    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    activity_name: Mapped[str] = mapped_column(String(ACTIVITY_NAME_MAX_LENGTH), primary_key=True)
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    current: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_notified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True,
        comment="Last stall reminder sent for this activity",
    )
    last_post_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
