from datetime import datetime
from sqlalchemy import BigInteger, SmallInteger, String, DateTime, CheckConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class User(Base):
    """A registered participant and their per-user rotation settings."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("rotation_hour BETWEEN 0 AND 23", name="ck_users_rotation_hour"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    rotation_hour: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, index=True,
        comment="UTC hour at which this user's counters roll over",
    )
    notification_target: Mapped[str | None] = mapped_column(
        String(128), nullable=True,
        comment="Opaque delivery address captured at registration (chat id)",
    )
    last_rotation_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_post_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_activity_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
