"""
Post — append-only audit log, one row per increment of Activity.current.

Never updated. Rows only disappear through the cascade when the owning user
deregisters.
"""
from datetime import datetime
from sqlalchemy import BigInteger, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.activity import ACTIVITY_NAME_MAX_LENGTH


class Post(Base):
    __tablename__ = "posts"
    __table_args__ = (
        Index("ix_posts_user_activity", "user_id", "activity_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    activity_name: Mapped[str] = mapped_column(String(ACTIVITY_NAME_MAX_LENGTH), nullable=False)
    posted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
