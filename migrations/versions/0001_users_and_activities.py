"""users and activities

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("user_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("rotation_hour", sa.SmallInteger(), nullable=False),
        sa.Column("notification_target", sa.String(128), nullable=True),
        sa.Column("last_rotation_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_post_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
        sa.CheckConstraint("rotation_hour BETWEEN 0 AND 23", name="ck_users_rotation_hour"),
    )
    op.create_index("ix_users_rotation_hour", "users", ["rotation_hour"])

    # --- activities ---
    op.create_table(
        "activities",
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("activity_name", sa.String(64), nullable=False),
        sa.Column("total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_post_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("user_id", "activity_name"),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.CheckConstraint("total >= 0", name="ck_activities_total_non_negative"),
        sa.CheckConstraint("current >= 0", name="ck_activities_current_non_negative"),
    )
    op.create_index("ix_activities_last_notified_at", "activities", ["last_notified_at"])


def downgrade() -> None:
    op.drop_index("ix_activities_last_notified_at", table_name="activities")
    op.drop_table("activities")
    op.drop_index("ix_users_rotation_hour", table_name="users")
    op.drop_table("users")
