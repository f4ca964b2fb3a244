"""add posts log

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

Append-only audit log: one row per post. Rows leave only with their user
(ON DELETE CASCADE).
"""
from alembic import op
import sqlalchemy as sa

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "posts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("activity_name", sa.String(64), nullable=False),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
    )
    op.create_index("ix_posts_user_activity", "posts", ["user_id", "activity_name"])


def downgrade() -> None:
    op.drop_index("ix_posts_user_activity", table_name="posts")
    op.drop_table("posts")
