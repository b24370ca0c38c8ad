"""live sessions and their course links

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "live_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("link_url", sa.String(length=2048), nullable=False),
        sa.Column("link_type", sa.String(length=16), nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column(
            "is_free", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "is_published", sa.Boolean(), nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "chapter_id", sa.String(length=36),
            sa.ForeignKey("chapters.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index(
        "ix_live_sessions_start_date", "live_sessions", ["start_date"]
    )
    op.create_index(
        "ix_live_sessions_chapter_id", "live_sessions", ["chapter_id"]
    )

    op.create_table(
        "live_session_courses",
        sa.Column(
            "live_session_id", sa.String(length=36),
            sa.ForeignKey("live_sessions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "course_id", sa.String(length=36),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    op.create_index(
        "ix_live_session_courses_course_id",
        "live_session_courses",
        ["course_id"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_live_session_courses_course_id", table_name="live_session_courses"
    )
    op.drop_table("live_session_courses")
    op.drop_index("ix_live_sessions_chapter_id", table_name="live_sessions")
    op.drop_index("ix_live_sessions_start_date", table_name="live_sessions")
    op.drop_table("live_sessions")
