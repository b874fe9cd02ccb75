"""Initial schema: users, notes, question papers, engagement and activity.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

ENUMS = {
    "role": ("STUDENT", "TEACHER", "ADMIN"),
    "content_status": ("PENDING", "APPROVED"),
    "content_visibility": ("PUBLIC", "DEPARTMENT", "PRIVATE"),
    "content_kind": ("NOTE", "QUESTION_PAPER"),
    "exam_type": ("MIDTERM", "FINAL", "QUIZ", "ASSIGNMENT", "PRACTICAL"),
    "difficulty": ("EASY", "MEDIUM", "HARD"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _content_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("department", sa.String(length=100), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("visibility", _enum("content_visibility"), nullable=False),
        sa.Column("file_url", sa.String(length=500), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("file_type", sa.String(length=255), nullable=False),
        sa.Column("storage_key", sa.String(length=500), nullable=False),
        sa.Column("status", _enum("content_status"), nullable=False),
        sa.Column("uploaded_by_user_id", sa.Integer(), nullable=False),
        sa.Column("approved_by_user_id", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("downloads", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    ]


def _content_constraints(table: str) -> list:
    return [
        sa.ForeignKeyConstraint(
            ["uploaded_by_user_id"], ["users.id"], ondelete="CASCADE",
            name=f"fk_{table}_uploaded_by_user_id_users",
        ),
        sa.ForeignKeyConstraint(
            ["approved_by_user_id"], ["users.id"], ondelete="SET NULL",
            name=f"fk_{table}_approved_by_user_id_users",
        ),
        sa.UniqueConstraint("storage_key", name=f"uq_{table}_storage_key"),
    ]


def _content_indexes(table: str) -> None:
    for column in ("id", "subject", "department", "semester", "status", "uploaded_by_user_id"):
        op.create_index(f"ix_{table}_{column}", table, [column], unique=False)


def _engagement_table(
    table: str,
    user_column: str,
    *,
    user_nullable: bool,
    extra: list[sa.Column],
    unique_per_user: bool = False,
) -> None:
    constraints = []
    if unique_per_user:
        constraints.append(
            sa.UniqueConstraint("content_kind", "content_id", user_column, name=f"uq_{table}_item_user")
        )
    op.create_table(
        table,
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("content_kind", _enum("content_kind"), nullable=False),
        sa.Column("content_id", sa.Integer(), nullable=False),
        sa.Column(user_column, sa.Integer(), nullable=user_nullable),
        *extra,
        *_timestamps(),
        sa.ForeignKeyConstraint(
            [user_column], ["users.id"], ondelete="SET NULL" if user_nullable else "CASCADE",
            name=f"fk_{table}_{user_column}_users",
        ),
        *constraints,
    )
    op.create_index(f"ix_{table}_id", table, ["id"], unique=False)
    op.create_index(f"ix_{table}_{user_column}", table, [user_column], unique=False)
    op.create_index(f"ix_{table}_item", table, ["content_kind", "content_id"], unique=False)


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=100), nullable=False),
        sa.Column("role", _enum("role"), nullable=False),
        sa.Column("department", sa.String(length=100), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=True),
        sa.Column("avatar_url", sa.String(length=500), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_id", "users", ["id"], unique=False)
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"], unique=False)
    op.create_index("ix_users_department", "users", ["department"], unique=False)
    op.create_index("ix_users_is_active", "users", ["is_active"], unique=False)

    op.create_table(
        "user_notification_prefs",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("email_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("new_notes", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("new_question_papers", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], ondelete="CASCADE",
            name="fk_user_notification_prefs_user_id_users",
        ),
        sa.PrimaryKeyConstraint("user_id", name="pk_user_notification_prefs"),
    )

    op.create_table(
        "notes",
        *_content_columns(),
        sa.Column("unit", sa.String(length=100), nullable=True),
        sa.Column("topic", sa.String(length=200), nullable=True),
        *_content_constraints("notes"),
    )
    _content_indexes("notes")
    op.create_index("ix_notes_department_semester_subject", "notes", ["department", "semester", "subject"], unique=False)

    op.create_table(
        "question_papers",
        *_content_columns(),
        sa.Column("exam_type", _enum("exam_type"), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.String(length=20), nullable=True),
        sa.Column("duration", sa.String(length=50), nullable=True),
        sa.Column("max_marks", sa.Integer(), nullable=True),
        sa.Column("difficulty", _enum("difficulty"), nullable=False),
        sa.Column("syllabus", sa.Text(), nullable=True),
        *_content_constraints("question_papers"),
    )
    _content_indexes("question_papers")
    op.create_index("ix_question_papers_exam_type", "question_papers", ["exam_type"], unique=False)
    op.create_index("ix_question_papers_year", "question_papers", ["year"], unique=False)
    op.create_index(
        "ix_question_papers_department_semester_subject_year",
        "question_papers",
        ["department", "semester", "subject", "year"],
        unique=False,
    )

    _engagement_table("content_likes", "user_id", user_nullable=False, extra=[], unique_per_user=True)
    _engagement_table("content_views", "user_id", user_nullable=False, extra=[], unique_per_user=True)
    _engagement_table(
        "content_downloads",
        "user_id",
        user_nullable=True,
        extra=[sa.Column("ip_address", sa.String(length=64), nullable=True)],
    )
    _engagement_table(
        "content_comments",
        "author_user_id",
        user_nullable=False,
        extra=[sa.Column("text", sa.Text(), nullable=False)],
    )

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("type", sa.String(length=100), nullable=False),
        sa.Column("content_kind", _enum("content_kind"), nullable=True),
        sa.Column("content_id", sa.Integer(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("payload_json", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["actor_user_id"], ["users.id"], ondelete="SET NULL",
            name="fk_activity_logs_actor_user_id_users",
        ),
    )
    op.create_index("ix_activity_logs_id", "activity_logs", ["id"], unique=False)
    op.create_index("ix_activity_logs_actor_user_id", "activity_logs", ["actor_user_id"], unique=False)
    op.create_index("ix_activity_logs_type", "activity_logs", ["type"], unique=False)
    op.create_index("ix_activity_logs_content_id", "activity_logs", ["content_id"], unique=False)


def downgrade() -> None:
    for table in (
        "activity_logs",
        "content_comments",
        "content_downloads",
        "content_views",
        "content_likes",
        "question_papers",
        "notes",
        "user_notification_prefs",
        "users",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name, values in reversed(list(ENUMS.items())):
        postgresql.ENUM(*values, name=name).drop(bind, checkfirst=True)
