"""Track the storage key of each user's avatar.

Revision ID: 0002_user_avatar_key
Revises: 0001_initial_schema
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0002_user_avatar_key"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("users", sa.Column("avatar_key", sa.String(length=500), nullable=True))


def downgrade() -> None:
    op.drop_column("users", "avatar_key")
