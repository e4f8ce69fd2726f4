"""Add description, source and enhanced columns for chatbot-created tasks

Revision ID: 002
Revises: 001
Create Date: 2025-06-16

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # Check existing columns
    columns = {row[1] for row in conn.execute(text("PRAGMA table_info(tasks)")).fetchall()}

    if "description" not in columns:
        conn.execute(text("ALTER TABLE tasks ADD COLUMN description TEXT DEFAULT ''"))

    if "source" not in columns:
        conn.execute(text("ALTER TABLE tasks ADD COLUMN source TEXT DEFAULT 'web'"))

    if "enhanced" not in columns:
        conn.execute(text("ALTER TABLE tasks ADD COLUMN enhanced INTEGER DEFAULT 0"))


def downgrade() -> None:
    # SQLite doesn't support DROP COLUMN easily, so we'd need to recreate the table
    # For simplicity, downgrade is a no-op (columns remain but are unused)
    pass
