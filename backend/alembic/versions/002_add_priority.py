"""Add priority column (high / medium / low)

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

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

    columns = {row[1] for row in conn.execute(text("PRAGMA table_info(tasks)")).fetchall()}

    if "priority" not in columns:
        conn.execute(text("ALTER TABLE tasks ADD COLUMN priority TEXT"))


def downgrade() -> None:
    # SQLite can't drop the column without a table rebuild
    with op.batch_alter_table("tasks") as batch_op:
        batch_op.drop_column("priority")
