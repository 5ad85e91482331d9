"""Initial durable debug log table.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "proclog",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "entrytime",
            sa.DateTime(),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("session_id", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("message", sa.String(length=512), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index("idx_proclog_session", "proclog", ["session_id"])
    op.create_index("idx_proclog_entrytime", "proclog", ["entrytime"])


def downgrade() -> None:
    op.drop_index("idx_proclog_entrytime", table_name="proclog")
    op.drop_index("idx_proclog_session", table_name="proclog")
    op.drop_table("proclog")
