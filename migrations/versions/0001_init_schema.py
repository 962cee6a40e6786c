from __future__ import annotations

"""init schema

Creates the thread metadata table and the checkpoint table (one JSONB row
per thread, upserted on every executor step).
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_init_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "threads",
        sa.Column("id", sa.String(length=100), primary_key=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("owner_id", sa.String(length=100)),
        sa.Column("is_named", sa.Boolean, nullable=False, server_default=sa.text("FALSE")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
    )
    op.create_index("idx_threads_updated_at", "threads", ["updated_at"])
    op.create_index("idx_threads_owner_updated", "threads", ["owner_id", "updated_at"])

    op.create_table(
        "checkpoints",
        sa.Column("thread_id", sa.String(length=100), primary_key=True),
        sa.Column("version", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("state", postgresql.JSONB, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
    )


def downgrade() -> None:
    op.drop_table("checkpoints")
    op.drop_index("idx_threads_owner_updated", table_name="threads")
    op.drop_index("idx_threads_updated_at", table_name="threads")
    op.drop_table("threads")
