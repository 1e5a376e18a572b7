"""local_records key/value table

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Backs the Local Store Adapter. One row per versioned, owner-scoped key
(e.g. "u-42/@moodsync_entries_v1"); `value` holds the JSON text.
"""
from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "local_records",
        sa.Column("key", sa.String(255), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )


def downgrade() -> None:
    op.drop_table("local_records")
