"""initial schema: sheet rows and bridge event queue

Revision ID: 5c1e9a7b2d40
Revises:
Create Date: 2026-10-19 09:12:44.318207

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1e9a7b2d40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    """Create the SQL tabular store and the durable bridge queue."""
    op.create_table(
        "sheet_rows",
        sa.Column("id", _ID, autoincrement=True, nullable=False),
        sa.Column("sheet", sa.String(length=64), nullable=False),
        sa.Column("row_number", sa.Integer(), nullable=False),
        sa.Column("cells", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sheet", "row_number", name="uq_sheet_rows_position"),
    )
    op.create_index("ix_sheet_rows_sheet", "sheet_rows", ["sheet"])

    op.create_table(
        "bridge_events",
        sa.Column("id", _ID, autoincrement=True, nullable=False),
        sa.Column("from_chain", sa.String(length=16), nullable=False),
        sa.Column("from_address", sa.String(length=128), nullable=False),
        sa.Column("from_amount", sa.String(length=80), nullable=False),
        sa.Column("to_chain", sa.String(length=16), nullable=False),
        sa.Column("to_address", sa.String(length=128), nullable=False),
        sa.Column("to_amount", sa.String(length=80), nullable=False),
        sa.Column("signature", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("settlement_tx", sa.String(length=128), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "from_chain",
            "from_address",
            "from_amount",
            "to_chain",
            "to_address",
            "to_amount",
            name="uq_bridge_events_route",
        ),
    )
    op.create_index("ix_bridge_events_signature", "bridge_events", ["signature"])
    op.create_index("ix_bridge_events_status", "bridge_events", ["status"])


def downgrade() -> None:
    """Drop the bridge queue and the SQL tabular store."""
    op.drop_index("ix_bridge_events_status", table_name="bridge_events")
    op.drop_index("ix_bridge_events_signature", table_name="bridge_events")
    op.drop_table("bridge_events")
    op.drop_index("ix_sheet_rows_sheet", table_name="sheet_rows")
    op.drop_table("sheet_rows")
