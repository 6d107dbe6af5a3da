"""create positions table

Revision ID: 5e2a9c1d7b40
Revises:
Create Date: 2026-10-12 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5e2a9c1d7b40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "positions",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("owner", sa.String(128), nullable=False),
        sa.Column("asset", sa.String(100), nullable=False),
        sa.Column("name", sa.String(128), nullable=True),
        sa.Column("symbol", sa.String(32), nullable=True),
        sa.Column("image", sa.String(512), nullable=True),
        sa.Column("quantity", sa.Float, nullable=False),
        sa.Column("cost_basis", sa.Float, nullable=False),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("owner", "asset", name="uq_positions_owner_asset"),
    )
    op.create_index("ix_positions_id", "positions", ["id"])
    op.create_index("ix_positions_owner", "positions", ["owner"])


def downgrade() -> None:
    op.drop_index("ix_positions_owner", table_name="positions")
    op.drop_index("ix_positions_id", table_name="positions")
    op.drop_table("positions")
