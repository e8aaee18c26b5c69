"""create provider availability

Revision ID: 20261019_03
Revises: 20261019_02
Create Date: 2026-10-19 10:20:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_03"
down_revision: Union[str, None] = "20261019_02"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "provider_availability",
        sa.Column("provider_id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("weekly_schedule", sa.JSON(), nullable=False),
        sa.Column("special_dates", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("time_slot_duration", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("buffer_time", sa.Integer(), nullable=False, server_default="15"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["provider_id"], ["service_providers.id"], ondelete="CASCADE"),
    )


def downgrade() -> None:
    op.drop_table("provider_availability")
