"""add account suspension

Revision ID: 20261019_07
Revises: 20261019_06
Create Date: 2026-10-19 11:20:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_07"
down_revision: Union[str, None] = "20261019_06"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("users", sa.Column("suspended", sa.Boolean(), nullable=False, server_default=sa.false()))
    op.add_column("users", sa.Column("suspension_reason", sa.String(length=500), nullable=True))
    op.add_column("users", sa.Column("suspended_at", sa.DateTime(timezone=True), nullable=True))
    op.add_column("users", sa.Column("suspension_end_date", sa.DateTime(timezone=True), nullable=True))
    op.add_column("users", sa.Column("reinstated_at", sa.DateTime(timezone=True), nullable=True))
    op.create_index("ix_users_suspended", "users", ["suspended"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_users_suspended", table_name="users")
    op.drop_column("users", "reinstated_at")
    op.drop_column("users", "suspension_end_date")
    op.drop_column("users", "suspended_at")
    op.drop_column("users", "suspension_reason")
    op.drop_column("users", "suspended")
