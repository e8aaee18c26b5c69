"""create service providers and services

Revision ID: 20261019_02
Revises: 20261019_01
Create Date: 2026-10-19 10:10:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_02"
down_revision: Union[str, None] = "20261019_01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "service_providers",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("display_name", sa.String(length=120), nullable=False),
        sa.Column("profession", sa.String(length=120), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("documents_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("documents_rejected", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reliability_score", sa.Integer(), nullable=True),
        sa.Column("cancellation_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("recent_cancellations", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_penalty_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("penalty_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("booking_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", name="uq_service_providers_user_id"),
        sa.CheckConstraint(
            "reliability_score IS NULL OR reliability_score BETWEEN 0 AND 100",
            name="ck_service_providers_reliability_score_range",
        ),
    )
    op.create_index("ix_service_providers_id", "service_providers", ["id"], unique=False)

    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("provider_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["provider_id"], ["service_providers.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_services_id", "services", ["id"], unique=False)
    op.create_index("ix_services_provider_id", "services", ["provider_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_services_provider_id", table_name="services")
    op.drop_index("ix_services_id", table_name="services")
    op.drop_table("services")

    op.drop_index("ix_service_providers_id", table_name="service_providers")
    op.drop_table("service_providers")
