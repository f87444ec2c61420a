"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "shops",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("domain", sa.String(length=255), nullable=False),
        sa.Column("access_token", sa.String(length=255), nullable=False),
        sa.Column("scope", sa.Text(), nullable=True),
        sa.Column("installed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("shop", sa.String(length=255), nullable=False),
        sa.Column("subscription_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("plan_name", sa.String(length=128), nullable=False),
        sa.Column("price", sa.String(length=32), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="USD"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_ends_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "price_adjustment_runs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("shop", sa.String(length=255), nullable=False),
        sa.Column("scope", sa.String(length=16), nullable=False),
        sa.Column("scope_value", sa.String(length=255), nullable=True),
        sa.Column("percentage", sa.Numeric(9, 4), nullable=False),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("items_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("products_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("variants_updated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("errors_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_summary", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_index("ix_shops_domain", "shops", ["domain"], unique=True)
    op.create_index("ix_subscriptions_shop", "subscriptions", ["shop"], unique=True)
    op.create_index("ix_subscriptions_subscription_id", "subscriptions", ["subscription_id"])
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"])
    op.create_index("ix_price_adjustment_runs_shop", "price_adjustment_runs", ["shop"])
    op.create_index("ix_price_adjustment_runs_status", "price_adjustment_runs", ["status"])
    op.create_index("ix_price_adjustment_runs_started_at", "price_adjustment_runs", ["started_at"])


def downgrade() -> None:
    op.drop_index("ix_price_adjustment_runs_started_at", table_name="price_adjustment_runs")
    op.drop_index("ix_price_adjustment_runs_status", table_name="price_adjustment_runs")
    op.drop_index("ix_price_adjustment_runs_shop", table_name="price_adjustment_runs")
    op.drop_index("ix_subscriptions_status", table_name="subscriptions")
    op.drop_index("ix_subscriptions_subscription_id", table_name="subscriptions")
    op.drop_index("ix_subscriptions_shop", table_name="subscriptions")
    op.drop_index("ix_shops_domain", table_name="shops")

    op.drop_table("price_adjustment_runs")
    op.drop_table("subscriptions")
    op.drop_table("shops")
