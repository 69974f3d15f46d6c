"""create_portfolio_tables

Revision ID: c7f1a2b3d4e5
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "c7f1a2b3d4e5"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "allocations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("key", sa.String(length=1), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("current_balance", sa.Numeric(precision=18, scale=6), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key", "date", name="uq_allocations_key_date"),
    )
    op.create_index("ix_allocations_key", "allocations", ["key"])
    op.create_index("ix_allocations_date", "allocations", ["date"])

    op.create_table(
        "allocation_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("allocation_id", sa.Integer(), nullable=False),
        sa.Column("minute_key", sa.String(length=16), nullable=False),
        sa.Column("starting_balance", sa.Numeric(precision=18, scale=6), nullable=False),
        sa.Column("minute_gain", sa.Numeric(precision=18, scale=6), nullable=False),
        sa.Column("minute_gain_percent", sa.Numeric(precision=12, scale=6), nullable=False),
        sa.Column("ending_balance", sa.Numeric(precision=18, scale=6), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["allocation_id"], ["allocations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_allocation_history_allocation_id",
        "allocation_history",
        ["allocation_id"],
    )

    op.create_table(
        "portfolio_snapshots",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("minute_key", sa.String(length=16), nullable=False),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
        sa.Column("starting_nav", sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column("ending_nav", sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column("growth_percent", sa.Numeric(precision=12, scale=6), nullable=False),
        sa.Column("price_source", sa.String(length=20), nullable=False),
        sa.Column("routing_active", sa.Boolean(), nullable=False),
        sa.Column("hedging_engaged", sa.Boolean(), nullable=False),
        sa.Column("smart_layer_unlocked", sa.Boolean(), nullable=False),
        sa.Column("dashboard_beta_mode", sa.Boolean(), nullable=False),
        sa.Column("last_sync_success", sa.Boolean(), nullable=False),
        sa.Column("visual_flags", sa.JSON(), nullable=False),
        sa.Column("team_notes", sa.JSON(), nullable=False),
        sa.Column("report_text", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("date", "minute_key", name="uq_portfolio_snapshots_date_minute"),
    )
    op.create_index("ix_portfolio_snapshots_date", "portfolio_snapshots", ["date"])
    op.create_index(
        "ix_portfolio_snapshots_last_updated",
        "portfolio_snapshots",
        ["last_updated"],
    )

    op.create_table(
        "asset_performance",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("symbol", sa.String(length=10), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("minute_key", sa.String(length=16), nullable=False),
        sa.Column("open", sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column("close", sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column("change_percent", sa.Numeric(precision=10, scale=4), nullable=False),
        sa.Column("volume_usd", sa.Numeric(precision=24, scale=2), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_asset_performance_symbol", "asset_performance", ["symbol"])
    op.create_index(
        "ix_asset_performance_date_minute",
        "asset_performance",
        ["date", "minute_key"],
    )

    op.create_table(
        "chart_points",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("datetime", sa.DateTime(), nullable=False),
        sa.Column("nav", sa.Numeric(precision=18, scale=4), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("datetime"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=100), nullable=False),
        sa.Column("password_hash", sa.String(length=100), nullable=False),
        sa.Column("role", sa.String(length=10), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    op.drop_table("chart_points")
    op.drop_index("ix_asset_performance_date_minute", table_name="asset_performance")
    op.drop_index("ix_asset_performance_symbol", table_name="asset_performance")
    op.drop_table("asset_performance")
    op.drop_index("ix_portfolio_snapshots_last_updated", table_name="portfolio_snapshots")
    op.drop_index("ix_portfolio_snapshots_date", table_name="portfolio_snapshots")
    op.drop_table("portfolio_snapshots")
    op.drop_index("ix_allocation_history_allocation_id", table_name="allocation_history")
    op.drop_table("allocation_history")
    op.drop_index("ix_allocations_date", table_name="allocations")
    op.drop_index("ix_allocations_key", table_name="allocations")
    op.drop_table("allocations")
