"""Add monthly draw, notifications and job runs

Revision ID: 002_draws
Revises: 001_initial
Create Date: 2026-10-19

Adds tables for:
- draw_entries: append-only ticket ledger
- draws: one draw per (month, year)
- payment_details: winner bank details, account number encrypted
- notifications: in-app notifications
- job_runs: one claimed run per scheduled job and period
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "002_draws"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create draw tables."""

    op.create_table(
        "draw_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("tickets", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("referral_id", sa.Integer(), nullable=True),
        sa.Column("expiry_date", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("tickets >= 1", name="ck_draw_entries_tickets_positive"),
        sa.ForeignKeyConstraint(["user_id"], ["user_accounts.id"]),
        sa.ForeignKeyConstraint(["referral_id"], ["referrals.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_draw_entries_user_id", "draw_entries", ["user_id"], unique=False)
    op.create_index("ix_draw_entries_status", "draw_entries", ["status"], unique=False)
    op.create_index("ix_draw_entries_expiry_date", "draw_entries", ["expiry_date"], unique=False)

    op.create_table(
        "draws",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("winner_user_id", sa.Integer(), nullable=True),
        sa.Column("winner_tickets", sa.Integer(), nullable=True),
        sa.Column("total_entries", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("prize_amount", sa.Float(), nullable=False, server_default="250"),
        sa.Column("draw_date", sa.DateTime(), nullable=True),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_detail_id", sa.Integer(), nullable=True),
        sa.Column("paid_date", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("month >= 1 AND month <= 12", name="ck_draws_month_range"),
        sa.ForeignKeyConstraint(["winner_user_id"], ["user_accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("month", "year", name="uq_draws_period"),
    )
    op.create_index("ix_draws_winner_user_id", "draws", ["winner_user_id"], unique=False)

    op.create_table(
        "payment_details",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("draw_id", sa.Integer(), nullable=False),
        sa.Column("bank_name", sa.String(255), nullable=False),
        sa.Column("account_holder", sa.String(255), nullable=False),
        sa.Column("account_number", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["user_accounts.id"]),
        sa.ForeignKeyConstraint(["draw_id"], ["draws.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("draw_id"),
    )
    op.create_index("ix_payment_details_user_id", "payment_details", ["user_id"], unique=False)

    # draws <-> payment_details reference each other
    with op.batch_alter_table("draws") as batch_op:
        batch_op.create_foreign_key(
            "fk_draws_payment_detail_id", "payment_details", ["payment_detail_id"], ["id"]
        )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(120), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["user_accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
    op.create_index("ix_notifications_read", "notifications", ["read"], unique=False)

    op.create_table(
        "job_runs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_name", sa.String(50), nullable=False),
        sa.Column("run_key", sa.String(50), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.Column("ok", sa.Boolean(), nullable=True),
        sa.Column("detail", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("job_name", "run_key", name="uq_job_runs_job_key"),
    )


def downgrade() -> None:
    """Drop draw tables."""
    op.drop_table("job_runs")

    op.drop_index("ix_notifications_read", table_name="notifications")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")

    with op.batch_alter_table("draws") as batch_op:
        batch_op.drop_constraint("fk_draws_payment_detail_id", type_="foreignkey")

    op.drop_index("ix_payment_details_user_id", table_name="payment_details")
    op.drop_table("payment_details")

    op.drop_index("ix_draws_winner_user_id", table_name="draws")
    op.drop_table("draws")

    op.drop_index("ix_draw_entries_expiry_date", table_name="draw_entries")
    op.drop_index("ix_draw_entries_status", table_name="draw_entries")
    op.drop_index("ix_draw_entries_user_id", table_name="draw_entries")
    op.drop_table("draw_entries")
