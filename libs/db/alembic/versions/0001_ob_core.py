# ruff: noqa: I001
"""Obligation core tables: recurring charges, habits, transactions, income, entitlements.

Revision ID: 0001_ob_core
Revises: None
Create Date: 2025-10-04
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ob_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    # ob_recurring_charges (ledger lives in last_executed)
    op.create_table(
        "ob_recurring_charges",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("anchor_day", sa.Integer(), nullable=False),
        sa.Column("created_on", sa.Date(), nullable=False),
        sa.Column("duration_months", sa.Integer(), nullable=True),
        sa.Column("last_executed", sa.String(7), nullable=True),
        _created_at(),
        sa.CheckConstraint("anchor_day BETWEEN 1 AND 31", name="ck_ob_rc_anchor_day"),
        sa.CheckConstraint(
            "duration_months IS NULL OR duration_months > 0", name="ck_ob_rc_duration"
        ),
    )
    op.create_index(
        "ix_ob_recurring_charges_subject_id", "ob_recurring_charges", ["subject_id"]
    )

    # ob_habits / ob_habit_marks
    op.create_table(
        "ob_habits",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("frequency", sa.JSON(), nullable=False),
        sa.Column("valid_from", sa.Date(), nullable=True),
        sa.Column("valid_until", sa.Date(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_ob_habits_subject_id", "ob_habits", ["subject_id"])

    op.create_table(
        "ob_habit_marks",
        sa.Column("habit_id", sa.String(), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("habit_id", "day"),
        sa.ForeignKeyConstraint(
            ["habit_id"], ["ob_habits.id"], name="fk_ob_hm_habit", ondelete="CASCADE"
        ),
        sa.CheckConstraint("value IN (0, 100)", name="ck_ob_hm_value"),
    )

    # ob_transactions
    op.create_table(
        "ob_transactions",
        sa.Column(
            "id",
            sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
            primary_key=True,
            autoincrement=True,
        ),
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("note", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_incurred", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("recurring_id", sa.String(), nullable=True),
        sa.Column("period_key", sa.String(7), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(
            ["recurring_id"],
            ["ob_recurring_charges.id"],
            name="fk_ob_tx_recurring",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_ob_tx_subject_date", "ob_transactions", ["subject_id", "date"])
    # At most one executor post per (rule, month).
    op.create_index(
        "uniq_ob_tx_recurring_period",
        "ob_transactions",
        ["recurring_id", "period_key"],
        unique=True,
    )

    # ob_monthly_income
    op.create_table(
        "ob_monthly_income",
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("period_key", sa.String(7), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.PrimaryKeyConstraint("subject_id", "period_key"),
    )

    # ob_entitlements
    op.create_table(
        "ob_entitlements",
        sa.Column("subject_id", sa.String(), primary_key=True),
        sa.Column("anchor", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "window_length_days", sa.Integer(), nullable=False, server_default=sa.text("7")
        ),
        sa.Column(
            "override_kind", sa.String(), nullable=False, server_default=sa.text("'none'")
        ),
        sa.Column("override_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "override_kind in ('none','unlimited','expires_at')",
            name="ck_ob_ent_override_kind",
        ),
        sa.CheckConstraint(
            "(override_kind = 'expires_at') = (override_expires_at IS NOT NULL)",
            name="ck_ob_ent_override_expires",
        ),
        sa.CheckConstraint("window_length_days >= 0", name="ck_ob_ent_window_length"),
    )


def downgrade() -> None:
    op.drop_table("ob_entitlements")
    op.drop_table("ob_monthly_income")
    op.drop_index("uniq_ob_tx_recurring_period", table_name="ob_transactions")
    op.drop_index("ix_ob_tx_subject_date", table_name="ob_transactions")
    op.drop_table("ob_transactions")
    op.drop_table("ob_habit_marks")
    op.drop_index("ix_ob_habits_subject_id", table_name="ob_habits")
    op.drop_table("ob_habits")
    op.drop_index("ix_ob_recurring_charges_subject_id", table_name="ob_recurring_charges")
    op.drop_table("ob_recurring_charges")
