from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# ob_recurring_charges
# ---------------------------


class ObRecurringCharge(Base):
    __tablename__ = "ob_recurring_charges"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    subject_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    anchor_day: Mapped[int] = mapped_column(Integer, nullable=False)
    created_on: Mapped[date] = mapped_column(Date, nullable=False)
    duration_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Execution ledger: last posted period as "YYYY-MM"; NULL until the first post.
    last_executed: Mapped[str | None] = mapped_column(String(7), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("anchor_day BETWEEN 1 AND 31", name="ck_ob_rc_anchor_day"),
        CheckConstraint(
            "duration_months IS NULL OR duration_months > 0", name="ck_ob_rc_duration"
        ),
    )


# ---------------------------
# ob_habits / ob_habit_marks
# ---------------------------


class ObHabit(Base):
    __tablename__ = "ob_habits"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    subject_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    # {"type": "...", "value": ...}; validated on read by the engine.
    frequency: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    valid_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    valid_until: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class ObHabitMark(Base):
    __tablename__ = "ob_habit_marks"

    habit_id: Mapped[str] = mapped_column(
        String, ForeignKey("ob_habits.id", ondelete="CASCADE"), primary_key=True
    )
    day: Mapped[date] = mapped_column(Date, primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (CheckConstraint("value IN (0, 100)", name="ck_ob_hm_value"),)


# ---------------------------
# ob_transactions
# ---------------------------


class ObTransaction(Base):
    __tablename__ = "ob_transactions"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    subject_id: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    is_recurring: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    is_incurred: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    # Set only for executor-posted rows; (recurring_id, period_key) is unique.
    recurring_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("ob_recurring_charges.id", ondelete="SET NULL"), nullable=True
    )
    period_key: Mapped[str | None] = mapped_column(String(7), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_ob_tx_subject_date", "subject_id", "date"),
        Index("uniq_ob_tx_recurring_period", "recurring_id", "period_key", unique=True),
    )


# ---------------------------
# ob_monthly_income
# ---------------------------


class ObMonthlyIncome(Base):
    __tablename__ = "ob_monthly_income"

    subject_id: Mapped[str] = mapped_column(String, primary_key=True)
    period_key: Mapped[str] = mapped_column(String(7), primary_key=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)


# ---------------------------
# ob_entitlements
# ---------------------------


class ObEntitlement(Base):
    __tablename__ = "ob_entitlements"

    subject_id: Mapped[str] = mapped_column(String, primary_key=True)
    anchor: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    window_length_days: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("7")
    )
    override_kind: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'none'")
    )
    override_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "override_kind in ('none','unlimited','expires_at')",
            name="ck_ob_ent_override_kind",
        ),
        CheckConstraint(
            "(override_kind = 'expires_at') = (override_expires_at IS NOT NULL)",
            name="ck_ob_ent_override_expires",
        ),
        CheckConstraint("window_length_days >= 0", name="ck_ob_ent_window_length"),
    )


__all__ = [
    "Base",
    "ObRecurringCharge",
    "ObHabit",
    "ObHabitMark",
    "ObTransaction",
    "ObMonthlyIncome",
    "ObEntitlement",
]
