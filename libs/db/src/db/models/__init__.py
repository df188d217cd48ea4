"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the obligation tables used by ``obligation_engine``.
"""

from .obligations import (
    Base,
    ObEntitlement,
    ObHabit,
    ObHabitMark,
    ObMonthlyIncome,
    ObRecurringCharge,
    ObTransaction,
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
