"""db: shared database library (SQLAlchemy/Alembic).

Public exports
--------------
- ``Base`` and ``metadata`` for Alembic autogenerate/targeting
- ORM models in ``db.models.obligations`` (re-exported for convenience)
- Engine/session helpers in ``db.client``
"""

from __future__ import annotations

from .models.obligations import (
    Base,
    ObEntitlement,
    ObHabit,
    ObHabitMark,
    ObMonthlyIncome,
    ObRecurringCharge,
    ObTransaction,
)

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "ObRecurringCharge",
    "ObHabit",
    "ObHabitMark",
    "ObTransaction",
    "ObMonthlyIncome",
    "ObEntitlement",
]
