"""Storage abstraction and an in-memory implementation.

The engine only needs a narrow store: read the current record, write the
updated one, and run a post + ledger advance as one unit of work. The
protocol below names exactly that surface; :mod:`obligation_engine.persistence`
implements it on SQLAlchemy and :class:`InMemoryStore` implements it on plain
dictionaries guarded by a re-entrant lock.

Compare-and-swap
----------------
``write_ledger(ledger, expected=...)`` must raise
:class:`~obligation_engine.errors.LedgerConflict` when the stored
``last_executed`` differs from ``expected``. Together with ``unit_of_work()``
this rejects the second of two concurrent writers for the same period.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Protocol

from .dates import PeriodKey
from .errors import LedgerConflict, RecordNotFound
from .ledger import ChargeLedger
from .models import EntitlementWindow, Habit, PostedCharge, RecurringCharge, Transaction


class ObligationStore(Protocol):
    # Recurring charges + ledger
    def read_charge(self, rule_id: str) -> RecurringCharge: ...

    def list_charges(self, subject_id: str) -> list[RecurringCharge]: ...

    def read_ledger(self, rule_id: str) -> ChargeLedger: ...

    def write_ledger(self, ledger: ChargeLedger, *, expected: PeriodKey | None) -> None: ...

    def emit_charge(self, charge: PostedCharge) -> None: ...

    def unit_of_work(self) -> AbstractContextManager[None]: ...

    # Habits
    def read_habit(self, habit_id: str) -> Habit: ...

    def habit_owner(self, habit_id: str) -> str: ...

    def list_habits(self, subject_id: str) -> list[Habit]: ...

    def write_habit_mark(self, habit_id: str, day: date, value: int) -> None: ...

    # Read-only history
    def read_history(
        self, subject_id: str, start: date | None = None, end: date | None = None
    ) -> list[Transaction]: ...

    def read_income(self, subject_id: str, period: PeriodKey) -> Decimal | None: ...

    def read_all_income(self, subject_id: str) -> dict[PeriodKey, Decimal]: ...

    # Entitlement
    def read_entitlement(self, subject_id: str) -> EntitlementWindow | None: ...


@dataclass(slots=True)
class _State:
    charges: dict[str, tuple[str, RecurringCharge]] = field(default_factory=dict)
    ledgers: dict[str, ChargeLedger] = field(default_factory=dict)
    habits: dict[str, tuple[str, Habit]] = field(default_factory=dict)
    transactions: dict[str, list[Transaction]] = field(default_factory=dict)
    posted: list[PostedCharge] = field(default_factory=list)
    income: dict[str, dict[PeriodKey, Decimal]] = field(default_factory=dict)
    entitlements: dict[str, EntitlementWindow] = field(default_factory=dict)

    def copy(self) -> _State:
        return _State(
            charges=dict(self.charges),
            ledgers=dict(self.ledgers),
            habits=dict(self.habits),
            transactions={k: list(v) for k, v in self.transactions.items()},
            posted=list(self.posted),
            income={k: dict(v) for k, v in self.income.items()},
            entitlements=dict(self.entitlements),
        )


class InMemoryStore:
    """Dictionary-backed store; safe for concurrent use within one process.

    ``unit_of_work()`` holds the lock for its whole body and restores a
    snapshot of the state when the body raises, so a post and its ledger
    advance become visible together or not at all.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._state = _State()

    # ---- seeding / CRUD helpers ---------------------------------------------

    def save_charge(self, subject_id: str, charge: RecurringCharge) -> None:
        with self._lock:
            self._state.charges[charge.id] = (subject_id, charge)
            self._state.ledgers.setdefault(charge.id, ChargeLedger(rule_id=charge.id))

    def delete_charge(self, rule_id: str) -> None:
        """Remove a charge together with its execution history."""
        with self._lock:
            self._require_charge(rule_id)
            del self._state.charges[rule_id]
            self._state.ledgers.pop(rule_id, None)

    def save_habit(self, subject_id: str, habit: Habit) -> None:
        with self._lock:
            self._state.habits[habit.id] = (subject_id, habit)

    def add_transaction(self, subject_id: str, tx: Transaction) -> None:
        with self._lock:
            self._state.transactions.setdefault(subject_id, []).append(tx)

    def record_income(self, subject_id: str, period: PeriodKey, amount: Decimal) -> None:
        with self._lock:
            self._state.income.setdefault(subject_id, {})[period] = Decimal(str(amount))

    def save_entitlement(self, subject_id: str, window: EntitlementWindow) -> None:
        with self._lock:
            self._state.entitlements[subject_id] = window

    @property
    def posted_charges(self) -> list[PostedCharge]:
        with self._lock:
            return list(self._state.posted)

    # ---- ObligationStore -----------------------------------------------------

    def _require_charge(self, rule_id: str) -> tuple[str, RecurringCharge]:
        try:
            return self._state.charges[rule_id]
        except KeyError:
            raise RecordNotFound(f"Unknown recurring charge: {rule_id!r}") from None

    def read_charge(self, rule_id: str) -> RecurringCharge:
        with self._lock:
            return self._require_charge(rule_id)[1]

    def list_charges(self, subject_id: str) -> list[RecurringCharge]:
        with self._lock:
            return [c for sid, c in self._state.charges.values() if sid == subject_id]

    def read_ledger(self, rule_id: str) -> ChargeLedger:
        with self._lock:
            self._require_charge(rule_id)
            return self._state.ledgers.get(rule_id, ChargeLedger(rule_id=rule_id))

    def write_ledger(self, ledger: ChargeLedger, *, expected: PeriodKey | None) -> None:
        with self._lock:
            self._require_charge(ledger.rule_id)
            current = self._state.ledgers.get(ledger.rule_id, ChargeLedger(ledger.rule_id))
            if current.last_executed != expected:
                raise LedgerConflict(ledger.rule_id, expected, current.last_executed)
            self._state.ledgers[ledger.rule_id] = ledger

    def emit_charge(self, charge: PostedCharge) -> None:
        with self._lock:
            subject_id, _ = self._require_charge(charge.rule_id)
            self._state.posted.append(charge)
            self._state.transactions.setdefault(subject_id, []).append(charge.as_transaction())

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        with self._lock:
            snapshot = self._state.copy()
            try:
                yield
            except BaseException:
                self._state = snapshot
                raise

    def read_habit(self, habit_id: str) -> Habit:
        with self._lock:
            try:
                return self._state.habits[habit_id][1]
            except KeyError:
                raise RecordNotFound(f"Unknown habit: {habit_id!r}") from None

    def habit_owner(self, habit_id: str) -> str:
        with self._lock:
            try:
                return self._state.habits[habit_id][0]
            except KeyError:
                raise RecordNotFound(f"Unknown habit: {habit_id!r}") from None

    def list_habits(self, subject_id: str) -> list[Habit]:
        with self._lock:
            return [h for sid, h in self._state.habits.values() if sid == subject_id]

    def write_habit_mark(self, habit_id: str, day: date, value: int) -> None:
        with self._lock:
            subject_id, habit = self._state.habits.get(habit_id, (None, None))
            if habit is None:
                raise RecordNotFound(f"Unknown habit: {habit_id!r}")
            updated = replace(habit, history=habit.history.with_mark(day, value))
            self._state.habits[habit_id] = (subject_id, updated)

    def read_history(
        self, subject_id: str, start: date | None = None, end: date | None = None
    ) -> list[Transaction]:
        with self._lock:
            txs = list(self._state.transactions.get(subject_id, []))
        return [
            t
            for t in txs
            if (start is None or t.date >= start) and (end is None or t.date <= end)
        ]

    def read_income(self, subject_id: str, period: PeriodKey) -> Decimal | None:
        with self._lock:
            return self._state.income.get(subject_id, {}).get(period)

    def read_all_income(self, subject_id: str) -> dict[PeriodKey, Decimal]:
        with self._lock:
            return dict(self._state.income.get(subject_id, {}))

    def read_entitlement(self, subject_id: str) -> EntitlementWindow | None:
        with self._lock:
            return self._state.entitlements.get(subject_id)


__all__ = ["ObligationStore", "InMemoryStore"]
