"""Relational :class:`~obligation_engine.storage.ObligationStore` on SQLAlchemy.

Tables live in the shared ``db`` library (``db.models.obligations``) and are
managed by its Alembic migrations. Each store call runs in its own
``session_scope`` unless a ``unit_of_work()`` is open on the current thread,
in which case it joins that session and commits with it.

Error mapping
-------------
- any ``SQLAlchemyError`` surfaces as ``PersistenceFailure``;
- a duplicate ``(recurring_id, period_key)`` post surfaces as
  ``LedgerConflict``;
- the ledger compare-and-swap is a conditional ``UPDATE`` checked by row
  count.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, date, datetime
from decimal import Decimal

from db.client import session_scope
from db.models.obligations import (
    ObEntitlement,
    ObHabit,
    ObHabitMark,
    ObMonthlyIncome,
    ObRecurringCharge,
    ObTransaction,
)
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .dates import PeriodKey
from .errors import LedgerConflict, PersistenceFailure, RecordNotFound
from .ledger import ChargeLedger, HabitHistory
from .logging_setup import get_logger
from .models import (
    EntitlementWindow,
    Habit,
    ObligationRule,
    Override,
    OverrideKind,
    PostedCharge,
    RecurringCharge,
    Transaction,
    frequency_from_payload,
    frequency_to_payload,
)

_logger = get_logger("obligation_engine.persistence")


def _period_str(period: PeriodKey | None) -> str | None:
    return str(period) if period is not None else None


def _period_or_none(raw: str | None) -> PeriodKey | None:
    return PeriodKey.parse(raw) if raw else None


def _to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _from_db(dt: datetime | None) -> datetime | None:
    # SQLite returns naive values; everything is written as UTC.
    if dt is None:
        return None
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt


def _charge_from_row(row: ObRecurringCharge) -> RecurringCharge:
    return RecurringCharge(
        id=row.id,
        name=row.name,
        amount=Decimal(row.amount),
        category=row.category,
        anchor_day=row.anchor_day,
        created_on=row.created_on,
        duration_months=row.duration_months,
    )


def _transaction_from_row(row: ObTransaction) -> Transaction:
    return Transaction(
        amount=Decimal(row.amount),
        category=row.category,
        date=row.date,
        note=row.note or "",
        is_recurring=bool(row.is_recurring),
        is_incurred=bool(row.is_incurred),
    )


class SqlObligationStore:
    """Store backed by the ``ob_*`` tables.

    Parameters
    ----------
    database_url:
        SQLAlchemy URL; when ``None`` the ``DATABASE_URL`` environment
        variable is used by ``db.client``.
    """

    def __init__(self, database_url: str | None = None) -> None:
        self._database_url = database_url
        self._local = threading.local()

    # ---- sessions -------------------------------------------------------------

    @contextmanager
    def _session(self) -> Iterator[Session]:
        active: Session | None = getattr(self._local, "session", None)
        if active is not None:
            yield active
            return
        try:
            with session_scope(database_url=self._database_url) as session:
                yield session
        except SQLAlchemyError as e:
            _logger.error("db:error op=session error=%s", e.__class__.__name__)
            raise PersistenceFailure(f"Database operation failed: {e}") from e

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        if getattr(self._local, "session", None) is not None:
            yield
            return
        try:
            with session_scope(database_url=self._database_url) as session:
                self._local.session = session
                try:
                    yield
                    session.flush()
                finally:
                    self._local.session = None
        except SQLAlchemyError as e:
            _logger.error("db:error op=unit_of_work error=%s", e.__class__.__name__)
            raise PersistenceFailure(f"Database transaction failed: {e}") from e

    @staticmethod
    def _charge_row(session: Session, rule_id: str) -> ObRecurringCharge:
        row = session.get(ObRecurringCharge, rule_id)
        if row is None:
            raise RecordNotFound(f"Unknown recurring charge: {rule_id!r}")
        return row

    @staticmethod
    def _habit_row(session: Session, habit_id: str) -> ObHabit:
        row = session.get(ObHabit, habit_id)
        if row is None:
            raise RecordNotFound(f"Unknown habit: {habit_id!r}")
        return row

    # ---- recurring charges + ledger --------------------------------------------

    def read_charge(self, rule_id: str) -> RecurringCharge:
        with self._session() as s:
            return _charge_from_row(self._charge_row(s, rule_id))

    def list_charges(self, subject_id: str) -> list[RecurringCharge]:
        with self._session() as s:
            rows = s.scalars(
                select(ObRecurringCharge)
                .where(ObRecurringCharge.subject_id == subject_id)
                .order_by(ObRecurringCharge.id)
            ).all()
            return [_charge_from_row(r) for r in rows]

    def read_ledger(self, rule_id: str) -> ChargeLedger:
        with self._session() as s:
            row = self._charge_row(s, rule_id)
            return ChargeLedger(rule_id=rule_id, last_executed=_period_or_none(row.last_executed))

    def write_ledger(self, ledger: ChargeLedger, *, expected: PeriodKey | None) -> None:
        with self._session() as s:
            result = s.execute(
                update(ObRecurringCharge)
                .where(ObRecurringCharge.id == ledger.rule_id)
                .where(ObRecurringCharge.last_executed.is_not_distinct_from(_period_str(expected)))
                .values(last_executed=_period_str(ledger.last_executed))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return
            current = s.execute(
                select(ObRecurringCharge.last_executed).where(
                    ObRecurringCharge.id == ledger.rule_id
                )
            ).first()
            if current is None:
                raise RecordNotFound(f"Unknown recurring charge: {ledger.rule_id!r}")
            raise LedgerConflict(ledger.rule_id, expected, _period_or_none(current[0]))

    def emit_charge(self, charge: PostedCharge) -> None:
        with self._session() as s:
            row = self._charge_row(s, charge.rule_id)
            s.add(
                ObTransaction(
                    subject_id=row.subject_id,
                    amount=charge.amount,
                    category=charge.category,
                    date=charge.date,
                    note=charge.note,
                    is_recurring=charge.system_generated,
                    is_incurred=False,
                    recurring_id=charge.rule_id,
                    period_key=str(charge.period),
                )
            )
            try:
                s.flush()
            except IntegrityError as e:
                raise LedgerConflict(charge.rule_id, None, charge.period) from e

    # ---- habits ------------------------------------------------------------------

    @staticmethod
    def _habit_from_row(row: ObHabit, marks: dict[date, int]) -> Habit:
        rule = ObligationRule(
            id=row.id,
            frequency=frequency_from_payload(row.frequency),
            valid_from=row.valid_from,
            valid_until=row.valid_until,
        )
        return Habit(rule=rule, name=row.name, history=HabitHistory(marks))

    def read_habit(self, habit_id: str) -> Habit:
        with self._session() as s:
            row = self._habit_row(s, habit_id)
            marks = s.execute(
                select(ObHabitMark.day, ObHabitMark.value).where(ObHabitMark.habit_id == habit_id)
            ).all()
            return self._habit_from_row(row, {d: v for d, v in marks})

    def habit_owner(self, habit_id: str) -> str:
        with self._session() as s:
            return self._habit_row(s, habit_id).subject_id

    def list_habits(self, subject_id: str) -> list[Habit]:
        with self._session() as s:
            rows = s.scalars(
                select(ObHabit).where(ObHabit.subject_id == subject_id).order_by(ObHabit.id)
            ).all()
            if not rows:
                return []
            marks: dict[str, dict[date, int]] = {r.id: {} for r in rows}
            for habit_id, day, value in s.execute(
                select(ObHabitMark.habit_id, ObHabitMark.day, ObHabitMark.value).where(
                    ObHabitMark.habit_id.in_(list(marks))
                )
            ):
                marks[habit_id][day] = value
            return [self._habit_from_row(r, marks[r.id]) for r in rows]

    def write_habit_mark(self, habit_id: str, day: date, value: int) -> None:
        # Validates the marker before touching the database.
        HabitHistory({day: value})
        with self._session() as s:
            self._habit_row(s, habit_id)
            mark = s.get(ObHabitMark, (habit_id, day))
            if mark is None:
                s.add(ObHabitMark(habit_id=habit_id, day=day, value=value))
            else:
                mark.value = value

    # ---- read-only history ---------------------------------------------------------

    def read_history(
        self, subject_id: str, start: date | None = None, end: date | None = None
    ) -> list[Transaction]:
        with self._session() as s:
            stmt = select(ObTransaction).where(ObTransaction.subject_id == subject_id)
            if start is not None:
                stmt = stmt.where(ObTransaction.date >= start)
            if end is not None:
                stmt = stmt.where(ObTransaction.date <= end)
            rows = s.scalars(stmt.order_by(ObTransaction.date, ObTransaction.id)).all()
            return [_transaction_from_row(r) for r in rows]

    def read_income(self, subject_id: str, period: PeriodKey) -> Decimal | None:
        with self._session() as s:
            row = s.get(ObMonthlyIncome, (subject_id, str(period)))
            return Decimal(row.amount) if row is not None else None

    def read_all_income(self, subject_id: str) -> dict[PeriodKey, Decimal]:
        with self._session() as s:
            rows = s.execute(
                select(ObMonthlyIncome.period_key, ObMonthlyIncome.amount).where(
                    ObMonthlyIncome.subject_id == subject_id
                )
            ).all()
            return {PeriodKey.parse(k): Decimal(v) for k, v in rows}

    # ---- entitlement -----------------------------------------------------------------

    def read_entitlement(self, subject_id: str) -> EntitlementWindow | None:
        with self._session() as s:
            row = s.get(ObEntitlement, subject_id)
            if row is None:
                return None
            kind = OverrideKind(row.override_kind)
            expires_at = _from_db(row.override_expires_at)
            override = Override.until(expires_at) if expires_at is not None else Override(kind)
            anchor = _from_db(row.anchor)
            if anchor is None:
                raise PersistenceFailure(f"Entitlement for {subject_id!r} has no anchor")
            return EntitlementWindow(
                anchor=anchor,
                window_length_days=row.window_length_days,
                override=override,
            )

    # ---- writers used by seeding and the CLI ---------------------------------------------

    def save_charge(self, subject_id: str, charge: RecurringCharge) -> None:
        """Insert or update a charge; an existing ledger value is preserved."""

        with self._session() as s:
            row = s.get(ObRecurringCharge, charge.id)
            if row is None:
                row = ObRecurringCharge(id=charge.id)
                s.add(row)
            row.subject_id = subject_id
            row.name = charge.name
            row.amount = charge.amount
            row.category = charge.category
            row.anchor_day = charge.anchor_day
            row.created_on = charge.created_on
            row.duration_months = charge.duration_months

    def delete_charge(self, rule_id: str) -> None:
        with self._session() as s:
            s.delete(self._charge_row(s, rule_id))

    def save_habit(self, subject_id: str, habit: Habit) -> None:
        """Insert or replace a habit together with its full history."""

        with self._session() as s:
            row = s.get(ObHabit, habit.id)
            if row is None:
                row = ObHabit(id=habit.id)
                s.add(row)
            row.subject_id = subject_id
            row.name = habit.name
            row.frequency = frequency_to_payload(habit.rule.frequency)
            row.valid_from = habit.rule.valid_from
            row.valid_until = habit.rule.valid_until
            s.flush()
            s.execute(delete(ObHabitMark).where(ObHabitMark.habit_id == habit.id))
            s.add_all(
                ObHabitMark(habit_id=habit.id, day=d, value=v) for d, v in habit.history.items()
            )

    def add_transaction(self, subject_id: str, tx: Transaction) -> None:
        with self._session() as s:
            s.add(
                ObTransaction(
                    subject_id=subject_id,
                    amount=tx.amount,
                    category=tx.category,
                    date=tx.date,
                    note=tx.note,
                    is_recurring=tx.is_recurring,
                    is_incurred=tx.is_incurred,
                )
            )

    def record_income(self, subject_id: str, period: PeriodKey, amount: Decimal) -> None:
        with self._session() as s:
            row = s.get(ObMonthlyIncome, (subject_id, str(period)))
            if row is None:
                s.add(
                    ObMonthlyIncome(
                        subject_id=subject_id, period_key=str(period), amount=Decimal(str(amount))
                    )
                )
            else:
                row.amount = Decimal(str(amount))

    def save_entitlement(self, subject_id: str, window: EntitlementWindow) -> None:
        with self._session() as s:
            row = s.get(ObEntitlement, subject_id)
            if row is None:
                row = ObEntitlement(subject_id=subject_id)
                s.add(row)
            row.anchor = _to_utc(window.anchor)
            row.window_length_days = window.window_length_days
            row.override_kind = str(window.override.kind)
            expires_at = window.override.expires_at
            row.override_expires_at = _to_utc(expires_at) if expires_at is not None else None


__all__ = ["SqlObligationStore"]
