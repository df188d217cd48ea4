"""Obligation executor for recurring financial charges.

``tick(charge, ledger, today)`` is the pure decision: given a rule, its ledger
and the current date it returns the charge to post, or ``None``. A rule posts
at most once per calendar month no matter how often ``tick`` runs.

:class:`RecurringChargeExecutor` applies that decision against a store. The
post and the ledger advance happen inside one ``unit_of_work()``; the ledger
write comes after the post and is a compare-and-swap on the prior
``last_executed`` value:

- post fails: the unit rolls back, the ledger stays put, the next tick
  retries. The ``PersistenceFailure`` propagates to the caller.
- compare-and-swap lost: the unit rolls back (the post is discarded) and the
  outcome reports ``CONFLICT``; another writer already handled the period.

For a store whose unit of work cannot make the two writes atomic, the order
still guarantees the ledger is never advanced without a post. The relational
store adds a unique index on ``(recurring_id, period_key)`` so a repeated post
for the same period surfaces as a conflict rather than a duplicate charge.

Scheduling is the caller's concern (timer, cron, request handler).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import StrEnum

from .clock import Clock, SystemClock
from .dates import PeriodKey, months_between
from .errors import LedgerConflict
from .frequency import effective_anchor_day
from .ledger import ChargeLedger
from .logging_setup import get_logger
from .models import PostedCharge, RecurringCharge
from .storage import ObligationStore

_logger = get_logger("obligation_engine.executor")

AUTO_NOTE_SUFFIX = "(auto)"


class TickStatus(StrEnum):
    POSTED = "posted"
    ALREADY_POSTED = "already_posted"
    LAPSED = "lapsed"
    NOT_YET_DUE = "not_yet_due"
    CONFLICT = "conflict"


def is_lapsed(charge: RecurringCharge, today: date) -> bool:
    """True once ``duration_months`` calendar months have elapsed since creation."""
    if charge.duration_months is None:
        return False
    return months_between(charge.created_on, today) >= charge.duration_months


def classify(charge: RecurringCharge, ledger: ChargeLedger, today: date) -> TickStatus:
    """Return which branch of the tick decision applies on ``today``."""

    period = PeriodKey.of(today)
    if ledger.has_posted(period):
        return TickStatus.ALREADY_POSTED
    if is_lapsed(charge, today):
        return TickStatus.LAPSED
    if today.day < effective_anchor_day(charge.anchor_day, today.year, today.month):
        return TickStatus.NOT_YET_DUE
    return TickStatus.POSTED


def tick(charge: RecurringCharge, ledger: ChargeLedger, today: date) -> PostedCharge | None:
    if classify(charge, ledger, today) is not TickStatus.POSTED:
        return None
    return PostedCharge(
        rule_id=charge.id,
        period=PeriodKey.of(today),
        amount=charge.amount,
        category=charge.category,
        date=today,
        note=f"{charge.name} {AUTO_NOTE_SUFFIX}",
    )


@dataclass(frozen=True, slots=True)
class TickOutcome:
    rule_id: str
    status: TickStatus
    charge: PostedCharge | None = None
    conflict: LedgerConflict | None = None

    @property
    def posted(self) -> bool:
        return self.status is TickStatus.POSTED


class RecurringChargeExecutor:
    """Runs :func:`tick` against a store with an injected clock."""

    def __init__(self, store: ObligationStore, clock: Clock | None = None) -> None:
        self._store = store
        self._clock = clock or SystemClock()

    def run(self, rule_id: str) -> TickOutcome:
        today = self._clock.today()
        charge = self._store.read_charge(rule_id)
        ledger = self._store.read_ledger(rule_id)
        return self._apply(charge, ledger, today)

    def run_all(self, subject_id: str) -> list[TickOutcome]:
        """Tick every charge of ``subject_id``; storage failures propagate."""

        outcomes = [self.run(charge.id) for charge in self._store.list_charges(subject_id)]
        posted = sum(1 for o in outcomes if o.posted)
        _logger.info(
            "tick:run_all subject_id=%s rules=%d posted=%d", subject_id, len(outcomes), posted
        )
        return outcomes

    def _apply(self, charge: RecurringCharge, ledger: ChargeLedger, today: date) -> TickOutcome:
        status = classify(charge, ledger, today)
        if status is not TickStatus.POSTED:
            _logger.debug(
                "tick:skip rule_id=%s status=%s period=%s", charge.id, status, PeriodKey.of(today)
            )
            return TickOutcome(rule_id=charge.id, status=status)

        posted = tick(charge, ledger, today)
        if posted is None:
            raise RuntimeError(f"tick() produced no charge for {charge.id!r} classified as POSTED")
        try:
            with self._store.unit_of_work():
                self._store.emit_charge(posted)
                self._store.write_ledger(
                    ledger.advanced_to(posted.period), expected=ledger.last_executed
                )
        except LedgerConflict as conflict:
            _logger.info(
                "tick:conflict rule_id=%s period=%s expected=%s",
                charge.id,
                posted.period,
                ledger.last_executed,
            )
            return TickOutcome(rule_id=charge.id, status=TickStatus.CONFLICT, conflict=conflict)

        _logger.info(
            "tick:posted rule_id=%s period=%s amount=%s", charge.id, posted.period, posted.amount
        )
        return TickOutcome(rule_id=charge.id, status=TickStatus.POSTED, charge=posted)


__all__ = [
    "AUTO_NOTE_SUFFIX",
    "TickStatus",
    "TickOutcome",
    "is_lapsed",
    "classify",
    "tick",
    "RecurringChargeExecutor",
]
