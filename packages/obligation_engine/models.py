"""Domain models for ``obligation_engine``.

Frequencies are a tagged union of small frozen dataclasses keyed by
:class:`FrequencyType`; each variant validates itself on construction and
raises :class:`~obligation_engine.errors.InvalidRule` when malformed, so the
evaluator never has to inspect shapes at runtime.

Raw payloads coming from storage (``type`` + polymorphic ``value``) are parsed
through :class:`FrequencyPayload`, a pydantic model, via
:func:`frequency_from_payload`. :func:`frequency_to_payload` is its inverse.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, ValidationError

from .config import DEFAULT_TRIAL_DAYS
from .dates import PeriodKey
from .errors import InvalidRule
from .ledger import HabitHistory

# ---------------------------------------------------------------------------
# Frequencies
# ---------------------------------------------------------------------------


class FrequencyType(StrEnum):
    DAILY = "daily"
    WEEKLY_ON_DAYS = "weekly_on_days"
    TIMES_PER_WEEK = "times_per_week"
    MONTHLY_ON_DATES = "monthly_on_dates"
    TIMES_PER_MONTH = "times_per_month"


def _int_set(values: Iterable[int], *, lo: int, hi: int, what: str) -> frozenset[int]:
    items: set[int] = set()
    for v in values:
        # Booleans are ints; disallow them explicitly.
        if isinstance(v, bool) or not isinstance(v, int):
            raise InvalidRule(f"{what} must contain integers, got {v!r}")
        if not lo <= v <= hi:
            raise InvalidRule(f"{what} values must be within {lo}..{hi}, got {v}")
        items.add(v)
    if not items:
        raise InvalidRule(f"{what} must not be empty")
    return frozenset(items)


def _positive_count(v: Any, what: str) -> int:
    if isinstance(v, bool) or not isinstance(v, int) or v <= 0:
        raise InvalidRule(f"{what} must be a positive integer, got {v!r}")
    return v


@dataclass(frozen=True, slots=True)
class Daily:
    kind: ClassVar[FrequencyType] = FrequencyType.DAILY


@dataclass(frozen=True, slots=True)
class WeeklyOnDays:
    """Due on the listed weekdays (0 = Sunday … 6 = Saturday)."""

    kind: ClassVar[FrequencyType] = FrequencyType.WEEKLY_ON_DAYS
    weekdays: frozenset[int]

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "weekdays", _int_set(self.weekdays, lo=0, hi=6, what="weekdays")
        )


@dataclass(frozen=True, slots=True)
class TimesPerWeek:
    kind: ClassVar[FrequencyType] = FrequencyType.TIMES_PER_WEEK
    count: int

    def __post_init__(self) -> None:
        _positive_count(self.count, "times_per_week count")


@dataclass(frozen=True, slots=True)
class MonthlyOnDates:
    """Due on the listed days of the month. No clamping for short months."""

    kind: ClassVar[FrequencyType] = FrequencyType.MONTHLY_ON_DATES
    days: frozenset[int]

    def __post_init__(self) -> None:
        object.__setattr__(self, "days", _int_set(self.days, lo=1, hi=31, what="days"))


@dataclass(frozen=True, slots=True)
class TimesPerMonth:
    kind: ClassVar[FrequencyType] = FrequencyType.TIMES_PER_MONTH
    count: int

    def __post_init__(self) -> None:
        _positive_count(self.count, "times_per_month count")


type Frequency = Daily | WeeklyOnDays | TimesPerWeek | MonthlyOnDates | TimesPerMonth

FREQUENCY_VARIANTS: tuple[type, ...] = (
    Daily,
    WeeklyOnDays,
    TimesPerWeek,
    MonthlyOnDates,
    TimesPerMonth,
)


class FrequencyPayload(BaseModel):
    """Stored shape of a frequency: a type tag plus a polymorphic value."""

    model_config = ConfigDict(extra="forbid")

    type: FrequencyType
    value: list[int] | int | None = None


def frequency_from_payload(payload: Any) -> Frequency:
    """Build a validated :data:`Frequency` from a ``{"type", "value"}`` mapping."""

    try:
        p = FrequencyPayload.model_validate(payload)
    except ValidationError as e:
        raise InvalidRule(f"Invalid frequency payload: {e}") from e

    if p.type is FrequencyType.DAILY:
        return Daily()
    if p.type in (FrequencyType.WEEKLY_ON_DAYS, FrequencyType.MONTHLY_ON_DATES):
        if not isinstance(p.value, list):
            raise InvalidRule(f"{p.type} requires a list value, got {p.value!r}")
        if p.type is FrequencyType.WEEKLY_ON_DAYS:
            return WeeklyOnDays(frozenset(p.value))
        return MonthlyOnDates(frozenset(p.value))
    if not isinstance(p.value, int):
        raise InvalidRule(f"{p.type} requires an integer value, got {p.value!r}")
    if p.type is FrequencyType.TIMES_PER_WEEK:
        return TimesPerWeek(p.value)
    return TimesPerMonth(p.value)


def frequency_to_payload(freq: Frequency) -> dict[str, Any]:
    value: list[int] | int | None
    if isinstance(freq, WeeklyOnDays):
        value = sorted(freq.weekdays)
    elif isinstance(freq, MonthlyOnDates):
        value = sorted(freq.days)
    elif isinstance(freq, TimesPerWeek | TimesPerMonth):
        value = freq.count
    else:
        value = None
    return {"type": str(freq.kind), "value": value}


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ObligationRule:
    """A recurring commitment evaluated per calendar date."""

    id: str
    frequency: Frequency = field(default_factory=Daily)
    valid_from: date | None = None
    valid_until: date | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.frequency, FREQUENCY_VARIANTS):
            raise InvalidRule(f"Unsupported frequency: {self.frequency!r}")
        if (
            self.valid_from is not None
            and self.valid_until is not None
            and self.valid_from > self.valid_until
        ):
            raise InvalidRule(
                f"valid_from {self.valid_from} is after valid_until {self.valid_until}"
            )


@dataclass(frozen=True, slots=True)
class RecurringCharge:
    """A monthly financial charge posted on (or after) its anchor day.

    ``duration_months`` counts calendar months from the creation month; the
    charge lapses once that many months have elapsed and stays inert.
    """

    id: str
    name: str
    amount: Decimal
    category: str
    anchor_day: int
    created_on: date
    duration_months: int | None = None

    def __post_init__(self) -> None:
        if isinstance(self.anchor_day, bool) or not 1 <= self.anchor_day <= 31:
            raise InvalidRule(f"anchor_day must be within 1..31, got {self.anchor_day!r}")
        if self.duration_months is not None:
            _positive_count(self.duration_months, "duration_months")
        amount = Decimal(str(self.amount))
        if amount < 0:
            raise InvalidRule(f"amount must not be negative, got {amount}")
        object.__setattr__(self, "amount", amount)


@dataclass(frozen=True, slots=True)
class Habit:
    rule: ObligationRule
    name: str
    history: HabitHistory = field(default_factory=HabitHistory)

    @property
    def id(self) -> str:
        return self.rule.id


# ---------------------------------------------------------------------------
# Transactions and posted charges
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Transaction:
    amount: Decimal
    category: str
    date: date
    note: str = ""
    is_recurring: bool = False
    is_incurred: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", Decimal(str(self.amount)))

    @property
    def period(self) -> PeriodKey:
        return PeriodKey.of(self.date)


@dataclass(frozen=True, slots=True)
class PostedCharge:
    """A transaction synthesized by the executor for one rule and period."""

    rule_id: str
    period: PeriodKey
    amount: Decimal
    category: str
    date: date
    note: str
    system_generated: bool = True

    def as_transaction(self) -> Transaction:
        return Transaction(
            amount=self.amount,
            category=self.category,
            date=self.date,
            note=self.note,
            is_recurring=self.system_generated,
        )


# ---------------------------------------------------------------------------
# Entitlement
# ---------------------------------------------------------------------------


class OverrideKind(StrEnum):
    NONE = "none"
    UNLIMITED = "unlimited"
    EXPIRES_AT = "expires_at"


@dataclass(frozen=True, slots=True)
class Override:
    kind: OverrideKind = OverrideKind.NONE
    expires_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.kind is OverrideKind.EXPIRES_AT and self.expires_at is None:
            raise InvalidRule("EXPIRES_AT override requires a timestamp")
        if self.kind is not OverrideKind.EXPIRES_AT and self.expires_at is not None:
            raise InvalidRule(f"{self.kind} override must not carry a timestamp")

    @classmethod
    def none(cls) -> Override:
        return cls(OverrideKind.NONE)

    @classmethod
    def unlimited(cls) -> Override:
        return cls(OverrideKind.UNLIMITED)

    @classmethod
    def until(cls, expires_at: datetime) -> Override:
        return cls(OverrideKind.EXPIRES_AT, expires_at)


@dataclass(frozen=True, slots=True)
class EntitlementWindow:
    anchor: datetime
    window_length_days: int = DEFAULT_TRIAL_DAYS
    override: Override = field(default_factory=Override.none)

    def __post_init__(self) -> None:
        if isinstance(self.window_length_days, bool) or self.window_length_days < 0:
            raise InvalidRule(
                "window_length_days must be a non-negative integer, "
                f"got {self.window_length_days!r}"
            )


@dataclass(frozen=True, slots=True)
class EntitlementDecision:
    active: bool
    days_remaining: int | None = None


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------


class GoalPeriod(StrEnum):
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


@dataclass(frozen=True, slots=True)
class Goal:
    """A target amount to reach by ``deadline`` (savings, page counts, ...)."""

    id: str
    name: str
    target_amount: Decimal
    deadline: date
    period: GoalPeriod = GoalPeriod.MONTH
    current_amount: Decimal = Decimal(0)
    unit: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "target_amount", Decimal(str(self.target_amount)))
        object.__setattr__(self, "current_amount", Decimal(str(self.current_amount)))
        if self.target_amount <= 0:
            raise InvalidRule(
                f"Goal {self.id!r} needs a positive target, got {self.target_amount}"
            )
        if self.current_amount < 0:
            raise InvalidRule(f"Goal {self.id!r} amount must not be negative")

    def with_amount(self, value: Decimal | int | str) -> Goal:
        """Copy with ``current_amount`` set to ``value``, floored at zero."""
        return replace(self, current_amount=max(Decimal(0), Decimal(str(value))))

    def advanced(self, delta: Decimal | int | str) -> Goal:
        return self.with_amount(self.current_amount + Decimal(str(delta)))


# ---------------------------------------------------------------------------
# Loans
# ---------------------------------------------------------------------------


class LoanKind(StrEnum):
    LENT = "lent"
    BORROWED = "borrowed"


class LoanStatus(StrEnum):
    PENDING = "pending"
    PAID = "paid"


@dataclass(frozen=True, slots=True)
class Loan:
    id: str
    person: str
    amount: Decimal
    kind: LoanKind
    status: LoanStatus = LoanStatus.PENDING
    due_date: date | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", Decimal(str(self.amount)))


__all__ = [
    "FrequencyType",
    "Daily",
    "WeeklyOnDays",
    "TimesPerWeek",
    "MonthlyOnDates",
    "TimesPerMonth",
    "Frequency",
    "FREQUENCY_VARIANTS",
    "FrequencyPayload",
    "frequency_from_payload",
    "frequency_to_payload",
    "ObligationRule",
    "RecurringCharge",
    "Habit",
    "Transaction",
    "PostedCharge",
    "OverrideKind",
    "Override",
    "EntitlementWindow",
    "EntitlementDecision",
    "GoalPeriod",
    "Goal",
    "LoanKind",
    "LoanStatus",
    "Loan",
]
