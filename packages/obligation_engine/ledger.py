"""Execution ledgers and their serialized form.

Two ledgers record what has already happened for an obligation:

- :class:`ChargeLedger` keeps the last period in which a recurring charge was
  successfully posted. At most one post per month is allowed, so a single
  scalar is sufficient.
- :class:`HabitHistory` maps calendar dates to a completion marker in
  ``{0, 100}`` (percent complete; only full completion is modeled).

Serialization
-------------
Both ledgers round-trip through small pydantic documents carrying a
``schema_version``. Period keys are written as ``"YYYY-MM"`` and dates as ISO
``"YYYY-MM-DD"``. The documents are independent of any storage engine's
partial-update syntax; adapters store them whole or map them onto columns.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .dates import PeriodKey
from .errors import InvalidRule

HABIT_COMPLETE = 100
HABIT_INCOMPLETE = 0
_ALLOWED_MARKERS = frozenset({HABIT_INCOMPLETE, HABIT_COMPLETE})

# Bump only when the serialized ledger shapes change.
LEDGER_SCHEMA_VERSION: int = 1


@dataclass(frozen=True, slots=True)
class ChargeLedger:
    """Idempotency record for one recurring charge."""

    rule_id: str
    last_executed: PeriodKey | None = None

    def has_posted(self, period: PeriodKey) -> bool:
        return self.last_executed == period

    def advanced_to(self, period: PeriodKey) -> ChargeLedger:
        return ChargeLedger(rule_id=self.rule_id, last_executed=period)


@dataclass(frozen=True, slots=True)
class HabitHistory(Mapping[date, int]):
    """Per-day completion markers for one habit.

    Instances are immutable; edits return a new history. Absent dates read as
    ``0`` through :meth:`value`.
    """

    marks: Mapping[date, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for day, value in self.marks.items():
            if value not in _ALLOWED_MARKERS:
                raise ValueError(f"Invalid habit marker {value!r} for {day.isoformat()}")
        object.__setattr__(self, "marks", dict(self.marks))

    def __getitem__(self, day: date) -> int:
        return self.marks[day]

    def __iter__(self) -> Iterator[date]:
        return iter(self.marks)

    def __len__(self) -> int:
        return len(self.marks)

    def value(self, day: date) -> int:
        return self.marks.get(day, HABIT_INCOMPLETE)

    def is_complete(self, day: date) -> bool:
        return self.value(day) == HABIT_COMPLETE

    def with_mark(self, day: date, value: int) -> HabitHistory:
        updated = dict(self.marks)
        updated[day] = value
        return HabitHistory(updated)

    def toggled(self, day: date) -> tuple[HabitHistory, int]:
        """Flip ``day`` between 0 and 100; returns the new history and value."""
        new_value = HABIT_INCOMPLETE if self.is_complete(day) else HABIT_COMPLETE
        return self.with_mark(day, new_value), new_value

    def completed_days(self) -> list[date]:
        return sorted(d for d, v in self.marks.items() if v == HABIT_COMPLETE)


# ---------------------------------------------------------------------------
# Serialized documents
# ---------------------------------------------------------------------------


class ChargeLedgerDocument(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid", str_strip_whitespace=True)

    schema_version: int
    rule_id: str
    last_executed: str | None = None

    @field_validator("last_executed")
    @classmethod
    def _valid_period(cls, v: str | None) -> str | None:
        if v is None or v == "":
            return None
        return str(PeriodKey.parse(v))


class HabitHistoryDocument(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid")

    schema_version: int
    habit_id: str
    marks: dict[str, int]

    @field_validator("marks")
    @classmethod
    def _valid_marks(cls, v: dict[str, int]) -> dict[str, int]:
        for key, value in v.items():
            date.fromisoformat(key)
            if value not in _ALLOWED_MARKERS:
                raise ValueError(f"marker for {key} must be 0 or 100, got {value!r}")
        return v


def _check_version(version: int) -> None:
    if version != LEDGER_SCHEMA_VERSION:
        raise InvalidRule(
            f"Unsupported ledger schema_version {version} (expected {LEDGER_SCHEMA_VERSION})"
        )


def dump_charge_ledger(ledger: ChargeLedger) -> dict[str, Any]:
    doc = ChargeLedgerDocument(
        schema_version=LEDGER_SCHEMA_VERSION,
        rule_id=ledger.rule_id,
        last_executed=str(ledger.last_executed) if ledger.last_executed else None,
    )
    return doc.model_dump(mode="json")


def load_charge_ledger(payload: Mapping[str, Any]) -> ChargeLedger:
    try:
        doc = ChargeLedgerDocument.model_validate(dict(payload))
    except ValidationError as e:
        raise InvalidRule(f"Invalid charge ledger document: {e}") from e
    _check_version(doc.schema_version)
    last = PeriodKey.parse(doc.last_executed) if doc.last_executed else None
    return ChargeLedger(rule_id=doc.rule_id, last_executed=last)


def dump_habit_history(habit_id: str, history: HabitHistory) -> dict[str, Any]:
    doc = HabitHistoryDocument(
        schema_version=LEDGER_SCHEMA_VERSION,
        habit_id=habit_id,
        marks={d.isoformat(): v for d, v in sorted(history.marks.items())},
    )
    return doc.model_dump(mode="json")


def load_habit_history(payload: Mapping[str, Any]) -> tuple[str, HabitHistory]:
    try:
        doc = HabitHistoryDocument.model_validate(dict(payload))
    except ValidationError as e:
        raise InvalidRule(f"Invalid habit history document: {e}") from e
    _check_version(doc.schema_version)
    marks = {date.fromisoformat(k): v for k, v in doc.marks.items()}
    return doc.habit_id, HabitHistory(marks)


__all__ = [
    "HABIT_COMPLETE",
    "HABIT_INCOMPLETE",
    "LEDGER_SCHEMA_VERSION",
    "ChargeLedger",
    "HabitHistory",
    "ChargeLedgerDocument",
    "HabitHistoryDocument",
    "dump_charge_ledger",
    "load_charge_ledger",
    "dump_habit_history",
    "load_habit_history",
]
