"""Exception taxonomy for ``obligation_engine``.

All engine errors derive from :class:`ObligationError` and additionally from
the closest built-in exception so callers that already catch ``ValueError``,
``RuntimeError`` or ``PermissionError`` keep working.
"""

from __future__ import annotations


class ObligationError(Exception):
    """Base class for every error raised by the engine."""


class InvalidRule(ObligationError, ValueError):
    """Malformed rule configuration (raised at construction/parse time)."""


class LedgerConflict(ObligationError):
    """A concurrent writer advanced the ledger first (compare-and-swap lost).

    Callers treat this as "already handled" for the period, not as a failure
    to retry within the same invocation.
    """

    def __init__(self, rule_id: str, expected: object, actual: object = None) -> None:
        super().__init__(
            f"ledger for rule {rule_id!r} changed concurrently "
            f"(expected last_executed={expected}, found={actual})"
        )
        self.rule_id = rule_id
        self.expected = expected
        self.actual = actual


class PersistenceFailure(ObligationError, RuntimeError):
    """A storage read/write failed. Propagated; the engine never retries."""


class RecordNotFound(ObligationError, LookupError):
    """Unknown rule, habit or subject identifier."""


class EntitlementExpired(ObligationError, PermissionError):
    """A mutating action was attempted outside the subject's entitlement window."""


__all__ = [
    "ObligationError",
    "InvalidRule",
    "LedgerConflict",
    "PersistenceFailure",
    "RecordNotFound",
    "EntitlementExpired",
]
