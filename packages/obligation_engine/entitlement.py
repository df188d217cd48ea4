"""Trial/subscription entitlement gate.

A subject is active while its trial window has days left, or indefinitely with
an ``UNLIMITED`` override, or until the instant of an ``EXPIRES_AT`` override.
Once inactive, mutating actions are refused (read-only mode); reading is never
gated here.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from .clock import Clock, SystemClock
from .config import Settings, load_settings
from .errors import EntitlementExpired, InvalidRule
from .logging_setup import get_logger
from .models import EntitlementDecision, EntitlementWindow, OverrideKind
from .storage import ObligationStore

_logger = get_logger("obligation_engine.entitlement")

_ONE_DAY = timedelta(days=1)


def elapsed_days(anchor: datetime, now: datetime) -> int:
    """Whole days from ``anchor`` to ``now``; ``0`` when ``now`` precedes ``anchor``."""
    if now <= anchor:
        return 0
    return (now - anchor) // _ONE_DAY


def evaluate(window: EntitlementWindow, now: datetime) -> EntitlementDecision:
    override = window.override
    if override.kind is OverrideKind.UNLIMITED:
        return EntitlementDecision(active=True, days_remaining=None)
    if override.kind is OverrideKind.EXPIRES_AT:
        if override.expires_at is None:
            raise InvalidRule("EXPIRES_AT override requires a timestamp")
        return EntitlementDecision(active=now < override.expires_at, days_remaining=None)

    remaining = window.window_length_days - elapsed_days(window.anchor, now)
    return EntitlementDecision(active=remaining > 0, days_remaining=max(remaining, 0))


def new_trial(anchor: datetime, *, settings: Settings | None = None) -> EntitlementWindow:
    """Trial window starting at ``anchor``, sized by ``OBLIGATIONS_TRIAL_DAYS``."""
    length = (settings or load_settings()).trial_days
    return EntitlementWindow(anchor=anchor, window_length_days=length)


def require_active(decision: EntitlementDecision, *, subject_id: str | None = None) -> None:
    if not decision.active:
        who = f" for {subject_id!r}" if subject_id else ""
        raise EntitlementExpired(f"Entitlement expired{who}; account is read-only")


class EntitlementGate:
    def __init__(self, store: ObligationStore, clock: Clock | None = None) -> None:
        self._store = store
        self._clock = clock or SystemClock()

    def check(self, subject_id: str) -> EntitlementDecision:
        """Decision for ``subject_id``; subjects without a window are unrestricted."""

        window = self._store.read_entitlement(subject_id)
        if window is None:
            return EntitlementDecision(active=True, days_remaining=None)
        decision = evaluate(window, self._clock.now())
        _logger.debug(
            "entitlement:check subject_id=%s active=%s days_remaining=%s",
            subject_id,
            decision.active,
            decision.days_remaining,
        )
        return decision

    def guard(self, subject_id: str) -> EntitlementDecision:
        decision = self.check(subject_id)
        if not decision.active:
            _logger.info("entitlement:denied subject_id=%s", subject_id)
        require_active(decision, subject_id=subject_id)
        return decision


__all__ = ["elapsed_days", "evaluate", "new_trial", "require_active", "EntitlementGate"]
