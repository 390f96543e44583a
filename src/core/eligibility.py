"""Per-recipient notification eligibility (core domain).

Pure functions of (recipient, criticality result, wall-clock time): no I/O,
no hidden state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from core.config import EligibilityPolicy
from core.criticality import CriticalityResult
from core.models import QuietHours, Recipient


@dataclass(frozen=True)
class EligibilityDecision:
    eligible: bool
    reason: str


def in_quiet_hours(quiet_hours: Optional[QuietHours], now: datetime) -> bool:
    """Return True when now falls inside the window; both bounds inclusive."""

    if quiet_hours is None:
        return False
    minute = now.hour * 60 + now.minute
    start, end = quiet_hours.start_minute, quiet_hours.end_minute
    if start <= end:
        return start <= minute <= end
    # Window wraps midnight, e.g. 22:00-08:00.
    return minute >= start or minute <= end


class EligibilityDecider:
    def __init__(self, policy: Optional[EligibilityPolicy] = None) -> None:
        self._policy = policy or EligibilityPolicy()

    @property
    def policy(self) -> EligibilityPolicy:
        return self._policy

    def decide(self, recipient: Recipient, result: CriticalityResult, now: datetime) -> EligibilityDecision:
        preferences = recipient.preferences
        score = result.criticality_score
        if not recipient.active:
            return EligibilityDecision(False, "recipient inactive")
        if not preferences.notifications_enabled:
            return EligibilityDecision(False, "notifications disabled")
        if score < preferences.score_threshold:
            return EligibilityDecision(False, f"score {score} below threshold {preferences.score_threshold}")
        if not result.is_critical:
            return EligibilityDecision(False, "not critical")
        if in_quiet_hours(preferences.quiet_hours, now):
            if score < self._policy.quiet_hours_override:
                return EligibilityDecision(False, "quiet hours")
            return EligibilityDecision(True, "quiet hours overridden")
        return EligibilityDecision(True, "eligible")
