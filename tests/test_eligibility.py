from __future__ import annotations

from datetime import datetime

import pytest

from core.config import EligibilityPolicy
from core.criticality import CriticalityFactors, CriticalityResult, RecommendedAction
from core.eligibility import EligibilityDecider, in_quiet_hours
from core.models import QuietHours, Recipient, RecipientPreferences

NIGHT = QuietHours(start="22:00", end="08:00")


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 5, 10, hour, minute)


def _result(score: int, critical: bool = True) -> CriticalityResult:
    return CriticalityResult(
        is_critical=critical,
        criticality_score=score,
        confidence=0.9,
        factors=CriticalityFactors(importance_score=score),
        reasons=[],
        recommended_action=RecommendedAction.PRIORITY,
    )


def _recipient(**preferences) -> Recipient:
    active = preferences.pop("active", True)
    return Recipient(id=7, address="me", active=active, preferences=RecipientPreferences(**preferences))


def test_quiet_hours_wrapping_midnight() -> None:
    assert in_quiet_hours(NIGHT, _at(23, 30))
    assert in_quiet_hours(NIGHT, _at(3, 0))
    assert not in_quiet_hours(NIGHT, _at(9, 0))


def test_quiet_hours_bounds_are_inclusive() -> None:
    assert in_quiet_hours(NIGHT, _at(22, 0))
    assert in_quiet_hours(NIGHT, _at(8, 0))
    assert not in_quiet_hours(NIGHT, _at(8, 1))


def test_quiet_hours_within_one_day() -> None:
    lunch = QuietHours(start="12:00", end="13:00")
    assert in_quiet_hours(lunch, _at(12, 30))
    assert not in_quiet_hours(lunch, _at(23, 30))


def test_no_quiet_hours_is_never_inside() -> None:
    assert not in_quiet_hours(None, _at(23, 30))


def test_invalid_quiet_hours_are_rejected() -> None:
    with pytest.raises(ValueError):
        QuietHours(start="25:00", end="08:00")
    with pytest.raises(ValueError):
        QuietHours(start="22-00", end="08:00")


def test_very_critical_message_overrides_quiet_hours() -> None:
    decision = EligibilityDecider().decide(_recipient(quiet_hours=NIGHT), _result(95), _at(23, 30))
    assert decision.eligible


def test_critical_message_inside_quiet_hours_is_held_back() -> None:
    decision = EligibilityDecider().decide(_recipient(quiet_hours=NIGHT), _result(85), _at(23, 30))
    assert not decision.eligible
    assert decision.reason == "quiet hours"


def test_critical_message_outside_quiet_hours_is_eligible() -> None:
    assert EligibilityDecider().decide(_recipient(quiet_hours=NIGHT), _result(85), _at(9, 0)).eligible


def test_disabled_notifications_never_eligible() -> None:
    decider = EligibilityDecider()
    recipient = _recipient(notifications_enabled=False)
    for score in (0, 80, 100):
        assert not decider.decide(recipient, _result(score), _at(12)).eligible


def test_inactive_recipient_is_not_eligible() -> None:
    assert not EligibilityDecider().decide(_recipient(active=False), _result(100), _at(12)).eligible


def test_score_below_recipient_threshold() -> None:
    decision = EligibilityDecider().decide(_recipient(score_threshold=90), _result(85), _at(12))
    assert not decision.eligible
    assert "threshold" in decision.reason


def test_not_critical_is_not_eligible() -> None:
    decision = EligibilityDecider().decide(_recipient(score_threshold=10), _result(70, critical=False), _at(12))
    assert not decision.eligible
    assert decision.reason == "not critical"


def test_override_threshold_is_a_policy_knob() -> None:
    decider = EligibilityDecider(EligibilityPolicy(quiet_hours_override=80))
    assert decider.decide(_recipient(quiet_hours=NIGHT), _result(85), _at(23, 30)).eligible


def test_decision_is_pure() -> None:
    decider = EligibilityDecider()
    recipient = _recipient(quiet_hours=NIGHT)
    result = _result(85)
    decisions = {decider.decide(recipient, result, _at(23, 30)) for _ in range(5)}
    assert len(decisions) == 1
