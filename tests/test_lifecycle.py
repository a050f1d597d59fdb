"""Tests for the guarantee session state machine"""

import pytest

from app.guarantee.lifecycle import (
    TERMINAL_STATUSES,
    IllegalTransition,
    LifecycleEvent,
    SendCardRequest,
    SendConfirmation,
    SessionStatus,
    TriggerBookingHandoff,
    apply_event,
    can_apply,
)


def test_validation_requests_confirmation_and_handoff():
    transition = apply_event(SessionStatus.PENDING, LifecycleEvent.VALIDATE)

    assert transition.source == SessionStatus.PENDING
    assert transition.target == SessionStatus.VALIDATED
    assert transition.effects == [SendConfirmation(), TriggerBookingHandoff()]


def test_resend_stays_pending():
    transition = apply_event("pending", LifecycleEvent.RESEND)

    assert transition.target == SessionStatus.PENDING
    assert transition.effects == [SendCardRequest()]


@pytest.mark.parametrize("event,target", [
    (LifecycleEvent.ATTEND, SessionStatus.COMPLETED),
    (LifecycleEvent.CHARGE_SUCCEEDED, SessionStatus.NOSHOW_CHARGED),
    (LifecycleEvent.CHARGE_FAILED, SessionStatus.NOSHOW_FAILED),
])
def test_validated_outcomes(event, target):
    transition = apply_event(SessionStatus.VALIDATED, event)

    assert transition.target == target
    assert transition.effects == []


def test_cancel_only_from_pending():
    assert apply_event(SessionStatus.PENDING, LifecycleEvent.CANCEL).target == SessionStatus.CANCELLED
    assert can_apply(SessionStatus.VALIDATED, LifecycleEvent.CANCEL) is False


def test_pending_cannot_be_charged():
    with pytest.raises(IllegalTransition) as exc_info:
        apply_event(SessionStatus.PENDING, LifecycleEvent.CHARGE_SUCCEEDED)

    assert exc_info.value.status == SessionStatus.PENDING
    assert "charge_succeeded" in str(exc_info.value)


@pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
def test_terminal_statuses_accept_no_event(status):
    for event in LifecycleEvent:
        assert can_apply(status, event) is False
