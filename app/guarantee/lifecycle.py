"""
Guarantee session state machine.

Pure transition logic: given a session's current status and an event, decide the
next status and the side effects to run once the new status is committed. Nothing
here touches the database or the network.
"""

import enum
from dataclasses import dataclass, field
from typing import Dict, List, Tuple


class SessionStatus(str, enum.Enum):
    PENDING = "pending"
    VALIDATED = "validated"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NOSHOW_CHARGED = "noshow_charged"
    NOSHOW_FAILED = "noshow_failed"


class ApplyToRule(str, enum.Enum):
    ALL = "all"
    MIN_PERSONS = "min_persons"
    WEEKEND = "weekend"


class ChargeStatus(str, enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class LifecycleEvent(str, enum.Enum):
    VALIDATE = "validate"
    ATTEND = "attend"
    CHARGE_SUCCEEDED = "charge_succeeded"
    CHARGE_FAILED = "charge_failed"
    RESEND = "resend"
    CANCEL = "cancel"


# Effect requests, executed by the dispatcher after the state write commits

@dataclass(frozen=True)
class SendCardRequest:
    """Email/SMS the customer a link to register their card"""


@dataclass(frozen=True)
class SendConfirmation:
    """Email/SMS the customer that the guarantee is registered"""


@dataclass(frozen=True)
class TriggerBookingHandoff:
    """Ask the booking workflow to book the calendar slot"""


Effect = SendCardRequest | SendConfirmation | TriggerBookingHandoff


@dataclass(frozen=True)
class Transition:
    source: SessionStatus
    target: SessionStatus
    effects: List[Effect] = field(default_factory=list)


class IllegalTransition(Exception):
    def __init__(self, status: SessionStatus, event: LifecycleEvent):
        self.status = status
        self.event = event
        super().__init__(f"Cannot apply '{event.value}' to a session in status '{status.value}'")


TRANSITIONS: Dict[Tuple[SessionStatus, LifecycleEvent], Tuple[SessionStatus, Tuple[Effect, ...]]] = {
    (SessionStatus.PENDING, LifecycleEvent.VALIDATE): (
        SessionStatus.VALIDATED,
        (SendConfirmation(), TriggerBookingHandoff()),
    ),
    (SessionStatus.PENDING, LifecycleEvent.RESEND): (SessionStatus.PENDING, (SendCardRequest(),)),
    (SessionStatus.PENDING, LifecycleEvent.CANCEL): (SessionStatus.CANCELLED, ()),
    (SessionStatus.VALIDATED, LifecycleEvent.ATTEND): (SessionStatus.COMPLETED, ()),
    (SessionStatus.VALIDATED, LifecycleEvent.CHARGE_SUCCEEDED): (SessionStatus.NOSHOW_CHARGED, ()),
    (SessionStatus.VALIDATED, LifecycleEvent.CHARGE_FAILED): (SessionStatus.NOSHOW_FAILED, ()),
}

TERMINAL_STATUSES = frozenset({
    SessionStatus.COMPLETED,
    SessionStatus.CANCELLED,
    SessionStatus.NOSHOW_CHARGED,
    SessionStatus.NOSHOW_FAILED,
})

# Effects of creating a session; there is no source status yet
CREATION_EFFECTS: Tuple[Effect, ...] = (SendCardRequest(),)


def apply_event(status: SessionStatus, event: LifecycleEvent) -> Transition:
    """Resolve a transition or raise IllegalTransition"""
    status = SessionStatus(status)
    try:
        target, effects = TRANSITIONS[(status, event)]
    except KeyError:
        raise IllegalTransition(status, event) from None
    return Transition(source=status, target=target, effects=list(effects))


def can_apply(status: SessionStatus, event: LifecycleEvent) -> bool:
    return (SessionStatus(status), event) in TRANSITIONS
