"""
Guarantee eligibility rules.

Decides whether a reservation must be secured by a card. The functions are pure:
the caller probes the merchant's Stripe account beforehand and passes the result in.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from app.guarantee.lifecycle import ApplyToRule

# Friday, Saturday, Sunday (date.weekday() numbering)
WEEKEND_DAYS = frozenset({4, 5, 6})

DEFAULT_MIN_PERSONS = 4


class Reason:
    ELIGIBLE = "eligible"
    DISABLED = "disabled"
    MIN_PERSONS_NOT_MET = "min_persons_not_met"
    NOT_WEEKEND = "not_weekend"
    STRIPE_NOT_CONNECTED = "stripe_not_connected"
    STRIPE_NOT_READY = "stripe_not_ready"
    STRIPE_ERROR = "stripe_error"


MESSAGES = {
    Reason.ELIGIBLE: "A card guarantee is required for this reservation",
    Reason.DISABLED: "Card guarantee is not enabled for this account",
    Reason.MIN_PERSONS_NOT_MET: "Card guarantee applies from {min_persons} guests",
    Reason.NOT_WEEKEND: "Card guarantee applies on weekends only (Friday, Saturday, Sunday)",
    Reason.STRIPE_NOT_CONNECTED: "Stripe account not connected",
    Reason.STRIPE_NOT_READY: "Stripe account not ready to accept payments",
    Reason.STRIPE_ERROR: "Stripe account could not be verified",
}


@dataclass(frozen=True)
class Eligibility:
    required: bool
    reason: str
    message: str


@dataclass(frozen=True)
class AccountStatus:
    """Result of probing a merchant's connected account"""
    connected: bool
    details_submitted: bool = False
    charges_enabled: bool = False
    payouts_enabled: bool = False
    error: Optional[str] = None

    @property
    def charge_capable(self) -> bool:
        return self.connected and self.error is None and self.charges_enabled

    @property
    def fully_onboarded(self) -> bool:
        return self.charge_capable and self.details_submitted

    @classmethod
    def disconnected(cls) -> "AccountStatus":
        return cls(connected=False)

    @classmethod
    def failed(cls, error: str) -> "AccountStatus":
        return cls(connected=True, error=error)


def _negative(reason: str, **fmt) -> Eligibility:
    return Eligibility(required=False, reason=reason, message=MESSAGES[reason].format(**fmt))


def is_weekend(day: date) -> bool:
    return day.weekday() in WEEKEND_DAYS


def reservation_rules(config, nb_persons: int, reservation_date: date) -> Optional[Eligibility]:
    """Rules that depend only on the config and the reservation; None if they all pass"""
    if config is None or not config.enabled:
        return _negative(Reason.DISABLED)

    rule = ApplyToRule(config.apply_to or ApplyToRule.ALL)

    if rule == ApplyToRule.MIN_PERSONS:
        min_persons = config.min_persons or DEFAULT_MIN_PERSONS
        if nb_persons < min_persons:
            return _negative(Reason.MIN_PERSONS_NOT_MET, min_persons=min_persons)

    if rule == ApplyToRule.WEEKEND and not is_weekend(reservation_date):
        return _negative(Reason.NOT_WEEKEND)

    return None


def evaluate_eligibility(
    config,
    nb_persons: int,
    reservation_date: date,
    account: AccountStatus,
) -> Eligibility:
    negative = reservation_rules(config, nb_persons, reservation_date)
    if negative:
        return negative

    if not config.stripe_account_id or not account.connected:
        return _negative(Reason.STRIPE_NOT_CONNECTED)
    if account.error:
        return _negative(Reason.STRIPE_ERROR)
    if not account.charges_enabled:
        return _negative(Reason.STRIPE_NOT_READY)

    return Eligibility(required=True, reason=Reason.ELIGIBLE, message=MESSAGES[Reason.ELIGIBLE])
