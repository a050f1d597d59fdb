"""Tests for guarantee eligibility rules"""

from datetime import date
from types import SimpleNamespace

import pytest

from app.guarantee.eligibility import (
    AccountStatus,
    Reason,
    evaluate_eligibility,
    is_weekend,
    reservation_rules,
)
from app.guarantee.lifecycle import ApplyToRule

FRIDAY = date(2025, 12, 19)
SATURDAY = date(2025, 12, 20)
SUNDAY = date(2025, 12, 21)
MONDAY = date(2025, 12, 22)
WEDNESDAY = date(2025, 12, 17)

READY = AccountStatus(connected=True, details_submitted=True, charges_enabled=True, payouts_enabled=True)


def _config(**overrides):
    values = dict(enabled=True, apply_to=ApplyToRule.ALL, min_persons=1, stripe_account_id="acct_test")
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.mark.parametrize("day,expected", [
    (FRIDAY, True),
    (SATURDAY, True),
    (SUNDAY, True),
    (MONDAY, False),
    (WEDNESDAY, False),
])
def test_weekend_covers_friday_to_sunday(day, expected):
    assert is_weekend(day) is expected


def test_missing_or_disabled_config_is_not_required():
    assert reservation_rules(None, 4, SATURDAY).reason == Reason.DISABLED
    assert reservation_rules(_config(enabled=False), 4, SATURDAY).reason == Reason.DISABLED


def test_apply_to_all_passes():
    assert reservation_rules(_config(), 1, WEDNESDAY) is None


@pytest.mark.parametrize("min_persons,nb_persons,required", [
    (2, 1, False),
    (2, 2, True),
    (6, 5, False),
    (6, 6, True),
    (6, 12, True),
])
def test_min_persons_threshold(min_persons, nb_persons, required):
    config = _config(apply_to=ApplyToRule.MIN_PERSONS, min_persons=min_persons)

    result = evaluate_eligibility(config, nb_persons, WEDNESDAY, READY)

    assert result.required is required
    if not required:
        assert result.reason == Reason.MIN_PERSONS_NOT_MET
        assert str(min_persons) in result.message


def test_min_persons_defaults_to_four_when_unset():
    config = _config(apply_to=ApplyToRule.MIN_PERSONS, min_persons=None)

    assert evaluate_eligibility(config, 3, WEDNESDAY, READY).required is False
    assert evaluate_eligibility(config, 4, WEDNESDAY, READY).required is True


def test_weekend_rule():
    config = _config(apply_to=ApplyToRule.WEEKEND)

    assert evaluate_eligibility(config, 2, SATURDAY, READY).required is True
    result = evaluate_eligibility(config, 2, MONDAY, READY)
    assert result.required is False
    assert result.reason == Reason.NOT_WEEKEND


def test_reservation_rules_come_before_account_checks():
    """A weekday reservation is reported as not_weekend even without a Stripe account"""
    config = _config(apply_to=ApplyToRule.WEEKEND, stripe_account_id=None)

    result = evaluate_eligibility(config, 2, MONDAY, AccountStatus.disconnected())

    assert result.reason == Reason.NOT_WEEKEND


def test_account_states():
    config = _config()

    assert evaluate_eligibility(_config(stripe_account_id=None), 2, SATURDAY, READY).reason == (
        Reason.STRIPE_NOT_CONNECTED
    )
    assert evaluate_eligibility(config, 2, SATURDAY, AccountStatus.disconnected()).reason == (
        Reason.STRIPE_NOT_CONNECTED
    )
    assert evaluate_eligibility(config, 2, SATURDAY, AccountStatus.failed("boom")).reason == Reason.STRIPE_ERROR
    not_ready = AccountStatus(connected=True, details_submitted=True, charges_enabled=False)
    assert evaluate_eligibility(config, 2, SATURDAY, not_ready).reason == Reason.STRIPE_NOT_READY

    eligible = evaluate_eligibility(config, 2, SATURDAY, READY)
    assert eligible.required is True
    assert eligible.reason == Reason.ELIGIBLE


def test_account_status_flags():
    assert READY.fully_onboarded is True
    assert AccountStatus(connected=True, charges_enabled=True).fully_onboarded is False
    assert AccountStatus.failed("boom").charge_capable is False
