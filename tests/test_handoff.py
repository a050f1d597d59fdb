"""Tests for the booking workflow hand-off"""

from datetime import datetime
from uuid import uuid4

import httpx
import pytest

from app.guarantee import handoff as handoff_module
from app.guarantee.handoff import BookingHandoff
from app.guarantee.lifecycle import SessionStatus
from app.models.guarantee import GuaranteeConfig, GuaranteeSession
from app.models.tenant import Tenant


def _fixtures():
    tenant = Tenant(id=uuid4(), name="Chez Test", agent_id="agent_test", api_key="th_live_" + "a" * 64,
                    contact_email="owner@chez-test.fr")
    config = GuaranteeConfig(
        tenant_id=tenant.id,
        calendar_id="cal_123",
        company_name="Chez Test",
        brand_color=None,
        sms_enabled=True,
        auto_send_email_on_create=True,
        auto_send_sms_on_create=False,
        auto_send_email_on_validation=True,
        auto_send_sms_on_validation=True,
        cancellation_delay_hours=48,
    )
    session = GuaranteeSession(
        id=uuid4(),
        tenant_id=tenant.id,
        reservation_id="resa-042",
        customer_name="Marie Dupont",
        customer_email="marie@example.com",
        customer_phone="0612345678",
        nb_persons=6,
        reservation_date=datetime(2025, 12, 20, 12, 0),
        reservation_time="20:00",
        duration_minutes=120,
        timezone="Europe/Paris",
        status=SessionStatus.VALIDATED,
        penalty_amount=30,
        payment_method_id="pm_card_visa",
        validated_at=datetime(2025, 12, 1, 9, 30),
    )
    return tenant, config, session


def test_payload_carries_window_and_merchant_context(test_settings):
    tenant, config, session = _fixtures()

    payload = BookingHandoff(test_settings).build_payload(session, config, tenant)

    assert payload["event"] == "card_validated"
    assert payload["session_id"] == str(session.id)
    assert payload["api_key"] == tenant.api_key
    assert payload["reservation_date"] == "2025-12-20"
    assert payload["start_datetime"] == "2025-12-20T20:00:00+01:00"
    assert payload["end_datetime"] == "2025-12-20T22:00:00+01:00"
    assert payload["timeMin"].startswith("2025-12-20T00:00:00")
    assert payload["timeZone"] == "Europe/Paris"
    assert payload["duration"] == 120
    assert payload["calendar_id"] == "cal_123"
    assert payload["agent_id"] == "agent_test"
    assert payload["company_email"] == "owner@chez-test.fr"
    assert payload["brand_color"] == test_settings.guarantee_default_brand_color
    assert payload["auto_send_sms_on_validation"] is True
    assert payload["cancellation_delay"] == 48
    assert payload["validated_at"] == "2025-12-01T09:30:00"


def test_schedule_reports_queue_failures(test_settings):
    def broken_queue(payload):
        raise ConnectionError("redis unavailable")

    queued = []
    assert BookingHandoff(test_settings, enqueue=queued.append).schedule({"session_id": "1"}) is True
    assert queued == [{"session_id": "1"}]
    assert BookingHandoff(test_settings, enqueue=broken_queue).schedule({"session_id": "1"}) is False
    assert BookingHandoff(test_settings).schedule({"session_id": "1"}) is False


@pytest.fixture
def workflow_responses(monkeypatch):
    """Route the hand-off's HTTP client through a mock transport"""
    received = []
    status = {"code": 200}

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(status["code"], json={"ok": status["code"] < 400})

    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(handoff_module.httpx, "AsyncClient", client_factory)
    return received, status


@pytest.mark.asyncio
async def test_deliver_posts_payload(test_settings, workflow_responses):
    received, _ = workflow_responses

    delivered = await BookingHandoff(test_settings).deliver({"session_id": "abc", "event": "card_validated"})

    assert delivered is True
    assert str(received[0].url) == test_settings.booking_workflow_url
    assert b"card_validated" in received[0].content


@pytest.mark.asyncio
async def test_deliver_reports_rejection(test_settings, workflow_responses):
    _, status = workflow_responses
    status["code"] = 500

    assert await BookingHandoff(test_settings).deliver({"session_id": "abc"}) is False
