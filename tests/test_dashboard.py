"""Tests for the merchant dashboard: config, Stripe Connect, reservations and reports"""

from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient

from app.guarantee.lifecycle import SessionStatus
from app.guarantee.store import GuaranteeStore

from tests.fakes import add_session


# Config

@pytest.mark.asyncio
async def test_get_config_defaults(authenticated_client: AsyncClient):
    response = await authenticated_client.get("/guarantee/config")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["stripeConnected"] is False
    assert data["config"]["enabled"] is False
    assert data["config"]["penaltyAmount"] == 30
    assert data["config"]["cancellationDelayHours"] == 24
    assert data["config"]["brandColor"] == "#C8B88A"


@pytest.mark.asyncio
async def test_enable_without_stripe_saves_disabled(authenticated_client: AsyncClient, test_db, test_tenant):
    """The other fields are saved, the guarantee stays off and a warning explains why"""
    response = await authenticated_client.put(
        "/guarantee/config",
        json={"enabled": True, "penaltyAmount": 45, "applyTo": "min_persons", "minPersons": 6},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["config"]["enabled"] is False
    assert data["config"]["penaltyAmount"] == 45
    assert data["config"]["applyTo"] == "min_persons"
    assert "Connect Stripe" in data["warning"]

    config = await GuaranteeStore(test_db).get_config(test_tenant.id)
    assert config.enabled is False
    assert config.min_persons == 6


@pytest.mark.asyncio
async def test_enable_with_incomplete_onboarding(authenticated_client: AsyncClient, guarantee_config, gateway, test_db):
    guarantee_config.enabled = False
    await test_db.commit()
    gateway.accounts["acct_test"].details_submitted = False

    response = await authenticated_client.put("/guarantee/config", json={"enabled": True})

    assert response.json()["config"]["enabled"] is False
    assert "onboarding" in response.json()["warning"]


@pytest.mark.asyncio
async def test_enable_with_ready_account(authenticated_client: AsyncClient, guarantee_config, test_db):
    guarantee_config.enabled = False
    await test_db.commit()

    response = await authenticated_client.put("/guarantee/config", json={"enabled": True, "smsEnabled": True})

    assert response.status_code == 200
    assert response.json()["config"]["enabled"] is True
    assert response.json()["config"]["smsEnabled"] is True
    assert response.json()["warning"] is None
    assert response.json()["stripeConnected"] is True


@pytest.mark.asyncio
async def test_partial_update_keeps_other_fields(authenticated_client: AsyncClient, guarantee_config):
    response = await authenticated_client.put("/guarantee/config", json={"companyName": "Le Nouveau Nom"})

    data = response.json()["config"]
    assert data["companyName"] == "Le Nouveau Nom"
    assert data["brandColor"] == "#112233"
    assert data["enabled"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"brandColor": "blue"},
    {"penaltyAmount": 0},
    {"penaltyAmount": 500},
    {"cancellationDelayHours": 100},
    {"applyTo": "holidays"},
])
async def test_invalid_config_is_rejected(authenticated_client: AsyncClient, body):
    response = await authenticated_client.put("/guarantee/config", json=body)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_staff_cannot_change_config(client: AsyncClient, staff_headers):
    response = await client.put("/guarantee/config", json={"penaltyAmount": 50}, headers=staff_headers)
    assert response.status_code == 403

    response = await client.get("/guarantee/config", headers=staff_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_dashboard_requires_login(client: AsyncClient):
    response = await client.get("/guarantee/config")

    assert response.status_code == 401


# Stripe Connect

@pytest.mark.asyncio
async def test_connect_creates_account(authenticated_client: AsyncClient, gateway, test_db, test_tenant):
    response = await authenticated_client.post("/guarantee/connect-stripe")

    assert response.status_code == 200
    data = response.json()
    assert data["alreadyConnected"] is False
    assert data["url"] == f"https://connect.stripe.test/setup/{data['accountId']}"
    assert data["accountId"] in gateway.accounts

    config = await GuaranteeStore(test_db).get_config(test_tenant.id)
    assert config.stripe_account_id == data["accountId"]


@pytest.mark.asyncio
async def test_connect_when_already_onboarded(authenticated_client: AsyncClient, guarantee_config, gateway):
    response = await authenticated_client.post("/guarantee/connect-stripe")

    assert response.json() == {"success": True, "accountId": "acct_test", "alreadyConnected": True, "url": None}
    assert gateway.onboarding_links == []


@pytest.mark.asyncio
async def test_connect_resumes_onboarding(authenticated_client: AsyncClient, guarantee_config, gateway):
    gateway.accounts["acct_test"].details_submitted = False

    response = await authenticated_client.post("/guarantee/connect-stripe")

    assert response.json()["accountId"] == "acct_test"
    assert response.json()["url"] == "https://connect.stripe.test/setup/acct_test"


@pytest.mark.asyncio
async def test_connect_replaces_stale_account(authenticated_client: AsyncClient, guarantee_config, gateway, test_db):
    """An account id the processor no longer knows is replaced, not reported"""
    del gateway.accounts["acct_test"]

    response = await authenticated_client.post("/guarantee/connect-stripe")

    assert response.status_code == 200
    new_account = response.json()["accountId"]
    assert new_account != "acct_test"
    await test_db.refresh(guarantee_config)
    assert guarantee_config.stripe_account_id == new_account


@pytest.mark.asyncio
async def test_stripe_status(authenticated_client: AsyncClient, guarantee_config):
    response = await authenticated_client.get("/guarantee/stripe-status")

    data = response.json()
    assert data["connected"] is True
    assert data["chargesEnabled"] is True
    assert data["detailsSubmitted"] is True
    assert data["businessProfile"] == {"name": "Chez Test"}


@pytest.mark.asyncio
async def test_stripe_status_not_connected(authenticated_client: AsyncClient):
    response = await authenticated_client.get("/guarantee/stripe-status")

    assert response.json()["connected"] is False


@pytest.mark.asyncio
async def test_disconnect_disables_guarantee(authenticated_client: AsyncClient, guarantee_config, test_db):
    response = await authenticated_client.post("/guarantee/disconnect-stripe")

    assert response.status_code == 200
    await test_db.refresh(guarantee_config)
    assert guarantee_config.stripe_account_id is None
    assert guarantee_config.enabled is False


@pytest.mark.asyncio
async def test_stripe_callback_redirects_to_settings(client: AsyncClient):
    ok = await client.get("/guarantee/stripe-callback")
    failed = await client.get(
        "/guarantee/stripe-callback",
        params={"error": "access_denied", "error_description": "User denied access"},
    )

    assert ok.status_code == 307
    assert ok.headers["location"] == "https://app.tablehold.test/settings/guarantee?stripe_connected=true"
    assert failed.status_code == 307
    assert failed.headers["location"] == (
        "https://app.tablehold.test/settings/guarantee?stripe_error=User%20denied%20access"
    )


# Reservations

@pytest.mark.asyncio
async def test_reservations_grouped_for_dashboard(
    authenticated_client: AsyncClient, test_db, test_tenant, other_tenant, guarantee_config
):
    today_noon = datetime.utcnow().replace(hour=12, minute=0, second=0, microsecond=0)
    await add_session(test_db, test_tenant, status=SessionStatus.PENDING)
    await add_session(test_db, test_tenant)
    await add_session(test_db, test_tenant, reservation_date=today_noon)
    await add_session(test_db, test_tenant, status=SessionStatus.COMPLETED)
    await add_session(test_db, test_tenant, reservation_date=today_noon + timedelta(days=20))
    await add_session(test_db, other_tenant)

    week = await authenticated_client.get("/guarantee/reservations", params={"period": "week"})
    month = await authenticated_client.get("/guarantee/reservations", params={"period": "month"})

    assert week.status_code == 200
    data = week.json()
    assert data["stats"] == {"pendingCount": 1, "validatedCount": 2, "todayCount": 1, "validationRate": 67}
    assert len(data["today"]) == 1
    assert data["pending"][0]["status"] == "pending"
    assert data["validated"][0]["reservationDate"] <= data["validated"][1]["reservationDate"]
    assert month.json()["stats"]["validatedCount"] == 3


@pytest.mark.asyncio
async def test_reservations_period_is_validated(authenticated_client: AsyncClient):
    response = await authenticated_client.get("/guarantee/reservations", params={"period": "decade"})

    assert response.status_code == 400


# Stats & history

@pytest.mark.asyncio
async def test_stats_and_history(authenticated_client: AsyncClient, test_db, test_tenant, guarantee_config, gateway):
    await add_session(test_db, test_tenant, status=SessionStatus.PENDING)
    await add_session(test_db, test_tenant, status=SessionStatus.CANCELLED)
    await add_session(test_db, test_tenant)
    attended = await add_session(test_db, test_tenant)
    charged = await add_session(test_db, test_tenant)
    declined = await add_session(test_db, test_tenant, customer_name="Jean Martin")

    async def outcome(session, status):
        response = await authenticated_client.post(
            f"/guarantee/reservations/{session.id}/status",
            json={"status": status},
        )
        assert response.status_code == 200

    await outcome(attended, "attended")
    await outcome(charged, "noshow")
    gateway.charge_error = "Your card was declined."
    await outcome(declined, "noshow")

    stats = (await authenticated_client.get("/guarantee/stats", params={"period": "month"})).json()

    assert stats["period"] == "month"
    assert stats["totalSessions"] == 6
    assert stats["pendingCount"] == 1
    assert stats["cancelledCount"] == 1
    assert stats["validatedCount"] == 1
    assert stats["completedCount"] == 1
    assert stats["noshowChargedCount"] == 1
    assert stats["noshowFailedCount"] == 1
    assert stats["validationRate"] == 67
    assert stats["noshowRate"] == 67
    assert stats["chargesCount"] == 2
    assert stats["totalCharged"] == 180.0

    history = (await authenticated_client.get("/guarantee/history", params={"period": "all"})).json()

    assert len(history) == 2
    by_status = {entry["status"]: entry for entry in history}
    assert by_status["succeeded"]["amount"] == 18000
    assert by_status["failed"]["failureReason"] == "Your card was declined."
    assert by_status["failed"]["session"]["customerName"] == "Jean Martin"


@pytest.mark.asyncio
async def test_stats_empty(authenticated_client: AsyncClient):
    response = await authenticated_client.get("/guarantee/stats", params={"period": "all"})

    data = response.json()
    assert data["totalSessions"] == 0
    assert data["validationRate"] == 0
    assert data["noshowRate"] == 0
    assert data["totalCharged"] == 0


# Test sends

@pytest.mark.asyncio
async def test_send_test_email(authenticated_client: AsyncClient, guarantee_config, email_channel):
    response = await authenticated_client.post("/guarantee/test-email", json={"email": "owner@chez-test.fr"})

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert email_channel.sent[0]["to"] == "owner@chez-test.fr"
    assert email_channel.sent[0]["from_name"] == "Chez Test"


@pytest.mark.asyncio
async def test_send_test_sms(authenticated_client: AsyncClient, sms_channel):
    response = await authenticated_client.post("/guarantee/test-sms", json={"phone": "0612345678"})

    assert response.json()["success"] is True
    assert sms_channel.sent[0]["to"] == "0612345678"
