"""Tests for dashboard authentication, wiring and health checks"""

from uuid import uuid4

import pytest
from fastapi import HTTPException
from httpx import AsyncClient

from app.api.auth import create_access_token, get_password_hash
from app.api.deps import get_payment_gateway
from app.config import Settings
from app.models.user import User, UserRole


@pytest.mark.asyncio
async def test_login_and_me(client: AsyncClient, test_user):
    response = await client.post(
        "/auth/login",
        data={"username": "admin@chez-test.fr", "password": "testpass123"},
    )

    assert response.status_code == 200
    tokens = response.json()
    assert tokens["token_type"] == "bearer"

    me = await client.get("/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == "admin@chez-test.fr"
    assert me.json()["role"] == "merchant_admin"
    assert me.json()["merchant"]["name"] == "Chez Test"
    assert me.json()["merchant"]["agent_id"] == "agent_test"
    assert me.json()["merchant"]["stripe_connected"] is False


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, test_user):
    response = await client.post(
        "/auth/login",
        data={"username": "admin@chez-test.fr", "password": "nope"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_rotates_token(client: AsyncClient, test_user):
    login = await client.post(
        "/auth/login",
        data={"username": "admin@chez-test.fr", "password": "testpass123"},
    )
    refresh_token = login.json()["refresh_token"]

    response = await client.post("/auth/refresh", json={"refresh_token": refresh_token})

    assert response.status_code == 200
    assert response.json()["access_token"]

    bogus = await client.post("/auth/refresh", json={"refresh_token": "not-a-token"})
    assert bogus.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token_works_once(client: AsyncClient, test_user):
    login = await client.post(
        "/auth/login",
        data={"username": "admin@chez-test.fr", "password": "testpass123"},
    )
    refresh_token = login.json()["refresh_token"]

    first = await client.post("/auth/refresh", json={"refresh_token": refresh_token})
    replay = await client.post("/auth/refresh", json={"refresh_token": refresh_token})

    assert first.status_code == 200
    assert replay.status_code == 401


@pytest.mark.asyncio
async def test_login_email_is_case_insensitive(client: AsyncClient, test_user):
    response = await client.post(
        "/auth/login",
        data={"username": "  Admin@Chez-Test.FR ", "password": "testpass123"},
    )

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_suspended_merchant_cannot_sign_in(client: AsyncClient, test_db, test_tenant, test_user):
    token = create_access_token(test_user)
    test_tenant.is_active = False
    await test_db.commit()

    login = await client.post(
        "/auth/login",
        data={"username": "admin@chez-test.fr", "password": "testpass123"},
    )
    config = await client.get("/guarantee/config", headers={"Authorization": f"Bearer {token}"})

    assert login.status_code == 403
    assert config.status_code == 403


@pytest.mark.asyncio
async def test_me_reports_connected_merchant(authenticated_client: AsyncClient, guarantee_config):
    response = await authenticated_client.get("/auth/me")

    merchant = response.json()["merchant"]
    assert merchant["guarantee_enabled"] is True
    assert merchant["stripe_connected"] is True


@pytest.mark.asyncio
async def test_user_without_merchant_is_forbidden(client: AsyncClient, test_db):
    user = User(
        id=uuid4(),
        email="ops@tablehold.app",
        hashed_password=get_password_hash("opspass123"),
        role=UserRole.PLATFORM_ADMIN,
        is_active=True,
    )
    test_db.add(user)
    await test_db.commit()

    response = await client.get(
        "/guarantee/config",
        headers={"Authorization": f"Bearer {create_access_token(user)}"},
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_garbage_token(client: AsyncClient):
    response = await client.get("/guarantee/config", headers={"Authorization": "Bearer not.a.jwt"})

    assert response.status_code == 401


def test_payment_gateway_requires_configuration():
    with pytest.raises(HTTPException) as exc_info:
        get_payment_gateway(Settings(stripe_secret_key=""))

    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
