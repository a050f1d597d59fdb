"""Test configuration and fixtures"""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from uuid import uuid4

from app.main import app
from app.config import Settings, get_settings
from app.database import Base, get_db
from app.api import deps
from app.api.auth import create_access_token, get_password_hash
from app.guarantee.accounts import PaymentAccountManager
from app.guarantee.engine import EffectDispatcher, GuaranteeEngine
from app.guarantee.handoff import BookingHandoff
from app.guarantee.lifecycle import ApplyToRule
from app.guarantee.notifications import NotificationDispatcher
from app.guarantee.store import GuaranteeStore
from app.models.guarantee import GuaranteeConfig
from app.models.tenant import Tenant, generate_api_key
from app.models.user import User, UserRole

from tests.fakes import MASTER_KEY, WEBHOOK_SECRET, FakeEmailChannel, FakeGateway, FakeSmsChannel


# Test database URL (use in-memory SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def test_settings():
    return Settings(
        stripe_secret_key="sk_test_fake",
        stripe_connect_webhook_secret=WEBHOOK_SECRET,
        workflow_master_api_key=MASTER_KEY,
        frontend_url="https://app.tablehold.test",
        booking_workflow_url="https://workflow.tablehold.test/webhook/guarantee",
    )


@pytest.fixture
async def test_db():
    """Create test database"""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def email_channel():
    return FakeEmailChannel()


@pytest.fixture
def sms_channel():
    return FakeSmsChannel()


@pytest.fixture
def handoff_queue():
    """Payloads handed to the booking workflow queue"""
    return []


@pytest.fixture
async def test_tenant(test_db):
    """Create a test tenant"""
    tenant = Tenant(
        id=uuid4(),
        name="Chez Test",
        timezone="Europe/Paris",
        agent_id="agent_test",
        api_key=generate_api_key(),
        contact_email="owner@chez-test.fr",
        contact_phone="0145454545",
        is_active=True,
    )
    test_db.add(tenant)
    await test_db.commit()
    return tenant


@pytest.fixture
async def other_tenant(test_db):
    tenant = Tenant(
        id=uuid4(),
        name="Other Bistro",
        agent_id="agent_other",
        api_key=generate_api_key(),
        is_active=True,
    )
    test_db.add(tenant)
    await test_db.commit()
    return tenant


@pytest.fixture
async def test_user(test_db, test_tenant):
    """Create a merchant admin"""
    user = User(
        id=uuid4(),
        tenant_id=test_tenant.id,
        email="admin@chez-test.fr",
        hashed_password=get_password_hash("testpass123"),
        full_name="Test Admin",
        role=UserRole.MERCHANT_ADMIN,
        is_active=True,
    )
    test_db.add(user)
    await test_db.commit()
    return user


@pytest.fixture
async def staff_user(test_db, test_tenant):
    user = User(
        id=uuid4(),
        tenant_id=test_tenant.id,
        email="staff@chez-test.fr",
        hashed_password=get_password_hash("staffpass123"),
        full_name="Test Staff",
        role=UserRole.MERCHANT_STAFF,
        is_active=True,
    )
    test_db.add(user)
    await test_db.commit()
    return user


@pytest.fixture
async def guarantee_config(test_db, test_tenant, gateway):
    """Enabled guarantee on a fully onboarded Stripe account"""
    gateway.add_account("acct_test")
    config = GuaranteeConfig(
        tenant_id=test_tenant.id,
        enabled=True,
        stripe_account_id="acct_test",
        penalty_amount=30,
        cancellation_delay_hours=24,
        apply_to=ApplyToRule.ALL,
        min_persons=1,
        company_name="Chez Test",
        brand_color="#112233",
        sms_enabled=False,
        auto_send_email_on_create=True,
        auto_send_sms_on_create=False,
        auto_send_email_on_validation=True,
        auto_send_sms_on_validation=False,
    )
    test_db.add(config)
    await test_db.commit()
    await test_db.refresh(config)
    return config


@pytest.fixture
def guarantee_engine(test_db, gateway, email_channel, sms_channel, handoff_queue, test_settings):
    """Engine wired directly to the test database and the fakes"""
    store = GuaranteeStore(test_db)
    notifier = NotificationDispatcher(email_channel, sms_channel, test_settings)
    handoff = BookingHandoff(test_settings, enqueue=handoff_queue.append)
    return GuaranteeEngine(
        store,
        PaymentAccountManager(store, gateway, test_settings),
        gateway,
        EffectDispatcher(notifier, handoff),
        test_settings,
    )


@pytest.fixture
async def client(test_db, test_settings, gateway, email_channel, sms_channel, handoff_queue):
    """Create test client with overridden database, processor and channels"""
    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[deps.get_payment_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_email_channel] = lambda: email_channel
    app.dependency_overrides[deps.get_sms_channel] = lambda: sms_channel
    app.dependency_overrides[deps.get_handoff] = lambda: BookingHandoff(test_settings, enqueue=handoff_queue.append)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def authenticated_client(client, test_user):
    """Create authenticated test client"""
    token = create_access_token(test_user)
    client.headers["Authorization"] = f"Bearer {token}"
    return client


@pytest.fixture
def api_key_headers(test_tenant):
    return {"Authorization": f"Bearer {test_tenant.api_key}"}


@pytest.fixture
def master_headers():
    return {"Authorization": f"Bearer {MASTER_KEY}"}


@pytest.fixture
def staff_headers(staff_user):
    return {"Authorization": f"Bearer {create_access_token(staff_user)}"}
