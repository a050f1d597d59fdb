"""
Request-scoped wiring for the guarantee subsystem.

Every collaborator of the lifecycle engine is built here and injected through FastAPI
dependencies, so tests swap the processor, the channels or the hand-off queue with
`app.dependency_overrides`.
"""

import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.database import get_db
from app.guarantee.accounts import PaymentAccountManager
from app.guarantee.channels import EmailChannel, SmsChannel
from app.guarantee.engine import EffectDispatcher, GuaranteeEngine
from app.guarantee.handoff import BookingHandoff
from app.guarantee.notifications import NotificationDispatcher
from app.guarantee.payments import PaymentGateway, StripeGateway
from app.guarantee.store import GuaranteeStore
from app.models.tenant import Tenant, is_valid_api_key_format


def get_store(db: AsyncSession = Depends(get_db)) -> GuaranteeStore:
    return GuaranteeStore(db)


def get_payment_gateway(settings: Settings = Depends(get_settings)) -> PaymentGateway:
    if not settings.stripe_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment processor not configured",
        )
    return StripeGateway(settings.stripe_secret_key, country=settings.stripe_connect_country)


def get_email_channel(settings: Settings = Depends(get_settings)) -> EmailChannel:
    return EmailChannel(
        api_key=settings.sendgrid_api_key,
        from_email=settings.email_from_address,
        from_name=settings.email_from_name,
    )


def get_sms_channel(settings: Settings = Depends(get_settings)) -> SmsChannel:
    return SmsChannel(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_phone_number,
        default_country_code=settings.sms_default_country_code,
    )


def get_notifier(
    email: EmailChannel = Depends(get_email_channel),
    sms: SmsChannel = Depends(get_sms_channel),
    settings: Settings = Depends(get_settings),
) -> NotificationDispatcher:
    return NotificationDispatcher(email, sms, settings)


def _enqueue_handoff(payload: dict) -> None:
    from app.jobs.tasks import deliver_booking_handoff

    deliver_booking_handoff.delay(payload)


def get_handoff(settings: Settings = Depends(get_settings)) -> BookingHandoff:
    return BookingHandoff(settings, enqueue=_enqueue_handoff)


def get_account_manager(
    store: GuaranteeStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
) -> PaymentAccountManager:
    return PaymentAccountManager(store, gateway, settings)


def get_engine(
    store: GuaranteeStore = Depends(get_store),
    accounts: PaymentAccountManager = Depends(get_account_manager),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: NotificationDispatcher = Depends(get_notifier),
    handoff: BookingHandoff = Depends(get_handoff),
    settings: Settings = Depends(get_settings),
) -> GuaranteeEngine:
    return GuaranteeEngine(store, accounts, gateway, EffectDispatcher(notifier, handoff), settings)


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return authorization[len("Bearer "):].strip()


async def require_api_key(
    authorization: Optional[str] = Header(None),
    store: GuaranteeStore = Depends(get_store),
) -> Tenant:
    """Merchant automation calls authenticate with the merchant's own API key"""
    api_key = _bearer_token(authorization)
    if not is_valid_api_key_format(api_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key format")

    tenant = await store.get_tenant_by_api_key(api_key)
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
    return tenant


def require_master_key(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Booking workflow calls carry the platform-wide master key, not a merchant key"""
    api_key = _bearer_token(authorization)
    expected = settings.workflow_master_api_key
    if not expected or not hmac.compare_digest(api_key.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
