"""Card guarantee API endpoints: merchant dashboard and booking automation"""

from datetime import datetime, timedelta
from typing import List, Literal, Optional
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, RedirectResponse
import structlog

from app.api.auth import get_merchant_user, require_role
from app.api.deps import (
    get_account_manager,
    get_engine,
    get_notifier,
    get_store,
    require_api_key,
)
from app.config import Settings, get_settings
from app.guarantee.accounts import PaymentAccountManager
from app.guarantee.engine import CreateResult, GuaranteeEngine
from app.guarantee.lifecycle import SessionStatus
from app.guarantee.notifications import NotificationDispatcher
from app.guarantee.store import GuaranteeStore
from app.models.guarantee import GuaranteeConfig
from app.models.tenant import Tenant
from app.models.user import User, UserRole
from app.schemas.guarantee import (
    AgentGuaranteeTerms,
    AgentStatusResponse,
    BrandingSummary,
    CheckStatusResponse,
    ConnectStripeResponse,
    CreateSessionResponse,
    CustomerSummary,
    DeliveryTestResponse,
    EmailTestRequest,
    GuaranteeConfigEnvelope,
    GuaranteeConfigResponse,
    GuaranteeConfigUpdate,
    GuaranteeSessionCreate,
    GuaranteeSessionResponse,
    GuaranteeStatsResponse,
    NoshowChargeResponse,
    NotificationResultResponse,
    PenaltySummary,
    ReservationStats,
    ReservationStatusResponse,
    ReservationStatusUpdate,
    ReservationsResponse,
    ResendResponse,
    SmsTestRequest,
    StripeStatusResponse,
    SuccessResponse,
)

logger = structlog.get_logger()

router = APIRouter()

DashboardPeriod = Literal["today", "week", "month"]
ReportPeriod = Literal["week", "month", "year", "all"]

DASHBOARD_PERIOD_DAYS = {"today": 1, "week": 7, "month": 30}
REPORT_PERIOD_DAYS = {"week": 7, "month": 30, "year": 365, "all": None}

# Sessions whose card was registered at some point
VALIDATED_OR_LATER = (
    SessionStatus.VALIDATED,
    SessionStatus.COMPLETED,
    SessionStatus.NOSHOW_CHARGED,
    SessionStatus.NOSHOW_FAILED,
)


def _config_response(config: Optional[GuaranteeConfig], settings: Settings) -> GuaranteeConfigResponse:
    if config is None:
        return GuaranteeConfigResponse(brand_color=settings.guarantee_default_brand_color)
    return GuaranteeConfigResponse.model_validate(config)


def branding_summary(config: Optional[GuaranteeConfig], tenant: Tenant, settings: Settings) -> BrandingSummary:
    return BrandingSummary(
        company_name=(config.company_name if config else None) or tenant.name,
        company_address=config.company_address if config else None,
        company_phone=(config.company_phone if config else None) or tenant.contact_phone,
        logo_url=config.logo_url if config else None,
        brand_color=(config.brand_color if config else None) or settings.guarantee_default_brand_color,
        penalty_amount=config.penalty_amount if config else 30,
        cancellation_delay=config.cancellation_delay_hours if config else 24,
        sender_name=(config.sender_name or config.company_name) if config else None,
        sender_email=(config.sender_email if config else None) or tenant.contact_email,
        terms_url=config.terms_url if config else None,
    )


def _report_since(period: str) -> Optional[datetime]:
    days = REPORT_PERIOD_DAYS[period]
    if days is None:
        return None
    return datetime.utcnow() - timedelta(days=days)


def _rate(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


async def _tenant_for(user: User, store: GuaranteeStore) -> Tenant:
    return await store.get_tenant(user.tenant_id)


# Public status for voice agents

@router.get("/status/", include_in_schema=False)
async def get_agent_status_usage():
    return JSONResponse(
        status_code=400,
        content={
            "guarantee_enabled": False,
            "error": "agent_id is required in the URL",
            "example": "/guarantee/status/agent_xxxxx",
        },
    )


@router.get("/status/{agent_id}", response_model=AgentStatusResponse)
async def get_agent_status(
    agent_id: str,
    store: GuaranteeStore = Depends(get_store),
):
    """Whether reservations taken by this agent may require a card guarantee"""
    tenant = await store.get_tenant_by_agent(agent_id)
    if tenant is None:
        return AgentStatusResponse(guarantee_enabled=False, reason="agent_not_found")

    config = await store.get_config(tenant.id)
    if config is None or not config.enabled:
        return AgentStatusResponse(guarantee_enabled=False, reason="disabled")
    if not config.stripe_account_id:
        return AgentStatusResponse(guarantee_enabled=False, reason="stripe_not_connected")

    return AgentStatusResponse(
        guarantee_enabled=True,
        config=AgentGuaranteeTerms(
            penalty_amount=config.penalty_amount,
            cancellation_delay=config.cancellation_delay_hours,
            apply_to=config.apply_to,
            min_persons=config.min_persons,
            company_name=config.company_name or tenant.name,
        ),
    )


# Config

@router.get("/config", response_model=GuaranteeConfigEnvelope)
async def get_config(
    current_user: User = Depends(get_merchant_user),
    store: GuaranteeStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Get the merchant's guarantee config, defaults if never saved"""
    config = await store.get_config(current_user.tenant_id)
    return GuaranteeConfigEnvelope(
        config=_config_response(config, settings),
        stripe_connected=bool(config and config.stripe_account_id),
    )


@router.put("/config", response_model=GuaranteeConfigEnvelope)
async def update_config(
    update: GuaranteeConfigUpdate,
    current_user: User = Depends(require_role(UserRole.MERCHANT_ADMIN)),
    store: GuaranteeStore = Depends(get_store),
    accounts: PaymentAccountManager = Depends(get_account_manager),
    settings: Settings = Depends(get_settings),
):
    """
    Update the guarantee config.

    Enabling requires a fully onboarded Stripe account; otherwise the other changes are
    saved, the guarantee stays disabled and a warning is returned.
    """
    fields = update.model_dump(exclude_unset=True)
    warning = None

    if fields.get("enabled"):
        existing = await store.get_config(current_user.tenant_id)
        check = await accounts.check_can_enable(existing)
        if not check.allowed:
            fields["enabled"] = False
            warning = check.warning
            logger.info(
                "Guarantee enable downgraded",
                tenant_id=str(current_user.tenant_id),
                warning=warning,
            )

    config = await store.upsert_config(current_user.tenant_id, **fields)
    logger.info("Guarantee config updated", tenant_id=str(current_user.tenant_id), fields=sorted(fields))

    return GuaranteeConfigEnvelope(
        config=_config_response(config, settings),
        stripe_connected=bool(config.stripe_account_id),
        warning=warning,
    )


# Stripe Connect

@router.post("/connect-stripe", response_model=ConnectStripeResponse)
async def connect_stripe(
    current_user: User = Depends(require_role(UserRole.MERCHANT_ADMIN)),
    store: GuaranteeStore = Depends(get_store),
    accounts: PaymentAccountManager = Depends(get_account_manager),
):
    """Issue a Stripe onboarding link, creating the Express account if needed"""
    tenant = await _tenant_for(current_user, store)
    result = await accounts.connect(tenant, contact_email=tenant.contact_email or current_user.email)
    return ConnectStripeResponse(
        account_id=result.account_id,
        already_connected=result.already_connected,
        url=result.url,
    )


@router.get("/stripe-status", response_model=StripeStatusResponse)
async def get_stripe_status(
    current_user: User = Depends(get_merchant_user),
    store: GuaranteeStore = Depends(get_store),
    accounts: PaymentAccountManager = Depends(get_account_manager),
):
    config = await store.get_config(current_user.tenant_id)
    details = await accounts.status(config)
    return StripeStatusResponse(
        connected=details.connected,
        details_submitted=details.details_submitted,
        charges_enabled=details.charges_enabled,
        payouts_enabled=details.payouts_enabled,
        business_profile=details.business_profile,
        requirements=details.requirements,
    )


@router.post("/disconnect-stripe", response_model=SuccessResponse)
async def disconnect_stripe(
    current_user: User = Depends(require_role(UserRole.MERCHANT_ADMIN)),
    accounts: PaymentAccountManager = Depends(get_account_manager),
):
    """Forget the Stripe account and disable the guarantee"""
    await accounts.disconnect(current_user.tenant_id)
    return SuccessResponse()


@router.get("/stripe-callback", include_in_schema=False)
async def stripe_callback(
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    settings: Settings = Depends(get_settings),
):
    """Older onboarding links return here; send the merchant back to the settings page"""
    target = f"{settings.frontend_url.rstrip('/')}/settings/guarantee"
    if error:
        logger.warning("Stripe onboarding returned an error", error=error, description=error_description)
        return RedirectResponse(f"{target}?stripe_error={quote(error_description or 'Stripe error')}")
    return RedirectResponse(f"{target}?stripe_connected=true")


# Automation (merchant API key)

@router.get("/check-status", response_model=CheckStatusResponse)
async def check_status(
    tenant: Tenant = Depends(require_api_key),
    store: GuaranteeStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Whether the guarantee is active for the calling merchant"""
    config = await store.get_config(tenant.id)
    if config is None:
        return CheckStatusResponse(
            guarantee_enabled=False,
            reason="no_config",
            message="Card guarantee is not configured",
        )
    if not config.enabled:
        return CheckStatusResponse(
            guarantee_enabled=False,
            reason="disabled",
            message="Card guarantee is disabled",
        )
    if not config.stripe_account_id:
        return CheckStatusResponse(
            guarantee_enabled=False,
            reason="stripe_not_connected",
            message="Stripe account not connected",
        )
    return CheckStatusResponse(guarantee_enabled=True, config=_config_response(config, settings))


def _create_response(result: CreateResult, tenant: Tenant, settings: Settings) -> CreateSessionResponse:
    if result.session is None:
        return CreateSessionResponse(
            guarantee_required=False,
            reason=result.eligibility.reason,
            message=result.eligibility.message,
        )

    session = result.session
    return CreateSessionResponse(
        guarantee_required=True,
        reason=result.eligibility.reason,
        already_exists=result.already_exists,
        session_id=session.id,
        url=result.url,
        checkout_url=result.checkout_url,
        status=session.status,
        customer=CustomerSummary(
            name=session.customer_name,
            email=session.customer_email,
            phone=session.customer_phone,
            nb_persons=session.nb_persons,
            reservation_date=session.reservation_date,
            reservation_time=session.reservation_time,
        ),
        config=branding_summary(result.config, tenant, settings),
        penalty=PenaltySummary(
            amount_per_person=session.penalty_amount,
            total_amount=session.penalty_amount * session.nb_persons,
            currency=settings.guarantee_currency.upper(),
        ),
        notifications=(
            NotificationResultResponse.model_validate(result.notifications)
            if result.notifications is not None
            else None
        ),
    )


@router.post("/create-session", response_model=CreateSessionResponse)
async def create_session(
    data: GuaranteeSessionCreate,
    tenant: Tenant = Depends(require_api_key),
    engine: GuaranteeEngine = Depends(get_engine),
    settings: Settings = Depends(get_settings),
):
    """Open a card guarantee for a reservation when the merchant's rules require one"""
    result = await engine.create_session(tenant, data)
    return _create_response(result, tenant, settings)


# Dashboard

@router.get("/reservations", response_model=ReservationsResponse)
async def list_reservations(
    period: DashboardPeriod = Query("week"),
    current_user: User = Depends(get_merchant_user),
    store: GuaranteeStore = Depends(get_store),
):
    """Guaranteed reservations of the coming period, bucketed for the dashboard"""
    today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = today + timedelta(days=1)
    until = today + timedelta(days=DASHBOARD_PERIOD_DAYS[period])

    sessions = await store.list_sessions(
        current_user.tenant_id,
        today,
        until,
        statuses=[SessionStatus.PENDING, SessionStatus.VALIDATED],
    )
    pending = [s for s in sessions if s.status == SessionStatus.PENDING]
    validated = [s for s in sessions if s.status == SessionStatus.VALIDATED]
    today_sessions = [s for s in validated if today <= s.reservation_date < tomorrow]

    def serialize(items) -> List[GuaranteeSessionResponse]:
        return [GuaranteeSessionResponse.model_validate(s) for s in items]

    return ReservationsResponse(
        pending=serialize(pending),
        validated=serialize(validated),
        today=serialize(today_sessions),
        stats=ReservationStats(
            pending_count=len(pending),
            validated_count=len(validated),
            today_count=len(today_sessions),
            validation_rate=_rate(len(validated), len(pending) + len(validated)),
        ),
    )


@router.post("/reservations/{session_id}/status", response_model=ReservationStatusResponse)
async def update_reservation_status(
    session_id: UUID,
    update: ReservationStatusUpdate,
    current_user: User = Depends(get_merchant_user),
    engine: GuaranteeEngine = Depends(get_engine),
):
    """Record whether the customer showed up; a no-show charges the penalty"""
    actor_id = str(current_user.id)
    if update.status == "attended":
        result = await engine.mark_attended(current_user.tenant_id, session_id, actor_id=actor_id)
    else:
        result = await engine.mark_noshow(current_user.tenant_id, session_id, actor_id=actor_id)

    return ReservationStatusResponse(
        success=result.success,
        charged=result.charged,
        amount=result.amount / 100 if result.amount is not None else None,
        amount_cents=result.amount,
        status=result.session.status,
        error=result.error,
    )


@router.post("/resend/{session_id}", response_model=ResendResponse)
async def resend_link(
    session_id: UUID,
    current_user: User = Depends(get_merchant_user),
    engine: GuaranteeEngine = Depends(get_engine),
):
    """Open a fresh checkout and send the card request again"""
    result = await engine.resend_link(current_user.tenant_id, session_id, actor_id=str(current_user.id))
    return ResendResponse(
        url=result.url,
        checkout_url=result.checkout_url,
        reminder_count=result.session.reminder_count,
        notifications=(
            NotificationResultResponse.model_validate(result.notifications)
            if result.notifications is not None
            else None
        ),
    )


@router.post("/cancel/{session_id}", response_model=SuccessResponse)
async def cancel_session(
    session_id: UUID,
    current_user: User = Depends(get_merchant_user),
    engine: GuaranteeEngine = Depends(get_engine),
):
    await engine.cancel(current_user.tenant_id, session_id, actor_id=str(current_user.id))
    return SuccessResponse()


# Stats & history

@router.get("/stats", response_model=GuaranteeStatsResponse)
async def get_stats(
    period: ReportPeriod = Query("month"),
    current_user: User = Depends(get_merchant_user),
    store: GuaranteeStore = Depends(get_store),
):
    """Session outcomes and collected penalties over a period"""
    since = _report_since(period)
    counts = await store.status_counts(current_user.tenant_id, since)
    charges = await store.list_charges(current_user.tenant_id, since)
    charged_total = await store.charged_total(current_user.tenant_id, since)

    def count(status: SessionStatus) -> int:
        return counts.get(status.value, 0)

    total = sum(counts.values())
    reached_validation = sum(count(s) for s in VALIDATED_OR_LATER)
    noshows = count(SessionStatus.NOSHOW_CHARGED) + count(SessionStatus.NOSHOW_FAILED)
    concluded = noshows + count(SessionStatus.COMPLETED)

    return GuaranteeStatsResponse(
        period=period,
        total_sessions=total,
        pending_count=count(SessionStatus.PENDING),
        validated_count=count(SessionStatus.VALIDATED),
        completed_count=count(SessionStatus.COMPLETED),
        cancelled_count=count(SessionStatus.CANCELLED),
        noshow_charged_count=count(SessionStatus.NOSHOW_CHARGED),
        noshow_failed_count=count(SessionStatus.NOSHOW_FAILED),
        validation_rate=_rate(reached_validation, total),
        noshow_rate=_rate(noshows, concluded),
        charges_count=len(charges),
        total_charged=charged_total / 100,
    )


@router.get("/history", response_model=List[NoshowChargeResponse])
async def get_history(
    period: ReportPeriod = Query("month"),
    current_user: User = Depends(get_merchant_user),
    store: GuaranteeStore = Depends(get_store),
):
    """No-show charge attempts, newest first, with their sessions"""
    charges = await store.list_charges(current_user.tenant_id, _report_since(period))
    return [NoshowChargeResponse.model_validate(charge) for charge in charges]


# Test sends

@router.post("/test-email", response_model=DeliveryTestResponse)
async def send_test_email(
    request: EmailTestRequest,
    current_user: User = Depends(require_role(UserRole.MERCHANT_ADMIN)),
    store: GuaranteeStore = Depends(get_store),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    config = await store.get_config(current_user.tenant_id)
    result = await notifier.send_test_email(config, request.email)
    logger.info("Test email sent", tenant_id=str(current_user.tenant_id), success=result.success)
    return DeliveryTestResponse(success=result.success, message_id=result.message_id, error=result.error)


@router.post("/test-sms", response_model=DeliveryTestResponse)
async def send_test_sms(
    request: SmsTestRequest,
    current_user: User = Depends(require_role(UserRole.MERCHANT_ADMIN)),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    result = await notifier.send_test_sms(request.phone)
    logger.info("Test SMS sent", tenant_id=str(current_user.tenant_id), success=result.success)
    return DeliveryTestResponse(success=result.success, message_id=result.message_id, error=result.error)
