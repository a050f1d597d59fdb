"""
Guarantee session lifecycle engine.

Orchestrates the state machine in `lifecycle` against the store and the payment
processor. Status writes are conditional on the status that was read, and side
effects (notifications, booking hand-off) run only after the write has committed.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional, Tuple
from uuid import UUID

import structlog

from app.config import Settings
from app.guarantee.accounts import PaymentAccountManager
from app.guarantee.eligibility import (
    MESSAGES,
    Eligibility,
    Reason,
    evaluate_eligibility,
    reservation_rules,
)
from app.guarantee.errors import (
    CheckoutNotComplete,
    InvalidCheckoutSession,
    InvalidSessionState,
    PaymentProviderError,
    SessionExpired,
    SessionNotFound,
    StripeNotConnected,
)
from app.guarantee.handoff import BookingHandoff
from app.guarantee.lifecycle import (
    CREATION_EFFECTS,
    ChargeStatus,
    Effect,
    LifecycleEvent,
    SendCardRequest,
    SendConfirmation,
    SessionStatus,
    TriggerBookingHandoff,
    apply_event,
    can_apply,
)
from app.guarantee.notifications import NotificationDispatcher, NotificationResult
from app.guarantee.payments import ChargeInfo, CheckoutInfo, PaymentGateway
from app.guarantee.store import GuaranteeStore
from app.models.guarantee import GuaranteeConfig, GuaranteeSession
from app.models.tenant import Tenant

logger = structlog.get_logger()


@dataclass
class EffectOutcome:
    notifications: Optional[NotificationResult] = None
    handoff_scheduled: Optional[bool] = None


@dataclass
class CreateResult:
    eligibility: Eligibility
    config: Optional[GuaranteeConfig] = None
    session: Optional[GuaranteeSession] = None
    url: Optional[str] = None
    checkout_url: Optional[str] = None
    already_exists: bool = False
    notifications: Optional[NotificationResult] = None


@dataclass
class ValidationResult:
    session: GuaranteeSession
    already_validated: bool = False
    notifications: Optional[NotificationResult] = None
    handoff_scheduled: Optional[bool] = None


@dataclass
class StatusChangeResult:
    session: GuaranteeSession
    charged: bool = False
    amount: Optional[int] = None  # minor units
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class ResendResult:
    session: GuaranteeSession
    url: str
    checkout_url: Optional[str]
    notifications: Optional[NotificationResult] = None


def is_expired(session: GuaranteeSession, expiry_days: int, now: Optional[datetime] = None) -> bool:
    """Pending sessions lapse `expiry_days` after creation; other statuses never do"""
    if SessionStatus(session.status) != SessionStatus.PENDING or session.created_at is None:
        return False
    now = now or datetime.utcnow()
    return now > session.created_at + timedelta(days=expiry_days)


async def public_summary(
    store: GuaranteeStore,
    session_id: UUID,
    expiry_days: int,
) -> Tuple[GuaranteeSession, Optional[GuaranteeConfig]]:
    """Session and merchant branding for the customer page.

    Read-only, so it works without a payment processor.
    """
    session = await store.get_session(session_id)
    if session is None:
        raise SessionNotFound()
    if is_expired(session, expiry_days):
        raise SessionExpired()
    config = await store.get_config(session.tenant_id)
    return session, config


class EffectDispatcher:
    """Executes effect requests produced by lifecycle transitions"""

    def __init__(self, notifier: NotificationDispatcher, handoff: BookingHandoff):
        self.notifier = notifier
        self.handoff = handoff

    async def run(
        self,
        effects: Iterable[Effect],
        *,
        session: GuaranteeSession,
        config: Optional[GuaranteeConfig],
        tenant: Optional[Tenant],
        url: Optional[str] = None,
    ) -> EffectOutcome:
        outcome = EffectOutcome()
        for effect in effects:
            # The status is already committed; a failing effect must not skip the rest
            try:
                await self._run_one(effect, outcome, session=session, config=config, tenant=tenant, url=url)
            except Exception as e:
                logger.error(
                    "Effect failed",
                    session_id=str(session.id),
                    effect=type(effect).__name__,
                    error=str(e),
                    exc_info=True,
                )
                if isinstance(effect, TriggerBookingHandoff):
                    outcome.handoff_scheduled = False
                elif outcome.notifications is None:
                    outcome.notifications = NotificationResult(email_error=str(e), sms_error=str(e))
        return outcome

    async def _run_one(self, effect: Effect, outcome: EffectOutcome, *, session, config, tenant, url) -> None:
        if isinstance(effect, SendCardRequest):
            outcome.notifications = await self.notifier.send_card_request(config, session, url)
        elif isinstance(effect, SendConfirmation):
            outcome.notifications = await self.notifier.send_confirmation(config, session)
        elif isinstance(effect, TriggerBookingHandoff):
            if tenant is None:
                logger.error("Cannot hand off booking without tenant", session_id=str(session.id))
                outcome.handoff_scheduled = False
                return
            payload = self.handoff.build_payload(session, config, tenant)
            outcome.handoff_scheduled = self.handoff.schedule(payload)


class GuaranteeEngine:
    """Owns every status change of a guarantee session"""

    def __init__(
        self,
        store: GuaranteeStore,
        accounts: PaymentAccountManager,
        gateway: PaymentGateway,
        effects: EffectDispatcher,
        settings: Settings,
    ):
        self.store = store
        self.accounts = accounts
        self.gateway = gateway
        self.effects = effects
        self.settings = settings

    # URLs and checkout

    def guarantee_url(self, session: GuaranteeSession) -> str:
        return f"{self.settings.frontend_url.rstrip('/')}/guarantee/validate/{session.id}"

    def _checkout_metadata(self, session: GuaranteeSession) -> Dict[str, str]:
        return {
            "guarantee_session_id": str(session.id),
            "tenant_id": str(session.tenant_id),
            "reservation_id": session.reservation_id,
            "penalty_amount": str(session.penalty_amount),
            "nb_persons": str(session.nb_persons),
        }

    async def _open_checkout(self, config: GuaranteeConfig, session: GuaranteeSession) -> CheckoutInfo:
        base = self.settings.frontend_url.rstrip("/")
        return await self.gateway.create_setup_checkout(
            config.stripe_account_id,
            customer_email=session.customer_email,
            customer_name=session.customer_name,
            customer_id=session.stripe_customer_id,
            success_url=f"{base}/guarantee/confirmation?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base}/guarantee/annulation?session_id={session.id}",
            metadata=self._checkout_metadata(session),
        )

    def _is_expired(self, session: GuaranteeSession) -> bool:
        return is_expired(session, self.settings.guarantee_session_expiry_days)

    async def _owned(self, tenant_id: UUID, session_id: UUID) -> GuaranteeSession:
        session = await self.store.get_session_for_tenant(tenant_id, session_id)
        if session is None:
            raise SessionNotFound()
        return session

    async def _connected_config(self, tenant_id: UUID) -> GuaranteeConfig:
        config = await self.store.get_config(tenant_id)
        if config is None or not config.stripe_account_id:
            raise StripeNotConnected()
        return config

    @staticmethod
    def _require(session: GuaranteeSession, event: LifecycleEvent, message: str) -> None:
        if not can_apply(session.status, event):
            raise InvalidSessionState(message, status=SessionStatus(session.status).value)

    # Creation

    async def create_session(self, tenant: Tenant, data: Any) -> CreateResult:
        """
        Open a guarantee for a reservation if the merchant's rules require one.

        Idempotent on the reservation id: a repeated request returns the stored session
        without opening another checkout.
        """
        config = await self.store.get_config(tenant.id)

        existing = await self.store.get_session_by_reservation(tenant.id, data.reservation_id)
        if existing is not None:
            logger.info(
                "Guarantee session already exists",
                tenant_id=str(tenant.id),
                session_id=str(existing.id),
                reservation_id=data.reservation_id,
            )
            return self._existing_result(existing, config)

        nb_persons = data.nb_persons or 1
        reservation_day = data.reservation_date.date()

        negative = reservation_rules(config, nb_persons, reservation_day)
        if negative is not None:
            return CreateResult(eligibility=negative, config=config)

        account = await self.accounts.probe(config)
        eligibility = evaluate_eligibility(config, nb_persons, reservation_day, account)
        if not eligibility.required:
            logger.info(
                "Guarantee not required",
                tenant_id=str(tenant.id),
                reservation_id=data.reservation_id,
                reason=eligibility.reason,
            )
            return CreateResult(eligibility=eligibility, config=config)

        session = GuaranteeSession(
            id=uuid.uuid4(),
            tenant_id=tenant.id,
            reservation_id=data.reservation_id,
            customer_name=data.customer_name,
            customer_email=data.customer_email,
            customer_phone=data.customer_phone,
            nb_persons=nb_persons,
            reservation_date=data.reservation_date,
            reservation_time=data.reservation_time,
            duration_minutes=data.duration,
            timezone=data.timezone or self.settings.guarantee_default_timezone,
            agent_id=data.agent_id or tenant.agent_id,
            business_type=data.business_type,
            calendar_id=data.calendar_id or config.calendar_id,
            company_name=data.company_name or config.company_name,
            company_email=data.company_email,
            vehicle=data.vehicle,
            service_type=data.service_type,
            status=SessionStatus.PENDING,
            penalty_amount=config.penalty_amount,
            reminder_count=0,
            created_at=datetime.utcnow(),
        )

        checkout = await self._open_checkout(config, session)
        session.checkout_session_id = checkout.id
        session.stripe_customer_id = checkout.customer_id

        self.store.audit(
            session,
            "guarantee_session.created",
            actor_type="api_key",
            reservation_id=session.reservation_id,
            penalty_amount=session.penalty_amount,
            nb_persons=session.nb_persons,
        )
        session, created = await self.store.add_session(session)
        if not created:
            logger.warning(
                "Discarding checkout opened for duplicate reservation",
                checkout_session_id=checkout.id,
                session_id=str(session.id),
            )
            return self._existing_result(session, config)

        logger.info(
            "Guarantee session created",
            tenant_id=str(tenant.id),
            session_id=str(session.id),
            reservation_id=session.reservation_id,
            checkout_session_id=checkout.id,
        )

        url = self.guarantee_url(session)
        outcome = await self.effects.run(CREATION_EFFECTS, session=session, config=config, tenant=tenant, url=url)

        return CreateResult(
            eligibility=eligibility,
            config=config,
            session=session,
            url=url,
            checkout_url=checkout.url,
            notifications=outcome.notifications,
        )

    def _existing_result(self, session: GuaranteeSession, config: Optional[GuaranteeConfig]) -> CreateResult:
        return CreateResult(
            eligibility=Eligibility(required=True, reason=Reason.ELIGIBLE, message=MESSAGES[Reason.ELIGIBLE]),
            config=config,
            session=session,
            url=self.guarantee_url(session),
            already_exists=True,
        )

    # Validation

    async def validate_checkout(
        self,
        checkout_session_id: str,
        session_id: Optional[UUID] = None,
    ) -> ValidationResult:
        """
        Mark the session behind a completed checkout as validated.

        The checkout is re-read from the merchant's connected account; the caller's
        claim that it completed is never trusted on its own.
        """
        session = await self.store.get_session_by_checkout(checkout_session_id)
        if session is None and session_id is not None:
            session = await self.store.get_session(session_id)
        if session is None:
            raise SessionNotFound()

        if SessionStatus(session.status) == SessionStatus.VALIDATED:
            return ValidationResult(session=session, already_validated=True)
        self._require(session, LifecycleEvent.VALIDATE, "Session cannot be validated")

        config = await self._connected_config(session.tenant_id)

        try:
            checkout = await self.gateway.retrieve_checkout(config.stripe_account_id, checkout_session_id)
        except PaymentProviderError as e:
            logger.error(
                "Checkout verification failed",
                session_id=str(session.id),
                checkout_session_id=checkout_session_id,
                error=str(e),
            )
            raise InvalidCheckoutSession()

        if checkout.status != "complete":
            raise CheckoutNotComplete(stripe_status=checkout.status)

        transition = apply_event(session.status, LifecycleEvent.VALIDATE)
        applied = await self.store.transition(
            session,
            transition.source,
            transition.target,
            validated_at=datetime.utcnow(),
            checkout_session_id=checkout_session_id,
            setup_intent_id=checkout.setup_intent_id,
            payment_method_id=checkout.payment_method_id,
            stripe_customer_id=checkout.customer_id or session.stripe_customer_id,
        )
        if not applied:
            if SessionStatus(session.status) == SessionStatus.VALIDATED:
                return ValidationResult(session=session, already_validated=True)
            raise InvalidSessionState("Session cannot be validated", status=SessionStatus(session.status).value)

        self.store.audit(
            session,
            "guarantee_session.validated",
            actor_type="webhook",
            checkout_session_id=checkout_session_id,
            setup_intent_id=checkout.setup_intent_id,
        )
        await self.store.commit()
        logger.info("Guarantee session validated", session_id=str(session.id), tenant_id=str(session.tenant_id))

        tenant = await self.store.get_tenant(session.tenant_id)
        outcome = await self.effects.run(transition.effects, session=session, config=config, tenant=tenant)
        return ValidationResult(
            session=session,
            notifications=outcome.notifications,
            handoff_scheduled=outcome.handoff_scheduled,
        )

    # Staff actions

    async def mark_attended(self, tenant_id: UUID, session_id: UUID, actor_id: Optional[str] = None) -> StatusChangeResult:
        session = await self._owned(tenant_id, session_id)
        self._require(session, LifecycleEvent.ATTEND, "Session not validated")

        transition = apply_event(session.status, LifecycleEvent.ATTEND)
        self.store.audit(session, "guarantee_session.attended", actor_type="user", actor_id=actor_id)
        applied = await self.store.transition(session, transition.source, transition.target, unclaimed=True)
        if not applied:
            self._require(session, LifecycleEvent.ATTEND, "Session not validated")
            raise InvalidSessionState(
                "A no-show charge is in progress for this session",
                status=SessionStatus(session.status).value,
            )

        logger.info("Guarantee session completed", session_id=str(session.id))
        return StatusChangeResult(session=session, charged=False)

    async def mark_noshow(self, tenant_id: UUID, session_id: UUID, actor_id: Optional[str] = None) -> StatusChangeResult:
        """
        Charge the no-show penalty on the stored card.

        The session is claimed before the processor is called, so a concurrent
        request is refused instead of charging the card again. Exactly one
        NoshowCharge row is written per claimed attempt, committed together with the
        resulting status, which also releases the claim.
        """
        session = await self._owned(tenant_id, session_id)
        self._require(session, LifecycleEvent.CHARGE_SUCCEEDED, "Session not validated")
        config = await self._connected_config(tenant_id)

        if not await self.store.claim_charge(session):
            self._require(session, LifecycleEvent.CHARGE_SUCCEEDED, "Session not validated")
            raise InvalidSessionState(
                "A no-show charge is already in progress for this session",
                status=SessionStatus(session.status).value,
            )

        amount = session.penalty_total_cents
        currency = self.settings.guarantee_currency
        try:
            attempt = await self.store.count_charges(session.id) + 1
            charge, payment_method_id, error = await self._collect_penalty(config, session, amount, currency, attempt)
        except Exception:
            await self.store.release_charge_claim(session)
            raise

        if error is None:
            self.store.add_charge(
                session,
                amount=amount,
                currency=currency,
                status=ChargeStatus.SUCCEEDED,
                payment_intent_id=charge.id,
            )
            transition = apply_event(session.status, LifecycleEvent.CHARGE_SUCCEEDED)
            fields = {
                "charged_amount": amount,
                "charged_at": datetime.utcnow(),
                "payment_method_id": payment_method_id,
                "charge_error": None,
                "charge_claimed_at": None,
            }
        else:
            self.store.add_charge(
                session,
                amount=amount,
                currency=currency,
                status=ChargeStatus.FAILED,
                payment_intent_id=charge.id if charge else None,
                failure_reason=error,
            )
            transition = apply_event(session.status, LifecycleEvent.CHARGE_FAILED)
            fields = {"charge_error": error, "charge_claimed_at": None}

        self.store.audit(
            session,
            "noshow_charge.attempted",
            actor_type="user",
            actor_id=actor_id,
            attempt=attempt,
            amount=amount,
            succeeded=error is None,
            error=error,
        )
        applied = await self.store.transition(session, transition.source, transition.target, **fields)

        log = logger.info if error is None else logger.warning
        log(
            "No-show charge attempted",
            session_id=str(session.id),
            amount=amount,
            attempt=attempt,
            succeeded=error is None,
            error=error,
            status_applied=applied,
        )
        return StatusChangeResult(session=session, charged=error is None, amount=amount, error=error)

    async def _collect_penalty(
        self,
        config: GuaranteeConfig,
        session: GuaranteeSession,
        amount: int,
        currency: str,
        attempt: int,
    ) -> Tuple[Optional[ChargeInfo], Optional[str], Optional[str]]:
        """Returns (charge, payment_method_id, error)"""
        if not session.setup_intent_id:
            return None, None, "No card registered for this session"

        try:
            payment_method_id = await self.gateway.retrieve_setup_payment_method(
                config.stripe_account_id, session.setup_intent_id
            )
            payment_method_id = payment_method_id or session.payment_method_id
            if not payment_method_id:
                return None, None, "No payment method attached to the card setup"

            charge = await self.gateway.charge_off_session(
                config.stripe_account_id,
                amount=amount,
                currency=currency,
                customer_id=session.stripe_customer_id,
                payment_method_id=payment_method_id,
                description=f"No-show penalty - reservation of {session.reservation_date.strftime('%d/%m/%Y')}",
                metadata={
                    "guarantee_session_id": str(session.id),
                    "reservation_id": session.reservation_id,
                },
                idempotency_key=f"noshow:{session.id}:{attempt}",
            )
        except PaymentProviderError as e:
            return None, None, str(e)

        if charge.status != "succeeded":
            return charge, payment_method_id, f"Payment not completed (status: {charge.status})"
        return charge, payment_method_id, None

    async def resend_link(self, tenant_id: UUID, session_id: UUID, actor_id: Optional[str] = None) -> ResendResult:
        session = await self._owned(tenant_id, session_id)
        self._require(session, LifecycleEvent.RESEND, "Only pending sessions can be resent")
        config = await self._connected_config(tenant_id)

        checkout = await self._open_checkout(config, session)
        transition = apply_event(session.status, LifecycleEvent.RESEND)
        self.store.audit(
            session,
            "guarantee_session.link_resent",
            actor_type="user",
            actor_id=actor_id,
            checkout_session_id=checkout.id,
        )
        applied = await self.store.transition(
            session,
            transition.source,
            transition.target,
            checkout_session_id=checkout.id,
            stripe_customer_id=checkout.customer_id or session.stripe_customer_id,
            reminder_count=(session.reminder_count or 0) + 1,
            last_reminder_at=datetime.utcnow(),
        )
        if not applied:
            raise InvalidSessionState("Only pending sessions can be resent", status=SessionStatus(session.status).value)

        url = self.guarantee_url(session)
        tenant = await self.store.get_tenant(tenant_id)
        outcome = await self.effects.run(transition.effects, session=session, config=config, tenant=tenant, url=url)
        logger.info("Guarantee link resent", session_id=str(session.id), reminder_count=session.reminder_count)
        return ResendResult(session=session, url=url, checkout_url=checkout.url, notifications=outcome.notifications)

    async def cancel(self, tenant_id: UUID, session_id: UUID, actor_id: Optional[str] = None) -> GuaranteeSession:
        session = await self._owned(tenant_id, session_id)
        self._require(session, LifecycleEvent.CANCEL, "Only pending sessions can be cancelled")

        transition = apply_event(session.status, LifecycleEvent.CANCEL)
        self.store.audit(session, "guarantee_session.cancelled", actor_type="user", actor_id=actor_id)
        applied = await self.store.transition(session, transition.source, transition.target)
        if not applied:
            raise InvalidSessionState("Only pending sessions can be cancelled", status=SessionStatus(session.status).value)

        logger.info("Guarantee session cancelled", session_id=str(session.id))
        return session

    # Customer page

    async def public_checkout_url(self, session_id: UUID) -> str:
        """Checkout URL for the customer page, reusing the open checkout when possible"""
        session = await self.store.get_session(session_id)
        if session is None:
            raise SessionNotFound()
        if SessionStatus(session.status) != SessionStatus.PENDING:
            raise InvalidSessionState(
                "This reservation has already been confirmed",
                status=SessionStatus(session.status).value,
            )
        if self._is_expired(session):
            raise SessionExpired()
        config = await self._connected_config(session.tenant_id)

        if session.checkout_session_id:
            try:
                current = await self.gateway.retrieve_checkout(config.stripe_account_id, session.checkout_session_id)
            except PaymentProviderError as e:
                logger.info(
                    "Stored checkout unavailable, opening a new one",
                    session_id=str(session.id),
                    error=str(e),
                )
                current = None
            if current is not None:
                if current.status == "complete":
                    raise InvalidSessionState("This reservation has already been confirmed", status="complete")
                if current.status == "open" and current.url:
                    return current.url

        checkout = await self._open_checkout(config, session)
        await self.store.update_session(
            session,
            checkout_session_id=checkout.id,
            stripe_customer_id=checkout.customer_id or session.stripe_customer_id,
        )
        logger.info("New checkout opened for customer page", session_id=str(session.id), checkout_session_id=checkout.id)
        return checkout.url

