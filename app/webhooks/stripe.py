"""Payment processor webhook handlers"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Request
import stripe
import structlog

from app.api.deps import get_engine
from app.config import Settings, get_settings
from app.guarantee.engine import GuaranteeEngine
from app.guarantee.errors import GuaranteeError
from app.schemas.guarantee import NotificationResultResponse
from app.schemas.webhooks import CheckoutCompleted, CheckoutValidatedResponse, StripeEventResponse

router = APIRouter()
logger = structlog.get_logger()


@router.post("/checkout-complete", response_model=CheckoutValidatedResponse)
async def handle_checkout_complete(
    event: CheckoutCompleted,
    engine: GuaranteeEngine = Depends(get_engine),
):
    """
    Validate a guarantee once the customer finished the card setup.

    Called by the confirmation page with the checkout id from the redirect. The
    checkout is re-verified against Stripe, and repeated calls are no-ops.
    """
    logger.info("Checkout completion received", checkout_session_id=event.checkout_session_id)

    result = await engine.validate_checkout(event.checkout_session_id)
    return CheckoutValidatedResponse(
        already_validated=result.already_validated,
        session_id=result.session.id,
        status=result.session.status,
        notifications=(
            NotificationResultResponse.model_validate(result.notifications)
            if result.notifications is not None
            else None
        ),
        handoff_scheduled=result.handoff_scheduled,
    )


def _verify_event(payload: bytes, signature: Optional[str], secret: str):
    if not secret:
        logger.error("Stripe webhook secret not configured")
        raise HTTPException(status_code=503, detail="Webhook endpoint not configured")
    if not signature:
        raise HTTPException(status_code=401, detail="Missing Stripe signature")
    try:
        return stripe.Webhook.construct_event(payload, signature, secret)
    except stripe.SignatureVerificationError:
        logger.warning("Invalid Stripe webhook signature")
        raise HTTPException(status_code=401, detail="Invalid signature")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")


@router.post("/stripe", response_model=StripeEventResponse)
async def handle_stripe_event(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    settings: Settings = Depends(get_settings),
    engine: GuaranteeEngine = Depends(get_engine),
):
    """
    Signed Stripe Connect events.

    Only setup-mode `checkout.session.completed` events are acted upon; every other
    event is acknowledged so Stripe stops retrying it.
    """
    payload = await request.body()
    event = _verify_event(payload, stripe_signature, settings.stripe_connect_webhook_secret)

    event_type = getattr(event, "type", None)
    account = getattr(event, "account", None)
    logger.info("Stripe event received", event_id=getattr(event, "id", None), type=event_type, account=account)

    if event_type != "checkout.session.completed":
        return StripeEventResponse(handled=False)

    checkout = event.data.object
    if getattr(checkout, "mode", None) != "setup":
        return StripeEventResponse(handled=False)

    metadata = getattr(checkout, "metadata", None)
    session_hint = getattr(metadata, "guarantee_session_id", None) if metadata is not None else None
    try:
        session_id = UUID(session_hint) if session_hint else None
    except ValueError:
        session_id = None

    try:
        result = await engine.validate_checkout(checkout.id, session_id=session_id)
    except GuaranteeError as e:
        # Acknowledged either way; the confirmation page can still validate
        logger.warning(
            "Stripe checkout event not applied",
            checkout_session_id=checkout.id,
            code=e.code,
            error=e.message,
        )
        return StripeEventResponse(handled=False)

    return StripeEventResponse(
        handled=True,
        session_id=result.session.id,
        already_validated=result.already_validated,
    )
