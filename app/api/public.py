"""Customer-facing guarantee page endpoints (no authentication)"""

from uuid import UUID

from fastapi import APIRouter, Depends

from app.api.deps import get_engine, get_store
from app.config import Settings, get_settings
from app.guarantee.engine import GuaranteeEngine, public_summary
from app.guarantee.store import GuaranteeStore
from app.schemas.guarantee import CheckoutUrlResponse, PublicSessionResponse

router = APIRouter()


@router.get("/session/{session_id}", response_model=PublicSessionResponse)
async def get_public_session(
    session_id: UUID,
    store: GuaranteeStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Reservation summary shown before the customer registers a card"""
    session, config = await public_summary(store, session_id, settings.guarantee_session_expiry_days)
    return PublicSessionResponse(
        id=session.id,
        status=session.status,
        customer_name=session.customer_name,
        nb_persons=session.nb_persons,
        reservation_date=session.reservation_date,
        reservation_time=session.reservation_time,
        penalty_amount=session.penalty_amount,
        cancellation_delay=config.cancellation_delay_hours if config else 24,
        logo_url=config.logo_url if config else None,
        brand_color=(config.brand_color if config else None) or settings.guarantee_default_brand_color,
        company_name=(config.company_name if config else None) or session.company_name,
        company_address=config.company_address if config else None,
        company_phone=config.company_phone if config else None,
        terms_url=config.terms_url if config else None,
    )


@router.post("/checkout/{session_id}", response_model=CheckoutUrlResponse)
async def get_checkout_url(
    session_id: UUID,
    engine: GuaranteeEngine = Depends(get_engine),
):
    """Card setup URL for the customer, reusing the open checkout when there is one"""
    url = await engine.public_checkout_url(session_id)
    return CheckoutUrlResponse(checkout_url=url)
