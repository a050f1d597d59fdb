"""Booking workflow endpoints, authenticated with the platform master key"""

from uuid import UUID

from fastapi import APIRouter, Depends
import structlog

from app.api.deps import get_store, require_master_key
from app.api.guarantee import branding_summary
from app.config import Settings, get_settings
from app.guarantee.dates import reservation_window
from app.guarantee.errors import SessionNotFound
from app.guarantee.store import GuaranteeStore
from app.schemas.guarantee import PenaltySummary
from app.schemas.webhooks import (
    BookingConfirmed,
    BookingConfirmedResponse,
    BookingReceipt,
    SessionDetailsResponse,
    WorkflowCustomer,
)

router = APIRouter(dependencies=[Depends(require_master_key)])
logger = structlog.get_logger()


@router.get("/session-details/{session_id}", response_model=SessionDetailsResponse)
async def get_session_details(
    session_id: UUID,
    store: GuaranteeStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Everything the workflow needs to book the calendar slot of a session"""
    session = await store.get_session(session_id)
    if session is None:
        raise SessionNotFound()

    config = await store.get_config(session.tenant_id)
    tenant = await store.get_tenant(session.tenant_id)
    window = reservation_window(
        session.reservation_date,
        session.reservation_time,
        session.duration_minutes,
        session.timezone or settings.guarantee_default_timezone,
    )

    logger.info("Session details served to workflow", session_id=str(session.id))

    return SessionDetailsResponse(
        session_id=session.id,
        reservation_id=session.reservation_id,
        status=session.status,
        customer=WorkflowCustomer(
            name=session.customer_name,
            email=session.customer_email,
            phone=session.customer_phone,
            nb_persons=session.nb_persons,
            reservation_date=session.reservation_date.date().isoformat(),
            reservation_time=session.reservation_time,
            reservation_time_end=window.end.strftime("%H:%M") if session.reservation_time else None,
        ),
        config=branding_summary(config, tenant, settings),
        penalty=PenaltySummary(
            amount_per_person=session.penalty_amount,
            total_amount=session.penalty_amount * session.nb_persons,
            currency=settings.guarantee_currency.upper(),
        ),
        validated_at=session.validated_at,
    )


@router.post("/confirm-booking", response_model=BookingConfirmedResponse)
async def confirm_booking(
    event: BookingConfirmed,
    store: GuaranteeStore = Depends(get_store),
):
    """Record the calendar booking outcome; the guarantee status is left untouched"""
    session = await store.get_session(event.session_id)
    if session is None:
        raise SessionNotFound()

    log = logger.error if event.booking_status == "failed" else logger.info
    log(
        "Calendar booking outcome received",
        session_id=str(session.id),
        booking_status=event.booking_status,
        calendar_event_id=event.calendar_event_id,
        calendar_event_link=event.calendar_event_link,
        error_message=event.error_message,
    )

    store.audit(
        session,
        f"booking.{event.booking_status}",
        actor_type="workflow",
        calendar_event_id=event.calendar_event_id,
        calendar_event_link=event.calendar_event_link,
        error_message=event.error_message,
    )
    await store.commit()

    return BookingConfirmedResponse(
        session_id=session.id,
        received=BookingReceipt(
            calendar_event_id=event.calendar_event_id,
            booking_status=event.booking_status,
        ),
    )
