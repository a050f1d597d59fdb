"""Booking workflow hand-off, fired once a card guarantee is validated"""

from typing import Any, Callable, Dict, Optional

import httpx
import structlog

from app.config import Settings
from app.guarantee.dates import reservation_window
from app.models.guarantee import GuaranteeConfig, GuaranteeSession
from app.models.tenant import Tenant

logger = structlog.get_logger()


class BookingHandoff:
    """
    Hands a validated reservation to the calendar-booking workflow.

    `schedule` queues delivery on the worker so the webhook that validated the card
    never waits on the workflow; `deliver` performs the POST itself.
    """

    def __init__(self, settings: Settings, enqueue: Optional[Callable[[Dict[str, Any]], Any]] = None):
        self.settings = settings
        self.enqueue = enqueue

    def build_payload(
        self,
        session: GuaranteeSession,
        config: Optional[GuaranteeConfig],
        tenant: Tenant,
    ) -> Dict[str, Any]:
        timezone = session.timezone or self.settings.guarantee_default_timezone
        window = reservation_window(
            session.reservation_date,
            session.reservation_time,
            session.duration_minutes,
            timezone,
        )

        return {
            "event": "card_validated",
            "session_id": str(session.id),
            "reservation_id": session.reservation_id,
            "tenant_id": str(tenant.id),
            "api_key": tenant.api_key,
            # Customer
            "customer_name": session.customer_name,
            "customer_email": session.customer_email,
            "customer_phone": session.customer_phone,
            "nb_persons": session.nb_persons,
            # Reservation window
            "reservation_date": session.reservation_date.date().isoformat(),
            "reservation_time": session.reservation_time,
            "duration": window.duration_minutes,
            "start_datetime": window.start.isoformat(),
            "end_datetime": window.end.isoformat(),
            "timeMin": window.day_start.isoformat(),
            "timeMax": window.day_end.isoformat(),
            "timeZone": window.timezone,
            "calendar_platform": "google_calendar",
            "summary": f"Reservation {session.customer_name} - {session.nb_persons} pers.",
            "description": (
                f"Customer: {session.customer_name}\n"
                f"Guests: {session.nb_persons}\n"
                f"Phone: {session.customer_phone or 'N/A'}\n"
                f"Email: {session.customer_email or 'N/A'}\n"
                f"Card guarantee validated"
            ),
            "payment_method_id": session.payment_method_id,
            # Workflow context
            "agent_id": session.agent_id or tenant.agent_id,
            "business_type": session.business_type,
            "calendar_id": session.calendar_id or (config.calendar_id if config else None),
            "vehicle": session.vehicle,
            "service_type": session.service_type,
            # Merchant
            "company_name": session.company_name or (config.company_name if config else None) or tenant.name,
            "company_email": session.company_email or tenant.contact_email,
            "company_phone": config.company_phone if config else tenant.contact_phone,
            "company_address": config.company_address if config else None,
            "logo_url": config.logo_url if config else None,
            "brand_color": (config.brand_color if config else None) or self.settings.guarantee_default_brand_color,
            "sender_email": config.sender_email if config else None,
            "sender_name": config.sender_name if config else None,
            "terms_url": config.terms_url if config else None,
            # Notification toggles
            "sms_enabled": bool(config and config.sms_enabled),
            "auto_send_email_on_create": bool(config and config.auto_send_email_on_create),
            "auto_send_sms_on_create": bool(config and config.auto_send_sms_on_create),
            "auto_send_email_on_validation": bool(config and config.auto_send_email_on_validation),
            "auto_send_sms_on_validation": bool(config and config.auto_send_sms_on_validation),
            # Guarantee terms
            "penalty_amount": session.penalty_amount,
            "cancellation_delay": config.cancellation_delay_hours if config else None,
            "validated_at": session.validated_at.isoformat() if session.validated_at else None,
        }

    def schedule(self, payload: Dict[str, Any]) -> bool:
        if self.enqueue is None:
            logger.warning("No hand-off queue configured", session_id=payload.get("session_id"))
            return False
        try:
            self.enqueue(payload)
        except Exception as e:
            logger.error("Failed to enqueue booking hand-off", session_id=payload.get("session_id"), error=str(e))
            return False
        logger.info("Booking hand-off scheduled", session_id=payload.get("session_id"))
        return True

    async def deliver(self, payload: Dict[str, Any]) -> bool:
        url = self.settings.booking_workflow_url
        if not url:
            logger.warning("Booking workflow URL not configured", session_id=payload.get("session_id"))
            return False

        try:
            async with httpx.AsyncClient(timeout=self.settings.booking_workflow_timeout_seconds) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.error("Booking hand-off request failed", session_id=payload.get("session_id"), error=str(e))
            return False

        if response.is_success:
            logger.info(
                "Booking hand-off delivered",
                session_id=payload.get("session_id"),
                status_code=response.status_code,
            )
            return True

        logger.error(
            "Booking workflow rejected hand-off",
            session_id=payload.get("session_id"),
            status_code=response.status_code,
            body=response.text[:500],
        )
        return False
