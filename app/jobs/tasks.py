"""Background job tasks"""

from typing import Any, Dict
import asyncio
import structlog

from app.jobs.celery_app import celery_app
from app.config import settings

logger = structlog.get_logger()

HANDOFF_MAX_RETRIES = 3
HANDOFF_RETRY_DELAY_SECONDS = 60


def run_async(coro):
    """Helper to run async functions in sync context"""
    return asyncio.run(coro)


@celery_app.task(
    name="deliver_booking_handoff",
    bind=True,
    max_retries=HANDOFF_MAX_RETRIES,
    default_retry_delay=HANDOFF_RETRY_DELAY_SECONDS,
)
def deliver_booking_handoff(self, payload: Dict[str, Any]):
    """POST a validated reservation to the booking workflow"""
    from app.guarantee.handoff import BookingHandoff

    session_id = payload.get("session_id")
    logger.info("Delivering booking hand-off", session_id=session_id, attempt=self.request.retries + 1)

    delivered = run_async(BookingHandoff(settings).deliver(payload))
    if delivered:
        return True

    if self.request.retries >= self.max_retries:
        logger.error("Booking hand-off abandoned", session_id=session_id, attempts=self.request.retries + 1)
        return False

    raise self.retry()


@celery_app.task(name="send_guarantee_appointment_reminders")
def send_guarantee_appointment_reminders():
    """SMS reminders for validated reservations starting within 24 hours"""
    logger.info("Sending guarantee appointment reminders")

    async def _send_reminders():
        from app.database import SessionLocal, engine
        from app.guarantee.channels import EmailChannel, SmsChannel
        from app.guarantee.notifications import NotificationDispatcher, send_appointment_reminders
        from app.guarantee.store import GuaranteeStore

        notifier = NotificationDispatcher(
            EmailChannel(settings.sendgrid_api_key, settings.email_from_address, settings.email_from_name),
            SmsChannel(
                settings.twilio_account_sid,
                settings.twilio_auth_token,
                settings.twilio_phone_number,
                settings.sms_default_country_code,
            ),
            settings,
        )

        try:
            async with SessionLocal() as db:
                return await send_appointment_reminders(GuaranteeStore(db), notifier)
        finally:
            # Pooled connections belong to this task's event loop
            await engine.dispose()

    return run_async(_send_reminders())
