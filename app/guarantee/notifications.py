"""
Guarantee notifications.

Sends are best-effort: every outcome lands in a NotificationResult and nothing here
raises into the lifecycle that triggered it.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import structlog

from app.config import Settings
from app.guarantee.channels import EmailChannel, SendResult, SmsChannel
from app.models.guarantee import GuaranteeConfig, GuaranteeSession

logger = structlog.get_logger()


@dataclass
class NotificationResult:
    email_sent: bool = False
    sms_sent: bool = False
    email_error: Optional[str] = None
    sms_error: Optional[str] = None


def _format_date(session: GuaranteeSession) -> str:
    label = session.reservation_date.strftime("%d/%m/%Y")
    if session.reservation_time:
        label += f" at {session.reservation_time}"
    return label


def _merchant_name(config: Optional[GuaranteeConfig], session: GuaranteeSession) -> str:
    if config is not None and config.company_name:
        return config.company_name
    return session.company_name or "our restaurant"


def _card_request_email(merchant: str, session: GuaranteeSession, url: str):
    subject = f"Secure your reservation at {merchant}"
    text = (
        f"Hello {session.customer_name},\n\n"
        f"To confirm your reservation for {session.nb_persons} on {_format_date(session)}, "
        f"please register a card guarantee. Your card will not be charged unless you do not show up.\n\n"
        f"{url}\n\n{merchant}"
    )
    html = (
        f"<p>Hello {session.customer_name},</p>"
        f"<p>To confirm your reservation for {session.nb_persons} on {_format_date(session)}, "
        f"please register a card guarantee. Your card will not be charged unless you do not show up.</p>"
        f'<p><a href="{url}">Register my card</a></p>'
        f"<p>{merchant}</p>"
    )
    return subject, html, text


def _confirmation_email(merchant: str, session: GuaranteeSession):
    subject = f"Your reservation at {merchant} is confirmed"
    text = (
        f"Hello {session.customer_name},\n\n"
        f"Your card guarantee is registered. We look forward to welcoming "
        f"{session.nb_persons} guest(s) on {_format_date(session)}.\n\n{merchant}"
    )
    html = (
        f"<p>Hello {session.customer_name},</p>"
        f"<p>Your card guarantee is registered. We look forward to welcoming "
        f"{session.nb_persons} guest(s) on {_format_date(session)}.</p>"
        f"<p>{merchant}</p>"
    )
    return subject, html, text


class NotificationDispatcher:
    """Card-request, confirmation and reminder messages over email and SMS"""

    def __init__(self, email: EmailChannel, sms: SmsChannel, settings: Settings):
        self.email = email
        self.sms = sms
        self.settings = settings

    def _sender(self, config: Optional[GuaranteeConfig]):
        if config is None:
            return None, None
        return config.sender_name or config.company_name, config.sender_email

    async def _email(self, config, session, subject, html, text, result: NotificationResult):
        from_name, reply_to = self._sender(config)
        try:
            sent = await self.email.send(
                to_email=session.customer_email,
                subject=subject,
                html_body=html,
                text_body=text,
                from_name=from_name,
                reply_to=reply_to,
            )
        except Exception as e:
            logger.error("Email channel raised", session_id=str(session.id), error=str(e))
            sent = SendResult(success=False, error=str(e))
        result.email_sent = sent.success
        result.email_error = sent.error

    async def _sms(self, session, body, result: NotificationResult):
        try:
            sent = await self.sms.send(session.customer_phone, body)
        except Exception as e:
            logger.error("SMS channel raised", session_id=str(session.id), error=str(e))
            sent = SendResult(success=False, error=str(e))
        result.sms_sent = sent.success
        result.sms_error = sent.error

    def _email_allowed(self, toggle: bool, session: GuaranteeSession) -> bool:
        return bool(toggle and session.customer_email and self.email.is_configured())

    def _sms_allowed(self, config: GuaranteeConfig, toggle: bool, session: GuaranteeSession) -> bool:
        return bool(config.sms_enabled and toggle and session.customer_phone and self.sms.is_configured())

    async def send_card_request(
        self,
        config: Optional[GuaranteeConfig],
        session: GuaranteeSession,
        url: str,
    ) -> NotificationResult:
        result = NotificationResult()
        if config is None:
            return result
        merchant = _merchant_name(config, session)

        if self._email_allowed(config.auto_send_email_on_create, session):
            subject, html, text = _card_request_email(merchant, session, url)
            await self._email(config, session, subject, html, text, result)

        if self._sms_allowed(config, config.auto_send_sms_on_create, session):
            body = (
                f"{merchant}: to confirm your reservation on {_format_date(session)}, "
                f"please register your card guarantee: {url}"
            )
            await self._sms(session, body, result)

        logger.info(
            "Card request notifications dispatched",
            session_id=str(session.id),
            email_sent=result.email_sent,
            sms_sent=result.sms_sent,
            email_error=result.email_error,
            sms_error=result.sms_error,
        )
        return result

    async def send_confirmation(
        self,
        config: Optional[GuaranteeConfig],
        session: GuaranteeSession,
    ) -> NotificationResult:
        result = NotificationResult()
        if config is None:
            return result
        merchant = _merchant_name(config, session)

        if self._email_allowed(config.auto_send_email_on_validation, session):
            subject, html, text = _confirmation_email(merchant, session)
            await self._email(config, session, subject, html, text, result)

        if self._sms_allowed(config, config.auto_send_sms_on_validation, session):
            body = (
                f"{merchant}: your reservation for {session.nb_persons} on "
                f"{_format_date(session)} is confirmed. See you soon!"
            )
            await self._sms(session, body, result)

        logger.info(
            "Confirmation notifications dispatched",
            session_id=str(session.id),
            email_sent=result.email_sent,
            sms_sent=result.sms_sent,
            email_error=result.email_error,
            sms_error=result.sms_error,
        )
        return result

    async def send_appointment_reminder(
        self,
        config: Optional[GuaranteeConfig],
        session: GuaranteeSession,
    ) -> SendResult:
        """Day-before reminder SMS for a validated reservation"""
        if config is None or not config.sms_enabled:
            return SendResult(success=False, error="SMS disabled for this merchant")
        if not session.customer_phone:
            return SendResult(success=False, error="No customer phone")

        merchant = _merchant_name(config, session)
        body = (
            f"Reminder: your reservation at {merchant} for {session.nb_persons} on "
            f"{_format_date(session)}. A no-show fee of {session.penalty_amount} per person applies "
            f"without {config.cancellation_delay_hours}h notice."
        )
        return await self.sms.send(session.customer_phone, body)

    async def send_test_email(self, config: Optional[GuaranteeConfig], to_email: str) -> SendResult:
        from_name, reply_to = self._sender(config)
        return await self.email.send(
            to_email=to_email,
            subject="Tablehold test email",
            html_body="<p>Your card guarantee emails are configured correctly.</p>",
            text_body="Your card guarantee emails are configured correctly.",
            from_name=from_name,
            reply_to=reply_to,
        )

    async def send_test_sms(self, to_phone: str) -> SendResult:
        return await self.sms.send(to_phone, "Tablehold: your card guarantee SMS are configured correctly.")


async def send_appointment_reminders(
    store,
    notifier: NotificationDispatcher,
    now: Optional[datetime] = None,
    horizon_hours: int = 24,
) -> int:
    """SMS validated customers whose reservation falls within the horizon; returns the number sent"""
    now = now or datetime.utcnow()
    sessions = await store.sessions_awaiting_reminder(now, now + timedelta(hours=horizon_hours))

    sent = 0
    for session in sessions:
        config = await store.get_config(session.tenant_id)
        result = await notifier.send_appointment_reminder(config, session)
        if not result.success:
            logger.info("Appointment reminder skipped", session_id=str(session.id), error=result.error)
            continue
        await store.update_session(session, appointment_reminder_sent_at=datetime.utcnow())
        sent += 1

    logger.info("Appointment reminders sent", count=sent, candidates=len(sessions))
    return sent
