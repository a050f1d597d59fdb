"""Outbound email (SendGrid) and SMS (Twilio) channels"""

import re
from dataclasses import dataclass
from typing import Optional

from fastapi.concurrency import run_in_threadpool
from python_http_client.exceptions import HTTPError
import sendgrid
from sendgrid.helpers.mail import Email, Mail, To
from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient
import structlog

logger = structlog.get_logger()


@dataclass
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class EmailChannel:
    """Transactional email through SendGrid"""

    def __init__(self, api_key: str, from_email: str, from_name: str):
        self.from_email = from_email
        self.from_name = from_name
        self.client = sendgrid.SendGridAPIClient(api_key=api_key) if api_key else None

    def is_configured(self) -> bool:
        return self.client is not None

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
        from_name: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> SendResult:
        if not self.client:
            return SendResult(success=False, error="Email service not configured")

        message = Mail(
            from_email=Email(self.from_email, from_name or self.from_name),
            to_emails=To(to_email),
            subject=subject,
            html_content=html_body,
            plain_text_content=text_body,
        )
        if reply_to:
            message.reply_to = Email(reply_to)

        try:
            response = await run_in_threadpool(self.client.send, message)
        except HTTPError as e:
            logger.error("SendGrid rejected email", to_email=to_email, error=str(e))
            return SendResult(success=False, error=str(e))
        except Exception as e:
            logger.error("Failed to send email", to_email=to_email, error=str(e), error_type=type(e).__name__)
            return SendResult(success=False, error=str(e))

        message_id = None
        if getattr(response, "headers", None):
            message_id = response.headers.get("X-Message-Id")
        return SendResult(success=True, message_id=message_id)


def format_phone_number(phone: str, default_country_code: str = "33") -> Optional[str]:
    """Normalize to E.164; national numbers starting with 0 get the default country code"""
    cleaned = re.sub(r"[^\d+]", "", phone or "")
    if cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]
    if not cleaned.startswith("+"):
        if cleaned.startswith("0") and len(cleaned) == 10:
            cleaned = f"+{default_country_code}{cleaned[1:]}"
        elif len(cleaned) >= 11:
            cleaned = "+" + cleaned
        else:
            return None
    if re.fullmatch(r"\+\d{10,15}", cleaned):
        return cleaned
    return None


class SmsChannel:
    """Platform SMS sender through Twilio"""

    def __init__(self, account_sid: str, auth_token: str, from_number: str, default_country_code: str = "33"):
        self.from_number = from_number
        self.default_country_code = default_country_code
        self.client = (
            TwilioClient(account_sid, auth_token)
            if account_sid and auth_token and from_number
            else None
        )

    def is_configured(self) -> bool:
        return self.client is not None

    async def send(self, to: str, body: str) -> SendResult:
        if not self.client:
            return SendResult(success=False, error="SMS service not configured")

        formatted = format_phone_number(to, self.default_country_code)
        if not formatted:
            return SendResult(success=False, error="Invalid phone number format")

        try:
            message = await run_in_threadpool(
                self.client.messages.create,
                body=body,
                from_=self.from_number,
                to=formatted,
            )
        except TwilioException as e:
            logger.error("Twilio rejected SMS", to=formatted, error=str(e))
            return SendResult(success=False, error=str(e))
        except Exception as e:
            logger.error("Failed to send SMS", to=formatted, error=str(e), error_type=type(e).__name__)
            return SendResult(success=False, error=str(e))

        return SendResult(success=True, message_id=message.sid)
