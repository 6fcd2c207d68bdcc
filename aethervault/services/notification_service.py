"""
SMS and email delivery behind one narrow interface.

Senders report failures through ``DeliveryResult`` instead of raising, and
never retry on their own; the passcode engine must not re-issue a code just
because a send failed.
"""
import abc
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage

import httpx

from aethervault.core.config import Settings
from aethervault.core.phone import mask_phone

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


@dataclass
class DeliveryResult:
    ok: bool
    provider_message_id: str | None = None
    error: str | None = None


class NotificationSender(abc.ABC):
    @abc.abstractmethod
    def send_sms(self, phone: str, body: str) -> DeliveryResult:
        ...

    @abc.abstractmethod
    def send_email(self, address: str, subject: str, body: str) -> DeliveryResult:
        ...


class LoggingNotificationSender(NotificationSender):
    """Development sender: logs that a message would go out, never its body."""

    def send_sms(self, phone: str, body: str) -> DeliveryResult:
        logger.info(f"[dev-sms] would send {len(body)} chars to {mask_phone(phone)}")
        return DeliveryResult(ok=True, provider_message_id="dev-sms")

    def send_email(self, address: str, subject: str, body: str) -> DeliveryResult:
        logger.info(f"[dev-email] would send '{subject}' to {address}")
        return DeliveryResult(ok=True, provider_message_id="dev-email")


class LiveNotificationSender(NotificationSender):
    """Twilio REST for SMS, SMTP with STARTTLS for email."""

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None):
        self.settings = settings
        self.http_client = http_client

    def send_sms(self, phone: str, body: str) -> DeliveryResult:
        s = self.settings
        if not s.twilio_account_sid or not s.twilio_auth_token:
            return DeliveryResult(ok=False, error="Twilio credentials not configured")

        data = {"To": phone, "Body": body}
        if s.twilio_messaging_service_sid:
            data["MessagingServiceSid"] = s.twilio_messaging_service_sid
        elif s.twilio_from_number:
            data["From"] = s.twilio_from_number
        else:
            return DeliveryResult(ok=False, error="No Twilio sender configured")

        url = f"{TWILIO_API_BASE}/Accounts/{s.twilio_account_sid}/Messages.json"
        try:
            if self.http_client is not None:
                response = self.http_client.post(
                    url, data=data, auth=(s.twilio_account_sid, s.twilio_auth_token)
                )
            else:
                with httpx.Client(timeout=s.twilio_timeout_seconds) as client:
                    response = client.post(url, data=data, auth=(s.twilio_account_sid, s.twilio_auth_token))
        except httpx.HTTPError as e:
            logger.error(f"SMS to {mask_phone(phone)} failed: {e}")
            return DeliveryResult(ok=False, error="SMS gateway unreachable")

        if response.status_code >= 400:
            logger.error(f"Twilio rejected SMS to {mask_phone(phone)}: {response.status_code} {response.text}")
            try:
                message = response.json().get("message")
            except ValueError:
                message = None
            return DeliveryResult(ok=False, error=message or f"SMS gateway error {response.status_code}")

        sid = response.json().get("sid")
        logger.info(f"SMS sent to {mask_phone(phone)} (sid={sid})")
        return DeliveryResult(ok=True, provider_message_id=sid)

    def send_email(self, address: str, subject: str, body: str) -> DeliveryResult:
        s = self.settings
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = s.mail_from
        msg["To"] = address
        msg.set_content(body)

        try:
            ctx = ssl.create_default_context()
            with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_seconds) as smtp:
                smtp.ehlo()
                smtp.starttls(context=ctx)
                smtp.ehlo()
                if s.smtp_user and s.smtp_password:
                    smtp.login(s.smtp_user, s.smtp_password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email to {address} failed: {e!r}")
            return DeliveryResult(ok=False, error="Email delivery failed")

        logger.info(f"Email '{subject}' sent to {address}")
        return DeliveryResult(ok=True, provider_message_id=msg.get("Message-ID"))


def build_notification_sender(settings: Settings) -> NotificationSender:
    backend = settings.notification_backend.lower()
    if backend == "live":
        return LiveNotificationSender(settings)
    if backend == "log":
        return LoggingNotificationSender()
    raise ValueError(f"Unknown notification backend: {settings.notification_backend}")
