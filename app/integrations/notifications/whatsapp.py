"""WhatsApp messaging via the Twilio Messages REST API."""

import logging
import re

import httpx

from app.core.config import settings
from app.integrations.notifications.result import ChannelResult

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


def format_phone_number(phone: str, country_code: str | None = None) -> str:
    """Normalize a phone number to E.164.

    Non-digits are stripped and a bare 10-digit national number gets the
    default country code prepended.
    """
    country_code = country_code or settings.default_phone_country_code
    cleaned = re.sub(r"\D", "", phone)
    if len(cleaned) == 10 and not cleaned.startswith(country_code):
        cleaned = country_code + cleaned
    return f"+{cleaned}"


class WhatsAppSender:
    """Sends WhatsApp messages through a Twilio sender number."""

    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        from_number: str | None = None,
    ) -> None:
        self.account_sid = account_sid if account_sid is not None else settings.twilio_account_sid
        self.auth_token = auth_token if auth_token is not None else settings.twilio_auth_token
        self.from_number = from_number if from_number is not None else settings.twilio_whatsapp_number

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def send_message(self, channel: str, to_phone: str, body: str) -> ChannelResult:
        """Send one WhatsApp message; API errors become a failed ChannelResult."""
        if not self.configured:
            logger.warning("Twilio not configured, WhatsApp message not sent to %s", to_phone)
            return ChannelResult.skip(channel, "whatsapp not configured")

        if not to_phone:
            return ChannelResult.skip(channel, "no recipient phone")

        async with httpx.AsyncClient(timeout=settings.notification_timeout) as client:
            response = await client.post(
                TWILIO_MESSAGES_URL.format(sid=self.account_sid),
                auth=(self.account_sid, self.auth_token),
                data={
                    "From": f"whatsapp:{self.from_number}",
                    "To": f"whatsapp:{format_phone_number(to_phone)}",
                    "Body": body,
                },
            )

        if not response.is_success:
            logger.error(
                "Failed to send WhatsApp message: to=%s status=%s body=%s",
                to_phone,
                response.status_code,
                response.text[:500],
            )
            return ChannelResult.failure(channel, f"twilio status {response.status_code}")

        sid = response.json().get("sid")
        logger.info("WhatsApp message sent: channel=%s to=%s sid=%s", channel, to_phone, sid)
        return ChannelResult.sent(channel, sid)
