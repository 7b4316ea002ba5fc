"""Email delivery via the Resend API."""

import logging
from typing import Any

import httpx

from app.core.config import settings
from app.integrations.notifications.result import ChannelResult

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailSender:
    """Sends transactional emails via the Resend API."""

    def __init__(self, api_key: str | None = None, from_address: str | None = None) -> None:
        self.api_key = api_key if api_key is not None else settings.resend_api_key
        self.from_address = from_address or settings.email_from

    async def send_email(
        self,
        channel: str,
        to_email: str,
        subject: str,
        html_content: str,
        tags: list[dict[str, str]] | None = None,
    ) -> ChannelResult:
        """Send one email.

        Returns a failed ChannelResult for API errors; transport errors
        propagate to the caller.
        """
        if not self.api_key:
            logger.warning("Resend API key not configured, email not sent to %s", to_email)
            return ChannelResult.skip(channel, "email not configured")

        if not to_email:
            return ChannelResult.skip(channel, "no recipient address")

        payload: dict[str, Any] = {
            "from": self.from_address,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        if tags:
            payload["tags"] = tags

        async with httpx.AsyncClient(timeout=settings.notification_timeout) as client:
            response = await client.post(
                RESEND_API_URL,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )

        if not response.is_success:
            logger.error(
                "Failed to send email: to=%s status=%s body=%s",
                to_email,
                response.status_code,
                response.text[:500],
            )
            return ChannelResult.failure(channel, f"resend status {response.status_code}")

        email_id = response.json().get("id")
        logger.info("Email sent: channel=%s to=%s id=%s", channel, to_email, email_id)
        return ChannelResult.sent(channel, str(email_id) if email_id else None)
