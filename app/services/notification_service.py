"""Customer and operator notification fan-out.

Each channel runs concurrently and independently: a failing or slow channel
never blocks another channel and never raises into the caller. Every attempt
produces a ChannelResult so the orchestrator can log outcomes.
"""

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader

from app.core.config import settings
from app.integrations.notifications.email import EmailSender
from app.integrations.notifications.result import ChannelResult
from app.integrations.notifications.whatsapp import WhatsAppSender
from app.models.order import Order

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
_html_env = Environment(loader=FileSystemLoader(str(TEMPLATE_DIR / "email")), autoescape=True)
_text_env = Environment(loader=FileSystemLoader(str(TEMPLATE_DIR / "whatsapp")), autoescape=False)

# Operator notifications are timestamped in store-local time
IST = timezone(timedelta(hours=5, minutes=30), "IST")

CUSTOMER_EMAIL = "customer_email"
OPERATOR_EMAIL = "operator_email"
CUSTOMER_WHATSAPP = "customer_whatsapp"


class NotificationKind(str, enum.Enum):
    ORDER_CONFIRMED = "order-confirmed"
    SHIPMENT_DISPATCHED = "shipment-dispatched"


@dataclass
class NotificationPayload:
    """Everything a notification template may render."""

    order_number: str
    customer_name: str
    customer_email: str
    customer_phone: str
    address: dict[str, Any]
    items: list[dict[str, Any]] = field(default_factory=list)
    subtotal: float = 0.0
    shipping: float = 0.0
    total: float = 0.0
    payment_ref: str | None = None
    tracking_id: str | None = None
    tracking_url: str | None = None
    courier_name: str | None = None

    @classmethod
    def from_order(
        cls,
        order: Order,
        *,
        payment_ref: str | None = None,
        tracking_id: str | None = None,
        tracking_url: str | None = None,
        courier_name: str | None = None,
    ) -> "NotificationPayload":
        address = order.address or {}
        return cls(
            order_number=order.order_number,
            customer_name=address.get("name", ""),
            customer_email=address.get("email") or order.customer_email,
            customer_phone=address.get("phone", ""),
            address=address,
            items=list(order.items or []),
            subtotal=float(order.subtotal),
            shipping=float(order.shipping),
            total=float(order.total),
            payment_ref=payment_ref or order.payment_ref,
            tracking_id=tracking_id or order.tracking_id,
            tracking_url=tracking_url or order.tracking_url,
            courier_name=courier_name or order.courier_name or "Courier",
        )

    def context(self) -> dict[str, Any]:
        return {
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "address": self.address,
            "items": self.items,
            "subtotal": self.subtotal,
            "shipping": self.shipping,
            "total": self.total,
            "payment_ref": self.payment_ref,
            "tracking_id": self.tracking_id,
            "tracking_url": self.tracking_url,
            "courier_name": self.courier_name,
            "order_date": datetime.now(IST).strftime("%d %b %Y, %I:%M %p"),
        }


ChannelSend = Callable[[], Awaitable[ChannelResult]]


class NotificationService:
    """Dispatches order notifications across email and WhatsApp."""

    def __init__(
        self,
        email_sender: EmailSender | None = None,
        whatsapp_sender: WhatsAppSender | None = None,
        *,
        admin_email: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.email_sender = email_sender or EmailSender()
        self.whatsapp_sender = whatsapp_sender or WhatsAppSender()
        self.admin_email = admin_email if admin_email is not None else settings.admin_email
        self.timeout = timeout or settings.notification_timeout

    async def dispatch(
        self,
        kind: NotificationKind,
        payload: NotificationPayload,
    ) -> list[ChannelResult]:
        """Send a notification on every channel configured for ``kind``.

        Never raises; failures are returned as unsuccessful ChannelResults.
        """
        sends = self._channel_sends(kind, payload)
        results = await asyncio.gather(*(self._isolated(name, send) for name, send in sends))
        return list(results)

    def _channel_sends(
        self,
        kind: NotificationKind,
        payload: NotificationPayload,
    ) -> list[tuple[str, ChannelSend]]:
        order_number = payload.order_number

        if kind is NotificationKind.ORDER_CONFIRMED:
            return [
                (
                    CUSTOMER_EMAIL,
                    lambda: self.send_email(
                        CUSTOMER_EMAIL,
                        "order_confirmation.html",
                        payload.customer_email,
                        f"Order Confirmation - #{order_number}",
                        payload,
                    ),
                ),
                (OPERATOR_EMAIL, lambda: self._send_operator_email(payload)),
                (
                    CUSTOMER_WHATSAPP,
                    lambda: self.send_message(
                        CUSTOMER_WHATSAPP, "order_confirmation.txt", payload
                    ),
                ),
            ]

        return [
            (
                CUSTOMER_EMAIL,
                lambda: self.send_email(
                    CUSTOMER_EMAIL,
                    "shipment_dispatched.html",
                    payload.customer_email,
                    f"Order Shipped - #{order_number}",
                    payload,
                ),
            ),
            (
                CUSTOMER_WHATSAPP,
                lambda: self.send_message(CUSTOMER_WHATSAPP, "shipment_dispatched.txt", payload),
            ),
        ]

    async def send_email(
        self,
        channel: str,
        template: str,
        to_email: str,
        subject: str,
        payload: NotificationPayload,
    ) -> ChannelResult:
        """Render an HTML template and send it by email."""
        html_content = _html_env.get_template(template).render(**payload.context())
        return await self.email_sender.send_email(
            channel,
            to_email,
            subject,
            html_content,
            tags=[{"name": "order", "value": payload.order_number}],
        )

    async def send_message(
        self,
        channel: str,
        template: str,
        payload: NotificationPayload,
    ) -> ChannelResult:
        """Render a text template and send it over WhatsApp."""
        body = _text_env.get_template(template).render(**payload.context()).strip()
        return await self.whatsapp_sender.send_message(channel, payload.customer_phone, body)

    async def _send_operator_email(self, payload: NotificationPayload) -> ChannelResult:
        if not self.admin_email:
            logger.warning("ADMIN_EMAIL not configured, skipping operator notification")
            return ChannelResult.skip(OPERATOR_EMAIL, "admin email not configured")
        return await self.send_email(
            OPERATOR_EMAIL,
            "admin_order_notification.html",
            self.admin_email,
            f"New Order Received - #{payload.order_number}",
            payload,
        )

    async def _isolated(self, channel: str, send: ChannelSend) -> ChannelResult:
        try:
            return await asyncio.wait_for(send(), timeout=self.timeout)
        except TimeoutError:
            logger.warning("Notification channel %s timed out after %ss", channel, self.timeout)
            return ChannelResult.failure(channel, "timed out")
        except Exception as exc:
            logger.exception("Notification channel %s failed", channel)
            return ChannelResult.failure(channel, str(exc) or exc.__class__.__name__)
