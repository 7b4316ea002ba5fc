"""Razorpay webhook handler."""

import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from app.api.errors import http_error
from app.core.config import settings
from app.core.exceptions import PaymentConfigurationError
from app.integrations.razorpay.signature import verify_webhook_signature
from app.schemas.payment import WebhookAck
from app.workers.tasks.fulfillment import process_payment_captured

logger = logging.getLogger(__name__)

router = APIRouter()


async def _verify_and_parse(request: Request) -> dict[str, Any]:
    """Read body, verify HMAC, parse JSON."""
    body = await request.body()
    signature = request.headers.get("X-Razorpay-Signature", "")

    try:
        valid = verify_webhook_signature(body, signature, settings.razorpay_webhook_secret)
    except PaymentConfigurationError as exc:
        raise http_error(exc) from exc

    if not valid:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid webhook signature")

    try:
        event = json.loads(body)
    except json.JSONDecodeError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Malformed webhook body") from exc
    if not isinstance(event, dict):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Webhook body must be a JSON object")
    return event


@router.post("", response_model=WebhookAck)
async def razorpay_webhook(request: Request) -> WebhookAck:
    """Handle Razorpay events; only payment.captured triggers fulfillment."""
    event = await _verify_and_parse(request)

    if event.get("event") != "payment.captured":
        return WebhookAck(status="ignored")

    entity = ((event.get("payload") or {}).get("payment") or {}).get("entity") or {}
    gateway_order_ref = entity.get("order_id")
    payment_ref = entity.get("id")
    if not gateway_order_ref or not payment_ref:
        logger.warning("payment.captured webhook without order or payment id")
        return WebhookAck(status="ignored")

    process_payment_captured.delay(gateway_order_ref, payment_ref)
    return WebhookAck(status="accepted")
