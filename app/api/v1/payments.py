"""Payment confirmation endpoint called by the checkout page."""

import logging

from fastapi import APIRouter, Request

from app.api.errors import http_error
from app.core.config import settings
from app.core.deps import FulfillmentServiceDep
from app.core.exceptions import FulfillmentError
from app.core.rate_limit import limiter
from app.schemas.payment import PaymentConfirmationRequest, PaymentConfirmationResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/confirm", response_model=PaymentConfirmationResponse)
@limiter.limit(settings.confirm_rate_limit)
async def confirm_payment(
    request: Request,  # noqa: ARG001
    data: PaymentConfirmationRequest,
    service: FulfillmentServiceDep,
) -> PaymentConfirmationResponse:
    """Verify a Razorpay payment and fulfil the order.

    Returns 200 whenever the payment is confirmed, including when the
    shipment could not be created yet (``shipment_error`` is set and the
    shipment is retried later). Returns 400 for an invalid signature, 404
    for an unknown order, 409 for a cancelled order and 500 when the
    payment secret is not configured.
    """
    try:
        result = await service.confirm_payment(
            data.razorpay_order_id,
            data.razorpay_payment_id,
            data.razorpay_signature,
        )
    except FulfillmentError as exc:
        raise http_error(exc) from exc

    return PaymentConfirmationResponse.from_result(result)
