"""Payment confirmation schemas."""

from uuid import UUID

from pydantic import Field

from app.schemas.common import BaseSchema
from app.services.fulfillment_service import FulfillmentResult


class PaymentConfirmationRequest(BaseSchema):
    """Fields Razorpay Checkout hands to the storefront after a payment."""

    razorpay_order_id: str = Field(..., min_length=1, max_length=255)
    razorpay_payment_id: str = Field(..., min_length=1, max_length=255)
    razorpay_signature: str = Field(..., min_length=1, max_length=512)


class PaymentConfirmationResponse(BaseSchema):
    """Payment confirmed; shipment either created or deferred."""

    success: bool = True
    order_id: UUID
    awb: str | None = None
    tracking_url: str | None = None
    courier_name: str | None = None
    shipment_error: str | None = None

    @classmethod
    def from_result(cls, result: FulfillmentResult) -> "PaymentConfirmationResponse":
        return cls(
            order_id=result.order_id,
            awb=result.shipment_tracking_id,
            tracking_url=result.tracking_url,
            courier_name=result.courier_name,
            shipment_error=result.shipment_error,
        )


class WebhookAck(BaseSchema):
    """Acknowledgement returned to the gateway for a webhook delivery."""

    status: str
