"""Pydantic schemas for request/response validation."""

from app.schemas.common import ErrorResponse, HealthResponse
from app.schemas.payment import (
    PaymentConfirmationRequest,
    PaymentConfirmationResponse,
    WebhookAck,
)
from app.schemas.shipment import CreateShipmentRequest, ShipmentResponse, TrackingResponse

__all__ = [
    "HealthResponse",
    "ErrorResponse",
    "PaymentConfirmationRequest",
    "PaymentConfirmationResponse",
    "WebhookAck",
    "CreateShipmentRequest",
    "ShipmentResponse",
    "TrackingResponse",
]
