"""Shipment schemas."""

from typing import Any
from uuid import UUID

from app.schemas.common import BaseSchema


class CreateShipmentRequest(BaseSchema):
    """Request to provision a shipment for a paid order."""

    order_id: UUID


class ShipmentResponse(BaseSchema):
    """Tracking data for an order's shipment."""

    success: bool = True
    order_id: UUID
    awb: str | None = None
    tracking_url: str | None = None
    courier_name: str | None = None
    message: str | None = None
    shipment_error: str | None = None


class TrackingResponse(BaseSchema):
    """Raw carrier tracking activity for an AWB."""

    success: bool = True
    tracking: dict[str, Any]
