"""Shipment creation and tracking endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Query, status

from app.api.errors import http_error
from app.core.deps import FulfillmentServiceDep, ShiprocketClientDep
from app.core.exceptions import FulfillmentError, ShiprocketError
from app.schemas.shipment import CreateShipmentRequest, ShipmentResponse, TrackingResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=ShipmentResponse)
async def create_shipment(
    data: CreateShipmentRequest,
    service: FulfillmentServiceDep,
) -> ShipmentResponse:
    """Create a shipment for a paid order that does not have one yet.

    Idempotent: an order that already shipped returns its existing
    tracking data. A carrier failure returns 502 and leaves the order paid.
    """
    try:
        result = await service.create_shipment(data.order_id)
    except FulfillmentError as exc:
        raise http_error(exc) from exc

    if result.shipment_deferred:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "Failed to create shipment", "detail": result.shipment_error},
        )

    return ShipmentResponse(
        order_id=result.order_id,
        awb=result.shipment_tracking_id,
        tracking_url=result.tracking_url,
        courier_name=result.courier_name,
        message="Shipment already exists" if result.already_shipped else None,
    )


@router.get("/tracking", response_model=TrackingResponse)
async def get_tracking(
    client: ShiprocketClientDep,
    awb: str = Query(..., min_length=1, description="AWB tracking number"),
) -> TrackingResponse:
    """Fetch carrier tracking activity for an AWB."""
    try:
        tracking = await client.get_tracking(awb)
    except ShiprocketError as exc:
        logger.error("Failed to get tracking info for %s: %s", awb, exc.message)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "Failed to get tracking information", "detail": exc.message},
        ) from exc

    return TrackingResponse(tracking=tracking)
