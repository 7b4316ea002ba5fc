"""Shipment provisioning: carrier order, AWB allocation and pickup."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from app.core.config import settings
from app.core.exceptions import ShipmentProvisioningError
from app.integrations.shiprocket.client import ShiprocketClient
from app.models.order import Order

logger = logging.getLogger(__name__)


@dataclass
class ProvisionedShipment:
    """Tracking data for a shipment the carrier accepted."""

    tracking_id: str
    tracking_url: str
    courier_name: str
    shipment_handle: str | None = None


def split_name(full_name: str) -> tuple[str, str]:
    """Split a recipient name into first and last; last falls back to first."""
    first, _, rest = full_name.strip().partition(" ")
    last = rest.strip() or first
    return first, last


def build_tracking_url(tracking_id: str) -> str:
    return settings.tracking_url_template.format(tracking_id=tracking_id)


class ShipmentProvisioner:
    """Creates one carrier shipment for an order and returns its tracking data.

    Used by both payment confirmation and the standalone create-shipment
    endpoint so the carrier request is built in exactly one place.
    """

    def __init__(self, client: ShiprocketClient) -> None:
        self.client = client

    def build_shipment_request(self, order: Order) -> dict[str, Any]:
        """Build the Shiprocket ad-hoc order payload from an order.

        Billing and shipping addresses are the same; the storefront only
        takes prepaid orders.
        """
        if not order.amounts_consistent():
            logger.warning(
                "Order %s amounts do not add up: subtotal=%s shipping=%s total=%s",
                order.id,
                order.subtotal,
                order.shipping,
                order.total,
            )

        address = order.address or {}
        first_name, last_name = split_name(address.get("name", ""))
        email = address.get("email") or order.customer_email
        order_date = (order.created_at or datetime.now(UTC)).strftime("%Y-%m-%d")

        party: dict[str, Any] = {
            "customer_name": first_name,
            "last_name": last_name,
            "address": address.get("address", ""),
            "address_2": "",
            "city": address.get("city", ""),
            "pincode": address.get("pincode", ""),
            "state": address.get("state", ""),
            "country": settings.shipping_country,
            "email": email,
            "phone": address.get("phone", ""),
        }

        request: dict[str, Any] = {
            "order_id": str(order.id),
            "order_date": order_date,
            "pickup_location": settings.shiprocket_pickup_location,
            "shipping_is_billing": True,
            "order_items": [
                {
                    "name": item.get("name", ""),
                    "sku": str(item.get("id", "")),
                    "units": int(item.get("quantity", 1)),
                    "selling_price": item.get("price", 0),
                }
                for item in order.items or []
            ],
            "payment_method": "Prepaid",
            "sub_total": float(order.total),
            "length": settings.package_length,
            "breadth": settings.package_breadth,
            "height": settings.package_height,
            "weight": settings.package_weight,
        }
        for key, value in party.items():
            request[f"billing_{key}"] = value
            request[f"shipping_{key}"] = value
        return request

    async def provision(self, order: Order) -> ProvisionedShipment:
        """Create the shipment, allocate an AWB if needed, and request pickup.

        Any failure, including an order that cannot be turned into a carrier
        request or a carrier response of the wrong shape, is reported the same
        way so the caller can defer the shipment.

        Raises:
            ShipmentProvisioningError: Shipment creation or AWB allocation
                failed, or the carrier returned no tracking number.
        """
        try:
            return await self._provision(order)
        except ShipmentProvisioningError:
            raise
        except Exception as exc:
            logger.exception("Unexpected error provisioning shipment for order %s", order.id)
            raise ShipmentProvisioningError(f"Shipment provisioning failed: {exc}") from exc

    async def _provision(self, order: Order) -> ProvisionedShipment:
        request = self.build_shipment_request(order)

        try:
            shipment = await self.client.create_shipment(request)
        except Exception as exc:
            raise ShipmentProvisioningError(f"Shipment creation failed: {exc}") from exc

        tracking_id = shipment.get("awb_code") or shipment.get("awb")
        courier_name = shipment.get("courier_name") or "Courier"
        handle = shipment.get("shipment_id")
        shipment_handle = str(handle) if handle else None

        if not tracking_id:
            if not handle:
                raise ShipmentProvisioningError(
                    "Carrier returned neither a tracking number nor a shipment id"
                )
            courier_id = (
                shipment.get("courier_company_id") or settings.shiprocket_default_courier_id
            )
            try:
                awb_response = await self.client.generate_awb(handle, courier_id)
            except Exception as exc:
                raise ShipmentProvisioningError(f"AWB allocation failed: {exc}") from exc

            awb_data = (awb_response.get("response") or {}).get("data") or {}
            tracking_id = awb_data.get("awb_code") or awb_response.get("awb_code")
            courier_name = (
                awb_data.get("courier_name") or awb_response.get("courier_name") or courier_name
            )
            if not tracking_id:
                raise ShipmentProvisioningError(
                    f"AWB allocation for shipment {handle} returned no tracking number"
                )

        if handle:
            await self._schedule_pickup(handle)

        tracking_id = str(tracking_id)
        logger.info(
            "Shipment provisioned: order=%s awb=%s courier=%s", order.id, tracking_id, courier_name
        )
        return ProvisionedShipment(
            tracking_id=tracking_id,
            tracking_url=build_tracking_url(tracking_id),
            courier_name=courier_name,
            shipment_handle=shipment_handle,
        )

    async def _schedule_pickup(self, shipment_handle: Any) -> None:
        try:
            await self.client.schedule_pickup(shipment_handle)
        except Exception:
            logger.warning(
                "Pickup scheduling failed for shipment %s (non-critical)",
                shipment_handle,
                exc_info=True,
            )
