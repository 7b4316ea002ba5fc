"""Post-payment fulfillment orchestration.

The pipeline for a confirmed payment is:

    verify signature -> mark order paid -> notify (best-effort)
    -> provision shipment (deferred on failure) -> mark shipped
    -> notify (best-effort)

Steps up to and including "mark order paid" are the critical path and fail
loudly without side effects. Everything after is isolated: a carrier or
notification outage never turns a paid order into a failed confirmation,
and at-least-once delivery of the same callback never provisions a second
shipment.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    InvalidPaymentSignatureError,
    OrderNotFoundError,
    OrderNotPayableError,
    OrderStateConflictError,
    ShipmentProvisioningError,
)
from app.core.logging_config import order_ref_var
from app.integrations.notifications.result import ChannelResult
from app.integrations.razorpay.signature import verify_payment_signature
from app.integrations.shiprocket.client import ShiprocketClient
from app.models.order import PAID_OR_LATER, Order, OrderStatus
from app.services.notification_service import (
    NotificationKind,
    NotificationPayload,
    NotificationService,
)
from app.services.order_store import OrderStore
from app.services.shipment_provisioner import ShipmentProvisioner

logger = logging.getLogger(__name__)

SHIPMENT_IN_PROGRESS = "Shipment provisioning already in progress"


@dataclass
class FulfillmentResult:
    """Outcome of a payment confirmation or shipment request.

    The payment side always succeeded when a result is returned;
    ``shipment_error`` set means the shipment is deferred for a later retry.
    """

    order_id: UUID
    shipment_tracking_id: str | None = None
    tracking_url: str | None = None
    courier_name: str | None = None
    shipment_error: str | None = None
    already_shipped: bool = False

    @property
    def shipment_deferred(self) -> bool:
        return self.shipment_error is not None


class FulfillmentService:
    """Coordinates the order store, carrier and notification channels."""

    def __init__(
        self,
        store: OrderStore,
        provisioner: ShipmentProvisioner,
        notifier: NotificationService,
        *,
        payment_secret: str | None = None,
    ) -> None:
        self.store = store
        self.provisioner = provisioner
        self.notifier = notifier
        self.payment_secret = (
            payment_secret if payment_secret is not None else settings.razorpay_key_secret
        )

    async def confirm_payment(
        self,
        gateway_order_ref: str,
        payment_ref: str,
        signature: str,
    ) -> FulfillmentResult:
        """Confirm a checkout payment and fulfil the order.

        Raises:
            PaymentConfigurationError: The gateway secret is not configured.
            InvalidPaymentSignatureError: The signature does not match.
            OrderNotFoundError: No order has this gateway reference.
            OrderNotPayableError: The order was cancelled.
        """
        order_ref_var.set(gateway_order_ref)

        if not verify_payment_signature(
            gateway_order_ref, payment_ref, signature, self.payment_secret
        ):
            logger.warning("Rejected payment confirmation with invalid signature")
            raise InvalidPaymentSignatureError()

        return await self._fulfil_paid_order(gateway_order_ref, payment_ref)

    async def handle_payment_captured(
        self,
        gateway_order_ref: str,
        payment_ref: str,
    ) -> FulfillmentResult:
        """Fulfil an order from a ``payment.captured`` webhook.

        The webhook body signature has already been verified by the caller.
        """
        order_ref_var.set(gateway_order_ref)
        return await self._fulfil_paid_order(gateway_order_ref, payment_ref)

    async def create_shipment(self, order_id: UUID) -> FulfillmentResult:
        """Provision a shipment for an already paid order.

        Returns existing tracking data if the order already shipped.

        Raises:
            OrderNotFoundError: Unknown order id.
            OrderNotPayableError: The order has not been paid.
        """
        order = await self.store.get(order_id)
        order_ref_var.set(order.gateway_order_ref)

        if order.has_shipment:
            return self._existing_shipment(order)
        if order.status != OrderStatus.PAID:
            raise OrderNotPayableError(
                order.id,
                order.status.value,
                "Order must be paid before creating shipment",
            )
        return await self._ship(order)

    async def retry_deferred_shipments(self, limit: int = 50) -> list[FulfillmentResult]:
        """Retry provisioning for paid orders whose shipment was deferred."""
        results = []
        for order in await self.store.list_deferred_shipments(limit):
            order_ref_var.set(order.gateway_order_ref)
            results.append(await self._ship(order))
        return results

    async def _fulfil_paid_order(
        self,
        gateway_order_ref: str,
        payment_ref: str,
    ) -> FulfillmentResult:
        order = await self.store.find_by_gateway_ref(gateway_order_ref)
        if order is None:
            logger.warning("Payment confirmation for unknown gateway order")
            raise OrderNotFoundError(gateway_order_ref)

        order = await self._mark_paid(order, payment_ref)

        await self._notify(
            order,
            NotificationKind.ORDER_CONFIRMED,
            NotificationPayload.from_order(order, payment_ref=payment_ref),
        )

        if order.has_shipment:
            result = self._existing_shipment(order)
            await self._notify_shipped(order, result)
            return result

        if order.status != OrderStatus.PAID:
            # Shipped or delivered by some other path without a tracking id
            logger.warning(
                "Order %s is %s without tracking data, not provisioning",
                order.id,
                order.status.value,
            )
            return FulfillmentResult(order_id=order.id)

        return await self._ship(order)

    async def _mark_paid(self, order: Order, payment_ref: str) -> Order:
        """Transition to paid; repeated deliveries for a paid-or-later order are no-ops."""
        try:
            order = await self.store.update_status(
                order.id,
                {OrderStatus.PENDING, OrderStatus.PAID},
                OrderStatus.PAID,
                payment_ref=payment_ref,
            )
        except OrderStateConflictError as exc:
            if exc.current_status not in {s.value for s in PAID_OR_LATER}:
                logger.warning(
                    "Payment confirmation for order %s in status %s",
                    order.id,
                    exc.current_status,
                )
                raise OrderNotPayableError(order.id, str(exc.current_status)) from exc
            order = await self.store.get(order.id)

        logger.info("Order %s marked paid (status=%s)", order.id, order.status.value)
        return order

    async def _ship(self, order: Order) -> FulfillmentResult:
        """Provision and attach a shipment, or report it as deferred."""
        if not await self.store.claim_shipment(order.id):
            order = await self.store.get(order.id)
            if order.has_shipment:
                return self._existing_shipment(order)
            return FulfillmentResult(order_id=order.id, shipment_error=SHIPMENT_IN_PROGRESS)

        try:
            shipment = await self.provisioner.provision(order)
        except ShipmentProvisioningError as exc:
            logger.error("Shipment deferred for order %s: %s", order.id, exc.message)
            await self.store.record_shipment_failure(order.id, exc.message)
            return FulfillmentResult(order_id=order.id, shipment_error=exc.message)

        try:
            order = await self.store.attach_shipment(
                order.id,
                shipment.tracking_id,
                shipment.tracking_url,
                shipment.courier_name,
            )
        except OrderStateConflictError:
            # Someone else attached first; their tracking id stands
            order = await self.store.get(order.id)
            logger.error(
                "Order %s already had a shipment; carrier shipment %s (awb=%s) is orphaned",
                order.id,
                shipment.shipment_handle,
                shipment.tracking_id,
            )
            return self._existing_shipment(order)

        logger.info("Order %s shipped with awb=%s", order.id, shipment.tracking_id)
        result = FulfillmentResult(
            order_id=order.id,
            shipment_tracking_id=shipment.tracking_id,
            tracking_url=shipment.tracking_url,
            courier_name=shipment.courier_name,
        )
        await self._notify_shipped(order, result)
        return result

    async def _notify_shipped(self, order: Order, result: FulfillmentResult) -> None:
        if not result.shipment_tracking_id:
            return
        await self._notify(
            order,
            NotificationKind.SHIPMENT_DISPATCHED,
            NotificationPayload.from_order(
                order,
                tracking_id=result.shipment_tracking_id,
                tracking_url=result.tracking_url,
                courier_name=result.courier_name,
            ),
        )

    async def _notify(
        self,
        order: Order,
        kind: NotificationKind,
        payload: NotificationPayload,
    ) -> None:
        """Best-effort fan-out; nothing here may abort the pipeline."""
        try:
            results = await self.notifier.dispatch(kind, payload)
        except Exception:
            logger.exception("Notification fan-out %s failed for order %s", kind.value, order.id)
            return
        self._log_notifications(order, kind, results)

    @staticmethod
    def _existing_shipment(order: Order) -> FulfillmentResult:
        return FulfillmentResult(
            order_id=order.id,
            shipment_tracking_id=order.tracking_id,
            tracking_url=order.tracking_url,
            courier_name=order.courier_name,
            already_shipped=True,
        )

    @staticmethod
    def _log_notifications(
        order: Order,
        kind: NotificationKind,
        results: list[ChannelResult],
    ) -> None:
        for result in results:
            if result.success:
                logger.info(
                    "Notification %s via %s for order %s: %s",
                    kind.value,
                    result.channel,
                    order.id,
                    "skipped" if result.skipped else "sent",
                )
            else:
                logger.warning(
                    "Notification %s via %s failed for order %s: %s",
                    kind.value,
                    result.channel,
                    order.id,
                    result.error,
                )


def build_fulfillment_service(db: AsyncSession, redis: aioredis.Redis) -> FulfillmentService:
    """Wire the fulfillment pipeline over a database session and Redis client."""
    return FulfillmentService(
        OrderStore(db),
        ShipmentProvisioner(ShiprocketClient(redis)),
        NotificationService(),
    )
