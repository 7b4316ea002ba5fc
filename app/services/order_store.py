"""Order persistence with conditional state transitions.

Every write that participates in the fulfillment lifecycle is a single
``UPDATE ... WHERE <expected state>`` statement, so two deliveries of the
same payment callback racing each other cannot both win a transition, claim
the same shipment, or overwrite a tracking number.
"""

import logging
from collections.abc import Collection
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import OrderNotFoundError, OrderStateConflictError
from app.models.order import Order, OrderStatus

logger = logging.getLogger(__name__)


class OrderStore:
    """Reads and conditionally writes order records."""

    def __init__(self, db: AsyncSession, *, claim_ttl_seconds: int | None = None) -> None:
        self.db = db
        self.claim_ttl = timedelta(
            seconds=claim_ttl_seconds or settings.shipment_claim_ttl_seconds
        )

    async def find_by_gateway_ref(self, gateway_order_ref: str) -> Order | None:
        """Look up an order by its payment gateway reference."""
        stmt = (
            select(Order)
            .where(Order.gateway_order_ref == gateway_order_ref)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, order_id: UUID) -> Order:
        """Load an order by id, always reflecting the latest committed row."""
        stmt = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    async def update_status(
        self,
        order_id: UUID,
        from_statuses: Collection[OrderStatus],
        to_status: OrderStatus,
        *,
        payment_ref: str | None = None,
    ) -> Order:
        """Move an order to ``to_status`` only if it is currently in ``from_statuses``.

        ``payment_ref`` is recorded on the first transition and never replaced.

        Raises:
            OrderStateConflictError: The order is not in any of ``from_statuses``.
        """
        values: dict[str, object] = {"status": to_status, "updated_at": func.now()}
        if payment_ref:
            values["payment_ref"] = func.coalesce(Order.payment_ref, payment_ref)

        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.status.in_(list(from_statuses)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        updated = await self._execute_conditional(stmt)
        order = await self.get(order_id)
        if not updated:
            raise OrderStateConflictError(order_id, order.status.value)
        return order

    async def claim_shipment(self, order_id: UUID) -> bool:
        """Take the exclusive right to provision a shipment for a paid order.

        Succeeds only when the order is ``paid``, has no tracking id, and no
        other worker holds a live claim. A claim older than the configured TTL
        is treated as abandoned.
        """
        now = datetime.now(UTC)
        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.PAID,
                Order.tracking_id.is_(None),
                or_(
                    Order.shipment_claimed_at.is_(None),
                    Order.shipment_claimed_at < now - self.claim_ttl,
                ),
            )
            .values(shipment_claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        claimed = await self._execute_conditional(stmt)
        if not claimed:
            logger.info("Shipment claim for order %s not acquired", order_id)
        return claimed

    async def attach_shipment(
        self,
        order_id: UUID,
        tracking_id: str,
        tracking_url: str,
        courier_name: str | None = None,
    ) -> Order:
        """Record the tracking number and mark the order shipped.

        Never overwrites an existing tracking id.

        Raises:
            OrderStateConflictError: The order already has a shipment or is no
                longer ``paid``.
        """
        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.PAID,
                Order.tracking_id.is_(None),
            )
            .values(
                status=OrderStatus.SHIPPED,
                tracking_id=tracking_id,
                tracking_url=tracking_url,
                courier_name=courier_name,
                shipment_claimed_at=None,
                shipment_error=None,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        updated = await self._execute_conditional(stmt)
        order = await self.get(order_id)
        if not updated:
            raise OrderStateConflictError(order_id, order.status.value)
        return order

    async def record_shipment_failure(self, order_id: UUID, error: str) -> None:
        """Release the shipment claim and remember why provisioning failed."""
        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.tracking_id.is_(None))
            .values(shipment_claimed_at=None, shipment_error=error[:2000], updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        await self._execute_conditional(stmt)

    async def list_deferred_shipments(self, limit: int = 50) -> list[Order]:
        """Paid orders whose shipment provisioning failed and awaits a retry."""
        stmt = (
            select(Order)
            .where(
                Order.status == OrderStatus.PAID,
                Order.tracking_id.is_(None),
                Order.shipment_error.is_not(None),
            )
            .order_by(Order.updated_at)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _execute_conditional(self, stmt: object) -> bool:
        """Execute a conditional UPDATE and commit; True if a row matched."""
        result = await self.db.execute(stmt)  # type: ignore[call-overload]
        await self.db.commit()
        return bool(result.rowcount)
