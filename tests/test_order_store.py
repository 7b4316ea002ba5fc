"""Tests for OrderStore conditional transitions."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import OrderNotFoundError, OrderStateConflictError
from app.models.order import Order, OrderStatus
from app.services.order_store import OrderStore


class TestLookup:
    """Tests for find_by_gateway_ref() and get()."""

    @pytest.mark.asyncio
    async def test_find_by_gateway_ref(
        self, db_session: AsyncSession, order_factory: Callable[..., Any]
    ) -> None:
        order = await order_factory(gateway_order_ref="order_lookup")

        found = await OrderStore(db_session).find_by_gateway_ref("order_lookup")

        assert found is not None
        assert found.id == order.id

    @pytest.mark.asyncio
    async def test_find_unknown_ref_returns_none(self, db_session: AsyncSession) -> None:
        assert await OrderStore(db_session).find_by_gateway_ref("order_missing") is None

    @pytest.mark.asyncio
    async def test_get_unknown_id_raises(self, db_session: AsyncSession) -> None:
        with pytest.raises(OrderNotFoundError):
            await OrderStore(db_session).get(uuid4())


class TestUpdateStatus:
    """Tests for update_status()."""

    @pytest.mark.asyncio
    async def test_transition_from_expected_status(
        self, db_session: AsyncSession, order_factory: Callable[..., Any]
    ) -> None:
        order = await order_factory()
        store = OrderStore(db_session)

        updated = await store.update_status(
            order.id, {OrderStatus.PENDING}, OrderStatus.PAID, payment_ref="pay_1"
        )

        assert updated.status == OrderStatus.PAID
        assert updated.payment_ref == "pay_1"

    @pytest.mark.asyncio
    async def test_unexpected_status_raises_conflict(
        self, db_session: AsyncSession, order_factory: Callable[..., Any]
    ) -> None:
        order = await order_factory(status=OrderStatus.CANCELLED)

        with pytest.raises(OrderStateConflictError) as exc_info:
            await OrderStore(db_session).update_status(
                order.id, {OrderStatus.PENDING}, OrderStatus.PAID
            )

        assert exc_info.value.current_status == "cancelled"
        refreshed = await OrderStore(db_session).get(order.id)
        assert refreshed.status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_payment_ref_is_never_replaced(
        self, db_session: AsyncSession, order_factory: Callable[..., Any]
    ) -> None:
        order = await order_factory()
        store = OrderStore(db_session)
        paid = {OrderStatus.PENDING, OrderStatus.PAID}

        await store.update_status(order.id, paid, OrderStatus.PAID, payment_ref="pay_first")
        again = await store.update_status(
            order.id, paid, OrderStatus.PAID, payment_ref="pay_second"
        )

        assert again.payment_ref == "pay_first"


class TestClaimShipment:
    """Tests for claim_shipment()."""

    @pytest.mark.asyncio
    async def test_paid_order_can_be_claimed_once(
        self, db_session: AsyncSession, order_factory: Callable[..., Any]
    ) -> None:
        order = await order_factory(status=OrderStatus.PAID)
        store = OrderStore(db_session)

        assert await store.claim_shipment(order.id) is True
        assert await store.claim_shipment(order.id) is False

    @pytest.mark.asyncio
    async def test_pending_order_cannot_be_claimed(
        self, db_session: AsyncSession, order_factory: Callable[..., Any]
    ) -> None:
        order = await order_factory()

        assert await OrderStore(db_session).claim_shipment(order.id) is False

    @pytest.mark.asyncio
    async def test_order_with_tracking_cannot_be_claimed(
        self, db_session: AsyncSession, order_factory: Callable[..., Any]
    ) -> None:
        order = await order_factory(status=OrderStatus.PAID, tracking_id="AWB0")

        assert await OrderStore(db_session).claim_shipment(order.id) is False

    @pytest.mark.asyncio
    async def test_stale_claim_can_be_retaken(
        self, db_session: AsyncSession, order_factory: Callable[..., Any]
    ) -> None:
        order = await order_factory(status=OrderStatus.PAID)
        store = OrderStore(db_session, claim_ttl_seconds=60)
        await db_session.execute(
            update(Order)
            .where(Order.id == order.id)
            .values(shipment_claimed_at=datetime.now(UTC) - timedelta(minutes=5))
        )
        await db_session.commit()

        assert await store.claim_shipment(order.id) is True


class TestAttachShipment:
    """Tests for attach_shipment()."""

    @pytest.mark.asyncio
    async def test_attach_marks_shipped_and_clears_bookkeeping(
        self, db_session: AsyncSession, order_factory: Callable[..., Any]
    ) -> None:
        order = await order_factory(status=OrderStatus.PAID, shipment_error="carrier down")
        store = OrderStore(db_session)
        await store.claim_shipment(order.id)

        shipped = await store.attach_shipment(
            order.id, "AWB1", "https://track/AWB1", "Delhivery"
        )

        assert shipped.status == OrderStatus.SHIPPED
        assert shipped.tracking_id == "AWB1"
        assert shipped.tracking_url == "https://track/AWB1"
        assert shipped.courier_name == "Delhivery"
        assert shipped.shipment_claimed_at is None
        assert shipped.shipment_error is None

    @pytest.mark.asyncio
    async def test_existing_tracking_is_never_overwritten(
        self, db_session: AsyncSession, order_factory: Callable[..., Any]
    ) -> None:
        order = await order_factory(status=OrderStatus.PAID)
        store = OrderStore(db_session)
        await store.attach_shipment(order.id, "AWB1", "https://track/AWB1")

        with pytest.raises(OrderStateConflictError):
            await store.attach_shipment(order.id, "AWB2", "https://track/AWB2")

        refreshed = await store.get(order.id)
        assert refreshed.tracking_id == "AWB1"

    @pytest.mark.asyncio
    async def test_pending_order_cannot_ship(
        self, db_session: AsyncSession, order_factory: Callable[..., Any]
    ) -> None:
        order = await order_factory()

        with pytest.raises(OrderStateConflictError):
            await OrderStore(db_session).attach_shipment(order.id, "AWB1", "https://track/AWB1")


class TestDeferredShipments:
    """Tests for record_shipment_failure() and list_deferred_shipments()."""

    @pytest.mark.asyncio
    async def test_failure_releases_claim_and_lists_order(
        self, db_session: AsyncSession, order_factory: Callable[..., Any]
    ) -> None:
        order = await order_factory(status=OrderStatus.PAID)
        await order_factory(status=OrderStatus.PAID)  # paid, never attempted
        store = OrderStore(db_session)
        await store.claim_shipment(order.id)

        await store.record_shipment_failure(order.id, "carrier down")

        deferred = await store.list_deferred_shipments()
        assert [o.id for o in deferred] == [order.id]
        assert deferred[0].shipment_error == "carrier down"
        assert await store.claim_shipment(order.id) is True

    @pytest.mark.asyncio
    async def test_shipped_orders_are_not_listed(
        self, db_session: AsyncSession, order_factory: Callable[..., Any]
    ) -> None:
        await order_factory(
            status=OrderStatus.SHIPPED, tracking_id="AWB9", shipment_error="old error"
        )

        assert await OrderStore(db_session).list_deferred_shipments() == []
