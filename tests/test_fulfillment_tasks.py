"""Tests for fulfillment Celery tasks.

We test the async implementations directly rather than the sync wrappers,
as the wrappers are just thin shells that create event loops.
"""

from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import AsyncMock, patch

import fakeredis.aioredis
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import ShiprocketError
from app.models.order import Order, OrderStatus
from app.services.order_store import OrderStore
from app.workers.celery_app import celery_app
from app.workers.tasks.fulfillment import (
    _process_payment_captured_async,
    _retry_deferred_shipments_async,
)


@pytest.fixture(autouse=True)
def _worker_environment(
    session_factory: async_sessionmaker[AsyncSession],
    fake_redis: fakeredis.aioredis.FakeRedis,
    mock_shiprocket: AsyncMock,
) -> Generator[None, None, None]:
    """Point the worker at the test database, fake Redis and mocked carrier."""
    with (
        patch("app.workers.tasks.fulfillment.async_session_maker", session_factory),
        patch("app.workers.tasks.fulfillment.aioredis.from_url", return_value=fake_redis),
        patch("app.services.fulfillment_service.ShiprocketClient", return_value=mock_shiprocket),
    ):
        yield


class TestProcessPaymentCaptured:
    """Tests for _process_payment_captured_async."""

    @pytest.mark.asyncio
    async def test_ships_pending_order(
        self, db_session: AsyncSession, order_factory: Callable[..., Any]
    ) -> None:
        order: Order = await order_factory(gateway_order_ref="gw_1")

        result = await _process_payment_captured_async("gw_1", "pay_1")

        assert result["status"] == "processed"
        assert result["order_id"] == str(order.id)
        assert result["awb"] == "AWB123"
        stored = await OrderStore(db_session).get(order.id)
        assert stored.status == OrderStatus.SHIPPED
        assert stored.payment_ref == "pay_1"

    @pytest.mark.asyncio
    async def test_unknown_order_is_ignored(self) -> None:
        result = await _process_payment_captured_async("gw_missing", "pay_1")

        assert result == {"status": "ignored", "reason": "order_not_found"}

    @pytest.mark.asyncio
    async def test_cancelled_order_is_ignored(self, order_factory: Callable[..., Any]) -> None:
        await order_factory(gateway_order_ref="gw_1", status=OrderStatus.CANCELLED)

        result = await _process_payment_captured_async("gw_1", "pay_1")

        assert result == {"status": "ignored", "reason": "order_not_payable"}


class TestRetryDeferredShipments:
    """Tests for _retry_deferred_shipments_async."""

    @pytest.mark.asyncio
    async def test_counts_shipped_and_still_deferred(
        self,
        order_factory: Callable[..., Any],
        mock_shiprocket: AsyncMock,
    ) -> None:
        await order_factory(status=OrderStatus.PAID, shipment_error="carrier unavailable")
        await order_factory(status=OrderStatus.PAID, shipment_error="carrier unavailable")
        mock_shiprocket.create_shipment.side_effect = [
            {"shipment_id": 1, "awb_code": "AWB1"},
            ShiprocketError("still down"),
        ]

        result = await _retry_deferred_shipments_async(limit=10)

        assert result["status"] == "completed"
        assert result["attempted"] == 2
        assert result["shipped"] == 1
        assert sum(1 for r in result["results"] if r["shipment_error"]) == 1

    @pytest.mark.asyncio
    async def test_nothing_to_retry(self) -> None:
        result = await _retry_deferred_shipments_async()

        assert result["attempted"] == 0
        assert result["results"] == []


class TestCeleryConfig:
    def test_tasks_are_routed_to_fulfillment_queue(self) -> None:
        routes = celery_app.conf.task_routes
        assert routes["tasks.fulfillment.*"] == {"queue": "fulfillment"}

    def test_retry_is_scheduled(self) -> None:
        schedule = celery_app.conf.beat_schedule["retry-deferred-shipments"]
        assert schedule["task"] == "tasks.fulfillment.retry_deferred_shipments"
