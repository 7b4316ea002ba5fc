"""Celery tasks for gateway webhooks and deferred shipment retries."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

import redis.asyncio as aioredis

from app.core.config import settings
from app.core.database import async_session_maker, engine
from app.core.exceptions import OrderNotFoundError, OrderNotPayableError
from app.services.fulfillment_service import FulfillmentResult, build_fulfillment_service
from app.workers.celery_app import BaseTask, celery_app

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a fresh event loop, disposing DB connections after.

    asyncpg connections are bound to the loop that created them, so pooled
    connections from a previous task's loop must not be reused.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.run_until_complete(engine.dispose())
        loop.close()


def _result_to_dict(result: FulfillmentResult) -> dict[str, Any]:
    return {
        "order_id": str(result.order_id),
        "awb": result.shipment_tracking_id,
        "tracking_url": result.tracking_url,
        "shipment_error": result.shipment_error,
    }


# ---------------------------------------------------------------------------
# Razorpay payment.captured webhook
# ---------------------------------------------------------------------------


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.fulfillment.process_payment_captured",
    base=BaseTask,
    bind=True,
)
def process_payment_captured(
    self: BaseTask,  # noqa: ARG001
    gateway_order_ref: str,
    payment_ref: str,
) -> dict[str, Any]:
    """Fulfil the order behind a captured payment."""
    return _run_async(_process_payment_captured_async(gateway_order_ref, payment_ref))


async def _process_payment_captured_async(
    gateway_order_ref: str,
    payment_ref: str,
) -> dict[str, Any]:
    """Async implementation of payment.captured processing."""
    redis = aioredis.from_url(str(settings.redis_url), decode_responses=True)
    try:
        async with async_session_maker() as session:
            service = build_fulfillment_service(session, redis)
            try:
                result = await service.handle_payment_captured(gateway_order_ref, payment_ref)
            except (OrderNotFoundError, OrderNotPayableError) as exc:
                # Not retryable; the order will never become fulfillable from this event
                logger.warning("Ignoring payment.captured for %s: %s", gateway_order_ref, exc)
                return {"status": "ignored", "reason": exc.code}
    finally:
        await redis.aclose()

    return {"status": "processed", **_result_to_dict(result)}


# ---------------------------------------------------------------------------
# Periodic deferred shipment retry (Celery Beat)
# ---------------------------------------------------------------------------


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.fulfillment.retry_deferred_shipments",
    base=BaseTask,
    bind=True,
)
def retry_deferred_shipments(self: BaseTask, limit: int = 50) -> dict[str, Any]:  # noqa: ARG001
    """Periodic task: retry provisioning for paid orders with a deferred shipment."""
    return _run_async(_retry_deferred_shipments_async(limit))


async def _retry_deferred_shipments_async(limit: int = 50) -> dict[str, Any]:
    """Async implementation of the deferred shipment retry."""
    redis = aioredis.from_url(str(settings.redis_url), decode_responses=True)
    try:
        async with async_session_maker() as session:
            service = build_fulfillment_service(session, redis)
            results = await service.retry_deferred_shipments(limit)
    finally:
        await redis.aclose()

    shipped = sum(1 for r in results if r.shipment_tracking_id)
    logger.info(
        "Deferred shipment retry complete: attempted=%d shipped=%d", len(results), shipped
    )
    return {
        "status": "completed",
        "attempted": len(results),
        "shipped": shipped,
        "results": [_result_to_dict(r) for r in results],
    }
