"""Seed script for local fulfillment testing.

Creates orders in the states the pipeline cares about:
- a pending order awaiting payment confirmation
- a paid order whose shipment was deferred (picked up by the retry task)
- a shipped order (repeated confirmations must return its tracking id)
- a cancelled order (confirmation must be rejected)

Usage:
    uv run python -m scripts.seed_orders

Then sign a confirmation for the pending order with:
    uv run python -m scripts.sign_webhook payment order_seed_pending pay_seed_001
"""

import asyncio
import uuid

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import async_session_maker
from app.models.order import Order, OrderStatus

PENDING_ID = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000001")
DEFERRED_ID = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000002")
SHIPPED_ID = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000003")
CANCELLED_ID = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000004")

SAMPLE_ADDRESS = {
    "name": "Asha Rao",
    "email": "asha@test.com",
    "phone": "9876543210",
    "address": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
}

SAMPLE_ITEMS = [
    {"id": "bar-choc", "name": "Protein Bar", "price": 120.0, "quantity": 2, "flavour": "Chocolate"},
    {"id": "mix-trail", "name": "Trail Mix", "price": 210.0, "quantity": 1},
]


def _order(order_id: uuid.UUID, ref: str, status: OrderStatus, **extra: object) -> Order:
    return Order(
        id=order_id,
        gateway_order_ref=ref,
        customer_email=SAMPLE_ADDRESS["email"],
        status=status,
        subtotal=450.0,
        shipping=50.0,
        total=500.0,
        address=SAMPLE_ADDRESS,
        items=SAMPLE_ITEMS,
        **extra,
    )


async def seed(session: AsyncSession) -> None:
    await session.execute(
        delete(Order).where(Order.id.in_([PENDING_ID, DEFERRED_ID, SHIPPED_ID, CANCELLED_ID]))
    )

    session.add_all(
        [
            _order(PENDING_ID, "order_seed_pending", OrderStatus.PENDING),
            _order(
                DEFERRED_ID,
                "order_seed_deferred",
                OrderStatus.PAID,
                payment_ref="pay_seed_002",
                shipment_error="Shipment creation failed: carrier unavailable",
            ),
            _order(
                SHIPPED_ID,
                "order_seed_shipped",
                OrderStatus.SHIPPED,
                payment_ref="pay_seed_003",
                tracking_id="SEEDAWB0003",
                tracking_url="https://shiprocket.co/tracking/SEEDAWB0003",
                courier_name="Delhivery",
            ),
            _order(CANCELLED_ID, "order_seed_cancelled", OrderStatus.CANCELLED),
        ]
    )
    await session.commit()


async def main() -> None:
    async with async_session_maker() as session:
        await seed(session)

    print("=" * 60)
    print("  Order seed data created successfully!")
    print("=" * 60)
    print(f"  pending   (order_seed_pending):   {PENDING_ID}")
    print(f"  deferred  (order_seed_deferred):  {DEFERRED_ID}")
    print(f"  shipped   (order_seed_shipped):   {SHIPPED_ID}")
    print(f"  cancelled (order_seed_cancelled): {CANCELLED_ID}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
