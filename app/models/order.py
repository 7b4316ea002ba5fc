"""Order model: a single checkout transaction and its fulfillment state."""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Enum, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONType


class OrderStatus(str, enum.Enum):
    """Lifecycle status of an order.

    Status only advances along pending -> paid -> shipped -> delivered, or
    diverts to cancelled.
    """

    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Statuses at or past "paid" on the forward path
PAID_OR_LATER = frozenset({OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED})


class Order(Base):
    """A storefront order.

    Created as ``pending`` by the checkout flow together with the payment
    gateway order. The fulfillment pipeline marks it paid once the gateway
    confirms the payment and shipped once the carrier allocates a tracking
    number (AWB).
    """

    __tablename__ = "orders"

    status: Mapped[OrderStatus] = mapped_column(
        Enum(
            OrderStatus,
            name="order_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Payment gateway identifiers
    gateway_order_ref: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )
    payment_ref: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    customer_email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    # Amounts (INR)
    subtotal: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False),
        nullable=False,
        default=0,
    )
    shipping: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False),
        nullable=False,
        default=0,
    )
    total: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False),
        nullable=False,
        default=0,
    )

    # {name, email, phone, address, city, state, pincode}
    address: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        default=dict,
        nullable=False,
    )
    # [{id, name, price, quantity, flavour?}]
    items: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType,
        default=list,
        nullable=False,
    )

    # Shipment (absent until provisioned)
    tracking_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        index=True,
    )
    tracking_url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )
    courier_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Provisioning bookkeeping
    shipment_claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    shipment_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    @property
    def order_number(self) -> str:
        """Short human-facing order number used in notifications."""
        return str(self.id)[:8].upper()

    @property
    def has_shipment(self) -> bool:
        return bool(self.tracking_id)

    def amounts_consistent(self) -> bool:
        """Check that amounts are non-negative and total = subtotal + shipping."""
        if min(self.subtotal, self.shipping, self.total) < 0:
            return False
        return round(self.subtotal + self.shipping, 2) == round(self.total, 2)

    def __repr__(self) -> str:
        return f"<Order {self.order_number} ({self.status.value})>"
