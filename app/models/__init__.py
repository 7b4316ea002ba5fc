"""SQLAlchemy models."""

from app.models.base import Base
from app.models.order import PAID_OR_LATER, Order, OrderStatus

__all__ = [
    # Base
    "Base",
    # Orders
    "Order",
    "OrderStatus",
    "PAID_OR_LATER",
]
