"""Fulfillment error taxonomy.

Every error carries a stable ``code`` so API callers and operators can tell a
fraud attempt (bad signature) from a legitimate retry (order already paid)
or a server misconfiguration (missing secret).
"""

from uuid import UUID


class FulfillmentError(Exception):
    """Base class for errors raised by the fulfillment pipeline."""

    code = "fulfillment_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PaymentConfigurationError(FulfillmentError):
    """A required gateway secret is not configured on the server."""

    code = "payment_secret_not_configured"

    def __init__(
        self,
        message: str = "Server payment secret not configured",
        *,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        if code:
            self.code = code


class InvalidPaymentSignatureError(FulfillmentError):
    """The confirmation did not originate from the payment gateway."""

    code = "invalid_signature"

    def __init__(self, message: str = "Invalid payment signature") -> None:
        super().__init__(message)


class OrderNotFoundError(FulfillmentError):
    """No order matches the given gateway reference or id."""

    code = "order_not_found"

    def __init__(self, reference: str) -> None:
        super().__init__(f"Order not found: {reference}")
        self.reference = reference


class OrderNotPayableError(FulfillmentError):
    """The order exists but its lifecycle no longer accepts this operation."""

    code = "order_not_payable"

    def __init__(self, order_id: UUID, status: str, message: str | None = None) -> None:
        super().__init__(message or f"Order {order_id} is {status} and cannot be processed")
        self.order_id = order_id
        self.status = status


class OrderStateConflictError(FulfillmentError):
    """A conditional update found the order outside the expected state."""

    code = "order_state_conflict"

    def __init__(self, order_id: UUID, current_status: str | None) -> None:
        super().__init__(f"Order {order_id} is in unexpected state {current_status!r}")
        self.order_id = order_id
        self.current_status = current_status


class ShiprocketError(FulfillmentError):
    """The carrier API rejected a request or could not be reached."""

    code = "carrier_error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ShipmentProvisioningError(FulfillmentError):
    """A shipment could not be created; recoverable by a later retry."""

    code = "shipment_deferred"
