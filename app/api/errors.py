"""Translation of fulfillment errors into HTTP responses."""

from fastapi import HTTPException, status

from app.core.exceptions import (
    FulfillmentError,
    InvalidPaymentSignatureError,
    OrderNotFoundError,
    OrderNotPayableError,
    PaymentConfigurationError,
)
from app.schemas.common import ErrorResponse

_STATUS_CODES: dict[type[FulfillmentError], int] = {
    PaymentConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    InvalidPaymentSignatureError: status.HTTP_400_BAD_REQUEST,
    OrderNotFoundError: status.HTTP_404_NOT_FOUND,
    OrderNotPayableError: status.HTTP_409_CONFLICT,
}


def http_error(exc: FulfillmentError) -> HTTPException:
    """Build an HTTPException whose detail is an ErrorResponse body."""
    status_code = next(
        (code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    detail = ErrorResponse(error=exc.message, code=exc.code)
    return HTTPException(status_code=status_code, detail=detail.model_dump(exclude_none=True))
