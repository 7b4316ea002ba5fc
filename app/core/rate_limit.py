"""Rate limiting configuration using slowapi."""

from slowapi import Limiter
from starlette.requests import Request


def _get_real_client_ip(request: Request) -> str:
    """Extract the buyer's IP behind the storefront's reverse proxy.

    Payment confirmations are posted by the checkout page in the buyer's
    browser, so the first X-Forwarded-For hop is the one to limit on.
    """
    forwarded = request.headers.get("X-Forwarded-For", "")
    return (
        request.headers.get("X-Real-IP")
        or forwarded.split(",")[0].strip()
        or (request.client.host if request.client else "127.0.0.1")
    )


limiter = Limiter(key_func=_get_real_client_ip)
