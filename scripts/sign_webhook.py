"""HMAC signing helper for simulating Razorpay callbacks locally.

Two modes:

``payment``: sign a checkout confirmation with RAZORPAY_KEY_SECRET.

    uv run python -m scripts.sign_webhook payment order_Nx1 pay_Nx1

``webhook`` (default): read a JSON body from stdin and sign it with
RAZORPAY_WEBHOOK_SECRET.

    BODY='{"event":"payment.captured","payload":{"payment":{"entity":{"id":"pay_1","order_id":"order_1"}}}}'
    SIG=$(echo -n "$BODY" | uv run python -m scripts.sign_webhook)
    curl -X POST http://localhost:8000/api/v1/webhooks/razorpay \\
      -H "Content-Type: application/json" \\
      -H "X-Razorpay-Signature: $SIG" \\
      -d "$BODY"
"""

import sys

from app.core.config import settings
from app.integrations.razorpay.signature import compute_payment_signature, compute_webhook_signature


def _fail(message: str) -> None:
    print(f"ERROR: {message}", file=sys.stderr)
    sys.exit(1)


def main(argv: list[str]) -> None:
    mode = argv[0] if argv else "webhook"

    if mode == "payment":
        if len(argv) != 3:
            _fail("usage: sign_webhook payment <razorpay_order_id> <razorpay_payment_id>")
        if not settings.razorpay_key_secret:
            _fail("RAZORPAY_KEY_SECRET is not set in .env")
        print(compute_payment_signature(argv[1], argv[2], settings.razorpay_key_secret), end="")
        return

    secret = settings.razorpay_webhook_secret
    if not secret:
        _fail("RAZORPAY_WEBHOOK_SECRET is not set in .env")

    body = sys.stdin.buffer.read()
    if not body:
        _fail("No input received on stdin")

    print(compute_webhook_signature(body, secret), end="")


if __name__ == "__main__":
    main(sys.argv[1:])
