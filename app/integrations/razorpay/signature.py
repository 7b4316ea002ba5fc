"""Razorpay payment and webhook HMAC verification."""

import hashlib
import hmac

from app.core.exceptions import PaymentConfigurationError


def _hex_hmac(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _digests_match(expected: str, signature: str) -> bool:
    # Header values may carry arbitrary non-ASCII text; compare as bytes
    return hmac.compare_digest(expected.encode(), signature.encode("utf-8", "replace"))


def compute_payment_signature(gateway_order_ref: str, payment_ref: str, secret: str) -> str:
    """Compute the signature Razorpay Checkout returns for a successful payment."""
    payload = f"{gateway_order_ref}|{payment_ref}".encode()
    return _hex_hmac(secret, payload)


def verify_payment_signature(
    gateway_order_ref: str,
    payment_ref: str,
    signature: str,
    secret: str,
) -> bool:
    """Verify a checkout payment confirmation's HMAC-SHA256 signature.

    Args:
        gateway_order_ref: The razorpay_order_id the payment was made against.
        payment_ref: The razorpay_payment_id of the authorized payment.
        signature: The razorpay_signature supplied with the confirmation.
        secret: The Razorpay key secret.

    Returns:
        True if the signature is valid. A mismatch or an empty field is a
        normal negative outcome and returns False.

    Raises:
        PaymentConfigurationError: If the key secret is not configured.
    """
    if not secret:
        raise PaymentConfigurationError()

    if not (gateway_order_ref and payment_ref and signature):
        return False

    expected = compute_payment_signature(gateway_order_ref, payment_ref, secret)
    return _digests_match(expected, signature)


def compute_webhook_signature(body: bytes, secret: str) -> str:
    return _hex_hmac(secret, body)


def verify_webhook_signature(body: bytes, signature: str, secret: str) -> bool:
    """Verify a Razorpay webhook's X-Razorpay-Signature header.

    Args:
        body: The raw request body bytes.
        signature: The X-Razorpay-Signature header value.
        secret: The webhook secret configured in the Razorpay dashboard.

    Raises:
        PaymentConfigurationError: If the webhook secret is not configured.
    """
    if not secret:
        raise PaymentConfigurationError(
            "Webhook secret not configured",
            code="webhook_secret_not_configured",
        )

    if not signature:
        return False

    return _digests_match(compute_webhook_signature(body, secret), signature)
