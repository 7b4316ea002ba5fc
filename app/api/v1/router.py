"""API v1 router combining all route modules."""

from fastapi import APIRouter

from app.api.v1 import health, payments, shipments
from app.api.v1.webhooks import razorpay as razorpay_webhooks

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Payment confirmation (called by the checkout page, verified via signature)
api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["payments"],
)

# Razorpay webhooks (no auth - verified via HMAC)
api_router.include_router(
    razorpay_webhooks.router,
    prefix="/webhooks/razorpay",
    tags=["webhooks"],
)

# Shipments
api_router.include_router(
    shipments.router,
    prefix="/shipments",
    tags=["shipments"],
)
