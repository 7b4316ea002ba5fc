"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_async_session
from app.integrations.shiprocket.client import ShiprocketClient
from app.services.fulfillment_service import FulfillmentService, build_fulfillment_service


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Alias for get_async_session."""
    async for session in get_async_session():
        yield session


# Shared Redis connection pool
_redis_pool: aioredis.ConnectionPool | None = None


def _get_redis_pool() -> aioredis.ConnectionPool:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(
            str(settings.redis_url), decode_responses=True
        )
    return _redis_pool


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    """Yield a Redis client from the shared connection pool."""
    pool = _get_redis_pool()
    r = aioredis.Redis(connection_pool=pool)
    try:
        yield r
    finally:
        await r.aclose()


# Database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]
RedisDep = Annotated[aioredis.Redis, Depends(get_redis)]


def get_shiprocket_client(redis: RedisDep) -> ShiprocketClient:
    """Shiprocket client sharing the auth token cache in Redis."""
    return ShiprocketClient(redis)


def get_fulfillment_service(db: DBSession, redis: RedisDep) -> FulfillmentService:
    """Wire the fulfillment pipeline for one request."""
    return build_fulfillment_service(db, redis)


FulfillmentServiceDep = Annotated[FulfillmentService, Depends(get_fulfillment_service)]
ShiprocketClientDep = Annotated[ShiprocketClient, Depends(get_shiprocket_client)]


__all__ = [
    "DBSession",
    "FulfillmentServiceDep",
    "RedisDep",
    "ShiprocketClientDep",
    "get_db",
    "get_fulfillment_service",
    "get_redis",
    "get_shiprocket_client",
]
