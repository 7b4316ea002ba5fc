"""Shiprocket external API client using httpx."""

import logging
from typing import Any

import httpx
import redis.asyncio as aioredis

from app.core.config import settings
from app.core.exceptions import ShiprocketError

logger = logging.getLogger(__name__)

TOKEN_CACHE_KEY = "shiprocket:auth_token"
# Shiprocket tokens are valid for 10 days; refresh a day early
TOKEN_CACHE_TTL = 9 * 24 * 3600


class ShiprocketClient:
    """Async client for the Shiprocket external REST API.

    The auth token is shared across workers through Redis and refreshed once
    when the API answers 401.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        base_url: str | None = None,
        email: str | None = None,
        password: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.redis = redis
        self.base_url = (base_url or settings.shiprocket_base_url).rstrip("/")
        self.email = email if email is not None else settings.shiprocket_email
        self.password = password if password is not None else settings.shiprocket_password
        self.timeout = timeout or settings.http_timeout

    async def create_shipment(self, data: dict[str, Any]) -> dict[str, Any]:
        """Create an ad-hoc order; returns order_id, shipment_id and maybe awb_code."""
        return await self._request("POST", "/orders/create/adhoc", json=data)

    async def generate_awb(self, shipment_id: int | str, courier_id: int) -> dict[str, Any]:
        """Assign an AWB (tracking number) to a shipment with the given courier."""
        return await self._request(
            "POST",
            "/courier/assign/awb",
            json={"shipment_id": shipment_id, "courier_id": courier_id},
        )

    async def schedule_pickup(self, shipment_id: int | str) -> dict[str, Any]:
        """Request a pickup for a shipment that already has an AWB."""
        return await self._request(
            "POST",
            "/courier/generate/pickup",
            json={"shipment_id": [shipment_id]},
        )

    async def get_tracking(self, awb: str) -> dict[str, Any]:
        """Fetch tracking activity for an AWB."""
        return await self._request("GET", f"/courier/track/awb/{awb}")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        token = await self._get_token()
        response = await self._send(method, path, token, json)

        if response.status_code == 401:
            logger.info("Shiprocket token rejected, refreshing")
            token = await self._get_token(refresh=True)
            response = await self._send(method, path, token, json)

        if not response.is_success:
            raise ShiprocketError(
                f"Shiprocket {method} {path} failed: "
                f"status={response.status_code} body={response.text[:300]}",
                status_code=response.status_code,
            )

        data: dict[str, Any] = response.json()
        return data

    async def _send(
        self,
        method: str,
        path: str,
        token: str,
        payload: dict[str, Any] | None,
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as exc:
            raise ShiprocketError(f"Shiprocket {method} {path} unreachable: {exc}") from exc

    async def _get_token(self, *, refresh: bool = False) -> str:
        """Return a cached auth token, logging in when missing or refreshing."""
        if not refresh:
            cached = await self.redis.get(TOKEN_CACHE_KEY)
            if cached:
                return cached.decode() if isinstance(cached, bytes) else str(cached)

        if not (self.email and self.password):
            raise ShiprocketError("Shiprocket credentials not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/auth/login",
                    json={"email": self.email, "password": self.password},
                )
        except httpx.HTTPError as exc:
            raise ShiprocketError(f"Shiprocket login unreachable: {exc}") from exc

        if not response.is_success:
            raise ShiprocketError(
                "Failed to authenticate with Shiprocket",
                status_code=response.status_code,
            )

        token = response.json().get("token")
        if not token:
            raise ShiprocketError("Shiprocket login returned no token")

        await self.redis.set(TOKEN_CACHE_KEY, token, ex=TOKEN_CACHE_TTL)
        return str(token)
