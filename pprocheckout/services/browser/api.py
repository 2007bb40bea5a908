"""HTTP client the page controllers use to talk to the checkout backend."""

from typing import Any

import httpx

from pprocheckout.common.config import settings
from pprocheckout.common.logging import logger


class CheckoutApiError(Exception):
    """Backend answered with `success` unset or a non-2xx status."""


class CheckoutApiClient:
    """Thin async wrapper over `/api/payments/*`; one outstanding call per action."""

    def __init__(self, base_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self._transport = transport

    async def _call(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.HTTPError as exc:
            raise CheckoutApiError(f"Network error: {exc}") from exc
        try:
            data = resp.json()
        except ValueError as exc:
            raise CheckoutApiError(f"Unexpected response from checkout API ({resp.status_code})") from exc
        if not isinstance(data, dict):
            raise CheckoutApiError(f"Unexpected response from checkout API ({resp.status_code})")
        if not resp.is_success or not data.get("success"):
            raise CheckoutApiError(data.get("error") or f"Checkout API request failed ({resp.status_code})")
        return data

    async def create_payment(self, payload: dict[str, Any], idempotency_key: str) -> dict[str, Any]:
        logger.info("checkout_create method=%s currency=%s", payload.get("method"), payload.get("currency"))
        return await self._call(
            "POST",
            "/payments/create",
            json=payload,
            headers={"X-Idempotency-Key": idempotency_key},
        )

    async def get_status(self, charge_id: str) -> dict[str, Any]:
        return await self._call("GET", f"/payments/status/{charge_id}")
