"""Authenticated HTTP wrapper around the PPRO payments API.

Every call is a single attempt: no retries, no circuit breaking, and no timeout
unless one is configured. Any failure surfaces to the caller as `GatewayError`.
"""

import json
from time import perf_counter
from typing import Any

import httpx

from pprocheckout.common.config import settings
from pprocheckout.common.errors import GatewayError
from pprocheckout.common.logging import logger
from pprocheckout.common.metrics import upstream_latency_seconds

CHARGES_ENDPOINT = "/v1/payment-charges"
AGREEMENTS_ENDPOINT = "/v1/payment-agreements"


class PproClient:
    """Sends bearer-authenticated JSON requests on behalf of one merchant."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        merchant_id: str,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.merchant_id = merchant_id
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, transport: httpx.AsyncBaseTransport | None = None) -> "PproClient":
        return cls(
            settings.ppro_base_url,
            settings.ppro_api_key,
            settings.ppro_merchant_id,
            timeout=settings.ppro_timeout_seconds,
            transport=transport,
        )

    def _headers(self, method: str, idempotency_key: str | None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
            "Merchant-Id": self.merchant_id,
        }
        if idempotency_key and method == "POST":
            headers["Request-Idempotency-Key"] = idempotency_key
        return headers

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        """Send one request and return the decoded JSON body.

        Raises `GatewayError` with the upstream `error`/`message` text on non-2xx
        responses, and on undecodable bodies or transport failures.
        """

        method = method.upper()
        url = f"{self.base_url}{endpoint}"
        logger.info("ppro_request method=%s url=%s", method, url)
        if body is not None:
            logger.debug("ppro_request_body=%s", json.dumps(body))

        start = perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.request(
                    method,
                    url,
                    headers=self._headers(method, idempotency_key),
                    json=body,
                )
        except httpx.HTTPError as exc:
            logger.error("ppro_transport_error method=%s url=%s error=%s", method, url, exc)
            raise GatewayError(f"PPRO API unreachable: {exc}") from exc
        finally:
            upstream_latency_seconds.labels(
                service=settings.service_name,
                endpoint=endpoint.split("/")[2] if endpoint.count("/") >= 2 else endpoint,
                method=method,
            ).observe(max(0.0, perf_counter() - start))

        try:
            data = resp.json()
        except ValueError as exc:
            logger.error("ppro_malformed_response status=%s url=%s", resp.status_code, url)
            raise GatewayError("Malformed response from PPRO API", upstream_status=resp.status_code) from exc

        logger.info("ppro_response status=%s url=%s", resp.status_code, url)
        logger.debug("ppro_response_body=%s", json.dumps(data))

        if not resp.is_success:
            message = "PPRO API request failed"
            if isinstance(data, dict):
                message = data.get("error") or data.get("message") or message
            raise GatewayError(str(message), upstream_status=resp.status_code)
        if not isinstance(data, dict):
            raise GatewayError("Malformed response from PPRO API", upstream_status=resp.status_code)
        return data

    async def create_charge(self, body: dict[str, Any], idempotency_key: str | None = None) -> dict[str, Any]:
        return await self.request(CHARGES_ENDPOINT, "POST", body, idempotency_key)

    async def create_agreement(self, body: dict[str, Any], idempotency_key: str | None = None) -> dict[str, Any]:
        return await self.request(AGREEMENTS_ENDPOINT, "POST", body, idempotency_key)

    async def get_charge(self, charge_id: str) -> dict[str, Any]:
        return await self.request(f"{CHARGES_ENDPOINT}/{charge_id}")
