"""Shared fixtures: test settings, a virtual clock, and a fake PPRO upstream."""

import asyncio
import heapq
import itertools
import json
import os

import httpx
import pytest
import redis

os.environ.setdefault("PPRO_MERCHANT_ID", "merchant-test")
os.environ.setdefault("PPRO_API_KEY", "sk_test_0123456789")
os.environ.setdefault("PPRO_BASE_URL", "https://ppro.test")
os.environ.setdefault("RETURN_URL", "http://shop.test/payment-return")
os.environ["IDEMPOTENCY_BACKEND"] = "memory"
os.environ["RECURRING_POLICY"] = "any"
os.environ["TRACING_ENABLED"] = "false"

from pprocheckout.common.store import InMemoryKeyedStore  # noqa: E402
from pprocheckout.services.browser.api import CheckoutApiError  # noqa: E402
from pprocheckout.services.checkout_api.idempotency import IdempotencyCache, RecurringTokenStore  # noqa: E402
from pprocheckout.services.checkout_api.service import CheckoutService  # noqa: E402
from pprocheckout.services.gateway_client.client import PproClient  # noqa: E402


class FakeClock:
    """Virtual time: sleepers wake only when a test calls `advance`."""

    def __init__(self) -> None:
        self.now = 0.0
        self._sleepers: list = []
        self._seq = itertools.count()

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self.now + max(0.0, seconds), next(self._seq), future))
        await future

    async def settle(self) -> None:
        for _ in range(25):
            await asyncio.sleep(0)

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        await self.settle()
        while self._sleepers and self._sleepers[0][0] <= target:
            wake_at, _, future = heapq.heappop(self._sleepers)
            self.now = wake_at
            if not future.done():
                future.set_result(None)
            await self.settle()
        self.now = target


class FakePpro:
    """In-process stand-in for the PPRO API, served through `httpx.MockTransport`."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.charge_status = "AUTHENTICATION_PENDING"
        self.failure: tuple[int, dict] | None = None
        self._ids = itertools.count(1)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def posts(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST" and r.url.path == path]

    def _auth_methods(self, settings_list: list[dict], charge_id: str) -> list[dict]:
        methods = []
        for setting in settings_list:
            kind = setting["type"]
            if kind == "REDIRECT":
                methods.append({"type": kind, "details": {"requestUrl": f"https://auth.ppro.test/{charge_id}"}})
            elif kind == "SCAN_CODE":
                methods.append({"type": kind, "details": {"codePayload": f"BEP://1.ppro.test/{charge_id}"}})
            elif kind == "APP_INTENT":
                methods.append({"type": kind, "details": {"requestUrl": f"bancontact://pay/{charge_id}"}})
            else:
                methods.append({"type": kind})
        # Reversed so lookups cannot rely on position.
        return list(reversed(methods))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.failure is not None:
            status, body = self.failure
            return httpx.Response(status, json=body)

        path = request.url.path
        if request.method == "POST" and path == "/v1/payment-charges":
            body = json.loads(request.content)
            charge_id = f"charge_{next(self._ids)}"
            return httpx.Response(
                201,
                json={
                    "id": charge_id,
                    "status": "AUTHENTICATION_PENDING",
                    "paymentMethod": body["paymentMethod"],
                    "order": body["order"],
                    "authenticationMethods": self._auth_methods(body["authenticationSettings"], charge_id),
                },
            )
        if request.method == "POST" and path == "/v1/payment-agreements":
            body = json.loads(request.content)
            number = next(self._ids)
            return httpx.Response(
                201,
                json={
                    "id": f"agreement_{number}",
                    "instrumentId": f"instr_{number}",
                    "initialPaymentChargeId": f"charge_{number}",
                    "status": "AUTHENTICATION_PENDING",
                    "paymentMethod": body["paymentMethod"],
                    "authenticationMethods": self._auth_methods(body["authenticationSettings"], f"charge_{number}"),
                },
            )
        if request.method == "GET" and path.startswith("/v1/payment-charges/"):
            charge_id = path.rsplit("/", 1)[-1]
            return httpx.Response(
                200,
                json={
                    "id": charge_id,
                    "status": self.charge_status,
                    "paymentMethod": "IDEAL",
                    "amount": {"value": 11979, "currency": "EUR"},
                    "currency": "EUR",
                    "order": {"orderReferenceNumber": "ORDER-1-ABCD"},
                },
            )
        return httpx.Response(404, json={"message": "Not found"})


class UnavailableStore:
    """Keyed store whose backing Redis is down."""

    def get(self, key):
        raise redis.ConnectionError("redis down")

    def put(self, key, value, ttl_seconds=None):
        raise redis.ConnectionError("redis down")

    def expire(self, key):
        raise redis.ConnectionError("redis down")

    def purge_expired(self):
        return 0


class ScriptedApi:
    """Page-controller API double that answers status checks from a script.

    Each entry is a status string or an exception to raise; the last entry
    repeats once the script runs out.
    """

    def __init__(self, statuses: list, create_result: dict | None = None) -> None:
        self.statuses = list(statuses)
        self.create_result = create_result
        self.status_calls: list[str] = []
        self.create_calls: list[tuple[dict, str]] = []

    async def get_status(self, charge_id: str) -> dict:
        self.status_calls.append(charge_id)
        entry = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(entry, Exception):
            raise entry
        return {"success": True, "chargeId": charge_id, "status": entry, "method": "BANCONTACT"}

    async def create_payment(self, payload: dict, idempotency_key: str) -> dict:
        self.create_calls.append((payload, idempotency_key))
        if isinstance(self.create_result, Exception):
            raise self.create_result
        return self.create_result or {}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_ppro() -> FakePpro:
    return FakePpro()


@pytest.fixture
def scripted_api():
    return ScriptedApi


@pytest.fixture
def unavailable_store():
    return UnavailableStore()


@pytest.fixture
def api_error():
    return CheckoutApiError


@pytest.fixture
def make_service(fake_ppro, clock):
    """Build a `CheckoutService` wired to the fake upstream and virtual-clock stores."""

    def factory(recurring_policy: str = "any", ttl_seconds: float = 86400, idempotency_store=None, token_store=None):
        gateway = PproClient("https://ppro.test", "sk_test_0123456789", "merchant-test", transport=fake_ppro.transport)
        if idempotency_store is None:
            idempotency_store = InMemoryKeyedStore(clock=clock.monotonic)
        if token_store is None:
            token_store = InMemoryKeyedStore(clock=clock.monotonic)
        return CheckoutService(
            gateway=gateway,
            idempotency=IdempotencyCache(idempotency_store, ttl_seconds),
            recurring_tokens=RecurringTokenStore(token_store),
            return_url="http://shop.test/payment-return",
            recurring_policy=recurring_policy,
        )

    return factory


@pytest.fixture
def checkout_service(make_service):
    return make_service()


@pytest.fixture
def app(checkout_service):
    from pprocheckout.services.checkout_api.main import app as checkout_app, get_checkout_service

    checkout_app.dependency_overrides[get_checkout_service] = lambda: checkout_service
    yield checkout_app
    checkout_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client
