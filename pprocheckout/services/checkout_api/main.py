"""Public HTTP entrypoint for the checkout demo.

Forwards create-payment and status requests to PPRO through `CheckoutService`
and renders domain errors as `{"error": ...}` bodies.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from time import perf_counter
from uuid import uuid4

import uvicorn
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.responses import Response

from pprocheckout.common.config import settings
from pprocheckout.common.errors import CheckoutError, InvalidRequestError
from pprocheckout.common.logging import configure_logging, logger, trace_id_ctx
from pprocheckout.common.metrics import (
    http_request_duration_seconds,
    http_requests_total,
    metrics_response,
    payment_requests_total,
)
from pprocheckout.common.qr import render_qr_png
from pprocheckout.common.scheduler import ScheduledTask
from pprocheckout.common.startup import log_startup_config
from pprocheckout.common.tracing import instrument_app, setup_tracing
from pprocheckout.services.checkout_api.payment_data import METHOD_CODES
from pprocheckout.services.checkout_api.schemas import PaymentCreateRequest
from pprocheckout.services.checkout_api.service import CheckoutService

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings,
    [
        "ppro_merchant_id",
        "ppro_api_key",
        "ppro_base_url",
        "return_url",
        "idempotency_backend",
        "idempotency_ttl_seconds",
        "idempotency_sweep_seconds",
        "recurring_policy",
    ],
)
service = CheckoutService.from_settings(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Sweep expired idempotency entries for as long as the app runs."""

    checkout = app.dependency_overrides.get(get_checkout_service, get_checkout_service)()
    sweeper = ScheduledTask(
        checkout.idempotency.purge_expired,
        settings.idempotency_sweep_seconds,
        name="idempotency-sweep",
    )
    sweeper.start()
    app.state.idempotency_sweeper = sweeper
    yield
    sweeper.stop()
    await sweeper.wait()


app = FastAPI(title="PPRO Checkout Demo", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_origins.split(",")],
    allow_methods=["*"],
    allow_headers=["*"],
)
instrument_app(app)


def get_checkout_service() -> CheckoutService:
    return service


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    trace_id_ctx.set(request.headers.get("x-correlation-id") or str(uuid4()))
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


@app.exception_handler(CheckoutError)
async def checkout_error_handler(_: Request, exc: CheckoutError) -> JSONResponse:
    body = {"error": exc.message}
    if exc.status_code >= 500:
        body["details"] = repr(exc)
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("invalid_request_body errors=%s", exc.errors())
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


@app.exception_handler(Exception)
async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error error=%s", exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.post("/api/payments/create")
async def create_payment(
    req: PaymentCreateRequest,
    x_idempotency_key: str | None = Header(default=None),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    """Create a PPRO charge or agreement and return the redirect URL or QR payload."""

    payment_requests_total.labels(service=settings.service_name).inc()
    return await checkout.create_payment(req, x_idempotency_key)


@app.get("/api/payments/status/{charge_id}")
async def payment_status(
    charge_id: str,
    order_id: str | None = Query(default=None, alias="orderId"),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    """Fetch current upstream status for one charge."""

    return await checkout.get_status(charge_id, order_id)


@app.get("/api/payments/qr")
def payment_qr(data: str = Query(min_length=1)):
    """Render a scan-to-pay payload as a PNG QR code."""

    return Response(content=render_qr_png(data), media_type="image/png")


@app.get("/payment-return")
def payment_return(
    order_id: str | None = Query(default=None, alias="orderId"),
    status: str | None = Query(default=None),
    charge_id: str | None = Query(default=None, alias="chargeId"),
    method: str | None = Query(default=None),
):
    """Landing target of `RETURN_URL`; echoes the return parameters."""

    logger.info("payment_return order_id=%s status=%s charge_id=%s method=%s", order_id, status, charge_id, method)
    if not order_id and not charge_id:
        raise InvalidRequestError("orderId or chargeId is required")
    return {"orderId": order_id, "status": status, "chargeId": charge_id, "method": method}


@app.get("/api")
def api_index():
    """Endpoint index for manual exploration."""

    return {
        "name": "PPRO Payment Gateway",
        "version": "1.0.0",
        "endpoints": {
            "POST /api/payments/create": "Create payment charge",
            "GET /api/payments/status/{chargeId}": "Get payment status",
            "GET /api/payments/qr?data=": "Render QR code image",
            "GET /health": "Health check",
        },
        "supportedMethods": sorted(set(METHOD_CODES.values())),
        "features": ["Multiple authentication flows", "Idempotency support", "Recurring agreements"],
    }


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Liveness probe endpoint."""

    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "ppro": {"merchantId": settings.ppro_merchant_id, "baseUrl": settings.ppro_base_url},
    }


def run() -> None:
    """Console entrypoint: serve the app with uvicorn."""

    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)
