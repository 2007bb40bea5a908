"""Checkout orchestration: create-payment and status lookup against PPRO.

Composes the payment data builder, the idempotency cache and the gateway
client, and branches on the upstream response shape (redirect URL vs QR
payload vs recurring agreement).
"""

import secrets
import time
from typing import Any
from urllib.parse import urlencode

from pprocheckout.common.config import CommonSettings
from pprocheckout.common.errors import GatewayError, InvalidRequestError
from pprocheckout.common.logging import charge_id_ctx, logger, order_id_ctx
from pprocheckout.common.metrics import idempotency_hits_total, payment_failure_total, status_checks_total
from pprocheckout.common.state_machine import CREATED, FAILED, QR_PENDING, REDIRECT_PENDING, validate_transition
from pprocheckout.common.store import KeyedStore, build_store
from pprocheckout.services.checkout_api.idempotency import IdempotencyCache, RecurringTokenStore
from pprocheckout.services.checkout_api.payment_data import build_payment_data, normalize_method
from pprocheckout.services.checkout_api.schemas import (
    PaymentCreateRequest,
    PaymentCreateResponse,
    PaymentStatusResponse,
)
from pprocheckout.services.checkout_api.status import categorize_status
from pprocheckout.services.gateway_client.client import PproClient

RECURRING_POLICIES = ("any", "ideal_only")

# Which authentication method, and which of its detail fields, carries the
# shopper-facing action for each PPRO method code.
AUTHENTICATION_LOOKUP: dict[str, tuple[str, str]] = {
    "BANCONTACTQR": ("SCAN_CODE", "codePayload"),
}
DEFAULT_AUTHENTICATION = ("REDIRECT", "requestUrl")


def generate_order_id() -> str:
    return f"ORDER-{int(time.time() * 1000)}-{secrets.token_hex(4).upper()}"


def find_authentication_detail(response: dict[str, Any], auth_type: str, field: str) -> str:
    """Return `details[field]` of the authentication method tagged `auth_type`.

    Raises `GatewayError` when PPRO did not offer that authentication method.
    """

    for entry in response.get("authenticationMethods") or []:
        if isinstance(entry, dict) and entry.get("type") == auth_type:
            value = (entry.get("details") or {}).get(field)
            if value:
                return value
    raise GatewayError(f"Malformed response from PPRO API: no {auth_type} {field}")


def uses_agreement(policy: str, ppro_method: str, recurring: bool) -> bool:
    """Whether a request goes to the agreement endpoint under `policy`."""

    if not recurring:
        return False
    if policy == "ideal_only":
        return ppro_method == "IDEAL"
    return True


class CheckoutService:
    """Handles create-payment and status requests for the HTTP layer."""

    def __init__(
        self,
        gateway: PproClient,
        idempotency: IdempotencyCache,
        recurring_tokens: RecurringTokenStore,
        return_url: str,
        recurring_policy: str = "any",
        service_name: str = "ppro-checkout",
    ) -> None:
        if recurring_policy not in RECURRING_POLICIES:
            raise ValueError(f"Unknown recurring policy: {recurring_policy}")
        self.gateway = gateway
        self.idempotency = idempotency
        self.recurring_tokens = recurring_tokens
        self.return_url = return_url
        self.recurring_policy = recurring_policy
        self.service_name = service_name

    @classmethod
    def from_settings(
        cls,
        config: CommonSettings,
        gateway: PproClient | None = None,
        idempotency_store: KeyedStore | None = None,
        token_store: KeyedStore | None = None,
    ) -> "CheckoutService":
        if idempotency_store is None:
            idempotency_store = build_store(config.idempotency_backend, config.redis_url, "idempotency:payment")
        if token_store is None:
            token_store = build_store(config.idempotency_backend, config.redis_url, "recurring:token")
        return cls(
            gateway=gateway or PproClient.from_settings(),
            idempotency=IdempotencyCache(idempotency_store, config.idempotency_ttl_seconds),
            recurring_tokens=RecurringTokenStore(token_store),
            return_url=config.return_url,
            recurring_policy=config.recurring_policy,
            service_name=config.service_name,
        )

    def _record_failure(self, reason: str) -> None:
        payment_failure_total.labels(service=self.service_name, reason=reason).inc()

    async def create_payment(
        self, req: PaymentCreateRequest, header_idempotency_key: str | None = None
    ) -> dict[str, Any]:
        """Create a charge (or recurring agreement) and return the client payload.

        A repeated idempotency key within its TTL returns the cached payload
        without calling PPRO.
        """

        if not req.method or not req.currency or not req.amount:
            self._record_failure("validation")
            raise InvalidRequestError("Missing required fields")

        idempotency_key = req.idempotency_key or header_idempotency_key
        if idempotency_key:
            cached = self.idempotency.check(idempotency_key)
            if cached is not None:
                logger.info("idempotency_hit key=%s", idempotency_key)
                idempotency_hits_total.labels(service=self.service_name).inc()
                return cached

        ppro_method = normalize_method(req.method)
        if ppro_method is None:
            self._record_failure("validation")
            raise InvalidRequestError("Invalid payment method")

        order_id = generate_order_id()
        order_id_ctx.set(order_id)
        agreement = uses_agreement(self.recurring_policy, ppro_method, req.recurring)
        payment_data = build_payment_data(
            ppro_method,
            req.currency,
            req.amount,
            order_id,
            recurring=agreement,
            return_url=self.return_url,
        )
        if payment_data is None:
            self._record_failure("validation")
            raise InvalidRequestError("Invalid payment method")

        state = CREATED
        try:
            if agreement:
                upstream = await self.gateway.create_agreement(payment_data, idempotency_key)
                charge_id = upstream.get("initialPaymentChargeId")
                order_ref = order_id
            else:
                upstream = await self.gateway.create_charge(payment_data, idempotency_key)
                charge_id = upstream.get("id")
                order_ref = (upstream.get("order") or {}).get("orderReferenceNumber") or order_id

            auth_type, field = AUTHENTICATION_LOOKUP.get(ppro_method, DEFAULT_AUTHENTICATION)
            detail = find_authentication_detail(upstream, auth_type, field)
        except GatewayError as exc:
            validate_transition(state, FAILED)
            logger.error("payment_create_failed method=%s state=%s error=%s", ppro_method, FAILED, exc.message)
            self._record_failure("gateway")
            raise

        next_state = QR_PENDING if auth_type == "SCAN_CODE" else REDIRECT_PENDING
        validate_transition(state, next_state)
        charge_id_ctx.set(charge_id or "")
        logger.info(
            "payment_created method=%s agreement=%s state=%s upstream_status=%s",
            ppro_method,
            agreement,
            next_state,
            upstream.get("status"),
        )

        response = PaymentCreateResponse(
            charge_id=charge_id,
            order_id=order_ref,
            redirect_url=detail if next_state == REDIRECT_PENDING else None,
            qr_code=detail if next_state == QR_PENDING else None,
            status=upstream.get("status"),
            method=upstream.get("paymentMethod"),
            amount=req.amount,
            currency=req.currency,
        )
        result = response.model_dump(by_alias=True, exclude_none=True)

        if idempotency_key:
            self.idempotency.store(idempotency_key, result)

        if agreement:
            instrument_id = upstream.get("instrumentId")
            if instrument_id:
                self.recurring_tokens.save(instrument_id, upstream.get("id"), req.method, req.currency)
            else:
                logger.warning("recurring_token_skipped reason=missing_instrument_id")

        return result

    def _return_url_for(self, order_id: str | None, status: str | None, charge_id: str) -> str:
        query = urlencode({"orderId": order_id or "", "status": status or "", "chargeId": charge_id})
        return f"{self.return_url}?{query}"

    async def get_status(self, charge_id: str, order_id: str | None = None) -> dict[str, Any]:
        """Fetch one charge from PPRO and map its status to a display category."""

        charge_id_ctx.set(charge_id)
        charge = await self.gateway.get_charge(charge_id)
        status = charge.get("status")
        category = categorize_status(status)
        status_checks_total.labels(service=self.service_name, category=category).inc()

        amount = charge.get("amount")
        if amount is None:
            authorizations = charge.get("authorizations")
            if isinstance(authorizations, list) and authorizations:
                amount = authorizations[0].get("amount")
            elif isinstance(authorizations, dict):
                amount = authorizations.get("amount")
        currency = charge.get("currency")
        if currency is None and isinstance(amount, dict):
            currency = amount.get("currency")

        order_id = order_id or (charge.get("order") or {}).get("orderReferenceNumber")
        logger.info("payment_status status=%s category=%s", status, category)

        response = PaymentStatusResponse(
            charge_id=charge_id,
            status=status,
            category=category,
            order_id=order_id,
            amount=amount,
            currency=currency,
            redirect_url=self._return_url_for(order_id, status, charge.get("id") or charge_id),
            method=charge.get("paymentMethod"),
        )
        return response.model_dump(by_alias=True)
