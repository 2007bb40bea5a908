"""Checkout page controller: method/currency selection and payment start.

Holds the state the page renders from and returns `Navigation` objects instead
of touching a DOM.
"""

import secrets
import string
import time
from dataclasses import dataclass

from pprocheckout.common.logging import logger
from pprocheckout.common.scheduler import Clock, ScheduledTask
from pprocheckout.services.browser.api import CheckoutApiClient, CheckoutApiError
from pprocheckout.services.browser.display import Navigation, format_amount
from pprocheckout.services.checkout_api.status import FAILED, PENDING, SUCCESS, categorize_status

ORDER_AMOUNT = 11979
CURRENCIES = ("EUR", "PLN")
# Methods without an entry are offered for every currency.
METHOD_CURRENCIES: dict[str, str] = {
    "blik": "PLN",
    "ideal": "EUR",
    "bancontact": "EUR",
    "bancontactqr": "EUR",
}
RECURRING_METHODS = frozenset({"ideal"})
QR_PAGE_PATH = "/qr-payment"
REDIRECT_DELAY_SECONDS = 1.0
STATUS_RECHECK_SECONDS = 2.0
CHARGE_ID_PLACEHOLDER = "{{chargeId}}"

_BASE36 = string.digits + string.ascii_lowercase


def generate_idempotency_key() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"{int(time.time() * 1000)}-{suffix}"


@dataclass
class StatusBanner:
    message: str
    kind: str


class CheckoutPage:
    """State of the checkout form and the actions wired to its controls."""

    def __init__(self, api: CheckoutApiClient, clock: Clock | None = None, amount: int = ORDER_AMOUNT) -> None:
        self.api = api
        self.clock = clock
        self.amount = amount
        self.selected_method: str | None = None
        self.selected_currency = "EUR"
        self.recurring_enabled = False
        self.loading = False
        self.error: str | None = None
        self.status: StatusBanner | None = None
        self.current_charge_id: str | None = None
        # Survives the redirect round-trip, like browser session storage.
        self.session: dict[str, str] = {}
        self._recheck: ScheduledTask | None = None

    def is_available(self, method: str) -> bool:
        allowed = METHOD_CURRENCIES.get(method)
        return allowed is None or allowed == self.selected_currency

    @property
    def available_methods(self) -> list[str]:
        return [method for method in METHOD_CURRENCIES if self.is_available(method)]

    @property
    def recurring_visible(self) -> bool:
        return self.selected_method in RECURRING_METHODS

    @property
    def pay_button_enabled(self) -> bool:
        return self.selected_method is not None and not self.loading

    @property
    def pay_button_label(self) -> str:
        if self.selected_method is None:
            return "Select a payment method"
        return f"Pay {format_amount(self.amount, self.selected_currency)}"

    def select_currency(self, currency: str) -> None:
        if currency not in CURRENCIES:
            raise ValueError(f"Unsupported currency: {currency}")
        self.selected_currency = currency
        if self.selected_method is not None and not self.is_available(self.selected_method):
            self.selected_method = None
            self.recurring_enabled = False

    def select_method(self, method: str) -> None:
        if method not in METHOD_CURRENCIES:
            raise ValueError(f"Unsupported payment method: {method}")
        if not self.is_available(method):
            raise ValueError(f"{method} is not available for {self.selected_currency}")
        self.selected_method = method
        if not self.recurring_visible:
            self.recurring_enabled = False

    def set_recurring(self, enabled: bool) -> None:
        self.recurring_enabled = enabled and self.recurring_visible

    async def pay(self) -> Navigation | None:
        """Create the payment and return where the browser should go next.

        Returns None and sets `error` when the payment could not be started.
        """

        self.error = None
        self.status = None
        if self.selected_method is None:
            self.error = "Please select a payment method"
            return None

        self.loading = True
        idempotency_key = generate_idempotency_key()
        payload = {
            "method": self.selected_method,
            "currency": self.selected_currency,
            "amount": self.amount,
            "recurring": self.recurring_enabled,
            "idempotencyKey": idempotency_key,
        }
        try:
            data = await self.api.create_payment(payload, idempotency_key)
        except CheckoutApiError as exc:
            logger.warning("checkout_pay_failed error=%s", exc)
            self.error = str(exc) or "Payment failed. Please try again."
            self.loading = False
            return None

        self.current_charge_id = data.get("chargeId")
        if self.current_charge_id:
            self.session["pendingChargeId"] = self.current_charge_id
        self.session["idempotencyKey"] = idempotency_key

        if data.get("qrCode"):
            self.status = StatusBanner("Opening QR code...", "pending")
            return Navigation(
                QR_PAGE_PATH,
                {
                    "orderId": data.get("orderId"),
                    "chargeId": data.get("chargeId"),
                    "qrData": data["qrCode"],
                    "paymentMethod": self.selected_method,
                    "amount": str(self.amount),
                    "currency": self.selected_currency,
                },
            )

        redirect_url = data.get("redirectUrl")
        if redirect_url:
            if CHARGE_ID_PLACEHOLDER in redirect_url and self.current_charge_id:
                redirect_url = redirect_url.replace(CHARGE_ID_PLACEHOLDER, self.current_charge_id)
            self.status = StatusBanner("Redirecting to payment page...", "pending")
            return Navigation(redirect_url, delay=REDIRECT_DELAY_SECONDS)

        self.error = "No redirect URL received"
        self.loading = False
        return None

    async def verify_return(self, status_param: str | None) -> None:
        """After coming back from a redirect, check the pending charge once.

        A pending answer schedules a single re-check.
        """

        charge_id = self.session.get("pendingChargeId")
        if not charge_id or not status_param:
            return
        self.status = StatusBanner("Verifying payment...", "pending")
        try:
            await self._show_charge_status(charge_id, allow_recheck=True)
        except CheckoutApiError as exc:
            logger.warning("checkout_verify_failed charge_id=%s error=%s", charge_id, exc)
            self.error = "Failed to verify payment status"
            return
        self.session.pop("pendingChargeId", None)
        self.session.pop("idempotencyKey", None)

    async def _show_charge_status(self, charge_id: str, allow_recheck: bool) -> None:
        data = await self.api.get_status(charge_id)
        status = data.get("status") or ""
        category = categorize_status(status)
        if category == SUCCESS:
            self.status = StatusBanner("✓ Payment successful! Thank you for your purchase.", "success")
        elif category == PENDING:
            self.status = StatusBanner("⏳ Payment is being processed...", "pending")
            if allow_recheck:
                self._recheck = ScheduledTask.once(
                    lambda: self._recheck_status(charge_id),
                    STATUS_RECHECK_SECONDS,
                    clock=self.clock,
                    name="checkout-status-recheck",
                )
                self._recheck.start()
        elif category == FAILED:
            self.status = StatusBanner("✗ Payment failed. Please try again.", "failed")
        else:
            self.status = StatusBanner(f"Payment status: {status}", "pending")

    async def _recheck_status(self, charge_id: str) -> None:
        try:
            await self._show_charge_status(charge_id, allow_recheck=False)
        except CheckoutApiError as exc:
            logger.warning("checkout_recheck_failed charge_id=%s error=%s", charge_id, exc)
            self.error = "Failed to verify payment status"

    async def wait_for_recheck(self) -> None:
        if self._recheck is not None:
            await self._recheck.wait()
