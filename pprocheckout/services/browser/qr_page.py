"""QR payment page controller.

Shows the scan-to-pay code, counts down its validity and polls the charge
status until it resolves or the code expires. Both timers run as
`ScheduledTask`s and stop together.
"""

from dataclasses import dataclass
from typing import Mapping

from pprocheckout.common.config import settings
from pprocheckout.common.logging import logger
from pprocheckout.common.qr import render_qr_data_uri
from pprocheckout.common.scheduler import Clock, ScheduledTask
from pprocheckout.common.state_machine import (
    EXPIRED,
    FAILED,
    QR_PENDING,
    SUCCEEDED,
    TERMINAL_STATES,
    resolved_state,
    validate_transition,
)
from pprocheckout.services.browser.api import CheckoutApiClient, CheckoutApiError
from pprocheckout.services.browser.display import Navigation, format_amount, format_countdown
from pprocheckout.services.checkout_api.status import categorize_status

RETURN_PAGE_PATH = "/payment-return"
CHECKOUT_PATH = "/"
SUCCESS_REDIRECT_DELAY = 2.0
RETURN_TO_CHECKOUT = "Return to Checkout"
CANCEL_PAYMENT = "Cancel Payment"


@dataclass
class QrPageParams:
    order_id: str | None = None
    charge_id: str | None = None
    qr_data: str | None = None
    payment_method: str | None = None
    amount: str | None = None
    currency: str | None = None

    @classmethod
    def from_query(cls, query: Mapping[str, str]) -> "QrPageParams":
        return cls(
            order_id=query.get("orderId"),
            charge_id=query.get("chargeId"),
            qr_data=query.get("qrData"),
            payment_method=query.get("paymentMethod"),
            amount=query.get("amount"),
            currency=query.get("currency"),
        )


class QrPaymentPage:
    def __init__(
        self,
        api: CheckoutApiClient,
        params: QrPageParams,
        clock: Clock | None = None,
        polling_interval: float | None = None,
        expiry_seconds: float | None = None,
    ) -> None:
        self.api = api
        self.params = params
        self.clock = clock
        self.polling_interval = polling_interval or settings.qr_polling_interval_seconds
        self.expiry_seconds = expiry_seconds or settings.qr_expiry_seconds
        self.state = QR_PENDING

        self.title = "QR Payment"
        self.order_text = params.order_id or "-"
        self.method_text = params.payment_method or "-"
        self.amount_text = "-"
        self.qr_image: str | None = None
        self.status_message: str | None = None
        self.status_kind: str | None = None
        self.timer_visible = False
        self.timer_text = format_countdown(self.expiry_seconds)
        self.timer_expired = False
        self.check_status_visible = True
        self.cancel_label = CANCEL_PAYMENT
        self.navigation: Navigation | None = None

        self.countdown: ScheduledTask | None = None
        self.polling: ScheduledTask | None = None

    def _show(self, message: str, kind: str) -> None:
        self.status_message = message
        self.status_kind = kind

    def _resolve(self, new_state: str) -> None:
        if new_state == self.state:
            return
        validate_transition(self.state, new_state)
        logger.info("qr_page_state from=%s to=%s", self.state, new_state)
        self.state = new_state

    def initialize(self) -> bool:
        """Render the page from query params and start timers; False if there is no QR payload."""

        params = self.params
        if params.amount and params.currency:
            try:
                self.amount_text = format_amount(int(params.amount), params.currency)
            except ValueError:
                self.amount_text = "-"
        if params.payment_method:
            self.title = f"{params.payment_method.upper()} Payment"

        if not params.qr_data:
            self._show("Invalid QR code data. Please try again.", "error")
            return False
        try:
            self.qr_image = render_qr_data_uri(params.qr_data)
        except ValueError as exc:
            logger.error("qr_render_failed error=%s", exc)
            self._show("Failed to generate QR code", "error")
            return False

        self.start()
        return True

    def start(self) -> None:
        self.timer_visible = True
        self.countdown = ScheduledTask(
            self._tick,
            1.0,
            duration=self.expiry_seconds,
            on_expire=self._expire,
            clock=self.clock,
            name="qr-countdown",
        )
        self.polling = ScheduledTask(self.poll, self.polling_interval, clock=self.clock, name="qr-status-poll")
        self.countdown.start()
        self.polling.start()
        self._show("Waiting for payment confirmation...", "pending")

    def stop(self) -> None:
        if self.polling is not None:
            self.polling.stop()
        if self.countdown is not None:
            self.countdown.stop()

    @property
    def remaining_seconds(self) -> float:
        if self.countdown is None:
            return float(self.expiry_seconds)
        return self.countdown.remaining()

    async def _tick(self) -> None:
        self.timer_text = format_countdown(self.remaining_seconds)

    async def _expire(self) -> None:
        if self.state in TERMINAL_STATES:
            return
        self.stop()
        self._resolve(EXPIRED)
        self.timer_expired = True
        self.timer_text = "EXPIRED"
        self._show("QR code has expired. Please start a new payment.", "error")
        self.check_status_visible = False
        self.cancel_label = RETURN_TO_CHECKOUT

    async def poll(self) -> None:
        """Fetch the charge once and act on success or failure; other states keep waiting."""

        if not self.params.charge_id or self.state in TERMINAL_STATES:
            return
        try:
            data = await self.api.get_status(self.params.charge_id)
        except CheckoutApiError as exc:
            logger.warning("qr_poll_failed charge_id=%s error=%s", self.params.charge_id, exc)
            return

        resolved = resolved_state(categorize_status(data.get("status")))
        if resolved == SUCCEEDED:
            self.stop()
            self._resolve(SUCCEEDED)
            self._show("✓ Payment successful! Redirecting...", "success")
            self.navigation = Navigation(
                RETURN_PAGE_PATH,
                {
                    "orderId": self.params.order_id,
                    "chargeId": self.params.charge_id,
                    "status": "success",
                    "method": self.params.payment_method,
                },
                delay=SUCCESS_REDIRECT_DELAY,
            )
        elif resolved == FAILED:
            self.stop()
            self._resolve(FAILED)
            self._show("✗ Payment failed. Please try again.", "error")
            self.check_status_visible = True

    async def check_status(self) -> None:
        """Manual "Check Status" button."""

        await self.poll()

    def cancel(self, confirmed: bool = True) -> Navigation | None:
        """Cancel button; returns to checkout once expired, otherwise reports a cancelled payment."""

        if self.cancel_label == RETURN_TO_CHECKOUT:
            self.navigation = Navigation(CHECKOUT_PATH)
        elif confirmed:
            self.stop()
            self.navigation = Navigation(
                RETURN_PAGE_PATH,
                {
                    "orderId": self.params.order_id,
                    "status": "cancelled",
                    "method": self.params.payment_method,
                },
            )
        else:
            return None
        return self.navigation

    async def wait(self) -> None:
        """Wait for both timers to finish."""

        for task in (self.countdown, self.polling):
            if task is not None:
                await task.wait()
