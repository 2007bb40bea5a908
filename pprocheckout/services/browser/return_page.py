"""Payment return page controller.

The page PPRO sends the shopper back to. Explicit outcomes in the query are
shown as-is; missing or pending ones are checked through the API, with one
automatic re-check for a pending answer.
"""

from dataclasses import dataclass
from typing import Mapping

from pprocheckout.common.logging import logger
from pprocheckout.common.scheduler import Clock, ScheduledTask
from pprocheckout.services.browser.api import CheckoutApiClient, CheckoutApiError
from pprocheckout.services.checkout_api.status import FAILED, PENDING, SUCCESS, UNKNOWN, describe_status

INITIAL_CHECK_DELAY = 1.0
PENDING_RETRY_DELAY = 5.0
MANUAL_RETRY_DELAY = 1.0
NO_CHARGE_ID = "Unable to verify payment status - no charge ID available"

ICONS = {SUCCESS: "✓", PENDING: "⏳", FAILED: "✗", UNKNOWN: "?"}


@dataclass
class ReturnParams:
    status: str | None = None
    charge_id: str | None = None
    method: str | None = None

    @classmethod
    def from_query(cls, query: Mapping[str, str], session: Mapping[str, str] | None = None) -> "ReturnParams":
        session = session or {}
        return cls(
            status=query.get("status"),
            charge_id=query.get("chargeId") or session.get("pendingChargeId"),
            method=query.get("method"),
        )


class ReturnPage:
    def __init__(self, api: CheckoutApiClient, params: ReturnParams, clock: Clock | None = None) -> None:
        self.api = api
        self.params = params
        self.clock = clock
        self.icon = ""
        self.icon_kind = "loading"
        self.title = "Checking Status..."
        self.message = "Please wait..."
        self.details_visible = False
        self.charge_text = "-"
        self.method_text = "-"
        self.status_text = "-"
        self.error_details: str | None = None
        self.info_visible = False
        self.retry_visible = False
        self.auto_retry_used = False
        self._pending: ScheduledTask | None = None

    def _schedule(self, delay: float, name: str) -> None:
        if self._pending is not None:
            self._pending.stop()
        self._pending = ScheduledTask.once(self.check_status, delay, clock=self.clock, name=name)
        self._pending.start()

    def initialize(self) -> None:
        """Show an explicit outcome immediately, otherwise check through the API shortly."""

        lowered = (self.params.status or "").lower()
        logger.info("payment_return_loaded status=%s", lowered)
        if not lowered or "pending" in lowered or "processing" in lowered:
            self._schedule(INITIAL_CHECK_DELAY, "return-initial-check")
        else:
            self.render(self.params.status, self.params.charge_id, self.params.method)

    def render(
        self,
        status: str | None,
        charge_id: str | None = None,
        method: str | None = None,
        error: str | None = None,
    ) -> None:
        outcome = describe_status(status)
        self.details_visible = True
        self.charge_text = charge_id or self.params.charge_id or "-"
        self.method_text = method or "-"
        self.status_text = status or "-"
        self.icon = ICONS[outcome.category]
        self.icon_kind = outcome.category
        self.title = outcome.title
        self.message = outcome.message
        self.info_visible = outcome.category == SUCCESS
        self.retry_visible = outcome.category in (PENDING, UNKNOWN)
        self.error_details = error

        if outcome.category == PENDING and not self.auto_retry_used:
            self.auto_retry_used = True
            self._schedule(PENDING_RETRY_DELAY, "return-pending-retry")

    async def check_status(self) -> None:
        charge_id = self.params.charge_id
        if not charge_id:
            self.render(self.params.status or "Unknown", method=self.params.method, error=NO_CHARGE_ID)
            return
        try:
            data = await self.api.get_status(charge_id)
        except CheckoutApiError as exc:
            logger.warning("return_status_failed charge_id=%s error=%s", charge_id, exc)
            self.render("Error", charge_id, self.params.method, error=str(exc) or "Failed to verify payment status")
            return
        self.render(data.get("status"), data.get("chargeId"), data.get("method"))

    def retry(self) -> None:
        """Retry button: show the loading state and check again shortly."""

        self.icon = ""
        self.icon_kind = "loading"
        self.title = "Checking Status..."
        self.message = "Please wait..."
        self.retry_visible = False
        self._schedule(MANUAL_RETRY_DELAY, "return-manual-retry")

    def stop(self) -> None:
        if self._pending is not None:
            self._pending.stop()

    async def wait(self) -> None:
        """Wait until no check is scheduled any more."""

        while self._pending is not None:
            pending = self._pending
            await pending.wait()
            if self._pending is pending:
                break
