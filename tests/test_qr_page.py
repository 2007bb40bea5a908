"""QR payment page: countdown, polling and expiry under virtual time."""

import asyncio

from pprocheckout.common.state_machine import EXPIRED, FAILED, QR_PENDING, SUCCEEDED
from pprocheckout.services.browser.qr_page import QrPageParams, QrPaymentPage

PARAMS = QrPageParams(
    order_id="ORDER-1-ABCD",
    charge_id="charge_1",
    qr_data="BEP://1.ppro.test/charge_1",
    payment_method="bancontactqr",
    amount="11979",
    currency="EUR",
)


def _page(api, clock, params=PARAMS):
    return QrPaymentPage(api, params, clock=clock, polling_interval=5, expiry_seconds=300)


def test_initialize_renders_details_and_qr(scripted_api, clock):
    async def scenario():
        page = _page(scripted_api(["PENDING"]), clock)
        started = page.initialize()
        page.stop()
        return started, page

    started, page = asyncio.run(scenario())
    assert started
    assert page.title == "BANCONTACTQR Payment"
    assert page.amount_text == "€119.79"
    assert page.order_text == "ORDER-1-ABCD"
    assert page.qr_image.startswith("data:image/png;base64,")
    assert page.status_message == "Waiting for payment confirmation..."


def test_expires_after_300_seconds_without_success(scripted_api, clock):
    async def scenario():
        api = scripted_api(["PENDING"])
        page = _page(api, clock)
        page.initialize()

        await clock.advance(299)
        snapshot = (page.state, page.timer_text, len(api.status_calls))
        await clock.advance(1)
        polls_at_expiry = len(api.status_calls)
        await clock.advance(120)
        return page, api, snapshot, polls_at_expiry

    page, api, snapshot, polls_at_expiry = asyncio.run(scenario())
    assert snapshot == (QR_PENDING, "00:01", 59)
    assert page.state == EXPIRED
    assert page.timer_text == "EXPIRED"
    assert page.timer_expired
    assert page.status_message == "QR code has expired. Please start a new payment."
    assert not page.check_status_visible
    assert page.cancel_label == "Return to Checkout"
    assert polls_at_expiry == 60
    assert len(api.status_calls) == polls_at_expiry
    assert not page.polling.running and not page.countdown.running


def test_success_stops_timers_and_navigates_to_return_page(scripted_api, clock):
    async def scenario():
        api = scripted_api(["PENDING", "SUCCESSFUL"])
        page = _page(api, clock)
        page.initialize()
        await clock.advance(10)
        await clock.advance(60)
        return page, api

    page, api = asyncio.run(scenario())
    assert page.state == SUCCEEDED
    assert len(api.status_calls) == 2
    assert page.status_kind == "success"
    assert page.navigation.delay == 2.0
    assert page.navigation.url == (
        "/payment-return?orderId=ORDER-1-ABCD&chargeId=charge_1&status=success&method=bancontactqr"
    )
    assert not page.countdown.running


def test_failure_stops_polling_and_offers_manual_check(scripted_api, clock):
    async def scenario():
        api = scripted_api(["CANCELLED", "SUCCESSFUL"])
        page = _page(api, clock)
        page.initialize()
        await clock.advance(5)
        failed_state = page.state
        await clock.advance(30)
        calls_after_failure = len(api.status_calls)
        await page.check_status()
        return page, failed_state, calls_after_failure

    page, failed_state, calls_after_failure = asyncio.run(scenario())
    assert failed_state == FAILED
    assert calls_after_failure == 1
    assert page.state == SUCCEEDED
    assert page.check_status_visible


def test_polling_survives_network_errors(scripted_api, api_error, clock):
    async def scenario():
        api = scripted_api([api_error("Network error"), "PENDING", "CAPTURED"])
        page = _page(api, clock)
        page.initialize()
        await clock.advance(15)
        return page, api

    page, api = asyncio.run(scenario())
    assert len(api.status_calls) == 3
    assert page.state == SUCCEEDED


def test_missing_qr_data_starts_nothing(scripted_api, clock):
    params = QrPageParams(order_id="ORDER-1", charge_id="charge_1")
    page = _page(scripted_api(["PENDING"]), clock, params)

    assert page.initialize() is False
    assert page.status_message == "Invalid QR code data. Please try again."
    assert page.countdown is None and page.polling is None


def test_cancel_before_and_after_expiry(scripted_api, clock):
    async def scenario():
        page = _page(scripted_api(["PENDING"]), clock)
        page.initialize()
        declined = page.cancel(confirmed=False)
        still_polling = page.polling.running
        cancelled = page.cancel()
        stopped = not page.polling.running

        expired_page = _page(scripted_api(["PENDING"]), clock)
        expired_page.initialize()
        await clock.advance(300)
        back = expired_page.cancel()
        return declined, still_polling, cancelled, stopped, back

    declined, still_polling, cancelled, stopped, back = asyncio.run(scenario())
    assert declined is None
    assert still_polling and stopped
    assert cancelled.url == "/payment-return?orderId=ORDER-1-ABCD&status=cancelled&method=bancontactqr"
    assert back.url == "/"


def test_query_params_parse():
    params = QrPageParams.from_query({"orderId": "O", "chargeId": "C", "qrData": "Q", "paymentMethod": "bancontactqr"})

    assert params == QrPageParams(order_id="O", charge_id="C", qr_data="Q", payment_method="bancontactqr")
