"""Per-method request bodies for the PPRO charge and agreement endpoints.

Each supported method needs different consumer, instrument and authentication
blocks. The sandbox fixtures below (consumer names, bank codes, mandate ids)
are what the PPRO sandbox accepts for this demo.
"""

from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

METHOD_CODES: dict[str, str] = {
    "blik": "BLIK",
    "ideal": "IDEAL",
    "bancontact": "BANCONTACT",
    "bancontactqr": "BANCONTACTQR",
}

CONSUMER_NAME = "John Smith"
IDEAL_TEST_BANK_CODE = "TESTNL2A"
IDEAL_DEBIT_MANDATE_ID = "YOUR_GENERATED_MANDATEID"
BLIK_CLIENT_IP = "11.22.22.33"
BLIK_CLIENT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/135.0.0.0 Safari/537.36"
)
BANCONTACT_INTENT_URI = "webshop://paymentresponse?123"
SCAN_CODE_VALIDITY = timedelta(minutes=5)


def normalize_method(method: str | None) -> str | None:
    """Map a UI method code (any case) to its PPRO code, or None if unsupported."""

    if not method:
        return None
    return METHOD_CODES.get(method.lower())


def _redirect_setting(return_url: str, order_id: str, method: str) -> dict[str, Any]:
    query = urlencode({"orderId": order_id, "method": method})
    return {"type": "REDIRECT", "settings": {"returnUrl": f"{return_url}?{query}"}}


def _iso_utc(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_payment_data(
    method: str,
    currency: str,
    amount: int,
    order_id: str,
    recurring: bool = False,
    return_url: str = "",
    now: datetime | None = None,
) -> dict[str, Any] | None:
    """Build the upstream body for `method`; returns None for unknown methods.

    With `recurring` set, IDEAL yields a payment-agreement body carrying an
    initial charge instead of a plain charge body. Other methods ignore it.
    """

    redirect = _redirect_setting(return_url, order_id, method)
    base = {
        "paymentMethod": method,
        "amount": {"value": amount, "currency": currency},
        "order": {"orderReferenceNumber": order_id},
    }

    if method == "IDEAL":
        if recurring:
            return {
                "paymentMethod": method,
                "consumer": {"name": CONSUMER_NAME, "country": "NL"},
                "instrument": {
                    "type": "BANK_ACCOUNT",
                    "details": {"debitMandateId": IDEAL_DEBIT_MANDATE_ID},
                },
                "authenticationSettings": [redirect],
                "initialPaymentCharge": {"amount": {"value": amount, "currency": currency}},
            }
        return {
            **base,
            "consumer": {"country": "NL"},
            "instrument": {"type": "BANK_ACCOUNT", "details": {"bankCode": IDEAL_TEST_BANK_CODE}},
            "authenticationSettings": [redirect],
        }

    if method == "BLIK":
        return {
            **base,
            "consumer": {
                "name": CONSUMER_NAME,
                "country": "PL",
                "client": {"ip": BLIK_CLIENT_IP, "userAgent": BLIK_CLIENT_USER_AGENT},
            },
            "authenticationSettings": [redirect, {"type": "MULTI_FACTOR"}],
        }

    if method in ("BANCONTACT", "BANCONTACTQR"):
        scan_by = (now or datetime.now(timezone.utc)) + SCAN_CODE_VALIDITY
        return {
            **base,
            # PPRO knows a single BANCONTACT method; QR vs redirect is chosen from its auth methods.
            "paymentMethod": "BANCONTACT",
            "consumer": {"country": "BE"},
            "authenticationSettings": [
                redirect,
                {"type": "SCAN_CODE", "settings": {"scanBy": _iso_utc(scan_by)}},
                {"type": "APP_INTENT", "settings": {"mobileIntentUri": BANCONTACT_INTENT_URI}},
            ],
        }

    return None
