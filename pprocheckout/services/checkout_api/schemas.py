"""API request/response schemas for the checkout endpoints.

Field names are snake_case in Python and camelCase on the wire, matching the
browser controllers and the PPRO JSON style.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaymentCreateRequest(CamelModel):
    """Payload accepted by `POST /api/payments/create`.

    Presence checks happen in the service so missing fields produce a 400
    `{"error": ...}` body rather than a schema error.
    """

    method: str | None = None
    currency: str | None = None
    amount: int | None = None
    recurring: bool = False
    idempotency_key: str | None = None


class PaymentCreateResponse(CamelModel):
    """Create-payment result; carries either `redirect_url` or `qr_code`."""

    success: bool = True
    charge_id: str | None = None
    order_id: str
    redirect_url: str | None = None
    qr_code: str | None = None
    status: str | None = None
    method: str | None = None
    amount: int
    currency: str


class PaymentStatusResponse(CamelModel):
    success: bool = True
    charge_id: str
    status: str | None = None
    category: str
    order_id: str | None = None
    amount: Any = None
    currency: str | None = None
    redirect_url: str
    method: str | None = None
