"""Exceptions raised by the checkout flow and rendered by the HTTP layer."""


class CheckoutError(Exception):
    """Base class for failures that end the current request."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestError(CheckoutError):
    """Client sent missing fields or an unsupported payment method."""

    status_code = 400


class GatewayError(CheckoutError):
    """PPRO returned a non-2xx status, a malformed body, or could not be reached."""

    status_code = 500

    def __init__(self, message: str, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status
