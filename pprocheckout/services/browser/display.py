"""Formatting helpers shared by the page controllers."""

from dataclasses import dataclass, field
from urllib.parse import urlencode

CURRENCY_SYMBOLS = {"EUR": "€", "PLN": "zł"}


def format_amount(amount: int, currency: str) -> str:
    """Render minor units as e.g. `€119.79`; unknown currencies use their code."""

    symbol = CURRENCY_SYMBOLS.get(currency, currency)
    return f"{symbol}{amount / 100:.2f}"


def format_countdown(seconds: float) -> str:
    whole = max(0, int(seconds))
    return f"{whole // 60:02d}:{whole % 60:02d}"


@dataclass
class Navigation:
    """A page change the browser should perform, optionally after `delay` seconds."""

    path: str
    params: dict[str, str] = field(default_factory=dict)
    delay: float = 0.0

    @property
    def url(self) -> str:
        query = {key: value for key, value in self.params.items() if value is not None}
        return f"{self.path}?{urlencode(query)}" if query else self.path
