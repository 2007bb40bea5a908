"""Startup-time helpers for safe config logging."""

from pydantic_settings import BaseSettings

from pprocheckout.common.logging import logger


SECRET_MARKERS = ("key", "secret", "password", "token")


def _masked(field: str, value: object) -> str:
    """Render one settings value, redacting secret-like fields."""

    if value is None:
        return "<unset>"
    text = str(value)
    if any(marker in field.lower() for marker in SECRET_MARKERS):
        return "<redacted>"
    return text


def log_startup_config(config: BaseSettings, fields: list[str]) -> None:
    """Log selected settings fields for quick troubleshooting."""

    summary = {"service": getattr(config, "service_name", "unknown")}
    for field in fields:
        summary[field.upper()] = _masked(field, getattr(config, field, None))
    logger.info("startup_config=%s", summary)
