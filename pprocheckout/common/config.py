"""Central environment-driven settings for the checkout backend and clients.

The process loads this once at startup. Behavior is controlled by environment
variables (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "ppro-checkout"
    log_level: str = "INFO"
    port: int = 3000
    ppro_merchant_id: str
    ppro_api_key: str
    ppro_base_url: str = "https://api.sandbox.eu.ppro.com"
    # Unset means no client-side timeout on upstream calls.
    ppro_timeout_seconds: float | None = None
    return_url: str = "http://localhost:3000/payment-return"
    api_base_url: str = "http://localhost:3000/api"
    idempotency_ttl_seconds: int = 86400
    idempotency_sweep_seconds: float = 60.0
    idempotency_backend: str = "memory"
    redis_url: str = "redis://redis:6379/0"
    recurring_policy: str = "any"
    qr_expiry_seconds: int = 300
    qr_polling_interval_seconds: float = 5.0
    cors_origins: str = "*"
    tracing_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
