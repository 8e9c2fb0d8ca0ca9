"""Application configuration with strict environment validation."""

from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from storefront.domain.checkout_config import DEFAULT_CHECKOUT_CONFIGS, CheckoutConfig


_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE if _ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # --- API metadata ---
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Storefront Checkout"
    LOG_LEVEL: str = "INFO"

    # --- Storefront REST backend ---
    STOREFRONT_API_URL: str = "http://127.0.0.1:5000"
    STOREFRONT_API_TIMEOUT_SECONDS: float = 15.0
    # Headers del navegador que se reenvian al backend (sesion / token).
    FORWARDED_HEADERS: list[str] = Field(
        default_factory=lambda: ["authorization", "cookie", "x-session-id"]
    )

    # --- Checkout rules ---
    DEFAULT_CURRENCY: str = "USD"
    CHECKOUT_CONFIGS: dict[str, CheckoutConfig] = Field(
        default_factory=lambda: dict(DEFAULT_CHECKOUT_CONFIGS)
    )
    PURCHASE_INTENT_TTL_MINUTES: int = 15
    PURCHASE_INTENT_MAX_QUANTITY: int = 10

    # --- Session store ---
    CHECKOUT_SESSION_TTL_SECONDS: int = 1800
    REDIS_URL: str | None = None

    # --- Metrics ---
    METRICS_ENABLED: bool = True
    METRICS_NAMESPACE: str = "storefront"
    METRICS_LATENCY_BUCKETS: list[float] = Field(default_factory=lambda: [0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0])

    @staticmethod
    def _split_list(value: str | list[str] | None) -> list[str]:
        if not value:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return [item for item in value if isinstance(item, str) and item.strip()]

    @staticmethod
    def _split_float_list(value: str | list[float] | None) -> list[float]:
        if value is None:
            return []
        items = [item.strip() for item in value.split(",") if item.strip()] if isinstance(value, str) else value
        floats: list[float] = []
        for item in items:
            try:
                floats.append(float(item))
            except (TypeError, ValueError):
                continue
        return floats

    @field_validator("FORWARDED_HEADERS", mode="before")
    @classmethod
    def validate_forwarded_headers(cls, value: str | list[str] | None) -> list[str]:
        return [item.lower() for item in cls._split_list(value)]

    @field_validator("METRICS_LATENCY_BUCKETS", mode="before")
    @classmethod
    def validate_metric_buckets(cls, value: str | list[float] | None) -> list[float]:
        floats = cls._split_float_list(value)
        return floats or [0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0]

    @field_validator("DEFAULT_CURRENCY")
    @classmethod
    def normalize_default_currency(cls, value: str) -> str:
        return value.upper()

    @field_validator("CHECKOUT_CONFIGS")
    @classmethod
    def index_configs_by_currency(cls, value: dict[str, CheckoutConfig]) -> dict[str, CheckoutConfig]:
        # La clave siempre es la moneda declarada en la propia config.
        return {config.currency: config for config in value.values()}

    @field_validator("STOREFRONT_API_TIMEOUT_SECONDS")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("STOREFRONT_API_TIMEOUT_SECONDS must be positive.")
        return value

    @field_validator("PURCHASE_INTENT_TTL_MINUTES", "PURCHASE_INTENT_MAX_QUANTITY", "CHECKOUT_SESSION_TTL_SECONDS")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Value must be positive.")
        return value

    @model_validator(mode="after")
    def ensure_default_currency_configured(self) -> "Settings":
        if self.DEFAULT_CURRENCY not in self.CHECKOUT_CONFIGS:
            raise ValueError(f"DEFAULT_CURRENCY {self.DEFAULT_CURRENCY} has no entry in CHECKOUT_CONFIGS.")
        return self

    @property
    def supported_currencies(self) -> list[str]:
        return sorted(self.CHECKOUT_CONFIGS)


settings = Settings()
