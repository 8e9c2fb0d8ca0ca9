from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from storefront.domain.enums import PaymentMethod, ShippingMethod


class CheckoutConfig(BaseModel):
    """Business rules of one checkout currency.

    Every pricing and validation rule that differs between storefront variants
    lives here, so call sites never hard-code rates or thresholds.
    """

    model_config = ConfigDict(frozen=True)

    currency: str = Field(..., min_length=3, max_length=3)
    tax_rate: Decimal = Field(..., ge=0, lt=1)
    shipping_rates: dict[ShippingMethod, Decimal]
    free_threshold: Decimal = Field(..., ge=0)
    payment_methods: tuple[PaymentMethod, ...]

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def ensure_complete_rates(self) -> "CheckoutConfig":
        missing = [method.value for method in ShippingMethod if method not in self.shipping_rates]
        if missing:
            raise ValueError(f"Missing shipping rates for: {', '.join(missing)}")
        if any(rate < 0 for rate in self.shipping_rates.values()):
            raise ValueError("Shipping rates must be non-negative")
        if not self.payment_methods:
            raise ValueError("At least one payment method is required")
        return self


USD_CHECKOUT = CheckoutConfig(
    currency="USD",
    tax_rate=Decimal("0.08"),
    shipping_rates={
        ShippingMethod.standard: Decimal("9.99"),
        ShippingMethod.express: Decimal("19.99"),
        ShippingMethod.overnight: Decimal("29.99"),
    },
    free_threshold=Decimal("50.00"),
    payment_methods=(PaymentMethod.card, PaymentMethod.online),
)

# Montos en unidades menores (paise), 18% GST.
INR_CHECKOUT = CheckoutConfig(
    currency="INR",
    tax_rate=Decimal("0.18"),
    shipping_rates={
        ShippingMethod.standard: Decimal("800"),
        ShippingMethod.express: Decimal("1500"),
        ShippingMethod.overnight: Decimal("3000"),
    },
    free_threshold=Decimal("4000"),
    payment_methods=(PaymentMethod.online, PaymentMethod.cod),
)

DEFAULT_CHECKOUT_CONFIGS: dict[str, CheckoutConfig] = {
    USD_CHECKOUT.currency: USD_CHECKOUT,
    INR_CHECKOUT.currency: INR_CHECKOUT,
}
