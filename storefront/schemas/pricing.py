from __future__ import annotations

from decimal import Decimal

from pydantic import Field

from storefront.domain.checkout_config import CheckoutConfig
from storefront.domain.enums import PaymentMethod, ShippingMethod
from storefront.schemas.base import CamelModel


class QuoteRequest(CamelModel):
    subtotal: Decimal = Field(..., ge=0)
    shipping_method: ShippingMethod = ShippingMethod.standard
    currency: str | None = Field(default=None, min_length=3, max_length=3)


class QuoteResponse(CamelModel):
    currency: str
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    free_shipping_remaining: Decimal


class CheckoutConfigRead(CamelModel):
    currency: str
    tax_rate: Decimal
    shipping_rates: dict[ShippingMethod, Decimal]
    free_threshold: Decimal
    payment_methods: tuple[PaymentMethod, ...]

    @classmethod
    def from_config(cls, config: CheckoutConfig) -> "CheckoutConfigRead":
        return cls.model_validate(config.model_dump())
