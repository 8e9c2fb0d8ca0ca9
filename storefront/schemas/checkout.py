# storefront/schemas/checkout.py
from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import ConfigDict, EmailStr, Field, ValidationInfo, field_validator, model_validator

from storefront.domain.checkout_config import CheckoutConfig
from storefront.domain.enums import CheckoutStep, CheckoutVariant, PaymentMethod, ShippingMethod
from storefront.schemas.base import FrozenCamelModel
from storefront.schemas.cart import CartLine, ShippingAddress

ZIP_CODE_PATTERN = re.compile(r"^\d{5}(-\d{4})?$")
PHONE_DIGITS = 10

_REQUIRED_LABELS = {
    "first_name": "First name",
    "last_name": "Last name",
    "street_address": "Address",
    "city": "City",
    "state": "State",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BillingAddress(FrozenCamelModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    street_address: str = Field(..., min_length=1)
    street_address2: str | None = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., pattern=ZIP_CODE_PATTERN.pattern)
    country: str = "US"


class ShippingInput(FrozenCamelModel):
    """Datos del paso de envío, solo existe si pasó la validación."""

    model_config = ConfigDict(validate_default=True)

    email: EmailStr | None = None
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    street_address: str = ""
    street_address2: str | None = None
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "US"
    shipping_method: ShippingMethod | None = None
    billing_same_as_shipping: bool = True
    billing_address: BillingAddress | None = None

    @model_validator(mode="before")
    @classmethod
    def split_full_name(cls, data: Any) -> Any:
        # El formulario de buy-now envía un único "fullName".
        if not isinstance(data, dict):
            return data
        full_name = data.get("fullName", data.get("full_name"))
        if full_name is None or data.get("firstName") or data.get("first_name"):
            return data
        parts = str(full_name).split()
        first = parts[0] if parts else ""
        last = " ".join(parts[1:]) or first
        data = {k: v for k, v in data.items() if k not in ("fullName", "full_name")}
        data["firstName"] = first
        data["lastName"] = last
        return data

    @field_validator("email", mode="before")
    @classmethod
    def require_email(cls, value: Any) -> Any:
        if value is None or not str(value).strip():
            raise ValueError("Email is required")
        return str(value).strip()

    @field_validator("first_name", "last_name", "street_address", "city", "state")
    @classmethod
    def require_text(cls, value: str, info: ValidationInfo) -> str:
        value = value.strip()
        if not value:
            raise ValueError(f"{_REQUIRED_LABELS[info.field_name]} is required")
        return value

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Phone number is required")
        digits = re.sub(r"\D", "", value)
        if len(digits) != PHONE_DIGITS:
            raise ValueError(f"Phone number must be {PHONE_DIGITS} digits")
        return value.strip()

    @field_validator("zip_code")
    @classmethod
    def validate_zip_code(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("ZIP code is required")
        if not ZIP_CODE_PATTERN.match(value):
            raise ValueError("Invalid ZIP code format")
        return value

    @field_validator("shipping_method")
    @classmethod
    def require_shipping_method(cls, value: ShippingMethod | None) -> ShippingMethod:
        if value is None:
            raise ValueError("Please select a shipping method")
        return value

    @field_validator("billing_address")
    @classmethod
    def require_billing_address(cls, value: BillingAddress | None, info: ValidationInfo) -> BillingAddress | None:
        if value is None and info.data.get("billing_same_as_shipping") is False:
            raise ValueError("Billing address is required when it differs from shipping")
        return value

    @property
    def address(self) -> ShippingAddress:
        return ShippingAddress(
            first_name=self.first_name,
            last_name=self.last_name,
            street_address=self.street_address,
            street_address2=self.street_address2,
            city=self.city,
            state=self.state,
            zip_code=self.zip_code,
            country=self.country,
            phone=self.phone,
        )

    @property
    def billing(self) -> ShippingAddress:
        if self.billing_same_as_shipping or self.billing_address is None:
            return self.address
        return ShippingAddress(**self.billing_address.model_dump())


class PaymentInput(FrozenCamelModel):
    payment_method: PaymentMethod
    # Token emitido por la pasarela para pagos con tarjeta.
    payment_token: str | None = None


class OrderTotals(FrozenCamelModel):
    currency: str
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal


class CheckoutSession(FrozenCamelModel):
    """Estado transitorio del checkout; cada transición produce uno nuevo."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    variant: CheckoutVariant
    config: CheckoutConfig
    current_step: CheckoutStep = CheckoutStep.shipping
    lines: tuple[CartLine, ...] = ()
    intent_id: str | None = None
    intent_expires_at: datetime | None = None
    shipping: ShippingInput | None = None
    payment: PaymentInput | None = None
    submitting: bool = False
    gateway_order_id: str | None = None
    order_id: str | None = None
    order_number: str | None = None
    redirect_url: str | None = None
    confirmation_message: str | None = None
    last_error: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))

    @property
    def shipping_method(self) -> ShippingMethod:
        if self.shipping and self.shipping.shipping_method:
            return self.shipping.shipping_method
        return ShippingMethod.standard


class CheckoutSessionCreate(FrozenCamelModel):
    variant: CheckoutVariant = CheckoutVariant.cart
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    intent_id: str | None = None

    @model_validator(mode="after")
    def require_intent_for_buy_now(self) -> "CheckoutSessionCreate":
        if self.variant == CheckoutVariant.buy_now and not self.intent_id:
            raise ValueError("intentId is required for buy-now checkout")
        return self


class StepChange(FrozenCamelModel):
    step: CheckoutStep


class CheckoutSessionRead(FrozenCamelModel):
    """Vista del checkout para la página, con totales recién calculados."""

    id: str
    variant: CheckoutVariant
    currency: str
    current_step: CheckoutStep
    steps: tuple[CheckoutStep, ...]
    lines: tuple[CartLine, ...]
    totals: OrderTotals
    free_shipping_remaining: Decimal
    payment_methods: tuple[PaymentMethod, ...]
    intent_id: str | None = None
    intent_expires_at: datetime | None = None
    shipping: ShippingInput | None = None
    payment: PaymentInput | None = None
    submitting: bool = False
    ready_to_submit: bool = False
    gateway_order_id: str | None = None
    order_id: str | None = None
    order_number: str | None = None
    redirect_url: str | None = None
    confirmation_message: str | None = None
    last_error: str | None = None
