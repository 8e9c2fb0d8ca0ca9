# storefront/schemas/cart.py
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import AliasChoices, Field, computed_field, field_validator

from storefront.domain.enums import PurchaseIntentStatus
from storefront.schemas.base import CamelModel, FrozenCamelModel


class CartLine(FrozenCamelModel):
    line_id: str
    product_id: str
    name: str | None = None
    unit_price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)

    @computed_field
    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class Cart(FrozenCamelModel):
    # Las lineas se identifican por line_id, no por producto.
    lines: tuple[CartLine, ...] = ()

    @computed_field
    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))

    @computed_field
    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines


class ShippingAddress(FrozenCamelModel):
    first_name: str
    last_name: str
    street_address: str
    street_address2: str | None = None
    city: str
    state: str
    zip_code: str
    country: str = "US"
    phone: str | None = None


class PurchaseIntent(FrozenCamelModel):
    id: str
    product_id: str
    variant_id: str | None = None
    name: str | None = None
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0, validation_alias=AliasChoices("price", "unitPrice", "unit_price"))
    status: PurchaseIntentStatus = PurchaseIntentStatus.pending
    expires_at: datetime
    shipping_address: ShippingAddress | None = None
    email: str | None = None
    phone: str | None = None

    @field_validator("expires_at")
    @classmethod
    def ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @computed_field
    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def as_cart(self) -> Cart:
        """Una intención de compra es un carrito efímero de una sola línea."""
        return Cart(
            lines=(
                CartLine(
                    line_id=self.id,
                    product_id=self.product_id,
                    name=self.name,
                    unit_price=self.unit_price,
                    quantity=self.quantity,
                ),
            )
        )


class PurchaseIntentCreate(CamelModel):
    product_id: str = Field(..., min_length=1)
    variant_id: str | None = None
    quantity: int = Field(default=1, ge=1)
