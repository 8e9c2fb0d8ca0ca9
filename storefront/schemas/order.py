from __future__ import annotations

from decimal import Decimal
from typing import List

from pydantic import AliasChoices, Field, field_serializer

from storefront.domain.enums import PaymentMethod, ShippingMethod
from storefront.schemas.base import CamelModel
from storefront.schemas.cart import ShippingAddress


class OrderItemCreate(CamelModel):
    product_id: str
    quantity: int = Field(..., gt=0)
    price: Decimal = Field(..., ge=0)


class OrderCreate(CamelModel):
    """Payload de creación de orden que espera el backend del storefront."""

    items: List[OrderItemCreate] = Field(default_factory=list)
    shipping_address: ShippingAddress
    billing_address: ShippingAddress
    shipping_method: ShippingMethod
    payment_method: PaymentMethod | None = None
    payment_token: str | None = None
    currency: str = Field(..., min_length=3, max_length=3)
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    status: str = "pending"
    email: str

    @field_serializer("subtotal", "shipping", "tax", "total", when_used="json")
    def serialize_amount(self, value: Decimal) -> str:
        # Igual que toFixed(2) del frontend original.
        return f"{value:.2f}"


class OrderPlaced(CamelModel):
    order_id: str = Field(..., validation_alias=AliasChoices("orderId", "order_id", "id"))
    order_number: str | None = None


class BuyNowCompletion(CamelModel):
    intent_id: str | None = None
    order_id: str
    redirect_url: str = "/orders"
    message: str | None = None


class GatewayOrder(CamelModel):
    id: str
    currency: str
    amount: int


class GatewayPaymentConfirmation(CamelModel):
    gateway_order_id: str = Field(..., min_length=1)
    gateway_payment_id: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)
