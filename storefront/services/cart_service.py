from __future__ import annotations

import uuid
from decimal import Decimal

from storefront.schemas.cart import Cart, CartLine
from storefront.services.exceptions import DomainValidationError, ResourceNotFoundError


def _ensure_quantity(quantity: int) -> None:
    if quantity < 1:
        raise DomainValidationError("Quantity must be at least 1")


def _get_line(cart: Cart, line_id: str) -> CartLine:
    for line in cart.lines:
        if line.line_id == line_id:
            return line
    raise ResourceNotFoundError("Cart line not found")


def add_line(
    cart: Cart,
    *,
    product_id: str,
    unit_price: Decimal,
    quantity: int = 1,
    name: str | None = None,
    line_id: str | None = None,
) -> Cart:
    _ensure_quantity(quantity)
    line = CartLine(
        line_id=line_id or str(uuid.uuid4()),
        product_id=product_id,
        name=name,
        unit_price=unit_price,
        quantity=quantity,
    )
    return cart.model_copy(update={"lines": cart.lines + (line,)})


def update_quantity(cart: Cart, line_id: str, quantity: int) -> Cart:
    _ensure_quantity(quantity)
    target = _get_line(cart, line_id)
    updated = target.model_copy(update={"quantity": quantity})
    lines = tuple(updated if line.line_id == line_id else line for line in cart.lines)
    return cart.model_copy(update={"lines": lines})


def remove_line(cart: Cart, line_id: str) -> Cart:
    _get_line(cart, line_id)
    lines = tuple(line for line in cart.lines if line.line_id != line_id)
    return cart.model_copy(update={"lines": lines})


def clear(cart: Cart) -> Cart:
    return cart.model_copy(update={"lines": ()})
