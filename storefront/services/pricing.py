from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

from storefront.core.config import settings
from storefront.domain.checkout_config import CheckoutConfig
from storefront.domain.enums import ShippingMethod
from storefront.schemas.checkout import OrderTotals
from storefront.services.exceptions import (
    DomainValidationError,
    InvalidShippingMethodError,
    UnsupportedCurrencyError,
)

CENT = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    """Round to cents, half-up (never banker's rounding)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _as_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() evita arrastrar el error binario de los float.
    return Decimal(str(value))


def _as_subtotal(value: Decimal | int | float | str) -> Decimal:
    subtotal = _as_decimal(value)
    if subtotal < 0:
        raise DomainValidationError("Subtotal must be greater than or equal to 0")
    return subtotal


def _as_method(method: ShippingMethod | str) -> ShippingMethod:
    try:
        return ShippingMethod(method)
    except ValueError as exc:
        raise InvalidShippingMethodError(method) from exc


def get_checkout_config(currency: str | None = None) -> CheckoutConfig:
    code = (currency or settings.DEFAULT_CURRENCY).upper()
    config = settings.CHECKOUT_CONFIGS.get(code)
    if config is None:
        raise UnsupportedCurrencyError(f"Unsupported currency: {code}")
    return config


def shipping_cost(
    subtotal: Decimal | int | float | str,
    method: ShippingMethod | str,
    config: CheckoutConfig,
) -> Decimal:
    # Misma base que calculate_totals: el umbral se compara contra centavos.
    subtotal = round_money(_as_subtotal(subtotal))
    method = _as_method(method)
    if method == ShippingMethod.standard and subtotal > config.free_threshold:
        return Decimal("0.00")
    return round_money(config.shipping_rates[method])


def calculate_tax(subtotal: Decimal | int | float | str, config: CheckoutConfig) -> Decimal:
    # Solo sobre el subtotal, nunca sobre el envío.
    return round_money(_as_subtotal(subtotal) * config.tax_rate)


def calculate_totals(
    subtotal: Decimal | int | float | str,
    method: ShippingMethod | str,
    config: CheckoutConfig,
) -> OrderTotals:
    subtotal = round_money(_as_subtotal(subtotal))
    shipping = shipping_cost(subtotal, method, config)
    tax = calculate_tax(subtotal, config)
    return OrderTotals(
        currency=config.currency,
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        total=subtotal + shipping + tax,
    )


def quote(
    subtotal: Decimal | int | float | str,
    method: ShippingMethod | str,
    currency: str | None = None,
) -> OrderTotals:
    return calculate_totals(subtotal, method, get_checkout_config(currency))


def free_shipping_remaining(subtotal: Decimal | int | float | str, config: CheckoutConfig) -> Decimal:
    """Amount still needed before standard shipping becomes free."""
    subtotal = round_money(_as_subtotal(subtotal))
    if subtotal > config.free_threshold:
        return Decimal("0.00")
    # El umbral es estricto: hay que superarlo por al menos un centavo.
    missing = config.free_threshold - subtotal + CENT
    return missing.quantize(CENT, rounding=ROUND_CEILING)
