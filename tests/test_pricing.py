from decimal import Decimal

import pytest

from storefront.domain.checkout_config import INR_CHECKOUT, USD_CHECKOUT
from storefront.domain.enums import ShippingMethod
from storefront.services import pricing
from storefront.services.exceptions import (
    DomainValidationError,
    InvalidShippingMethodError,
    UnsupportedCurrencyError,
)


@pytest.mark.parametrize(
    "subtotal,method,expected",
    [
        ("40.00", ShippingMethod.standard, ("9.99", "3.20", "53.19")),
        ("60.00", ShippingMethod.standard, ("0.00", "4.80", "64.80")),
        ("40.00", ShippingMethod.express, ("19.99", "3.20", "63.19")),
        ("40.00", ShippingMethod.overnight, ("29.99", "3.20", "73.19")),
    ],
)
def test_usd_totals(subtotal, method, expected):
    totals = pricing.calculate_totals(Decimal(subtotal), method, USD_CHECKOUT)
    shipping, tax, total = (Decimal(value) for value in expected)
    assert totals.currency == "USD"
    assert totals.subtotal == Decimal(subtotal)
    assert totals.shipping == shipping
    assert totals.tax == tax
    assert totals.total == total


def test_inr_buy_now_totals_below_threshold():
    totals = pricing.calculate_totals(3000, "standard", INR_CHECKOUT)
    assert totals.shipping == Decimal("800")
    assert totals.tax == Decimal("540")
    assert totals.total == Decimal("4340")


def test_free_threshold_is_strict():
    assert pricing.shipping_cost(Decimal("50.00"), ShippingMethod.standard, USD_CHECKOUT) == Decimal("9.99")
    assert pricing.shipping_cost(Decimal("50.01"), ShippingMethod.standard, USD_CHECKOUT) == Decimal("0")
    assert pricing.shipping_cost(4000, ShippingMethod.standard, INR_CHECKOUT) == Decimal("800")
    assert pricing.shipping_cost(4001, ShippingMethod.standard, INR_CHECKOUT) == Decimal("0")


def test_threshold_compares_the_rounded_subtotal():
    # 50.004 se cobra como 50.00, así que no alcanza el envío gratis.
    totals = pricing.calculate_totals(Decimal("50.004"), ShippingMethod.standard, USD_CHECKOUT)
    assert pricing.shipping_cost(Decimal("50.004"), ShippingMethod.standard, USD_CHECKOUT) == Decimal("9.99")
    assert totals.shipping == Decimal("9.99")
    assert pricing.free_shipping_remaining(Decimal("50.004"), USD_CHECKOUT) == Decimal("0.01")


def test_express_and_overnight_never_free():
    assert pricing.shipping_cost(Decimal("500"), ShippingMethod.express, USD_CHECKOUT) == Decimal("19.99")
    assert pricing.shipping_cost(Decimal("500"), ShippingMethod.overnight, USD_CHECKOUT) == Decimal("29.99")


def test_tax_is_never_charged_on_shipping():
    standard = pricing.calculate_totals(Decimal("40.00"), ShippingMethod.standard, USD_CHECKOUT)
    overnight = pricing.calculate_totals(Decimal("40.00"), ShippingMethod.overnight, USD_CHECKOUT)
    assert standard.tax == overnight.tax == Decimal("3.20")
    assert overnight.total - standard.total == Decimal("20.00")


def test_total_is_sum_of_rounded_components():
    # El subtotal se redondea antes de calcular el impuesto.
    totals = pricing.calculate_totals(Decimal("10.3125"), ShippingMethod.standard, USD_CHECKOUT)
    assert totals.subtotal == Decimal("10.31")
    assert totals.tax == Decimal("0.82")
    assert totals.total == totals.subtotal + totals.shipping + totals.tax


def test_round_money_is_half_up():
    assert pricing.round_money(Decimal("0.825")) == Decimal("0.83")
    assert pricing.round_money(Decimal("0.835")) == Decimal("0.84")
    assert pricing.round_money(Decimal("2.675")) == Decimal("2.68")
    # 0.08 * 10.3125 = 0.825 -> 0.83, nunca 0.82.
    assert pricing.calculate_tax(Decimal("10.3125"), USD_CHECKOUT) == Decimal("0.83")


def test_float_input_does_not_leak_binary_error():
    totals = pricing.calculate_totals(19.99 * 2, ShippingMethod.standard, USD_CHECKOUT)
    assert totals.subtotal == Decimal("39.98")
    assert totals.total == Decimal("53.17")


def test_zero_subtotal_is_legal():
    totals = pricing.calculate_totals(0, ShippingMethod.standard, USD_CHECKOUT)
    assert totals.shipping == Decimal("9.99")
    assert totals.tax == Decimal("0.00")
    assert totals.total == Decimal("9.99")


def test_negative_subtotal_is_rejected():
    with pytest.raises(DomainValidationError):
        pricing.calculate_totals(Decimal("-0.01"), ShippingMethod.standard, USD_CHECKOUT)


def test_unknown_shipping_method_is_rejected():
    with pytest.raises(InvalidShippingMethodError) as exc_info:
        pricing.shipping_cost(Decimal("10"), "drone", USD_CHECKOUT)
    assert "drone" in exc_info.value.detail


def test_standard_shipping_never_increases_with_subtotal():
    previous = None
    for cents in range(0, 10_001, 137):
        cost = pricing.shipping_cost(Decimal(cents) / 100, ShippingMethod.standard, USD_CHECKOUT)
        if previous is not None:
            assert cost <= previous
        previous = cost


def test_quote_resolves_currency_config():
    assert pricing.quote(Decimal("40"), "standard").total == Decimal("53.19")
    assert pricing.quote(3000, "standard", "inr").total == Decimal("4340")
    with pytest.raises(UnsupportedCurrencyError):
        pricing.quote(10, "standard", "EUR")


def test_free_shipping_remaining():
    assert pricing.free_shipping_remaining(Decimal("40.00"), USD_CHECKOUT) == Decimal("10.01")
    assert pricing.free_shipping_remaining(Decimal("50.00"), USD_CHECKOUT) == Decimal("0.01")
    assert pricing.free_shipping_remaining(Decimal("50.01"), USD_CHECKOUT) == Decimal("0.00")
