"""Turn raw checkout form payloads into validated step inputs.

Every invalid field is reported at once so the page can render per-field
messages; nothing here touches the network.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pydantic

from storefront.domain.checkout_config import CheckoutConfig
from storefront.domain.enums import BUY_NOW_PAYMENT_METHODS, CheckoutVariant, PaymentMethod
from storefront.schemas.checkout import PaymentInput, ShippingInput
from storefront.services.exceptions import FieldError, ValidationError

_VALUE_ERROR_PREFIX = "Value error, "


def _field_alias(model: type[pydantic.BaseModel], name: str) -> str:
    field = model.model_fields.get(name)
    if field is not None and field.alias:
        return field.alias
    return name


def _to_field_errors(model: type[pydantic.BaseModel], exc: pydantic.ValidationError) -> list[FieldError]:
    errors: list[FieldError] = []
    seen: set[str] = set()
    for error in exc.errors():
        loc = [str(part) for part in error["loc"]]
        field = _field_alias(model, loc[0]) if loc else "__root__"
        if len(loc) > 1:
            field = ".".join([field, *loc[1:]])
        message = error["msg"]
        if message.startswith(_VALUE_ERROR_PREFIX):
            message = message[len(_VALUE_ERROR_PREFIX):]
        # Un mensaje por campo basta para la UI.
        if field in seen:
            continue
        seen.add(field)
        errors.append(FieldError(field=field, message=message))
    return errors


def validate_shipping(form_data: Mapping[str, Any]) -> ShippingInput:
    try:
        return ShippingInput.model_validate(dict(form_data))
    except pydantic.ValidationError as exc:
        raise ValidationError(_to_field_errors(ShippingInput, exc)) from exc


def allowed_payment_methods(config: CheckoutConfig, variant: CheckoutVariant) -> tuple[PaymentMethod, ...]:
    if variant == CheckoutVariant.buy_now:
        return tuple(method for method in config.payment_methods if method in BUY_NOW_PAYMENT_METHODS)
    return config.payment_methods


def validate_payment(
    form_data: Mapping[str, Any],
    config: CheckoutConfig,
    variant: CheckoutVariant,
) -> PaymentInput:
    data = dict(form_data)
    if not data.get("paymentMethod") and not data.get("payment_method"):
        raise ValidationError([FieldError(field="paymentMethod", message="Please select a payment method")])

    try:
        payment = PaymentInput.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(_to_field_errors(PaymentInput, exc)) from exc

    allowed = allowed_payment_methods(config, variant)
    if payment.payment_method not in allowed:
        options = ", ".join(method.value for method in allowed)
        raise ValidationError(
            [FieldError(field="paymentMethod", message=f"Payment method must be one of: {options}")]
        )

    # Buy-now solo discrimina el método; la pasarela valida el pago online.
    if variant == CheckoutVariant.buy_now:
        return payment.model_copy(update={"payment_token": None})

    if payment.payment_method == PaymentMethod.card and not (payment.payment_token or "").strip():
        raise ValidationError([FieldError(field="paymentToken", message="Card payment token is required")])
    return payment


def revalidate_shipping(shipping: ShippingInput) -> ShippingInput:
    """Re-run every shipping rule on already recorded data."""
    return validate_shipping(shipping.model_dump(by_alias=True))
