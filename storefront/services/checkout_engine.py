"""Checkout step state machine.

Every function takes a ``CheckoutSession`` and returns a new one; the caller
owns the single mutable reference (see ``session_store``). Step flows::

    cart:     shipping -> payment -> review -> submitted
    buy_now:  shipping (optional) -> payment -> submitted

``expired`` is terminal and only reachable from buy-now sessions.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from storefront.domain.checkout_config import CheckoutConfig
from storefront.domain.enums import STEP_FLOWS, TERMINAL_STEPS, CheckoutStep, CheckoutVariant
from storefront.schemas.cart import Cart, PurchaseIntent
from storefront.schemas.checkout import (
    CheckoutSession,
    CheckoutSessionRead,
    OrderTotals,
    PaymentInput,
    ShippingInput,
)
from storefront.schemas.order import OrderCreate, OrderItemCreate, OrderPlaced
from storefront.services import pricing, validation
from storefront.services.exceptions import (
    EmptyCartError,
    ExpiredIntentError,
    InvalidTransitionError,
    SubmissionInFlightError,
    ValidationError,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _flow(session: CheckoutSession) -> tuple[CheckoutStep, ...]:
    return STEP_FLOWS[session.variant]


def _ensure_active(session: CheckoutSession, now: datetime | None = None) -> None:
    if session.current_step == CheckoutStep.expired:
        raise ExpiredIntentError("Purchase intent has expired")
    if session.current_step == CheckoutStep.submitted:
        raise InvalidTransitionError("Order has already been submitted")
    if is_intent_expired(session, now):
        raise ExpiredIntentError("Purchase intent has expired")


def is_intent_expired(session: CheckoutSession, now: datetime | None = None) -> bool:
    if session.variant != CheckoutVariant.buy_now or session.intent_expires_at is None:
        return False
    return session.intent_expires_at <= (now or _utcnow())


def start_cart_checkout(cart: Cart, config: CheckoutConfig) -> CheckoutSession:
    # La guarda de carrito vacío vive aquí, no en el cálculo de precios.
    if cart.is_empty:
        raise EmptyCartError("Your cart is empty")
    return CheckoutSession(
        variant=CheckoutVariant.cart,
        config=config,
        current_step=CheckoutStep.shipping,
        lines=cart.lines,
    )


def _prefilled_shipping(intent: PurchaseIntent) -> ShippingInput | None:
    address = intent.shipping_address
    if address is None or not intent.email or not (intent.phone or address.phone):
        return None
    try:
        return validation.validate_shipping(
            {
                "email": intent.email,
                "firstName": address.first_name,
                "lastName": address.last_name,
                "phone": intent.phone or address.phone,
                "streetAddress": address.street_address,
                "streetAddress2": address.street_address2,
                "city": address.city,
                "state": address.state,
                "zipCode": address.zip_code,
                "country": address.country,
                "shippingMethod": "standard",
            }
        )
    except ValidationError:
        # Dirección guardada inválida: el comprador la vuelve a cargar.
        return None


def start_buy_now_checkout(
    intent: PurchaseIntent,
    config: CheckoutConfig,
    now: datetime | None = None,
) -> CheckoutSession:
    session = CheckoutSession(
        variant=CheckoutVariant.buy_now,
        config=config,
        current_step=CheckoutStep.shipping,
        lines=intent.as_cart().lines,
        intent_id=intent.id,
        intent_expires_at=intent.expires_at,
    )
    if intent.is_expired(now or _utcnow()):
        return expire(session)

    shipping = _prefilled_shipping(intent)
    if shipping is not None:
        return session.model_copy(update={"shipping": shipping, "current_step": CheckoutStep.payment})
    return session


def expire(session: CheckoutSession) -> CheckoutSession:
    if session.variant != CheckoutVariant.buy_now:
        raise InvalidTransitionError("Only buy-now checkouts can expire")
    # Una orden enviada sigue enviada aunque la intención venza después.
    if session.current_step in TERMINAL_STEPS:
        return session
    return session.model_copy(
        update={
            "current_step": CheckoutStep.expired,
            "submitting": False,
            "last_error": "Purchase intent has expired",
        }
    )


def session_totals(session: CheckoutSession) -> OrderTotals:
    # Siempre recalculado: nunca se guarda un total viejo.
    return pricing.calculate_totals(session.subtotal, session.shipping_method, session.config)


def session_view(session: CheckoutSession) -> CheckoutSessionRead:
    totals = session_totals(session)
    return CheckoutSessionRead(
        id=session.id,
        variant=session.variant,
        currency=session.config.currency,
        current_step=session.current_step,
        steps=_flow(session),
        lines=session.lines,
        totals=totals,
        free_shipping_remaining=pricing.free_shipping_remaining(totals.subtotal, session.config),
        payment_methods=validation.allowed_payment_methods(session.config, session.variant),
        intent_id=session.intent_id,
        intent_expires_at=session.intent_expires_at,
        shipping=session.shipping,
        payment=session.payment,
        submitting=session.submitting,
        ready_to_submit=is_ready_to_submit(session) and not session.submitting,
        gateway_order_id=session.gateway_order_id,
        order_id=session.order_id,
        order_number=session.order_number,
        redirect_url=session.redirect_url,
        confirmation_message=session.confirmation_message,
        last_error=session.last_error,
    )


def advance(
    session: CheckoutSession,
    form_data: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> CheckoutSession:
    """Validate the current step's input and move forward.

    On the last step of the flow the data is recorded (or re-checked) and the
    session stays put, ready for ``begin_submission``.
    """
    _ensure_active(session, now)
    form_data = form_data or {}
    step = session.current_step

    if step == CheckoutStep.shipping:
        shipping = validation.validate_shipping(form_data)
        return session.model_copy(
            update={"shipping": shipping, "current_step": CheckoutStep.payment, "last_error": None}
        )

    if step == CheckoutStep.payment:
        shipping = _require_shipping(session)
        payment = validation.validate_payment(form_data, session.config, session.variant)
        next_step = CheckoutStep.review if CheckoutStep.review in _flow(session) else CheckoutStep.payment
        return session.model_copy(
            update={
                "shipping": shipping,
                "payment": payment,
                "current_step": next_step,
                "last_error": None,
            }
        )

    if step == CheckoutStep.review:
        shipping = _require_shipping(session)
        payment = _require_payment(session)
        return session.model_copy(update={"shipping": shipping, "payment": payment})

    raise InvalidTransitionError(f"Cannot advance from step {step.value}")


def _require_shipping(session: CheckoutSession) -> ShippingInput:
    if session.shipping is None:
        raise InvalidTransitionError("Shipping information has not been provided")
    return validation.revalidate_shipping(session.shipping)


def _require_payment(session: CheckoutSession) -> PaymentInput:
    if session.payment is None:
        raise InvalidTransitionError("Payment method has not been selected")
    return validation.validate_payment(
        session.payment.model_dump(by_alias=True), session.config, session.variant
    )


def _step_data_recorded(session: CheckoutSession, step: CheckoutStep) -> bool:
    if step == CheckoutStep.shipping:
        return session.shipping is not None
    if step == CheckoutStep.payment:
        return session.payment is not None
    return True


def go_to(session: CheckoutSession, step: CheckoutStep | str, now: datetime | None = None) -> CheckoutSession:
    """Jump to ``step``; going back keeps the data already collected."""
    _ensure_active(session, now)
    try:
        target = CheckoutStep(step)
    except ValueError as exc:
        raise InvalidTransitionError(f"Unknown checkout step: {step}") from exc
    flow = _flow(session)
    if target not in flow:
        raise InvalidTransitionError(f"Step {target.value} is not part of the {session.variant.value} checkout")
    if session.submitting:
        raise SubmissionInFlightError("An order submission is already in progress")

    target_index = flow.index(target)
    missing = [earlier for earlier in flow[:target_index] if not _step_data_recorded(session, earlier)]
    if missing:
        raise InvalidTransitionError(f"Complete the {missing[0].value} step first")
    return session.model_copy(update={"current_step": target})


def back(session: CheckoutSession, now: datetime | None = None) -> CheckoutSession:
    flow = _flow(session)
    _ensure_active(session, now)
    index = flow.index(session.current_step)
    if index == 0:
        return session
    return go_to(session, flow[index - 1], now)


def is_ready_to_submit(session: CheckoutSession) -> bool:
    if session.current_step in TERMINAL_STEPS or session.shipping is None or session.payment is None:
        return False
    return session.current_step == _flow(session)[-1]


def begin_submission(session: CheckoutSession, now: datetime | None = None) -> CheckoutSession:
    _ensure_active(session, now)
    if session.submitting:
        raise SubmissionInFlightError("An order submission is already in progress")
    if not is_ready_to_submit(session):
        raise InvalidTransitionError("Checkout is not ready to be submitted")
    # Re-chequeo idempotente de todo lo cargado antes de tocar la red.
    form = session.payment.model_dump(by_alias=True) if session.current_step == CheckoutStep.payment else None
    revalidated = advance(session, form, now)
    return revalidated.model_copy(update={"submitting": True, "last_error": None})


def record_gateway_order(session: CheckoutSession, gateway_order_id: str) -> CheckoutSession:
    return session.model_copy(update={"gateway_order_id": gateway_order_id, "submitting": False})


def complete_submission(
    session: CheckoutSession,
    order: OrderPlaced,
    *,
    redirect_url: str | None = None,
    message: str | None = None,
) -> CheckoutSession:
    return session.model_copy(
        update={
            "current_step": CheckoutStep.submitted,
            "submitting": False,
            "order_id": order.order_id,
            "order_number": order.order_number,
            "redirect_url": redirect_url or f"/order-confirmation/{order.order_id}",
            "confirmation_message": message,
            "last_error": None,
        }
    )


def fail_submission(session: CheckoutSession, message: str) -> CheckoutSession:
    """Release the in-flight flag and keep the server message for the buyer."""
    return session.model_copy(update={"submitting": False, "last_error": message})


def to_order_payload(session: CheckoutSession) -> OrderCreate:
    shipping = _require_shipping(session)
    totals = session_totals(session)
    return OrderCreate(
        items=[
            OrderItemCreate(product_id=line.product_id, quantity=line.quantity, price=line.unit_price)
            for line in session.lines
        ],
        shipping_address=shipping.address,
        billing_address=shipping.billing,
        shipping_method=shipping.shipping_method,
        payment_method=session.payment.payment_method if session.payment else None,
        payment_token=session.payment.payment_token if session.payment else None,
        currency=totals.currency,
        subtotal=totals.subtotal,
        shipping=totals.shipping,
        tax=totals.tax,
        total=totals.total,
        email=shipping.email,
    )


def shipping_input_from_payload(payload: OrderCreate) -> ShippingInput:
    address = payload.shipping_address
    billing = payload.billing_address
    same_as_shipping = billing.model_dump(exclude={"phone"}) == address.model_dump(exclude={"phone"})
    data: dict[str, Any] = {
        "email": payload.email,
        "firstName": address.first_name,
        "lastName": address.last_name,
        "phone": address.phone or "",
        "streetAddress": address.street_address,
        "streetAddress2": address.street_address2,
        "city": address.city,
        "state": address.state,
        "zipCode": address.zip_code,
        "country": address.country,
        "shippingMethod": payload.shipping_method,
        "billingSameAsShipping": same_as_shipping,
    }
    if not same_as_shipping:
        data["billingAddress"] = billing.model_dump(by_alias=True, exclude={"phone"})
    return validation.validate_shipping(data)
