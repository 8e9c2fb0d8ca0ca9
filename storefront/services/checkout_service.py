from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.core.metrics import record_step_transition, record_submission
from storefront.domain.checkout_config import CheckoutConfig
from storefront.domain.enums import TERMINAL_STEPS, CheckoutStep, CheckoutVariant, PaymentMethod
from storefront.schemas.cart import PurchaseIntent
from storefront.schemas.checkout import CheckoutSession
from storefront.schemas.order import GatewayPaymentConfirmation, OrderPlaced
from storefront.services import checkout_engine
from storefront.services.exceptions import (
    DomainValidationError,
    ExpiredIntentError,
    GatewayError,
    InvalidTransitionError,
    NetworkError,
    ResourceNotFoundError,
    ServiceError,
    ValidationError,
)
from storefront.services.session_store import CheckoutSessionStore
from storefront.services.storefront_client import StorefrontClient

logger = get_logger(__name__)

COD_CONFIRMATION = "Order confirmed! Payment will be collected upon delivery."
ONLINE_CONFIRMATION = "Your order has been processed successfully."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _log_extra(session: CheckoutSession, **extra: Any) -> dict[str, Any]:
    return {
        "checkout_session_id": session.id,
        "variant": session.variant.value,
        "step": session.current_step.value,
        **extra,
    }


def _friendly(exc: ServiceError) -> str:
    if isinstance(exc, NetworkError):
        return exc.detail
    return f"We could not place your order: {exc.detail}"


async def open_cart_checkout(
    store: CheckoutSessionStore,
    client: StorefrontClient,
    config: CheckoutConfig,
) -> CheckoutSession:
    cart = await client.get_cart()
    session = checkout_engine.start_cart_checkout(cart, config)
    logger.info("Cart checkout started", extra=_log_extra(session, lines=len(session.lines)))
    return await store.save(session)


async def open_buy_now_checkout(
    store: CheckoutSessionStore,
    client: StorefrontClient,
    config: CheckoutConfig,
    intent_id: str,
    now: datetime | None = None,
) -> CheckoutSession:
    try:
        intent = await client.get_purchase_intent(intent_id)
    except ExpiredIntentError:
        # El backend ya lo marcó como vencido (410); la sesión nace terminal.
        session = CheckoutSession(
            variant=CheckoutVariant.buy_now,
            config=config,
            intent_id=intent_id,
            intent_expires_at=now or _utcnow(),
        )
        session = checkout_engine.expire(session)
    else:
        session = checkout_engine.start_buy_now_checkout(intent, config, now)

    if session.current_step == CheckoutStep.expired:
        logger.info("Buy-now intent expired on load", extra=_log_extra(session, intent_id=intent_id))
    return await store.save(session)


async def create_purchase_intent(
    client: StorefrontClient,
    product_id: str,
    quantity: int = 1,
    variant_id: str | None = None,
) -> PurchaseIntent:
    if quantity < 1 or quantity > settings.PURCHASE_INTENT_MAX_QUANTITY:
        raise DomainValidationError(
            f"Quantity must be between 1 and {settings.PURCHASE_INTENT_MAX_QUANTITY}"
        )
    intent = await client.create_purchase_intent(product_id, quantity, variant_id)
    logger.info("Purchase intent created", extra={"intent_id": intent.id, "product_id": product_id})
    return intent


async def load_checkout(
    store: CheckoutSessionStore,
    session_id: str,
    now: datetime | None = None,
) -> CheckoutSession:
    """Read a session, moving an active buy-now checkout to expired once its intent lapses."""
    session = await store.get(session_id)
    if session.current_step in TERMINAL_STEPS or not checkout_engine.is_intent_expired(session, now):
        return session
    async with store.locked(session_id):
        # Relectura bajo el lock: otra acción pudo cambiar la sesión.
        session = await store.get(session_id)
        if session.current_step in TERMINAL_STEPS or not checkout_engine.is_intent_expired(session, now):
            return session
        logger.info("Buy-now intent expired during checkout", extra=_log_extra(session, intent_id=session.intent_id))
        return await store.save(checkout_engine.expire(session))


async def _persist_expired(store: CheckoutSessionStore, session: CheckoutSession) -> None:
    if session.variant == CheckoutVariant.buy_now and session.current_step != CheckoutStep.expired:
        await store.save(checkout_engine.expire(session))


async def advance_checkout(
    store: CheckoutSessionStore,
    client: StorefrontClient,
    session_id: str,
    form_data: Mapping[str, Any] | None,
    now: datetime | None = None,
) -> CheckoutSession:
    async with store.locked(session_id):
        session = await store.get(session_id)
        step = session.current_step.value
        try:
            updated = checkout_engine.advance(session, form_data, now)
        except ValidationError as exc:
            record_step_transition(session.variant.value, step, "invalid")
            logger.info("Checkout step rejected", extra=_log_extra(session, fields=exc.fields))
            raise
        except ExpiredIntentError:
            record_step_transition(session.variant.value, step, "expired")
            await _persist_expired(store, session)
            raise

        # Buy-now guarda la dirección en la intención antes de pagar.
        if (
            session.variant == CheckoutVariant.buy_now
            and session.current_step == CheckoutStep.shipping
            and updated.shipping is not None
        ):
            try:
                await client.save_intent_address(
                    session.intent_id,
                    updated.shipping.address,
                    email=updated.shipping.email,
                    phone=updated.shipping.phone,
                )
            except ExpiredIntentError:
                await _persist_expired(store, session)
                raise

        record_step_transition(session.variant.value, step, "ok")
        return await store.save(updated)


async def go_to_step(
    store: CheckoutSessionStore,
    session_id: str,
    step: CheckoutStep | str,
    now: datetime | None = None,
) -> CheckoutSession:
    async with store.locked(session_id):
        session = await store.get(session_id)
        try:
            updated = checkout_engine.go_to(session, step, now)
        except ExpiredIntentError:
            await _persist_expired(store, session)
            raise
        return await store.save(updated)


async def go_back(store: CheckoutSessionStore, session_id: str, now: datetime | None = None) -> CheckoutSession:
    async with store.locked(session_id):
        session = await store.get(session_id)
        try:
            updated = checkout_engine.back(session, now)
        except ExpiredIntentError:
            await _persist_expired(store, session)
            raise
        return await store.save(updated)


async def _claim_submission(
    store: CheckoutSessionStore,
    session_id: str,
    now: datetime | None,
) -> CheckoutSession:
    async with store.locked(session_id):
        session = await store.get(session_id)
        try:
            claimed = checkout_engine.begin_submission(session, now)
        except ExpiredIntentError:
            await _persist_expired(store, session)
            raise
        return await store.save(claimed)


async def _release_with_error(
    store: CheckoutSessionStore,
    session: CheckoutSession,
    exc: ServiceError,
) -> None:
    payment_method = session.payment.payment_method.value if session.payment else "unknown"
    record_submission(session.variant.value, payment_method, "failed")
    logger.warning("Order submission failed", extra=_log_extra(session, detail=exc.detail))
    if isinstance(exc, ExpiredIntentError) and session.variant == CheckoutVariant.buy_now:
        released = checkout_engine.expire(session)
    else:
        released = checkout_engine.fail_submission(session, _friendly(exc))
    await _settle_submission(store, released)


async def _settle_submission(store: CheckoutSessionStore, result: CheckoutSession) -> CheckoutSession:
    """Store the outcome only if the session still waits for it."""
    async with store.locked(result.id):
        try:
            current = await store.get(result.id)
        except ResourceNotFoundError:
            current = None
        if current is None or not current.submitting:
            # Abandonada mientras el pedido estaba en vuelo: el resultado se descarta.
            logger.warning(
                "Submission outcome dropped for abandoned checkout",
                extra=_log_extra(result, order_id=result.order_id),
            )
            return result
        return await store.save(result)


async def submit_order(
    store: CheckoutSessionStore,
    client: StorefrontClient,
    session_id: str,
    now: datetime | None = None,
) -> CheckoutSession:
    """Place the order for a ready session.

    At most one submission runs per session: the claim flips ``submitting``
    under the session lock, and a second call fails with
    ``SubmissionInFlightError`` until this one resolves.
    """
    session = await _claim_submission(store, session_id, now)
    payment_method = session.payment.payment_method

    try:
        if session.variant == CheckoutVariant.buy_now:
            completion = await client.complete_purchase(session.intent_id, payment_method)
            message = COD_CONFIRMATION if payment_method == PaymentMethod.cod else ONLINE_CONFIRMATION
            placed = OrderPlaced(order_id=completion.order_id)
            result = checkout_engine.complete_submission(
                session,
                placed,
                redirect_url=completion.redirect_url,
                message=completion.message or message,
            )
        elif payment_method == PaymentMethod.online:
            gateway_order = await client.create_gateway_order(session.shipping_method)
            result = checkout_engine.record_gateway_order(session, gateway_order.id)
            logger.info("Gateway order created", extra=_log_extra(session, gateway_order_id=gateway_order.id))
        else:
            placed = await client.create_order(checkout_engine.to_order_payload(session))
            await client.clear_cart()
            message = COD_CONFIRMATION if payment_method == PaymentMethod.cod else None
            result = checkout_engine.complete_submission(session, placed, message=message)
    except ServiceError as exc:
        await _release_with_error(store, session, exc)
        raise

    if result.current_step == CheckoutStep.submitted:
        record_submission(session.variant.value, payment_method.value, "submitted")
        logger.info("Order submitted", extra=_log_extra(result, order_id=result.order_id))
    return await _settle_submission(store, result)


async def confirm_gateway_payment(
    store: CheckoutSessionStore,
    client: StorefrontClient,
    session_id: str,
    confirmation: GatewayPaymentConfirmation,
    now: datetime | None = None,
) -> CheckoutSession:
    async with store.locked(session_id):
        current = await store.get(session_id)
        if current.gateway_order_id is None:
            raise InvalidTransitionError("No payment is pending for this checkout")
        if current.gateway_order_id != confirmation.gateway_order_id:
            raise GatewayError("Payment does not belong to this checkout")
    session = await _claim_submission(store, session_id, now)

    try:
        placed = await client.verify_gateway_payment(confirmation, checkout_engine.to_order_payload(session))
        await client.clear_cart()
    except ServiceError as exc:
        await _release_with_error(store, session, exc)
        raise

    result = checkout_engine.complete_submission(session, placed, message="Payment successful! Your order has been confirmed.")
    record_submission(session.variant.value, PaymentMethod.online.value, "submitted")
    logger.info("Gateway payment verified", extra=_log_extra(result, order_id=result.order_id))
    return await _settle_submission(store, result)


async def abandon_checkout(
    store: CheckoutSessionStore,
    client: StorefrontClient,
    session_id: str,
) -> None:
    """Discard the session; a pending buy-now intent is cancelled upstream."""
    session = await store.get(session_id)
    if session.submitting:
        logger.info("Abandoning checkout with a submission in flight", extra=_log_extra(session))
    await store.discard(session_id)
    if (
        session.variant == CheckoutVariant.buy_now
        and session.intent_id
        and session.current_step not in (CheckoutStep.submitted, CheckoutStep.expired)
    ):
        await client.cancel_purchase_intent(session.intent_id)
