import asyncio
from datetime import timedelta
from decimal import Decimal

import httpx
import pytest

from storefront.domain.checkout_config import INR_CHECKOUT, USD_CHECKOUT
from storefront.domain.enums import CheckoutStep
from storefront.schemas.order import GatewayPaymentConfirmation
from storefront.services import checkout_service
from storefront.services.storefront_client import StorefrontClient
from storefront.services.exceptions import (
    DomainValidationError,
    EmptyCartError,
    ExpiredIntentError,
    GatewayError,
    NetworkError,
    ResourceNotFoundError,
    SubmissionInFlightError,
    ValidationError,
)

from conftest import VALID_SHIPPING

CARD = {"paymentMethod": "card", "paymentToken": "tok_visa"}


async def _cart_at_review(store, sf_client, backend, payment=CARD, config=USD_CHECKOUT):
    backend.add_cart_item("mug", 40.0, name="Mug")
    session = await checkout_service.open_cart_checkout(store, sf_client, config)
    await checkout_service.advance_checkout(store, sf_client, session.id, VALID_SHIPPING)
    return await checkout_service.advance_checkout(store, sf_client, session.id, payment)


@pytest.mark.asyncio
async def test_cart_checkout_submits_order_and_clears_cart(session_store, storefront_client, backend):
    session = await _cart_at_review(session_store, storefront_client, backend)
    assert session.current_step == CheckoutStep.review

    done = await checkout_service.submit_order(session_store, storefront_client, session.id)

    assert done.current_step == CheckoutStep.submitted
    assert done.order_id == "ord-1"
    assert done.order_number == "SF-1001"
    assert done.redirect_url == "/order-confirmation/ord-1"
    assert backend.cart_items == []

    order = backend.calls("POST", "/api/orders")[0]
    assert order["total"] == "53.19"
    assert order["tax"] == "3.20"
    assert order["shippingMethod"] == "standard"
    assert order["paymentToken"] == "tok_visa"
    assert order["items"] == [{"productId": "mug", "quantity": 1, "price": "40.0"}]
    assert (await session_store.get(session.id)).current_step == CheckoutStep.submitted


@pytest.mark.asyncio
async def test_empty_cart_is_refused(session_store, storefront_client):
    with pytest.raises(EmptyCartError):
        await checkout_service.open_cart_checkout(session_store, storefront_client, USD_CHECKOUT)


@pytest.mark.asyncio
async def test_invalid_step_input_is_not_stored(session_store, storefront_client, backend):
    backend.add_cart_item("mug", 40.0)
    session = await checkout_service.open_cart_checkout(session_store, storefront_client, USD_CHECKOUT)

    with pytest.raises(ValidationError):
        await checkout_service.advance_checkout(
            session_store, storefront_client, session.id, {**VALID_SHIPPING, "zipCode": "abc"}
        )

    stored = await session_store.get(session.id)
    assert stored.current_step == CheckoutStep.shipping
    assert stored.shipping is None


@pytest.mark.asyncio
async def test_failed_submission_keeps_review_and_server_message(session_store, storefront_client, backend):
    session = await _cart_at_review(session_store, storefront_client, backend)
    backend.fail("POST", "/api/orders", (400, {"message": "Card declined"}))

    with pytest.raises(GatewayError):
        await checkout_service.submit_order(session_store, storefront_client, session.id)

    stored = await session_store.get(session.id)
    assert stored.current_step == CheckoutStep.review
    assert not stored.submitting
    assert "Card declined" in stored.last_error
    assert backend.cart_items != []

    # Reintento manual tras el error.
    backend.failures.clear()
    done = await checkout_service.submit_order(session_store, storefront_client, session.id)
    assert done.current_step == CheckoutStep.submitted
    assert done.last_error is None


@pytest.mark.asyncio
async def test_network_failure_is_retryable(session_store, storefront_client, backend):
    session = await _cart_at_review(session_store, storefront_client, backend)
    backend.fail("POST", "/api/orders", httpx.ReadTimeout("timed out"))

    with pytest.raises(NetworkError):
        await checkout_service.submit_order(session_store, storefront_client, session.id)

    stored = await session_store.get(session.id)
    assert stored.current_step == CheckoutStep.review
    assert stored.last_error.startswith("Could not reach the store")


@pytest.mark.asyncio
async def test_second_submit_while_in_flight_is_refused(session_store, storefront_client, backend):
    session = await _cart_at_review(session_store, storefront_client, backend)
    release = asyncio.Event()
    original = backend.handle

    async def slow_create_order(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/orders":
            await release.wait()
        return original(request)

    slow_client = StorefrontClient(
        httpx.AsyncClient(transport=httpx.MockTransport(slow_create_order), base_url="http://storefront.test")
    )

    first = asyncio.create_task(checkout_service.submit_order(session_store, slow_client, session.id))
    await asyncio.sleep(0)
    while not (await session_store.get(session.id)).submitting:
        await asyncio.sleep(0)

    with pytest.raises(SubmissionInFlightError):
        await checkout_service.submit_order(session_store, storefront_client, session.id)

    release.set()
    done = await first
    await slow_client.aclose()
    assert done.current_step == CheckoutStep.submitted
    assert len(backend.calls("POST", "/api/orders")) == 1


@pytest.mark.asyncio
async def test_abandoned_checkout_is_not_revived_by_late_order(session_store, storefront_client, backend):
    session = await _cart_at_review(session_store, storefront_client, backend)
    release = asyncio.Event()
    original = backend.handle

    async def slow_create_order(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/orders":
            await release.wait()
        return original(request)

    slow_client = StorefrontClient(
        httpx.AsyncClient(transport=httpx.MockTransport(slow_create_order), base_url="http://storefront.test")
    )

    pending = asyncio.create_task(checkout_service.submit_order(session_store, slow_client, session.id))
    while not (await session_store.get(session.id)).submitting:
        await asyncio.sleep(0)

    await checkout_service.abandon_checkout(session_store, storefront_client, session.id)
    release.set()
    done = await pending
    await slow_client.aclose()

    assert done.order_id == "ord-1"
    assert len(backend.calls("POST", "/api/orders")) == 1
    with pytest.raises(ResourceNotFoundError):
        await session_store.get(session.id)


@pytest.mark.asyncio
async def test_abandoned_checkout_is_not_revived_by_late_failure(session_store, storefront_client, backend):
    session = await _cart_at_review(session_store, storefront_client, backend)
    release = asyncio.Event()

    async def failing_create_order(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/orders":
            await release.wait()
            return httpx.Response(400, json={"message": "Out of stock"})
        return backend.handle(request)

    slow_client = StorefrontClient(
        httpx.AsyncClient(transport=httpx.MockTransport(failing_create_order), base_url="http://storefront.test")
    )

    pending = asyncio.create_task(checkout_service.submit_order(session_store, slow_client, session.id))
    while not (await session_store.get(session.id)).submitting:
        await asyncio.sleep(0)

    await checkout_service.abandon_checkout(session_store, storefront_client, session.id)
    release.set()
    with pytest.raises(GatewayError):
        await pending
    await slow_client.aclose()

    with pytest.raises(ResourceNotFoundError):
        await session_store.get(session.id)


@pytest.mark.asyncio
async def test_online_payment_goes_through_gateway(session_store, storefront_client, backend):
    session = await _cart_at_review(session_store, storefront_client, backend, payment={"paymentMethod": "online"})

    pending = await checkout_service.submit_order(session_store, storefront_client, session.id)
    assert pending.current_step == CheckoutStep.review
    assert pending.gateway_order_id == "order_gw_1"
    assert not pending.submitting
    assert backend.calls("POST", "/api/orders") == []

    confirmation = GatewayPaymentConfirmation(
        gateway_order_id="order_gw_1", gateway_payment_id="pay_1", signature="sig"
    )
    done = await checkout_service.confirm_gateway_payment(session_store, storefront_client, session.id, confirmation)

    assert done.current_step == CheckoutStep.submitted
    assert done.order_id == "gw-1"
    verify = backend.calls("POST", "/api/v1/verify-razorpay-payment")[0]
    assert verify["razorpay_payment_id"] == "pay_1"
    assert verify["orderData"]["total"] == "53.19"
    assert backend.cart_items == []


@pytest.mark.asyncio
async def test_gateway_confirmation_must_match_pending_order(session_store, storefront_client, backend):
    session = await _cart_at_review(session_store, storefront_client, backend, payment={"paymentMethod": "online"})
    await checkout_service.submit_order(session_store, storefront_client, session.id)

    confirmation = GatewayPaymentConfirmation(
        gateway_order_id="order_other", gateway_payment_id="pay_1", signature="sig"
    )
    with pytest.raises(GatewayError):
        await checkout_service.confirm_gateway_payment(session_store, storefront_client, session.id, confirmation)


@pytest.mark.asyncio
async def test_buy_now_checkout_with_cod(session_store, storefront_client, backend):
    intent_id = backend.add_intent(price=3000)
    session = await checkout_service.open_buy_now_checkout(session_store, storefront_client, INR_CHECKOUT, intent_id)
    assert session.current_step == CheckoutStep.shipping

    session = await checkout_service.advance_checkout(session_store, storefront_client, session.id, VALID_SHIPPING)
    assert session.current_step == CheckoutStep.payment
    assert backend.intents[intent_id]["email"] == "ana@example.com"
    assert backend.intents[intent_id]["shippingAddress"]["zipCode"] == "97403"

    await checkout_service.advance_checkout(session_store, storefront_client, session.id, {"paymentMethod": "cod"})
    done = await checkout_service.submit_order(session_store, storefront_client, session.id)

    assert done.current_step == CheckoutStep.submitted
    assert done.redirect_url == "/orders"
    assert done.confirmation_message == checkout_service.COD_CONFIRMATION
    assert backend.calls("POST", "/api/buy-now/complete") == [{"intentId": intent_id, "paymentMethod": "cod"}]
    assert backend.intents[intent_id]["status"] == "completed"


@pytest.mark.asyncio
async def test_buy_now_resumes_at_payment_with_saved_address(session_store, storefront_client, backend):
    intent_id = backend.add_intent(
        price=3000,
        email="ana@example.com",
        phone="5551234567",
        shippingAddress={
            "firstName": "Ana",
            "lastName": "Gomez",
            "streetAddress": "742 Evergreen Terrace",
            "city": "Springfield",
            "state": "OR",
            "zipCode": "97403",
        },
    )
    session = await checkout_service.open_buy_now_checkout(session_store, storefront_client, INR_CHECKOUT, intent_id)
    assert session.current_step == CheckoutStep.payment


@pytest.mark.asyncio
async def test_expired_intent_opens_expired_session(session_store, storefront_client, backend):
    intent_id = backend.add_intent(price=3000, expires_in=timedelta(minutes=-1))
    session = await checkout_service.open_buy_now_checkout(session_store, storefront_client, INR_CHECKOUT, intent_id)
    assert session.current_step == CheckoutStep.expired

    with pytest.raises(ExpiredIntentError):
        await checkout_service.advance_checkout(session_store, storefront_client, session.id, VALID_SHIPPING)


@pytest.mark.asyncio
async def test_backend_gone_intent_opens_expired_session(session_store, storefront_client, backend):
    backend.gone_intents.add("intent-old")
    session = await checkout_service.open_buy_now_checkout(
        session_store, storefront_client, INR_CHECKOUT, "intent-old"
    )
    assert session.current_step == CheckoutStep.expired
    assert session.intent_id == "intent-old"


@pytest.mark.asyncio
async def test_intent_gone_while_saving_address_expires_session(session_store, storefront_client, backend):
    intent_id = backend.add_intent(price=3000)
    session = await checkout_service.open_buy_now_checkout(session_store, storefront_client, INR_CHECKOUT, intent_id)
    backend.gone_intents.add(intent_id)

    with pytest.raises(ExpiredIntentError):
        await checkout_service.advance_checkout(session_store, storefront_client, session.id, VALID_SHIPPING)

    assert (await session_store.get(session.id)).current_step == CheckoutStep.expired


@pytest.mark.asyncio
async def test_abandon_buy_now_cancels_intent(session_store, storefront_client, backend):
    intent_id = backend.add_intent(price=3000)
    session = await checkout_service.open_buy_now_checkout(session_store, storefront_client, INR_CHECKOUT, intent_id)

    await checkout_service.abandon_checkout(session_store, storefront_client, session.id)

    assert backend.intents[intent_id]["status"] == "cancelled"
    with pytest.raises(ResourceNotFoundError):
        await session_store.get(session.id)


@pytest.mark.asyncio
async def test_create_purchase_intent_checks_quantity(storefront_client, backend):
    with pytest.raises(DomainValidationError):
        await checkout_service.create_purchase_intent(storefront_client, "lamp", quantity=11)
    with pytest.raises(DomainValidationError):
        await checkout_service.create_purchase_intent(storefront_client, "lamp", quantity=0)
    assert backend.requests == []

    intent = await checkout_service.create_purchase_intent(storefront_client, "lamp", quantity=10)
    assert intent.quantity == 10
    assert intent.subtotal == Decimal("250.0")
