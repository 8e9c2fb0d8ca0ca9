from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Response, status

from storefront.api.deps import get_session_store, get_storefront_client
from storefront.domain.enums import CheckoutVariant
from storefront.schemas.checkout import CheckoutSessionCreate, CheckoutSessionRead, StepChange
from storefront.schemas.order import GatewayPaymentConfirmation
from storefront.services import checkout_engine, checkout_service, pricing
from storefront.services.session_store import CheckoutSessionStore
from storefront.services.storefront_client import StorefrontClient

router = APIRouter(prefix="/checkout/sessions", tags=["checkout"])


@router.post("", response_model=CheckoutSessionRead, status_code=status.HTTP_201_CREATED)
async def open_checkout(
    payload: CheckoutSessionCreate,
    store: CheckoutSessionStore = Depends(get_session_store),
    client: StorefrontClient = Depends(get_storefront_client),
):
    config = pricing.get_checkout_config(payload.currency)
    if payload.variant == CheckoutVariant.buy_now:
        session = await checkout_service.open_buy_now_checkout(store, client, config, payload.intent_id)
    else:
        session = await checkout_service.open_cart_checkout(store, client, config)
    return checkout_engine.session_view(session)


@router.get("/{session_id}", response_model=CheckoutSessionRead)
async def get_checkout(session_id: str, store: CheckoutSessionStore = Depends(get_session_store)):
    # Vencida mientras el comprador estaba en la página.
    session = await checkout_service.load_checkout(store, session_id)
    return checkout_engine.session_view(session)


@router.post("/{session_id}/advance", response_model=CheckoutSessionRead)
async def advance_checkout(
    session_id: str,
    form: dict[str, Any] | None = Body(default=None),
    store: CheckoutSessionStore = Depends(get_session_store),
    client: StorefrontClient = Depends(get_storefront_client),
):
    session = await checkout_service.advance_checkout(store, client, session_id, form)
    return checkout_engine.session_view(session)


@router.post("/{session_id}/goto", response_model=CheckoutSessionRead)
async def go_to_step(
    session_id: str,
    payload: StepChange,
    store: CheckoutSessionStore = Depends(get_session_store),
):
    session = await checkout_service.go_to_step(store, session_id, payload.step)
    return checkout_engine.session_view(session)


@router.post("/{session_id}/back", response_model=CheckoutSessionRead)
async def go_back(session_id: str, store: CheckoutSessionStore = Depends(get_session_store)):
    session = await checkout_service.go_back(store, session_id)
    return checkout_engine.session_view(session)


@router.post("/{session_id}/submit", response_model=CheckoutSessionRead)
async def submit_checkout(
    session_id: str,
    store: CheckoutSessionStore = Depends(get_session_store),
    client: StorefrontClient = Depends(get_storefront_client),
):
    session = await checkout_service.submit_order(store, client, session_id)
    return checkout_engine.session_view(session)


@router.post("/{session_id}/gateway/confirm", response_model=CheckoutSessionRead)
async def confirm_gateway_payment(
    session_id: str,
    payload: GatewayPaymentConfirmation,
    store: CheckoutSessionStore = Depends(get_session_store),
    client: StorefrontClient = Depends(get_storefront_client),
):
    session = await checkout_service.confirm_gateway_payment(store, client, session_id, payload)
    return checkout_engine.session_view(session)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def abandon_checkout(
    session_id: str,
    store: CheckoutSessionStore = Depends(get_session_store),
    client: StorefrontClient = Depends(get_storefront_client),
):
    await checkout_service.abandon_checkout(store, client, session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
