from __future__ import annotations

from fastapi import APIRouter

from storefront.core.config import settings
from storefront.schemas.pricing import CheckoutConfigRead, QuoteRequest, QuoteResponse
from storefront.services import pricing

router = APIRouter(prefix="/pricing", tags=["pricing"])


@router.get("/configs", response_model=list[CheckoutConfigRead])
async def list_checkout_configs():
    return [
        CheckoutConfigRead.from_config(settings.CHECKOUT_CONFIGS[currency])
        for currency in settings.supported_currencies
    ]


@router.post("/quote", response_model=QuoteResponse)
async def quote_order(payload: QuoteRequest):
    config = pricing.get_checkout_config(payload.currency)
    totals = pricing.calculate_totals(payload.subtotal, payload.shipping_method, config)
    return QuoteResponse(
        **totals.model_dump(),
        free_shipping_remaining=pricing.free_shipping_remaining(totals.subtotal, config),
    )
