from __future__ import annotations

from fastapi import APIRouter, Depends, status

from storefront.api.deps import get_storefront_client
from storefront.schemas.cart import PurchaseIntent, PurchaseIntentCreate
from storefront.services import checkout_service
from storefront.services.storefront_client import StorefrontClient

router = APIRouter(prefix="/buy-now", tags=["buy-now"])


@router.post("/intents", response_model=PurchaseIntent, status_code=status.HTTP_201_CREATED)
async def create_purchase_intent(
    payload: PurchaseIntentCreate,
    client: StorefrontClient = Depends(get_storefront_client),
):
    return await checkout_service.create_purchase_intent(
        client,
        payload.product_id,
        quantity=payload.quantity,
        variant_id=payload.variant_id,
    )
