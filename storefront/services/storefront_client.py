from __future__ import annotations

from decimal import Decimal
from typing import Any

import httpx

from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.domain.enums import PaymentMethod, ShippingMethod
from storefront.schemas.cart import Cart, PurchaseIntent, ShippingAddress
from storefront.schemas.order import (
    BuyNowCompletion,
    GatewayOrder,
    GatewayPaymentConfirmation,
    OrderCreate,
    OrderPlaced,
)
from storefront.services import cart_service
from storefront.services.exceptions import (
    ExpiredIntentError,
    GatewayError,
    NetworkError,
    ResourceNotFoundError,
)

logger = get_logger(__name__)

CART_PATH = "/api/cart"
ORDERS_PATH = "/api/orders"
BUY_NOW_PATH = "/api/buy-now"
GATEWAY_ORDER_PATH = "/api/v1/create-razorpay-order"
GATEWAY_VERIFY_PATH = "/api/v1/verify-razorpay-payment"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if body.get(key):
                return str(body[key])
    return response.text or response.reason_phrase


class StorefrontClient:
    """Async client for the storefront REST API.

    Transport failures become ``NetworkError``; HTTP errors keep the server
    message verbatim so it can be shown to the buyer.
    """

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    @classmethod
    def from_settings(
        cls,
        *,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "StorefrontClient":
        http = httpx.AsyncClient(
            base_url=settings.STOREFRONT_API_URL,
            timeout=settings.STOREFRONT_API_TIMEOUT_SECONDS,
            headers=headers or {},
            transport=transport,
        )
        return cls(http)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "StorefrontClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, *, json: Any | None = None) -> Any:
        try:
            response = await self._http.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            message = _error_message(exc.response)
            logger.warning(
                "Storefront API error",
                extra={"method": method, "path": path, "status_code": status_code, "detail": message},
            )
            if status_code == 404:
                raise ResourceNotFoundError(message) from exc
            if status_code == 410:
                raise ExpiredIntentError(message) from exc
            raise GatewayError(message, status_code=status_code) from exc
        except httpx.HTTPError as exc:
            logger.error("Storefront API unreachable", extra={"method": method, "path": path, "error": str(exc)})
            raise NetworkError(f"Could not reach the store. Please try again. ({exc.__class__.__name__})") from exc

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _ensure_success(body: Any, fallback: str) -> dict:
        # Los endpoints de la pasarela responden 200 con {"success": false}.
        if not isinstance(body, dict):
            raise GatewayError(fallback)
        if body.get("success") is False:
            raise GatewayError(str(body.get("error") or body.get("message") or fallback))
        return body

    # --- Cart ---

    async def get_cart(self) -> Cart:
        body = await self._request("GET", CART_PATH)
        items = body.get("items", []) if isinstance(body, dict) else body or []
        cart = Cart()
        for item in items:
            product = item.get("product") or {}
            price = item.get("price", product.get("salePrice") or product.get("price"))
            if price is None:
                raise GatewayError("Cart item without price")
            cart = cart_service.add_line(
                cart,
                line_id=str(item.get("id")),
                product_id=str(item.get("productId") or product.get("id")),
                name=product.get("name"),
                unit_price=Decimal(str(price)),
                quantity=int(item.get("quantity", 1)),
            )
        return cart

    async def clear_cart(self) -> None:
        await self._request("DELETE", CART_PATH)

    # --- Orders ---

    async def create_order(self, payload: OrderCreate) -> OrderPlaced:
        body = await self._request("POST", ORDERS_PATH, json=payload.model_dump(mode="json", by_alias=True))
        return OrderPlaced.model_validate(body)

    # --- Buy now ---

    async def create_purchase_intent(self, product_id: str, quantity: int, variant_id: str | None = None) -> PurchaseIntent:
        payload: dict[str, Any] = {"productId": product_id, "quantity": quantity}
        if variant_id:
            payload["variantId"] = variant_id
        body = await self._request("POST", f"{BUY_NOW_PATH}/create-intent", json=payload)
        return self._parse_intent(body)

    async def get_purchase_intent(self, intent_id: str) -> PurchaseIntent:
        body = await self._request("GET", f"{BUY_NOW_PATH}/intent/{intent_id}")
        return self._parse_intent(body)

    async def save_intent_address(
        self,
        intent_id: str,
        address: ShippingAddress,
        *,
        email: str,
        phone: str,
    ) -> None:
        await self._request(
            "POST",
            f"{BUY_NOW_PATH}/intent/{intent_id}/address",
            json={
                "shippingAddress": address.model_dump(mode="json", by_alias=True, exclude_none=True),
                "email": email,
                "phone": phone,
            },
        )

    async def complete_purchase(self, intent_id: str, payment_method: PaymentMethod) -> BuyNowCompletion:
        body = await self._request(
            "POST",
            f"{BUY_NOW_PATH}/complete",
            json={"intentId": intent_id, "paymentMethod": payment_method.value},
        )
        return BuyNowCompletion.model_validate(body)

    async def cancel_purchase_intent(self, intent_id: str) -> None:
        await self._request("POST", f"{BUY_NOW_PATH}/cancel/{intent_id}")

    @staticmethod
    def _parse_intent(body: Any) -> PurchaseIntent:
        if not isinstance(body, dict) or "intent" not in body:
            raise GatewayError("Unexpected purchase intent response")
        product = body.get("product") or {}
        data = dict(body["intent"])
        data.setdefault("name", product.get("name"))
        return PurchaseIntent.model_validate(data)

    # --- Payment gateway ---

    async def create_gateway_order(self, shipping_method: ShippingMethod) -> GatewayOrder:
        body = await self._request("POST", GATEWAY_ORDER_PATH, json={"shippingMethod": shipping_method.value})
        body = self._ensure_success(body, "Failed to create payment order")
        return GatewayOrder.model_validate(body.get("data") or {})

    async def verify_gateway_payment(
        self,
        confirmation: GatewayPaymentConfirmation,
        order: OrderCreate,
    ) -> OrderPlaced:
        body = await self._request(
            "POST",
            GATEWAY_VERIFY_PATH,
            json={
                "razorpay_order_id": confirmation.gateway_order_id,
                "razorpay_payment_id": confirmation.gateway_payment_id,
                "razorpay_signature": confirmation.signature,
                "orderData": order.model_dump(mode="json", by_alias=True),
            },
        )
        body = self._ensure_success(body, "Payment verification failed")
        return OrderPlaced.model_validate(body)
