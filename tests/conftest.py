# tests/conftest.py
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest
import pytest_asyncio
from fastapi import Request

from storefront.api.deps import forwarded_headers, get_storefront_client
from storefront.main import app
from storefront.services.session_store import CheckoutSessionStore
from storefront.services.storefront_client import StorefrontClient

VALID_SHIPPING = {
    "email": "ana@example.com",
    "firstName": "Ana",
    "lastName": "Gomez",
    "phone": "(555) 123-4567",
    "streetAddress": "742 Evergreen Terrace",
    "city": "Springfield",
    "state": "OR",
    "zipCode": "97403",
    "shippingMethod": "standard",
}


class FakeStorefront:
    """Backend del storefront en memoria servido vía httpx.MockTransport."""

    def __init__(self) -> None:
        self.cart_items: list[dict[str, Any]] = []
        self.intents: dict[str, dict[str, Any]] = {}
        self.gone_intents: set[str] = set()
        self.products: dict[str, dict[str, Any]] = {}
        self.requests: list[tuple[str, str, Any]] = []
        self.last_headers: dict[str, str] = {}
        self.failures: dict[tuple[str, str], Any] = {}
        self._order_seq = 0

    # --- helpers de armado ---

    def add_cart_item(self, product_id: str, price: float, quantity: int = 1, name: str = "Item") -> None:
        self.cart_items.append(
            {
                "id": f"line-{len(self.cart_items) + 1}",
                "productId": product_id,
                "quantity": quantity,
                "price": price,
                "product": {"id": product_id, "name": name},
            }
        )

    def add_intent(
        self,
        *,
        price: float,
        quantity: int = 1,
        expires_in: timedelta = timedelta(minutes=15),
        **extra: Any,
    ) -> str:
        intent_id = f"intent-{uuid.uuid4().hex[:8]}"
        self.intents[intent_id] = {
            "id": intent_id,
            "productId": "prod-1",
            "quantity": quantity,
            "price": price,
            "status": "pending",
            "expiresAt": (datetime.now(timezone.utc) + expires_in).isoformat(),
            **extra,
        }
        return intent_id

    def fail(self, method: str, path: str, outcome: Any) -> None:
        self.failures[(method, path)] = outcome

    def calls(self, method: str, path: str) -> list[Any]:
        return [body for m, p, body in self.requests if m == method and p == path]

    def _next_order(self) -> int:
        self._order_seq += 1
        return self._order_seq

    # --- transporte ---

    def handle(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        body = json.loads(request.content) if request.content else None
        self.requests.append((method, path, body))
        self.last_headers = dict(request.headers)

        if (method, path) in self.failures:
            outcome = self.failures[(method, path)]
            if isinstance(outcome, Exception):
                raise outcome
            status_code, payload = outcome
            return httpx.Response(status_code, json=payload)

        if path == "/api/cart":
            if method == "DELETE":
                self.cart_items = []
                return httpx.Response(200, json={"success": True})
            return httpx.Response(200, json={"items": self.cart_items})

        if path == "/api/orders" and method == "POST":
            seq = self._next_order()
            return httpx.Response(201, json={"orderId": f"ord-{seq}", "orderNumber": f"SF-{1000 + seq}"})

        if path == "/api/buy-now/create-intent":
            intent_id = self.add_intent(price=25.0, quantity=body["quantity"])
            self.intents[intent_id]["productId"] = body["productId"]
            return httpx.Response(201, json={"intent": self.intents[intent_id], "product": {"name": "Lamp"}})

        if path.startswith("/api/buy-now/intent/"):
            intent_id = path.split("/")[4]
            if intent_id in self.gone_intents:
                return httpx.Response(410, json={"message": "Purchase intent has expired"})
            if intent_id not in self.intents:
                return httpx.Response(404, json={"message": "Purchase intent not found"})
            if path.endswith("/address"):
                self.intents[intent_id]["shippingAddress"] = body["shippingAddress"]
                self.intents[intent_id]["email"] = body["email"]
                self.intents[intent_id]["phone"] = body["phone"]
                return httpx.Response(200, json={"success": True})
            return httpx.Response(200, json={"intent": self.intents[intent_id], "product": {"name": "Lamp"}})

        if path == "/api/buy-now/complete":
            seq = self._next_order()
            self.intents[body["intentId"]]["status"] = "completed"
            return httpx.Response(200, json={"success": True, "orderId": f"bn-{seq}", "redirectUrl": "/orders"})

        if path.startswith("/api/buy-now/cancel/"):
            self.intents[path.rsplit("/", 1)[-1]]["status"] = "cancelled"
            return httpx.Response(200, json={"success": True})

        if path == "/api/v1/create-razorpay-order":
            return httpx.Response(
                200,
                json={"success": True, "data": {"id": "order_gw_1", "currency": "USD", "amount": 5319}},
            )

        if path == "/api/v1/verify-razorpay-payment":
            seq = self._next_order()
            return httpx.Response(200, json={"success": True, "orderId": f"gw-{seq}"})

        return httpx.Response(404, json={"message": f"No route for {method} {path}"})


# ---------- Fixtures ----------

@pytest.fixture(scope="function")
def backend() -> FakeStorefront:
    return FakeStorefront()


@pytest.fixture(scope="function")
def session_store() -> CheckoutSessionStore:
    return CheckoutSessionStore(ttl_seconds=60)


@pytest_asyncio.fixture(scope="function")
async def storefront_client(backend: FakeStorefront):
    async with StorefrontClient.from_settings(transport=httpx.MockTransport(backend.handle)) as sf_client:
        yield sf_client


@pytest_asyncio.fixture(scope="function")
async def client(backend: FakeStorefront, session_store: CheckoutSessionStore):
    """AsyncClient contra la app, con el backend falso y un store limpio."""

    async def _override_client(request: Request):
        async with StorefrontClient.from_settings(
            headers=forwarded_headers(request),
            transport=httpx.MockTransport(backend.handle),
        ) as sf_client:
            yield sf_client

    app.dependency_overrides[get_storefront_client] = _override_client
    previous_store = app.state.session_store
    app.state.session_store = session_store
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.state.session_store = previous_store
    app.dependency_overrides.clear()
