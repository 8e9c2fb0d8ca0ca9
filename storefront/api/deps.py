# storefront/api/deps.py
from collections.abc import AsyncIterator

from fastapi import Request

from storefront.core.config import settings
from storefront.services.session_store import CheckoutSessionStore
from storefront.services.storefront_client import StorefrontClient


def get_session_store(request: Request) -> CheckoutSessionStore:
    return request.app.state.session_store


def forwarded_headers(request: Request) -> dict[str, str]:
    # Las credenciales del comprador viajan opacas hacia el backend.
    return {
        name: value
        for name, value in request.headers.items()
        if name.lower() in settings.FORWARDED_HEADERS
    }


async def get_storefront_client(request: Request) -> AsyncIterator[StorefrontClient]:
    async with StorefrontClient.from_settings(headers=forwarded_headers(request)) as client:
        yield client

