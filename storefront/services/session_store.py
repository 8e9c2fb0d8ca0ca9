from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis_async

from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.schemas.checkout import CheckoutSession
from storefront.services.exceptions import ResourceNotFoundError

logger = get_logger(__name__)


class CheckoutSessionStore:
    """Owns the single mutable reference to each checkout session.

    Sessions live in process memory unless ``REDIS_URL`` is configured. They
    are transient: entries expire after ``CHECKOUT_SESSION_TTL_SECONDS`` and
    nothing is kept once the buyer abandons the flow.
    """

    def __init__(self, ttl_seconds: int | None = None, redis_url: str | None = None, prefix: str = "checkout") -> None:
        self.ttl = ttl_seconds or settings.CHECKOUT_SESSION_TTL_SECONDS
        self._prefix = prefix
        self._memory_store: dict[str, tuple[float, CheckoutSession]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_holders: dict[str, int] = {}
        self._clock = time.monotonic
        self._redis = redis_async.from_url(redis_url, encoding="utf-8", decode_responses=True) if redis_url else None

    def _key(self, session_id: str) -> str:
        return f"{self._prefix}:{session_id}"

    def _is_stale(self, stored_at: float) -> bool:
        return (self._clock() - stored_at) > self.ttl

    def _prune_expired(self) -> None:
        stale = [key for key, (stored_at, _) in self._memory_store.items() if self._is_stale(stored_at)]
        for key in stale:
            self._memory_store.pop(key, None)
        if stale:
            logger.debug("Expired checkout sessions pruned", extra={"count": len(stale)})

    async def get(self, session_id: str) -> CheckoutSession:
        if self._redis:
            payload = await self._redis.get(self._key(session_id))
            if payload:
                return CheckoutSession.model_validate_json(payload)
            raise ResourceNotFoundError("Checkout session not found")

        entry = self._memory_store.get(session_id)
        if entry is None:
            raise ResourceNotFoundError("Checkout session not found")
        stored_at, session = entry
        if self._is_stale(stored_at):
            self._memory_store.pop(session_id, None)
            raise ResourceNotFoundError("Checkout session not found")
        return session

    async def save(self, session: CheckoutSession) -> CheckoutSession:
        if self._redis:
            await self._redis.setex(self._key(session.id), self.ttl, session.model_dump_json())
        else:
            self._prune_expired()
            self._memory_store[session.id] = (self._clock(), session)
        return session

    async def discard(self, session_id: str) -> None:
        if self._redis:
            await self._redis.delete(self._key(session_id))
        self._memory_store.pop(session_id, None)
        logger.info("Checkout session discarded", extra={"checkout_session_id": session_id})

    @asynccontextmanager
    async def locked(self, session_id: str) -> AsyncIterator[None]:
        """Serialize mutations of one session (one action runs to completion)."""
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._lock_holders[session_id] = self._lock_holders.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            # El lock se libera del mapa cuando nadie más lo espera.
            remaining = self._lock_holders[session_id] - 1
            if remaining:
                self._lock_holders[session_id] = remaining
            else:
                self._lock_holders.pop(session_id, None)
                self._locks.pop(session_id, None)

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
