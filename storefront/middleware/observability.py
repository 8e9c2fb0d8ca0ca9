from __future__ import annotations

import time
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from storefront.core.logging import get_logger
from storefront.core.metrics import normalize_path, record_request_metrics


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Middleware to collect latency metrics and emit structured error logs."""

    def __init__(self, app, *, log_4xx: bool = True, log_5xx: bool = True) -> None:
        super().__init__(app)
        self.logger = get_logger("storefront.requests")
        self.log_4xx = log_4xx
        self.log_5xx = log_5xx

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration = time.perf_counter() - start
            record_request_metrics(request, 500, duration)
            self._log_error(request, 500, duration, "Unhandled server error", "error")
            raise

        duration = time.perf_counter() - start
        status_code = response.status_code
        record_request_metrics(request, status_code, duration)

        if status_code >= 500 and self.log_5xx:
            self._log_error(request, status_code, duration, "Server error response", "error")
        elif status_code >= 400 and self.log_4xx:
            self._log_error(request, status_code, duration, "Client error response", "warning")

        return response

    def _log_error(
        self,
        request: Request,
        status_code: int,
        duration: float,
        message: str,
        level: str,
    ) -> None:
        payload: dict[str, Any] = {
            "method": request.method,
            "path": normalize_path(request),
            "status_code": status_code,
            "duration_ms": round(duration * 1000, 3),
            "checkout_session_id": request.path_params.get("session_id"),
            "request_id": request.headers.get("x-request-id"),
        }
        log_func = getattr(self.logger, level, self.logger.error)
        log_func(message, extra=payload)
