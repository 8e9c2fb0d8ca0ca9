from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.core.logging import get_logger
from storefront.services.exceptions import (
    ConflictError,
    DomainValidationError,
    ExpiredIntentError,
    GatewayError,
    NetworkError,
    ResourceNotFoundError,
    ServiceError,
    ValidationError,
)

logger = get_logger("storefront.errors")


def _content(exc: ServiceError, **extra) -> dict:
    return {"detail": exc.detail, "retryable": exc.retryable, **extra}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def handle_field_errors(_: Request, exc: ValidationError) -> JSONResponse:
        errors = [{"field": error.field, "message": error.message} for error in exc.errors]
        return JSONResponse(status_code=422, content=_content(exc, errors=errors))

    @app.exception_handler(ResourceNotFoundError)
    async def handle_not_found(_: Request, exc: ResourceNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content=_content(exc))

    @app.exception_handler(ExpiredIntentError)
    async def handle_expired(_: Request, exc: ExpiredIntentError) -> JSONResponse:
        return JSONResponse(status_code=410, content=_content(exc))

    @app.exception_handler(DomainValidationError)
    async def handle_validation(_: Request, exc: DomainValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content=_content(exc))

    @app.exception_handler(ConflictError)
    async def handle_conflict(_: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=409, content=_content(exc))

    @app.exception_handler(NetworkError)
    async def handle_network(_: Request, exc: NetworkError) -> JSONResponse:
        return JSONResponse(status_code=503, content=_content(exc))

    @app.exception_handler(GatewayError)
    async def handle_gateway(request: Request, exc: GatewayError) -> JSONResponse:
        logger.warning(
            "Storefront rejected the operation",
            extra={"path": request.url.path, "upstream_status": exc.status_code, "detail": exc.detail},
        )
        return JSONResponse(
            status_code=502,
            content=_content(exc, message=f"We could not complete your request: {exc.detail}"),
        )

    @app.exception_handler(ServiceError)
    async def handle_service_error(_: Request, exc: ServiceError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_content(exc))
