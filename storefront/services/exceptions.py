# storefront/services/exceptions.py
from __future__ import annotations

from dataclasses import dataclass


class ServiceError(Exception):
    """Clase base para errores de la capa de servicio."""

    retryable = False

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class DomainValidationError(ServiceError):
    """Entrada de dominio inválida."""
    pass


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


class ValidationError(DomainValidationError):
    """Uno o más campos de un paso del checkout son inválidos."""

    def __init__(self, errors: list[FieldError], detail: str = "Please correct the highlighted fields."):
        self.errors = list(errors)
        super().__init__(detail)

    @property
    def fields(self) -> list[str]:
        return [error.field for error in self.errors]


class InvalidShippingMethodError(DomainValidationError):
    """El método de envío no es uno de los enumerados."""

    def __init__(self, method: object):
        self.method = method
        super().__init__(f"Invalid shipping method: {method}")


class UnsupportedCurrencyError(DomainValidationError):
    """No hay configuración de checkout para la moneda."""
    pass


class EmptyCartError(DomainValidationError):
    """Checkout iniciado con un carrito vacío."""
    pass


class ResourceNotFoundError(ServiceError):
    """Recurso no encontrado."""
    pass


class ExpiredIntentError(ServiceError):
    """La intención de compra expiró; la sesión no admite más transiciones."""
    pass


class ConflictError(ServiceError):
    """Conflicto de estado en la operación."""
    pass


class InvalidTransitionError(ConflictError):
    """Transición de paso no permitida desde el estado actual."""
    pass


class SubmissionInFlightError(ConflictError):
    """Ya hay un envío de orden en curso para la sesión."""
    pass


class NetworkError(ServiceError):
    """No se pudo contactar al backend; el usuario puede reintentar."""

    retryable = True


class GatewayError(ServiceError):
    """El backend o la pasarela rechazó la operación; se puede reintentar."""

    retryable = True

    def __init__(self, detail: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(detail)
