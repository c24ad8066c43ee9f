"""Custom exceptions for the application."""

from typing import Any


class AppException(Exception):
    """Base exception for application errors."""

    status_code: int = 400

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class InvalidWebhookPayload(AppException):
    """Raised when a provider webhook lacks the fields needed to route it."""

    def __init__(self, message: str, code: str = "INVALID_PAYLOAD") -> None:
        super().__init__(message, code=code)


class ConnectionNotFound(AppException):
    """Raised when no connection matches an instance identifier."""

    status_code = 404

    def __init__(self, instance: str) -> None:
        super().__init__(
            f"Connection not found: {instance}",
            code="CONNECTION_NOT_FOUND",
            details={"instance": instance},
        )


class ProviderConfigNotFound(AppException):
    """Raised when a provider configuration is not found."""

    status_code = 404

    def __init__(self, provider_id: str) -> None:
        super().__init__(
            f"Provider config not found: {provider_id}",
            code="PROVIDER_CONFIG_NOT_FOUND",
            details={"provider_id": provider_id},
        )


class ProviderInUse(AppException):
    """Raised when deleting a provider configuration still bound to connections."""

    status_code = 409

    def __init__(self, provider_id: str) -> None:
        super().__init__(
            "Cannot delete a provider with associated connections",
            code="PROVIDER_IN_USE",
            details={"provider_id": provider_id},
        )
