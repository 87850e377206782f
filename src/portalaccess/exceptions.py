"""Unified exception hierarchy for portalaccess.

Every error raised by the package inherits from PortalAccessError. This
module provides:
- Base exception hierarchy with stable error codes
- ErrorRegistry for protocol mapping
- HTTP status to exception mapping

Resolution misses (unknown system, section or action) are NOT errors:
the resolver answers "denied" for them. Exceptions are reserved for
transport failures, invalid grant trees and fail-closed query paths.
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar, cast

__all__ = [
    # Base hierarchy
    "PortalAccessError",
    "ConfigurationError",
    "TransportError",
    "AuthenticationError",
    "ForbiddenError",
    "NotFoundError",
    "ServerError",
    "GrantTreeError",
    "GrantTreeUnavailableError",
    "AccessDeniedError",
    "InvalidFilterError",
    # Registry
    "ErrorRegistry",
    "error_registry",
    "register_error",
    # HTTP helpers
    "error_for_status",
]


# ---- Exception Hierarchy ----------------------------------------------------


class PortalAccessError(Exception):
    """Base exception for portalaccess.

    Attributes:
        code: Stable error code string (e.g. "TRANSPORT_ERROR").
        message: Human-readable error description.
        details: Additional context as keyword arguments.
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(self, message: str | None = None, code: str | None = None, **kwargs: Any) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = kwargs
        super().__init__(self.message)


class ConfigurationError(PortalAccessError):
    """Invalid or missing configuration."""

    code: str = "CONFIGURATION_ERROR"


class TransportError(PortalAccessError):
    """Request to the portal failed (network error or non-success status)."""

    code: str = "TRANSPORT_ERROR"
    message: str = "Request to the portal failed"

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        status_code: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, code, **kwargs)
        self.status_code = status_code


class AuthenticationError(TransportError):
    """Caller is not authenticated (401)."""

    code: str = "UNAUTHENTICATED"


class ForbiddenError(TransportError):
    """Portal refused the request (403)."""

    code: str = "FORBIDDEN"


class NotFoundError(TransportError):
    """Resource does not exist (404)."""

    code: str = "NOT_FOUND"


class ServerError(TransportError):
    """Portal failed to process the request (5xx)."""

    code: str = "SERVER_ERROR"


class GrantTreeError(PortalAccessError):
    """Grant tree failed validation at ingestion."""

    code: str = "GRANT_TREE_INVALID"


class GrantTreeUnavailableError(PortalAccessError):
    """Portal answered "not modified" but no grant tree is held locally."""

    code: str = "GRANT_TREE_UNAVAILABLE"


class AccessDeniedError(PortalAccessError):
    """Caller holds no grant that would let the operation proceed."""

    code: str = "ACCESS_DENIED"


class InvalidFilterError(PortalAccessError):
    """Filter row is incomplete or uses an operator its field does not support."""

    code: str = "INVALID_FILTER"


# ---- Error Registry for Protocol Mapping ------------------------------------

_E = TypeVar("_E", bound=type[PortalAccessError])


class ErrorRegistry:
    """Registry mapping stable error codes to exception classes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[PortalAccessError]] = {}

    def register(self, code: str, error_cls: type[PortalAccessError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[PortalAccessError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[PortalAccessError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("RATE_LIMITED")
        class RateLimitedError(TransportError):
            code = "RATE_LIMITED"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


# Register base errors
error_registry.register("INTERNAL_ERROR", PortalAccessError)
error_registry.register("CONFIGURATION_ERROR", ConfigurationError)
error_registry.register("TRANSPORT_ERROR", TransportError)
error_registry.register("UNAUTHENTICATED", AuthenticationError)
error_registry.register("FORBIDDEN", ForbiddenError)
error_registry.register("NOT_FOUND", NotFoundError)
error_registry.register("SERVER_ERROR", ServerError)
error_registry.register("GRANT_TREE_INVALID", GrantTreeError)
error_registry.register("GRANT_TREE_UNAVAILABLE", GrantTreeUnavailableError)
error_registry.register("ACCESS_DENIED", AccessDeniedError)
error_registry.register("INVALID_FILTER", InvalidFilterError)


# ---- HTTP Error Mapping -----------------------------------------------------


def error_for_status(status_code: int) -> type[TransportError]:
    """Map an HTTP status code to the TransportError subclass to raise."""
    status_to_code = {
        401: "UNAUTHENTICATED",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
    }
    code = status_to_code.get(status_code)
    if code is None and status_code >= 500:
        code = "SERVER_ERROR"
    error_cls = error_registry.get(code or "TRANSPORT_ERROR")
    if error_cls is None or not issubclass(error_cls, TransportError):
        return TransportError
    return error_cls
