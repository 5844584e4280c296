from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from fastapi import HTTPException, status
from pydantic import BaseModel, Field


class AIGateError(Exception):
    """Base class for routing/health errors raised by this package."""


class ProviderNotFound(AIGateError):
    """Raised when an operation names a provider that is not registered."""

    def __init__(self, provider_name: str):
        self.provider_name = provider_name
        super().__init__(f"Provider not found: {provider_name}")


class NoProviderAvailable(AIGateError):
    """Raised when the candidate set is empty after filtering."""

    def __init__(
        self,
        message: str = "No providers available for the given criteria",
        *,
        criteria: Optional[Dict[str, Any]] = None,
    ):
        self.criteria = criteria
        super().__init__(message)


class ProbeFailure(AIGateError):
    """
    A single provider's health probe failed.

    Never propagated out of the health monitor: it is converted into a
    DOWN HealthStatus for that provider.
    """

    def __init__(self, provider_name: str, reason: str):
        self.provider_name = provider_name
        self.reason = reason
        super().__init__(f"Health check failed for {provider_name}: {reason}")


class MonitoringCycleError(AIGateError):
    """Alert evaluation failed for one provider inside monitor_all()."""

    def __init__(self, provider_name: str, reason: str):
        self.provider_name = provider_name
        self.reason = reason
        super().__init__(f"Error monitoring provider {provider_name}: {reason}")


class ProviderInvocationError(AIGateError):
    """The upstream generation call failed."""

    def __init__(
        self,
        provider_name: str,
        message: str,
        *,
        error_type: str = "SYSTEM_ERROR",
        retryable: bool = True,
        status_code: Optional[int] = None,
    ):
        self.provider_name = provider_name
        self.error_type = error_type
        self.retryable = retryable
        self.status_code = status_code
        super().__init__(message)


class AllProvidersFailed(AIGateError):
    """Every attempted provider failed during failover."""

    def __init__(self, attempted: Sequence[str], last_error: Optional[BaseException]):
        self.attempted = list(attempted)
        self.last_error = last_error
        detail = str(last_error) if last_error is not None else "Unknown error"
        super().__init__(f"All AI providers failed to generate content. Last error: {detail}")


class ErrorResponse(BaseModel):
    """
    Standard error payload used by the provider endpoints:
    {
        "error": "not_found",
        "message": "Provider not found",
        "code": 404,
        "details": {...}
    }
    """

    error: str = Field(..., description="Machine-readable error type")
    message: str = Field(..., description="Human-readable error message")
    code: int = Field(..., description="HTTP status code for this error")
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Optional structured error details"
    )


def http_error(
    status_code: int,
    *,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> HTTPException:
    """
    Helper to create an HTTPException with a standardised error body.
    """
    payload = ErrorResponse(
        error=error,
        message=message,
        code=status_code,
        details=details,
    )
    return HTTPException(status_code=status_code, detail=payload.model_dump())


def bad_request(message: str, *, details: Optional[Dict[str, Any]] = None) -> HTTPException:
    return http_error(
        status.HTTP_400_BAD_REQUEST, error="bad_request", message=message, details=details
    )


def not_found(message: str, *, details: Optional[Dict[str, Any]] = None) -> HTTPException:
    return http_error(
        status.HTTP_404_NOT_FOUND, error="not_found", message=message, details=details
    )


def service_unavailable(
    message: str, *, details: Optional[Dict[str, Any]] = None
) -> HTTPException:
    return http_error(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        error="service_unavailable",
        message=message,
        details=details,
    )


__all__ = [
    "AIGateError",
    "AllProvidersFailed",
    "ErrorResponse",
    "MonitoringCycleError",
    "NoProviderAvailable",
    "ProbeFailure",
    "ProviderInvocationError",
    "ProviderNotFound",
    "bad_request",
    "http_error",
    "not_found",
    "service_unavailable",
]
