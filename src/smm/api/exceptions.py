#!/usr/bin/env python3
"""Exception Hierarchy for the SMM panel provider sync engine.

This module provides a structured exception hierarchy for handling errors
across provider communication, response parsing, persistence and sync runs.

Design Principles:
    - All exceptions inherit from SMMError base class
    - Exceptions preserve context (original error, timestamps, details)
    - Exceptions are categorized by recoverability

Exception Hierarchy:
    SMMError (base)
    ├── ConfigurationError (unrecoverable - fix provider config)
    ├── ProviderResponseError (empty, non-JSON or error-bearing body)
    ├── APIError (non-2xx provider response)
    │   ├── RateLimitError
    │   ├── NotFoundError
    │   └── ServerError
    ├── NetworkError (recoverable - retry next run)
    │   ├── ConnectionError
    │   └── TimeoutError
    ├── PersistenceError (order/log write failures)
    │   ├── ConnectionPoolError
    │   └── TransactionError
    └── SyncError (run-level failures)
        └── CandidateFetchError
"""
from datetime import datetime, timezone
from typing import Any, Optional

# ============================================
# Base Exception
# ============================================

class SMMError(Exception):
    """Base exception for all sync engine errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "PROVIDER_RESPONSE_ERROR")
        details: Additional context as a dictionary
        timestamp: When the error occurred
        cause: The original exception that caused this error
        recoverable: Whether a later run might succeed without intervention
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause
        self.recoverable = recoverable

        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.insert(0, f"[{self.code}]")
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================
# Configuration Errors (Unrecoverable)
# ============================================

class ConfigurationError(SMMError):
    """Raised when a provider configuration is missing or invalid.

    Raised before any network call is attempted.
    """

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list[str]] = None,
        provider_id: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if missing_keys:
            details["missing_keys"] = missing_keys
        if provider_id is not None:
            details["provider_id"] = provider_id
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details=details,
            recoverable=False,
            **kwargs,
        )
        self.missing_keys = missing_keys or []
        self.provider_id = provider_id


# ============================================
# Provider Response Errors
# ============================================

class ProviderResponseError(SMMError):
    """Raised when a provider body is empty, not JSON, or reports an error."""

    def __init__(
        self,
        message: str = "Empty response from provider",
        response_body: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if response_body:
            details["response_body"] = response_body[:200]
        kwargs.setdefault("recoverable", True)
        super().__init__(
            message,
            code="PROVIDER_RESPONSE_ERROR",
            details=details,
            **kwargs,
        )
        self.response_body = response_body


# ============================================
# API Errors
# ============================================

class APIError(SMMError):
    """Base class for non-2xx provider responses.

    Attributes:
        status_code: HTTP status code
        endpoint: Provider URL that was called
        response_body: Raw response body (may be truncated)
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        endpoint: Optional[str] = None,
        response_body: Optional[str] = None,
        method: str = "POST",
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["status_code"] = status_code
        if endpoint:
            details["endpoint"] = endpoint
        if method:
            details["method"] = method
        if response_body:
            details["response_body"] = response_body[:500]

        kwargs.setdefault("recoverable", status_code in (429, 500, 502, 503, 504))
        kwargs.setdefault("code", f"API_ERROR_{status_code}")

        super().__init__(
            message,
            details=details,
            **kwargs,
        )
        self.status_code = status_code
        self.endpoint = endpoint
        self.response_body = response_body
        self.method = method


class RateLimitError(APIError):
    """Raised when a provider rejects the request with HTTP 429."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
        **kwargs,
    ):
        kwargs.setdefault("status_code", 429)
        details = kwargs.pop("details", {})
        if retry_after:
            details["retry_after_seconds"] = retry_after
        super().__init__(
            message,
            code="RATE_LIMIT_EXCEEDED",
            details=details,
            **kwargs,
        )
        self.retry_after = retry_after or 60


class NotFoundError(APIError):
    """Raised when the provider endpoint returns HTTP 404."""

    def __init__(
        self,
        message: str = "Provider endpoint not found",
        **kwargs,
    ):
        kwargs.setdefault("status_code", 404)
        super().__init__(
            message,
            code="NOT_FOUND",
            recoverable=False,
            **kwargs,
        )


class ServerError(APIError):
    """Raised when a provider returns a 5xx error."""

    def __init__(
        self,
        message: str = "Provider server error",
        **kwargs,
    ):
        kwargs.setdefault("status_code", 500)
        super().__init__(
            message,
            code="SERVER_ERROR",
            recoverable=True,
            **kwargs,
        )


# ============================================
# Network Errors (Usually Recoverable)
# ============================================

class NetworkError(SMMError):
    """Base class for transport-level failures."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class ConnectionError(NetworkError):
    """Raised when the connection to a provider fails."""

    def __init__(
        self,
        message: str = "Failed to connect to provider",
        host: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if host:
            details["host"] = host
        super().__init__(
            message,
            code="CONNECTION_ERROR",
            details=details,
            **kwargs,
        )


class TimeoutError(NetworkError):
    """Raised when a provider call exceeds the provider's timeout."""

    def __init__(
        self,
        message: str = "Request timed out",
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if timeout_seconds:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(
            message,
            code="TIMEOUT_ERROR",
            details=details,
            **kwargs,
        )
        self.timeout_seconds = timeout_seconds


# ============================================
# Persistence Errors
# ============================================

class PersistenceError(SMMError):
    """Base class for order and sync-log write failures."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class ConnectionPoolError(PersistenceError):
    """Raised when the database pool is exhausted or unavailable."""

    def __init__(
        self,
        message: str = "Database connection pool error",
        **kwargs,
    ):
        super().__init__(message, code="CONNECTION_POOL_ERROR", **kwargs)


class TransactionError(PersistenceError):
    """Raised when a database transaction fails."""

    def __init__(
        self,
        message: str = "Database transaction failed",
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        super().__init__(
            message,
            code="TRANSACTION_ERROR",
            details=details,
            **kwargs,
        )


# ============================================
# Sync Errors
# ============================================

class SyncError(SMMError):
    """Base class for run-level synchronization errors."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)


class CandidateFetchError(SyncError):
    """Raised when the candidate order set cannot be determined.

    This is the only error that aborts a whole sync run.
    """

    def __init__(
        self,
        message: str = "Failed to load orders to sync",
        **kwargs,
    ):
        super().__init__(
            message,
            code="CANDIDATE_FETCH_ERROR",
            recoverable=True,
            **kwargs,
        )


__all__ = [
    "SMMError",
    "ConfigurationError",
    "ProviderResponseError",
    "APIError",
    "RateLimitError",
    "NotFoundError",
    "ServerError",
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
    "PersistenceError",
    "ConnectionPoolError",
    "TransactionError",
    "SyncError",
    "CandidateFetchError",
]
