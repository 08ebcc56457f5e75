"""Infrastructure modules shared by the sync engine.

Classes:
    ProviderClient: aiohttp client for third-party provider APIs
    ErrorSanitizer: Redacts credentials from error strings

Exceptions:
    SMMError: Base exception for all sync engine errors
    ConfigurationError: Incomplete provider API specification
    ProviderResponseError: Empty, unparseable or error provider response
    APIError: Non-2xx provider response
    NetworkError: Transport failure or timeout
    PersistenceError: Order or sync-log write failure
    SyncError: Run-level failure (candidate fetch)

Database:
    database_transaction / database_connection: asyncpg helpers that
    convert driver errors into PersistenceError subtypes
"""
from .client import DEFAULT_TIMEOUT_SECONDS, ProviderClient
from .database import (
    check_database_health,
    close_pool,
    create_pool,
    database_connection,
    database_transaction,
)
from .error_sanitizer import ErrorSanitizer, get_sanitizer, sanitize_error_message
from .exceptions import (
    APIError,
    CandidateFetchError,
    ConfigurationError,
    ConnectionError,
    ConnectionPoolError,
    NetworkError,
    NotFoundError,
    PersistenceError,
    ProviderResponseError,
    RateLimitError,
    ServerError,
    SMMError,
    SyncError,
    TimeoutError,
    TransactionError,
)

__all__ = [
    # Client
    "ProviderClient",
    "DEFAULT_TIMEOUT_SECONDS",
    # Database
    "check_database_health",
    "close_pool",
    "create_pool",
    "database_connection",
    "database_transaction",
    # Sanitization
    "ErrorSanitizer",
    "get_sanitizer",
    "sanitize_error_message",
    # Exceptions
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
