"""
Structured error types for zap-spine.

Every failure the aggregation engine can observe is expressed as a
``ZapSpineError`` subclass carrying a category, a retry hint and structured
context. Nothing here is ever fatal to the process: the pagination loop
turns errors into an ``error`` string on its loading state, the fan-out
executor turns per-source errors into empty contributions, and analytics
drops malformed records.

Manifesto:
    - **Typed hierarchy:** transport, source, validation and configuration
      failures are distinguishable without string matching
    - **Explicit retry semantics:** transient errors are retryable, config
      and validation errors never are
    - **Rich context:** subject, source URL and batch index travel with the
      error into structured logs
    - **Chaining:** the original exception is preserved as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        ZapSpineError                          │
        │        (category, retryable, retry_after, context, cause)     │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  TransientError       SourceError           ValidationError   │
        │  (retryable=True)     (SOURCE)              (VALIDATION)      │
        │       │                    │                      │           │
        │  NetworkError         SourceUnavailableError RecordValidation │
        │  QueryTimeoutError    AllSourcesFailedError      Error        │
        │                                                               │
        │  ConfigError          DeliveryError                           │
        │  (CONFIG)             (DELIVERY)                              │
        │       │                                                       │
        │  IncompleteWindowError                                        │
        │  MissingSubjectError                                          │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = QueryTimeoutError("relay did not answer", retry_after=5)
    >>> error.retryable
    True
    >>> error.with_context(source_url="wss://relay.example").context.source_url
    'wss://relay.example'

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context,
    zap-spine, observability

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    Categories map onto the error taxonomy of the aggregator:

    - **Transport (transient):** NETWORK
    - **Source/data:** SOURCE, PARSE, VALIDATION
    - **Configuration (never retryable):** CONFIG
    - **Delivery:** DELIVERY
    - **Internal:** INTERNAL, UNKNOWN
    """

    NETWORK = "NETWORK"           # Connection, timeout, DNS
    SOURCE = "SOURCE"             # Unreachable or misbehaving source
    PARSE = "PARSE"               # Undecodable payloads
    VALIDATION = "VALIDATION"     # Malformed records
    CONFIG = "CONFIG"             # Missing subject, incomplete window
    DELIVERY = "DELIVERY"         # Scheduled publication failures
    INTERNAL = "INTERNAL"         # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"           # Uncategorized errors


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        subject: Subject (public key) the operation was running for
        source_url: URL of the source being queried or published to
        batch_index: Pagination batch number, when applicable
        record_id: Offending record id, for validation errors
        metadata: Additional key-value pairs
    """

    subject: str | None = None
    source_url: str | None = None
    batch_index: int | None = None
    record_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ["subject", "source_url", "batch_index", "record_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ZapSpineError(Exception):
    """
    Base exception for all zap-spine errors.

    Subclasses set ``default_category`` and ``default_retryable`` to give
    sensible defaults for their domain; callers may override either per
    instance.

    Examples:
        >>> error = ZapSpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ZapSpineError:
        """
        Add context fields, returning ``self`` for fluent raising.

        Known ``ErrorContext`` fields are set directly; anything else lands
        in ``context.metadata``.
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (transport, retryable)
# =============================================================================


class TransientError(ZapSpineError):
    """Temporary error that may succeed on retry."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class NetworkError(TransientError):
    """Connection-level failure talking to a source."""


class QueryTimeoutError(TransientError):
    """A query did not settle before its deadline."""


# =============================================================================
# SOURCE ERRORS
# =============================================================================


class SourceError(ZapSpineError):
    """A source misbehaved or could not be used."""

    default_category = ErrorCategory.SOURCE
    default_retryable = True


class SourceUnavailableError(SourceError):
    """A source could not be opened (bad URL, refused connection)."""


class ParseError(SourceError):
    """A source returned data that could not be decoded."""

    default_category = ErrorCategory.PARSE
    default_retryable = False


class AllSourcesFailedError(SourceError):
    """
    Every sub-query of a fan-out failed.

    Built by ``FanoutResult.failure`` and raised by its callers (the
    pagination loop, the lookups), never by the fan-out executor itself,
    so that a fully failed cycle counts towards the circuit breaker.
    """

    def __init__(self, message: str = "All sources failed", *, failures: int = 0, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.failures = failures


# =============================================================================
# VALIDATION ERRORS (never retryable)
# =============================================================================


class ValidationError(ZapSpineError):
    """Data failed validation."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


class RecordValidationError(ValidationError):
    """A record is missing required fields or has malformed values."""


# =============================================================================
# CONFIGURATION ERRORS (never retryable)
# =============================================================================


class ConfigError(ZapSpineError):
    """Invalid request or configuration; short-circuits without querying."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingSubjectError(ConfigError):
    """No subject was supplied."""

    def __init__(self, message: str = "No subject selected", **kwargs: Any):
        super().__init__(message, **kwargs)


class IncompleteWindowError(ConfigError):
    """A custom window is missing its start or end date."""

    def __init__(self, message: str = "Custom range requires both start and end dates", **kwargs: Any):
        super().__init__(message, **kwargs)


# =============================================================================
# DELIVERY ERRORS
# =============================================================================


class DeliveryError(ZapSpineError):
    """A scheduled payload could not be delivered to any target source."""

    default_category = ErrorCategory.DELIVERY
    default_retryable = True


# =============================================================================
# HELPERS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Whether an exception should be retried automatically."""
    if isinstance(error, ZapSpineError):
        return error.retryable
    return isinstance(error, (asyncio.TimeoutError, ConnectionError, OSError))


def categorize_error(error: BaseException) -> ErrorCategory:
    """Map any exception onto an ``ErrorCategory``."""
    if isinstance(error, ZapSpineError):
        return error.category
    if isinstance(error, (asyncio.TimeoutError, ConnectionError)):
        return ErrorCategory.NETWORK
    if isinstance(error, (ValueError, KeyError, TypeError)):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


def error_message(error: BaseException) -> str:
    """Human-readable message for surfacing on a loading state."""
    if isinstance(error, ZapSpineError):
        return error.message
    if isinstance(error, asyncio.TimeoutError):
        return "Query timed out"
    return str(error) or error.__class__.__name__


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ZapSpineError",
    "TransientError",
    "NetworkError",
    "QueryTimeoutError",
    "SourceError",
    "SourceUnavailableError",
    "ParseError",
    "AllSourcesFailedError",
    "ValidationError",
    "RecordValidationError",
    "ConfigError",
    "MissingSubjectError",
    "IncompleteWindowError",
    "DeliveryError",
    "is_retryable",
    "categorize_error",
    "error_message",
]
