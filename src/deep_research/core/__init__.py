"""
Core module for Deep Research.

Provides:
- Unified exception hierarchy
- Async utilities (rate limiting, circuit breaking, bounded gather)

Python 3.12+ features:
- Type parameter syntax (PEP 695)
- asyncio.timeout / asyncio.TaskGroup
"""

from .async_utils import CircuitBreaker, RateLimiter, gather_bounded, gather_with_errors
from .exceptions import (
    # Base
    DeepResearchError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    # API errors
    APIError,
    NetworkError,
    ParseError,
    RateLimitError,
    ServiceUnavailableError,
    # Validation errors
    InvalidParameterError,
    InvalidQueryError,
    ValidationError,
    # Configuration errors
    ConfigurationError,
    EmptySourceSelectionError,
    UnknownSourceError,
    # Orchestration errors
    ClarificationRequiredError,
    InvalidStateTransitionError,
    OrchestrationError,
    SessionNotFoundError,
    TreeInvariantError,
    # Utilities
    error_message,
    is_retryable_error,
)

__all__ = [
    # Exceptions
    "DeepResearchError",
    "ErrorCategory",
    "ErrorContext",
    "ErrorSeverity",
    "APIError",
    "NetworkError",
    "ParseError",
    "RateLimitError",
    "ServiceUnavailableError",
    "ValidationError",
    "InvalidParameterError",
    "InvalidQueryError",
    "ConfigurationError",
    "EmptySourceSelectionError",
    "UnknownSourceError",
    "OrchestrationError",
    "ClarificationRequiredError",
    "InvalidStateTransitionError",
    "SessionNotFoundError",
    "TreeInvariantError",
    "error_message",
    "is_retryable_error",
    # Async utilities
    "CircuitBreaker",
    "RateLimiter",
    "gather_bounded",
    "gather_with_errors",
]
