"""
Unified Exception Hierarchy for Deep Research.

Exception Hierarchy:
    DeepResearchError (base)
    ├── APIError                       provider failures, caught by the aggregator
    │   ├── RateLimitError
    │   ├── NetworkError
    │   ├── ServiceUnavailableError
    │   └── ParseError
    ├── ValidationError
    │   ├── InvalidQueryError
    │   └── InvalidParameterError
    ├── ConfigurationError             fatal to the single call that raised it
    │   ├── UnknownSourceError
    │   └── EmptySourceSelectionError
    └── OrchestrationError
        ├── SessionNotFoundError
        ├── InvalidStateTransitionError
        ├── TreeInvariantError
        └── ClarificationRequiredError

Running out of sources, time or revisions is not an error. It is reported
on the session and never raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Any


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    WARNING = auto()  # Recoverable, can continue
    ERROR = auto()  # Failed but can retry
    CRITICAL = auto()  # Cannot continue
    TRANSIENT = auto()  # Temporary, should retry automatically


class ErrorCategory(Enum):
    """Categories for error classification."""

    PROVIDER = "provider"
    VALIDATION = "validation"
    CONFIGURATION = "config"
    ORCHESTRATION = "orchestration"


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """Structured context attached to every error."""

    source: str | None = None
    operation: str | None = None
    input_value: Any = None
    suggestion: str | None = None
    retry_after: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class DeepResearchError(Exception):
    """
    Base exception for all deep research errors.

    Provides:
    - Structured error context
    - Severity classification
    - Retry guidance
    """

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        category: ErrorCategory = ErrorCategory.PROVIDER,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.context = context or ErrorContext()
        self.severity = severity
        self.category = category
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "error": str(self),
            "category": self.category.value,
            "severity": self.severity.name.lower(),
            "retryable": self.retryable,
        }
        if self.context.source:
            result["source"] = self.context.source
        if self.context.operation:
            result["operation"] = self.context.operation
        if self.context.suggestion:
            result["suggestion"] = self.context.suggestion
        if self.context.retry_after:
            result["retry_after_seconds"] = self.context.retry_after
        return result


# =============================================================================
# Provider Errors
# =============================================================================


class APIError(DeepResearchError):
    """Base class for external provider failures."""

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        status_code: int | None = None,
        context: ErrorContext | None = None,
        retryable: bool = True,
    ) -> None:
        ctx = context or ErrorContext()
        if source and not ctx.source:
            ctx = replace(ctx, source=source)
        super().__init__(
            message,
            context=ctx,
            severity=ErrorSeverity.ERROR,
            category=ErrorCategory.PROVIDER,
            retryable=retryable,
        )
        self.status_code = status_code

    @property
    def source(self) -> str | None:
        return self.context.source


class RateLimitError(APIError):
    """Raised when a provider keeps answering 429 or a circuit is open."""

    def __init__(
        self,
        message: str = "API rate limit exceeded",
        *,
        source: str | None = None,
        retry_after: float = 1.0,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = context or ErrorContext()
        ctx = replace(
            ctx,
            suggestion=ctx.suggestion or "Wait and retry the request",
            retry_after=retry_after,
        )
        super().__init__(message, source=source, status_code=429, context=ctx)
        self.severity = ErrorSeverity.TRANSIENT


class NetworkError(APIError):
    """Raised for connectivity problems and request timeouts."""

    def __init__(
        self,
        message: str = "Network connection failed",
        *,
        source: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message, source=source, context=context)


class ServiceUnavailableError(APIError):
    """Raised when the provider answers with a 5xx status."""

    def __init__(
        self,
        message: str = "Service temporarily unavailable",
        *,
        source: str | None = None,
        status_code: int | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            f"{source or 'provider'}: {message}",
            source=source,
            status_code=status_code,
            context=context,
        )
        self.severity = ErrorSeverity.TRANSIENT


class ParseError(APIError):
    """Raised when a provider response cannot be parsed."""

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        full_msg = f"Parse error ({source}): {message}" if source else f"Parse error: {message}"
        super().__init__(full_msg, source=source, context=context, retryable=False)


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(DeepResearchError):
    """Base class for validation errors."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.WARNING,
            category=ErrorCategory.VALIDATION,
            retryable=False,
        )


class InvalidQueryError(ValidationError):
    """Raised when a search query is empty or malformed."""

    def __init__(
        self,
        query: str | None,
        reason: str = "Query cannot be empty",
        *,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = context or ErrorContext()
        ctx = replace(
            ctx,
            input_value=query,
            suggestion=ctx.suggestion or "Provide a non-empty search query",
        )
        super().__init__(f"Invalid query: {reason}", context=ctx)


class InvalidParameterError(ValidationError):
    """Raised when a parameter value is invalid."""

    def __init__(
        self,
        param_name: str,
        value: Any,
        expected: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = context or ErrorContext()
        ctx = replace(ctx, input_value=value, suggestion=f"Expected {expected}")
        super().__init__(
            f"Invalid parameter '{param_name}': {value!r} (expected {expected})",
            context=ctx,
        )
        self.param_name = param_name


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(DeepResearchError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CONFIGURATION,
            retryable=False,
        )


class UnknownSourceError(ConfigurationError):
    """Raised when a source id has no registered adapter."""

    def __init__(self, source: str, available: list[str] | None = None) -> None:
        suggestion = f"Use one of: {', '.join(available)}" if available else None
        super().__init__(
            f"Unknown source: {source}",
            context=ErrorContext(source=source, input_value=source, suggestion=suggestion),
        )
        self.source = source


class EmptySourceSelectionError(ConfigurationError):
    """Raised when a single-source call is given no source at all."""

    def __init__(self) -> None:
        super().__init__(
            "No source selected",
            context=ErrorContext(suggestion="Pass a registered source id"),
        )


# =============================================================================
# Orchestration Errors
# =============================================================================


class OrchestrationError(DeepResearchError):
    """Base class for research session errors."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.ERROR,
            category=ErrorCategory.ORCHESTRATION,
            retryable=False,
        )


class SessionNotFoundError(OrchestrationError):
    """Raised when a session id is unknown to the engine."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Research session not found: {session_id}",
            context=ErrorContext(input_value=session_id),
        )
        self.session_id = session_id


class InvalidStateTransitionError(OrchestrationError):
    """Raised when a session status would move backwards or leave a terminal state."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot transition session from '{current}' to '{target}'")
        self.current = current
        self.target = target


class TreeInvariantError(OrchestrationError):
    """Raised when adding a node would break the exploration tree shape."""


class ClarificationRequiredError(OrchestrationError):
    """Raised when a session waiting for clarifications is executed."""

    def __init__(self, session_id: str, questions: list[str]) -> None:
        super().__init__(
            f"Session {session_id} is waiting for clarification answers",
            context=ErrorContext(
                input_value=session_id,
                suggestion="Call submit_clarifications() first",
                metadata={"questions": list(questions)},
            ),
        )
        self.questions = list(questions)


# =============================================================================
# Helpers
# =============================================================================


def is_retryable_error(error: Exception) -> bool:
    """Check if an error should be retried."""
    if isinstance(error, DeepResearchError):
        return error.retryable

    error_str = str(error).lower()
    transient_patterns = [
        "rate limit",
        "too many requests",
        "temporarily unavailable",
        "service unavailable",
        "backend failed",
        "connection reset",
        "timeout",
    ]
    return any(pattern in error_str for pattern in transient_patterns)


def error_message(error: BaseException) -> str:
    """Short, human-readable description of *error* for structured error lists."""
    if isinstance(error, TimeoutError):
        return "Request timed out"
    message = str(error).strip()
    return message or type(error).__name__
