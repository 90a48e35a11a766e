"""
Structured error types for jobspine.

Every error the engine raises on purpose is a :class:`JobspineError`. Errors
carry a category, a retryable flag, structured context and an optional chained
cause so they can be logged as a single structured event.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                     JobspineError                            │
        │  (category, retryable, context, cause)                       │
        ├─────────────────────────────────────────────────────────────┤
        │  ConfigurationError   JobNotFoundError   JobTimeoutError    │
        │  (CONFIG, fatal)      (LOOKUP)           (TIMEOUT)          │
        │                                                              │
        │  QueueError                                                  │
        │  (QUEUE, retryable)                                          │
        └─────────────────────────────────────────────────────────────┘

Propagation:
    - ``ConfigurationError`` is raised synchronously while an engine is built.
    - ``JobNotFoundError`` is raised synchronously by ``JobEngine.add()``,
      after an error event has been logged.
    - ``JobTimeoutError`` classifies a deadline overrun. It is handed to the
      backing queue as the failure reason and never leaves the claim loop.
    - ``QueueError`` wraps backing store failures.

Usage:
    from jobspine.errors import ConfigurationError

    if not name:
        raise ConfigurationError("The job needs a unique name")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for classification in log events."""

    CONFIG = "CONFIG"
    LOOKUP = "LOOKUP"
    TIMEOUT = "TIMEOUT"
    QUEUE = "QUEUE"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        job_name: Name of the job definition involved
        job_id: Backing queue id of the job, if one exists
        attempt: Attempt number of the job, if known
        metadata: Additional key-value pairs
    """

    job_name: str | None = None
    job_id: str | None = None
    attempt: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ("job_name", "job_id", "attempt"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class JobspineError(Exception):
    """Base exception for all jobspine errors.

    Subclasses set ``default_category`` and ``default_retryable``.

    Examples:
        >>> error = JobspineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(job_name="send-email").context.job_name
        'send-email'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> JobspineError:
        """Add context to this error (fluent API)."""
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
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class ConfigurationError(JobspineError):
    """Engine setup is invalid: missing options, malformed definitions, bad logger."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class JobNotFoundError(JobspineError):
    """No job definition is registered under the requested name."""

    default_category = ErrorCategory.LOOKUP
    default_retryable = False

    def __init__(self, name: str, **kwargs: Any):
        super().__init__("Job configuration not found", **kwargs)
        self.name = name
        self.context.job_name = name


class JobTimeoutError(JobspineError):
    """A handler did not settle before its deadline.

    The handler is not stopped. This only classifies the attempt as timed out.
    """

    default_category = ErrorCategory.TIMEOUT
    default_retryable = True

    def __init__(self, timeout_ms: int, **kwargs: Any):
        super().__init__(f"Job processing timed out after {timeout_ms} ms", **kwargs)
        self.timeout_ms = timeout_ms


class QueueError(JobspineError):
    """The backing queue store failed."""

    default_category = ErrorCategory.QUEUE
    default_retryable = True
