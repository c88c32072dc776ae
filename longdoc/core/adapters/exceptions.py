"""
Exception hierarchy for the long-document translation pipeline.

Task-level failures are contained by the executor and surface only as
fallback content plus an aggregate error flag. Pool-level state transitions
are logged, never raised. The classes below describe what can go wrong at
each stage so callers can tell retryable errors from configuration problems.
"""

from typing import Optional, Dict, Any


class TranslationError(Exception):
    """Base exception for all translation-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context about the error
        recoverable: Whether the error can potentially be recovered from
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"{self.__class__.__name__}: {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base += f" (context: {context_str})"
        return base


# ============================================================================
# Segmentation
# ============================================================================

class SegmentationOverflowError(TranslationError):
    """A chunk still exceeds the token bound after paragraph splitting.

    Never raised by the segmenter; built only to describe the soft violation
    in logs.
    """

    def __init__(
        self,
        message: str,
        token_count: Optional[int] = None,
        token_limit: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        if token_count is not None:
            ctx['token_count'] = token_count
        if token_limit is not None:
            ctx['token_limit'] = token_limit
        super().__init__(message, ctx, recoverable=True)


# ============================================================================
# LLM-related errors (single attempt failures)
# ============================================================================

class LLMError(TranslationError):
    """Base exception for LLM provider errors.

    Generic LLM errors are retried by the executor.
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = True
    ):
        super().__init__(message, context, recoverable)


class LLMConnectionError(LLMError):
    """Network failure or timeout while talking to the provider."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=True)


class LLMRateLimitError(LLMError):
    """HTTP 429 from the provider.

    This is recoverable by waiting and retrying.
    """

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        if retry_after is not None:
            ctx['retry_after'] = retry_after
        super().__init__(message, ctx, recoverable=True)
        self.retry_after = retry_after


class LLMAuthenticationError(LLMError):
    """HTTP 401/403 (missing or invalid API key).

    This is NOT recoverable without user intervention.
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=False)


class LLMServerError(LLMError):
    """HTTP 5xx from the provider."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        if status_code is not None:
            ctx['status_code'] = status_code
        super().__init__(message, ctx, recoverable=True)
        self.status_code = status_code


class LLMResponseError(LLMError):
    """Raised when the LLM response is invalid, empty or unparseable."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=True)


# ============================================================================
# Task-level errors
# ============================================================================

class TranslationTaskExhaustedError(TranslationError):
    """All attempts of a task failed.

    Recorded on the task result; the executor never lets it escape.

    Attributes:
        task_key: (kind, index) of the failed task
        attempts: Number of attempts made
        original_error: The last error seen
    """

    def __init__(
        self,
        message: str,
        task_key: Optional[tuple] = None,
        attempts: int = 0,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        ctx['attempts'] = attempts
        if original_error is not None:
            ctx['original_error'] = str(original_error)
        super().__init__(message, ctx, recoverable=True)
        self.task_key = task_key
        self.attempts = attempts
        self.original_error = original_error


# ============================================================================
# Prompt pool errors
# ============================================================================

class PromptPoolError(TranslationError):
    """Base exception for prompt pool errors."""
    pass


class PromptPoolExhaustedError(PromptPoolError):
    """No eligible prompt variant remains (every breaker is open).

    This is a configuration problem: retrying will not help until a variant
    is resurrected or reactivated.
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=False)


class PromptPoolStorageError(PromptPoolError):
    """Reading or writing the persisted pool failed."""
    pass


# ============================================================================
# Assembly
# ============================================================================

class AssemblyPlaceholderMismatchError(TranslationError):
    """A table placeholder has no translated entry.

    Assembly falls back to the original table; this class only describes the
    event in logs.
    """

    def __init__(
        self,
        message: str,
        placeholder: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        if placeholder is not None:
            ctx['placeholder'] = placeholder
        super().__init__(message, ctx, recoverable=True)
        self.placeholder = placeholder
