"""
Task execution layer for long-document translation.

Provides:
- Custom exception hierarchy
- Retry policy with exponential backoff and jitter
- Concurrency slots
- Bounded executor with per-task fallback (bulkhead isolation)
"""

from .exceptions import (
    TranslationError,
    SegmentationOverflowError,
    LLMError,
    LLMConnectionError,
    LLMRateLimitError,
    LLMAuthenticationError,
    LLMServerError,
    LLMResponseError,
    TranslationTaskExhaustedError,
    PromptPoolError,
    PromptPoolExhaustedError,
    PromptPoolStorageError,
    AssemblyPlaceholderMismatchError,
)
from .retry_manager import RetryPolicy
from .concurrency import SemaphoreSlots
from .tasks import TaskKind, TaskKey, TaskResult, TextTask, TableTask, TranslationTask, build_tasks
from .executor import BoundedExecutor, ExecutionReport, text_failure_marker

__all__ = [
    # Exceptions
    'TranslationError',
    'SegmentationOverflowError',
    'LLMError',
    'LLMConnectionError',
    'LLMRateLimitError',
    'LLMAuthenticationError',
    'LLMServerError',
    'LLMResponseError',
    'TranslationTaskExhaustedError',
    'PromptPoolError',
    'PromptPoolExhaustedError',
    'PromptPoolStorageError',
    'AssemblyPlaceholderMismatchError',

    # Retry & concurrency
    'RetryPolicy',
    'SemaphoreSlots',

    # Tasks
    'TaskKind',
    'TaskKey',
    'TaskResult',
    'TextTask',
    'TableTask',
    'TranslationTask',
    'build_tasks',

    # Execution
    'BoundedExecutor',
    'ExecutionReport',
    'text_failure_marker',
]
