"""
Retry policy with exponential backoff and jitter.

Delays are expressed in milliseconds:

    delay(attempt) = min(base * 2**attempt, max) + jitter

where ``attempt`` is the 0-based index of the attempt that just failed and
jitter adds up to ``jitter * delay`` on top. A rate-limited response that
carries ``Retry-After`` is never retried sooner than the provider asked.
"""

import random
from dataclasses import dataclass, field
from typing import Callable, Optional

from longdoc.config import (
    MAX_TRANSLATION_RETRIES,
    RETRY_BASE_DELAY_MS,
    RETRY_MAX_DELAY_MS,
    RETRY_JITTER,
)
from .exceptions import LLMRateLimitError, TranslationError


@dataclass
class RetryPolicy:
    """Configuration for retry behavior.

    Attributes:
        max_retries: Retries after the first attempt (attempts = max_retries + 1)
        base_delay_ms: Delay after the first failure, before jitter
        max_delay_ms: Cap of the exponential part
        jitter: Random extra delay as a fraction of the delay (0.0-1.0)
        get_retry_delay: Optional override ``(attempt) -> delay_ms``
        rng: Random source for the jitter
    """
    max_retries: int = MAX_TRANSLATION_RETRIES
    base_delay_ms: float = RETRY_BASE_DELAY_MS
    max_delay_ms: float = RETRY_MAX_DELAY_MS
    jitter: float = RETRY_JITTER
    get_retry_delay: Optional[Callable[[int], float]] = None
    rng: random.Random = field(default_factory=random.Random, repr=False)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_ms(self, attempt: int) -> float:
        """Backoff before the attempt following ``attempt`` (0-based)."""
        if self.get_retry_delay is not None:
            return float(self.get_retry_delay(attempt))

        delay = min(self.base_delay_ms * (2 ** attempt), self.max_delay_ms)
        if self.jitter > 0:
            delay += delay * self.jitter * self.rng.random()
        return delay

    def delay_for(self, attempt: int, error: Optional[Exception] = None) -> float:
        """Backoff in ms, stretched to the provider's Retry-After if longer."""
        delay = self.delay_ms(attempt)
        if isinstance(error, LLMRateLimitError) and error.retry_after:
            delay = max(delay, error.retry_after * 1000)
        return delay

    def should_retry(self, attempt: int, error: Exception) -> bool:
        """Whether another attempt follows the failed ``attempt`` (0-based)."""
        if isinstance(error, TranslationError) and not error.recoverable:
            return False
        return attempt < self.max_retries
