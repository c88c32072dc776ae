"""
Protocol interfaces for the collaborators consumed by the pipeline.

Table protection, concurrency slots and the LLM transport are treated as
black boxes; these contracts let tests and callers plug in their own.
"""

from typing import Protocol, Dict, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from longdoc.core.llm.base import BackendConfig


class ITableProtector(Protocol):
    """Interface for Markdown table protection."""

    def protect(self, text: str) -> Tuple[str, Dict[str, str]]:
        """Replace tables with placeholders.

        Args:
            text: Markdown text

        Returns:
            Tuple of (processed_text, placeholder_map)
        """
        ...

    def restore(self, text: str, placeholder_map: Dict[str, str]) -> str:
        """Put table content back in place of its placeholders.

        Args:
            text: Text with placeholders
            placeholder_map: Mapping of placeholders to table Markdown

        Returns:
            Text with tables restored
        """
        ...


class IConcurrencySlots(Protocol):
    """Externally bounded semaphore shared by all translation tasks."""

    async def acquire(self) -> None:
        """Wait until a slot is free and take it."""
        ...

    def release(self) -> None:
        """Give a slot back."""
        ...


class ITranslator(Protocol):
    """Interface for the LLM transport."""

    async def translate(
        self,
        system_prompt: str,
        user_prompt: str,
        backend: "BackendConfig"
    ) -> str:
        """Send one translation request.

        Raises:
            LLMConnectionError, LLMAuthenticationError, LLMRateLimitError,
            LLMServerError or LLMResponseError on failure.
        """
        ...
