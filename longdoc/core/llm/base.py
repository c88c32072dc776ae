"""
Base classes and data structures for LLM transports.

A transport turns (system prompt, user prompt, backend) into translated text
or raises one of the ``LLMError`` subclasses. It never retries on its own;
retry and backoff belong to the executor.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
import httpx

from longdoc.config import (
    API_ENDPOINT,
    API_KEY,
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    REQUEST_TIMEOUT,
)


@dataclass
class BackendConfig:
    """Endpoint and sampling settings for one LLM backend"""
    endpoint: str = API_ENDPOINT
    model: str = DEFAULT_MODEL
    api_key: Optional[str] = API_KEY or None
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    timeout: float = REQUEST_TIMEOUT


class LLMTranslator(ABC):
    """Abstract base class for LLM transports"""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        """
        Args:
            client: Pre-built HTTP client (tests pass one with a mock transport)
        """
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create a persistent HTTP client with connection pooling"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                timeout=httpx.Timeout(REQUEST_TIMEOUT),
            )
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    @abstractmethod
    async def translate(self, system_prompt: str, user_prompt: str,
                        backend: BackendConfig) -> str:
        """
        Send one translation request.

        Args:
            system_prompt: Role/instructions
            user_prompt: Rendered user prompt containing the content
            backend: Endpoint, model and sampling settings

        Returns:
            The model's reply text

        Raises:
            LLMError subclass on failure
        """
        pass
