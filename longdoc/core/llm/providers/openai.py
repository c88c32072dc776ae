"""
OpenAI-compatible transport.

Works with OpenAI and compatible chat-completions endpoints (DeepSeek,
llama.cpp, LM Studio, vLLM, ...). HTTP failures are mapped onto the
``LLMError`` hierarchy so the executor can tell retryable errors from
configuration problems.
"""

from typing import Optional
import json
import logging
import httpx

from ..base import LLMTranslator, BackendConfig
from longdoc.core.adapters.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMRateLimitError,
    LLMResponseError,
    LLMServerError,
)

logger = logging.getLogger(__name__)


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        # HTTP-date form is not worth honoring here
        return None


class OpenAICompatibleTranslator(LLMTranslator):
    """OpenAI-compatible chat completions transport"""

    async def translate(self, system_prompt: str, user_prompt: str,
                        backend: BackendConfig) -> str:
        headers = {"Content-Type": "application/json"}
        if backend.api_key:
            headers["Authorization"] = f"Bearer {backend.api_key}"

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        payload = {
            "model": backend.model,
            "messages": messages,
            "temperature": backend.temperature,
            "max_tokens": backend.max_tokens,
            "stream": False,
        }

        client = await self._get_client()
        try:
            response = await client.post(
                backend.endpoint,
                json=payload,
                headers=headers,
                timeout=backend.timeout
            )
        except httpx.TimeoutException as e:
            raise LLMConnectionError(f"Request timed out: {e}", context={'endpoint': backend.endpoint})
        except httpx.TransportError as e:
            raise LLMConnectionError(f"Connection failed: {e}", context={'endpoint': backend.endpoint})

        self._raise_for_status(response)

        try:
            response_json = response.json()
        except json.JSONDecodeError as e:
            raise LLMResponseError(f"Response is not valid JSON: {e}")

        try:
            content = response_json["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise LLMResponseError("Response has no choices[0].message.content",
                                   context={'body': response.text[:200]})

        if not isinstance(content, str) or not content.strip():
            raise LLMResponseError("Model returned empty content", context={'model': backend.model})

        usage = response_json.get("usage") or {}
        if usage:
            logger.debug(
                f"Tokens used: prompt={usage.get('prompt_tokens', 0)}, "
                f"completion={usage.get('completion_tokens', 0)}"
            )
        return content

    @staticmethod
    def _raise_for_status(response: httpx.Response):
        status = response.status_code
        if status < 400:
            return

        error_body = response.text[:500]
        context = {'status_code': status}
        if error_body:
            context['body'] = error_body

        if status in (401, 403):
            raise LLMAuthenticationError(f"Authentication failed (HTTP {status})", context=context)
        if status == 429:
            raise LLMRateLimitError(
                "Rate limited by provider (HTTP 429)",
                retry_after=_parse_retry_after(response.headers.get("retry-after")),
                context=context
            )
        if status >= 500:
            raise LLMServerError(f"Provider error (HTTP {status})", status_code=status, context=context)
        raise LLMResponseError(f"Request rejected (HTTP {status})", context=context)
