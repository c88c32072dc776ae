"""
Unit tests for the OpenAI-compatible transport.

Uses httpx.MockTransport so no network access is needed.
"""
import json

import httpx
import pytest

from longdoc.core.adapters import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMRateLimitError,
    LLMResponseError,
    LLMServerError,
)
from longdoc.core.llm import BackendConfig, OpenAICompatibleTranslator

ENDPOINT = "http://llm.test/v1/chat/completions"


def completion(content):
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 5},
    }


def make_translator(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenAICompatibleTranslator(client=client)


@pytest.fixture
def backend():
    return BackendConfig(endpoint=ENDPOINT, model="test-model", api_key="sk-test", temperature=0.2,
                         max_tokens=512, timeout=30)


class TestOpenAICompatibleTranslator:
    """Tests for request building and error mapping."""

    @pytest.mark.asyncio
    async def test_successful_request(self, backend):
        seen = {}

        def handler(request):
            seen['url'] = str(request.url)
            seen['auth'] = request.headers.get("authorization")
            seen['payload'] = json.loads(request.content)
            return httpx.Response(200, json=completion("Bonjour"))

        translator = make_translator(handler)
        reply = await translator.translate("Be precise.", "Translate: Hello", backend)
        await translator.close()

        assert reply == "Bonjour"
        assert seen['url'] == ENDPOINT
        assert seen['auth'] == "Bearer sk-test"
        assert seen['payload'] == {
            "model": "test-model",
            "messages": [
                {"role": "system", "content": "Be precise."},
                {"role": "user", "content": "Translate: Hello"},
            ],
            "temperature": 0.2,
            "max_tokens": 512,
            "stream": False,
        }

    @pytest.mark.asyncio
    async def test_no_key_no_authorization_header(self, backend):
        backend.api_key = None
        seen = {}

        def handler(request):
            seen['auth'] = request.headers.get("authorization")
            return httpx.Response(200, json=completion("ok"))

        await make_translator(handler).translate("", "Hello", backend)
        assert seen['auth'] is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error_type", [
        (401, LLMAuthenticationError),
        (403, LLMAuthenticationError),
        (500, LLMServerError),
        (503, LLMServerError),
        (400, LLMResponseError),
        (404, LLMResponseError),
    ])
    async def test_http_errors_are_mapped(self, backend, status, error_type):
        translator = make_translator(lambda request: httpx.Response(status, text="nope"))
        with pytest.raises(error_type) as exc_info:
            await translator.translate("s", "u", backend)
        assert exc_info.value.context['status_code'] == status

    @pytest.mark.asyncio
    async def test_authentication_error_is_not_recoverable(self, backend):
        translator = make_translator(lambda request: httpx.Response(401))
        with pytest.raises(LLMAuthenticationError) as exc_info:
            await translator.translate("s", "u", backend)
        assert exc_info.value.recoverable is False

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self, backend):
        translator = make_translator(
            lambda request: httpx.Response(429, headers={"retry-after": "7"}, text="slow down")
        )
        with pytest.raises(LLMRateLimitError) as exc_info:
            await translator.translate("s", "u", backend)
        assert exc_info.value.retry_after == 7.0
        assert exc_info.value.recoverable is True

    @pytest.mark.asyncio
    async def test_rate_limit_with_http_date_retry_after(self, backend):
        translator = make_translator(
            lambda request: httpx.Response(429, headers={"retry-after": "Wed, 21 Oct 2015 07:28:00 GMT"})
        )
        with pytest.raises(LLMRateLimitError) as exc_info:
            await translator.translate("s", "u", backend)
        assert exc_info.value.retry_after is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc", [httpx.ReadTimeout, httpx.ConnectError])
    async def test_transport_errors_are_connection_errors(self, backend, exc):
        def handler(request):
            raise exc("network trouble", request=request)

        with pytest.raises(LLMConnectionError):
            await make_translator(handler).translate("s", "u", backend)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json={"error": "weird"}),
        httpx.Response(200, json=completion("   ")),
        httpx.Response(200, json=completion(None)),
    ])
    async def test_malformed_responses(self, backend, response):
        translator = make_translator(lambda request: response)
        with pytest.raises(LLMResponseError):
            await translator.translate("s", "u", backend)

    @pytest.mark.asyncio
    async def test_close_releases_client(self, backend):
        translator = make_translator(lambda request: httpx.Response(200, json=completion("ok")))
        await translator.translate("s", "u", backend)
        await translator.close()
        assert translator._client is None
        await translator.close()
