"""
Tests for the OpenAI-compatible LLM client.

Tests cover:
- Request body and auth header
- Response parsing
- Retry on 429, 5xx and timeouts; no retry on auth or client errors
- Backoff calculation
- Client factory honoring tool enable flags
"""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest
from pydantic import SecretStr

from specqa.llm.client import (
    ChatMessage,
    LLMAPIError,
    LLMAuthenticationError,
    LLMClient,
    LLMClientError,
    LLMRateLimitError,
    backoff_ms,
    create_llm_client,
)
from specqa.llm.config import (
    LLMConfig,
    LLMEndpointConfig,
    RetryConfig,
    ToolLLMConfig,
    ToolName,
)

Handler = Callable[[httpx.Request], httpx.Response]


def _completion(content: str) -> dict:
    return {
        "model": "gpt-4o-mini",
        "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"total_tokens": 12},
    }


def _endpoint(**kwargs: object) -> LLMEndpointConfig:
    return LLMEndpointConfig(
        base_url="https://llm.test/v1",
        retry=RetryConfig(max_retries=2, initial_delay_ms=0),
        **kwargs,
    )


def _client(handler: Handler, **kwargs: object) -> LLMClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LLMClient(_endpoint(**kwargs), http_client=http)


def _sequence(*responses: httpx.Response | Exception) -> tuple[Handler, list[httpx.Request]]:
    seen: list[httpx.Request] = []
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    return handler, seen


class TestLLMClient:
    """Tests for LLMClient.chat and complete."""

    @pytest.mark.asyncio
    async def test_request_shape(self) -> None:
        """Test the request body and bearer token."""
        handler, seen = _sequence(httpx.Response(200, json=_completion("YES")))
        client = _client(handler, api_key=SecretStr("sk-test"), model="judge-model")

        reply = await client.complete("Is it there?", system_prompt="Answer YES or NO.")

        assert reply == "YES"
        request = seen[0]
        assert str(request.url) == "https://llm.test/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "judge-model"
        assert body["messages"] == [
            {"role": "system", "content": "Answer YES or NO."},
            {"role": "user", "content": "Is it there?"},
        ]
        assert body["temperature"] == 0.0
        assert body["max_tokens"] == 512

    @pytest.mark.asyncio
    async def test_no_auth_header_without_key(self) -> None:
        """Test local endpoints without a key send no Authorization header."""
        handler, seen = _sequence(httpx.Response(200, json=_completion("ok")))

        await _client(handler).chat([ChatMessage(role="user", content="hi")])

        assert "Authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_parses_completion(self) -> None:
        """Test usage and finish reason are parsed."""
        handler, _ = _sequence(httpx.Response(200, json=_completion("done")))

        result = await _client(handler).chat([ChatMessage(role="user", content="hi")], max_tokens=8)

        assert result.content == "done"
        assert result.usage == {"total_tokens": 12}
        assert result.finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_empty_choices(self) -> None:
        """Test a reply without choices is an API error."""
        handler, _ = _sequence(httpx.Response(200, json={"choices": []}))

        with pytest.raises(LLMAPIError, match="No choices"):
            await _client(handler).chat([ChatMessage(role="user", content="hi")])

    @pytest.mark.asyncio
    async def test_retries_rate_limit(self) -> None:
        """Test a 429 is retried."""
        handler, seen = _sequence(
            httpx.Response(429, json={"error": "slow down"}),
            httpx.Response(200, json=_completion("ok")),
        )

        result = await _client(handler).chat([ChatMessage(role="user", content="hi")])

        assert result.content == "ok"
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self) -> None:
        """Test a persistent 429 surfaces after all retries."""
        handler, seen = _sequence(*[httpx.Response(429) for _ in range(3)])

        with pytest.raises(LLMRateLimitError, match="Rate limit"):
            await _client(handler).chat([ChatMessage(role="user", content="hi")])
        assert len(seen) == 3

    @pytest.mark.asyncio
    async def test_retries_server_error(self) -> None:
        """Test 5xx responses are retried."""
        handler, seen = _sequence(
            httpx.Response(503, json={"error": "unavailable"}),
            httpx.Response(200, json=_completion("ok")),
        )

        await _client(handler).chat([ChatMessage(role="user", content="hi")])
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self) -> None:
        """Test 4xx responses other than 429 fail immediately."""
        handler, seen = _sequence(httpx.Response(400, json={"error": "bad request"}))

        with pytest.raises(LLMAPIError) as exc_info:
            await _client(handler).chat([ChatMessage(role="user", content="hi")])
        assert exc_info.value.status_code == 400
        assert exc_info.value.response_body == {"error": "bad request"}
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_auth_error_not_retried(self) -> None:
        """Test 401 raises an authentication error at once."""
        handler, seen = _sequence(httpx.Response(401))

        with pytest.raises(LLMAuthenticationError):
            await _client(handler).chat([ChatMessage(role="user", content="hi")])
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_timeout_message(self) -> None:
        """Test exhausted timeouts carry a message the step retry logic recognizes."""
        handler, seen = _sequence(*[httpx.ReadTimeout("read timed out") for _ in range(3)])

        with pytest.raises(LLMClientError, match="Request timeout"):
            await _client(handler).chat([ChatMessage(role="user", content="hi")])
        assert len(seen) == 3

    @pytest.mark.asyncio
    async def test_connection_error_message(self) -> None:
        """Test exhausted connection errors mention a reset."""
        handler, _ = _sequence(*[httpx.ConnectError("refused") for _ in range(3)])

        with pytest.raises(LLMClientError, match="ECONNRESET"):
            await _client(handler).chat([ChatMessage(role="user", content="hi")])


class TestBackoff:
    """Tests for backoff_ms."""

    def test_exponential(self) -> None:
        """Test delays double per attempt."""
        config = RetryConfig(initial_delay_ms=1000, exponential_base=2.0)
        assert [backoff_ms(a, config) for a in range(3)] == [1000, 2000, 4000]

    def test_capped(self) -> None:
        """Test delays never exceed the cap."""
        config = RetryConfig(initial_delay_ms=1000, max_delay_ms=3000)
        assert backoff_ms(5, config) == 3000


class TestCreateLLMClient:
    """Tests for create_llm_client."""

    @pytest.mark.asyncio
    async def test_disabled_tool_yields_none(self) -> None:
        """Test a disabled tool gets no client."""
        config = LLMConfig(judge=ToolLLMConfig(enabled=False))

        async with create_llm_client(config, ToolName.JUDGE) as client:
            assert client is None

    @pytest.mark.asyncio
    async def test_effective_endpoint(self) -> None:
        """Test the tool's endpoint override is used."""
        override = LLMEndpointConfig(model="diff-model")
        config = LLMConfig(diff_oracle=ToolLLMConfig(endpoint_override=override))

        async with create_llm_client(config, ToolName.DIFF_ORACLE) as client:
            assert client is not None
            assert client.endpoint.model == "diff-model"
