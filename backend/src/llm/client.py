"""
Async HTTP client for OpenAI-compatible chat completion APIs.

Provides:
- httpx-based async requests
- Retry with exponential backoff on 429, 5xx, timeouts and connection errors
- A small error hierarchy whose messages the engine's retry classifier
  recognizes ("rate", "timeout")
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from specqa.llm.config import LLMConfig, LLMEndpointConfig, RetryConfig, ToolName

logger = structlog.get_logger(__name__)


class LLMClientError(Exception):
    """Base exception for LLM client errors."""


class LLMRateLimitError(LLMClientError):
    """Raised when the endpoint keeps rate limiting."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class LLMAuthenticationError(LLMClientError):
    """Raised on 401/403; never retried."""


class LLMAPIError(LLMClientError):
    """Raised when the API returns an error response."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body

    @property
    def is_server_error(self) -> bool:
        return self.status_code is not None and 500 <= self.status_code < 600


@dataclass
class ChatMessage:
    """A single chat message."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class ChatCompletion:
    """Response from a chat completion request."""

    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)
    finish_reason: str | None = None


def backoff_ms(attempt: int, config: RetryConfig) -> float:
    """Exponential backoff for the given zero-based attempt, capped at max_delay_ms."""
    delay = config.initial_delay_ms * (config.exponential_base**attempt)
    return min(delay, config.max_delay_ms)


class LLMClient:
    """Async client for one OpenAI-compatible endpoint."""

    def __init__(
        self,
        endpoint: LLMEndpointConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(endpoint.timeout_ms / 1000),
        )
        self._log = logger.bind(component="llm_client", model=endpoint.model)

    @property
    def endpoint(self) -> LLMEndpointConfig:
        return self._endpoint

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> LLMClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        api_key = self._endpoint.api_key.get_secret_value()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def _body(
        self,
        messages: list[ChatMessage],
        temperature: float | None,
        max_tokens: int | None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self._endpoint.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": self._endpoint.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self._endpoint.max_tokens,
        }
        body.update(kwargs)
        return body

    async def _post(self, body: dict[str, Any]) -> ChatCompletion:
        url = f"{self._endpoint.base_url}/chat/completions"
        response = await self._client.post(url, json=body, headers=self._headers())

        if response.status_code == 200:
            return self._parse_response(response.json())
        if response.status_code in (401, 403):
            raise LLMAuthenticationError("Invalid API key or authentication failed")
        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise LLMRateLimitError(
                "Rate limit exceeded",
                retry_after=float(retry_after) if retry_after else None,
            )

        try:
            error_body = response.json()
        except ValueError:
            error_body = {"error": response.text}
        raise LLMAPIError(
            f"API error: {response.status_code}",
            status_code=response.status_code,
            response_body=error_body,
        )

    def _parse_response(self, data: dict[str, Any]) -> ChatCompletion:
        choices = data.get("choices") or []
        if not choices:
            raise LLMAPIError("No choices in response", response_body=data)
        choice = choices[0]
        return ChatCompletion(
            content=(choice.get("message") or {}).get("content") or "",
            model=data.get("model", self._endpoint.model),
            usage=data.get("usage") or {},
            finish_reason=choice.get("finish_reason"),
        )

    async def chat(
        self,
        messages: list[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> ChatCompletion:
        """
        Send a chat completion request.

        Raises:
            LLMAuthenticationError: On auth failures (not retried)
            LLMRateLimitError: When still rate limited after all retries
            LLMAPIError: On other API errors
            LLMClientError: On timeouts or connection failures after all retries
        """
        retry = self._endpoint.retry
        body = self._body(messages, temperature, max_tokens, **kwargs)

        for attempt in range(retry.max_retries + 1):
            try:
                return await self._post(body)
            except LLMAuthenticationError:
                raise
            except (LLMRateLimitError, LLMAPIError, httpx.TimeoutException, httpx.ConnectError) as e:
                retryable = not isinstance(e, LLMAPIError) or e.is_server_error
                if not retryable or attempt >= retry.max_retries:
                    if isinstance(e, httpx.TimeoutException):
                        raise LLMClientError(f"Request timeout: {e}") from e
                    if isinstance(e, httpx.ConnectError):
                        raise LLMClientError(f"Connection failed (ECONNRESET): {e}") from e
                    raise

                delay = backoff_ms(attempt, retry)
                if isinstance(e, LLMRateLimitError) and e.retry_after:
                    delay = max(delay, e.retry_after * 1000)
                self._log.warning(
                    "Request failed, retrying",
                    attempt=attempt + 1,
                    max_retries=retry.max_retries,
                    delay_ms=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay / 1000)

        raise LLMClientError("Request failed after retries")

    async def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> str:
        """Single-prompt completion; returns the reply text."""
        messages = []
        if system_prompt:
            messages.append(ChatMessage(role="system", content=system_prompt))
        messages.append(ChatMessage(role="user", content=prompt))
        result = await self.chat(messages, temperature=temperature, **kwargs)
        self._log.debug("Completion received", tokens_used=result.usage.get("total_tokens"))
        return result.content


@asynccontextmanager
async def create_llm_client(config: LLMConfig, tool: ToolName) -> AsyncIterator[LLMClient | None]:
    """
    Context manager for a client bound to one tool's effective endpoint.

    Yields None when the tool is disabled.
    """
    if not config.is_tool_enabled(tool):
        yield None
        return

    client = LLMClient(endpoint=config.get_effective_endpoint(tool))
    try:
        yield client
    finally:
        await client.close()
