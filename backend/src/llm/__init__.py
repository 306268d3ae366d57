"""
LLM-backed judgment for the verification engine.

Provides an OpenAI-compatible client and the two judgment adapters the
runner consumes:
- LLMJudge: structured yes/no extraction over the visible page
- LLMDiffOracle: condition checks over before/after text snapshots

Either adapter can be disabled per tool; callers may also inject their own
implementations of the runner's Judge and DiffOracle protocols.
"""

from specqa.llm.client import (
    ChatCompletion,
    ChatMessage,
    LLMAPIError,
    LLMAuthenticationError,
    LLMClient,
    LLMClientError,
    LLMRateLimitError,
    create_llm_client,
)
from specqa.llm.config import (
    LLMConfig,
    LLMEndpointConfig,
    LLMProvider,
    LLMSettings,
    RetryConfig,
    ToolLLMConfig,
    ToolName,
    load_llm_config,
)
from specqa.llm.judge import JudgmentError, LLMDiffOracle, LLMJudge

__all__ = [
    # Client
    "ChatCompletion",
    "ChatMessage",
    "LLMAPIError",
    "LLMAuthenticationError",
    "LLMClient",
    "LLMClientError",
    "LLMRateLimitError",
    "create_llm_client",
    # Config
    "LLMConfig",
    "LLMEndpointConfig",
    "LLMProvider",
    "LLMSettings",
    "RetryConfig",
    "ToolLLMConfig",
    "ToolName",
    "load_llm_config",
    # Judgment
    "JudgmentError",
    "LLMDiffOracle",
    "LLMJudge",
]
