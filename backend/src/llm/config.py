"""
LLM configuration for the judgment adapters.

Provides Pydantic-validated configuration for an OpenAI-compatible endpoint
with per-tool enable flags for the extraction judge and the diff oracle.
"""

from __future__ import annotations

from enum import StrEnum
from functools import cached_property
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMProvider(StrEnum):
    """Supported endpoint flavors. All speak the OpenAI chat completions API."""

    OPENAI = "openai"
    LOCAL = "local"  # self-hosted, usually no API key
    CUSTOM = "custom"


class ToolName(StrEnum):
    """Engine components that call the LLM."""

    JUDGE = "judge"
    DIFF_ORACLE = "diff_oracle"


class RetryConfig(BaseModel):
    """Retry behavior for transient API failures (429, 5xx, timeouts)."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0, le=10)
    initial_delay_ms: int = Field(default=1000, ge=0, le=30000)
    max_delay_ms: int = Field(default=30000, ge=0, le=120000)
    exponential_base: float = Field(default=2.0, ge=1.0, le=4.0)


class LLMEndpointConfig(BaseModel):
    """Configuration for an LLM API endpoint."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL for the OpenAI-compatible API endpoint",
    )
    api_key: SecretStr = Field(default=SecretStr(""))
    model: str = Field(default="gpt-4o-mini")
    provider: LLMProvider = LLMProvider.OPENAI

    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_tokens: int = Field(default=512, ge=1, le=128000)
    timeout_ms: int = Field(default=30000, ge=1000, le=300000)

    retry: RetryConfig = Field(default_factory=RetryConfig)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base_url is valid and strip trailing slashes."""
        v = v.rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key.get_secret_value())


class ToolLLMConfig(BaseModel):
    """Per-tool LLM configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    endpoint_override: LLMEndpointConfig | None = None
    temperature_override: float | None = Field(default=None, ge=0.0, le=2.0)
    custom_system_prompt: str | None = None


class LLMConfig(BaseModel):
    """Complete LLM configuration."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(
        default=True,
        description="Global enable flag. When False, no LLM-backed adapter is built.",
    )
    default_endpoint: LLMEndpointConfig = Field(default_factory=LLMEndpointConfig)
    judge: ToolLLMConfig = Field(default_factory=ToolLLMConfig)
    diff_oracle: ToolLLMConfig = Field(default_factory=ToolLLMConfig)

    def get_tool_config(self, tool: ToolName) -> ToolLLMConfig:
        match tool:
            case ToolName.JUDGE:
                return self.judge
            case ToolName.DIFF_ORACLE:
                return self.diff_oracle
            case _:
                raise ValueError(f"Unknown tool: {tool}")

    def is_tool_enabled(self, tool: ToolName) -> bool:
        return self.enabled and self.get_tool_config(tool).enabled

    def get_effective_endpoint(self, tool: ToolName) -> LLMEndpointConfig:
        return self.get_tool_config(tool).endpoint_override or self.default_endpoint

    def get_effective_temperature(self, tool: ToolName) -> float:
        override = self.get_tool_config(tool).temperature_override
        if override is not None:
            return override
        return self.get_effective_endpoint(tool).temperature


class LLMSettings(BaseSettings):
    """
    Environment-based LLM settings.

    Loads configuration from environment variables with SPECQA_LLM_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="SPECQA_LLM_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    enabled: bool = True
    base_url: str = "https://api.openai.com/v1"
    api_key: SecretStr = SecretStr("")
    model: str = "gpt-4o-mini"
    provider: LLMProvider = LLMProvider.OPENAI
    temperature: float = 0.0
    max_tokens: int = 512
    timeout_ms: int = 30000

    judge_enabled: bool = True
    diff_oracle_enabled: bool = True

    config_file: Path | None = None

    @cached_property
    def config(self) -> LLMConfig:
        """Build the LLMConfig; file values win over environment values."""
        file_config: dict[str, Any] = {}
        if self.config_file and self.config_file.exists():
            with self.config_file.open() as f:
                file_config = yaml.safe_load(f) or {}
        return _build_config(file_config, self)


STANDARD_CONFIG_PATHS = (
    Path(".specqa/llm.yaml"),
    Path(".specqa/llm.yml"),
    Path("specqa-llm.yaml"),
    Path("specqa-llm.yml"),
)


def _build_config(data: dict[str, Any], settings: LLMSettings) -> LLMConfig:
    endpoint_data = dict(data.get("default_endpoint") or {})
    endpoint = LLMEndpointConfig(
        base_url=endpoint_data.get("base_url", settings.base_url),
        api_key=SecretStr(endpoint_data.get("api_key", settings.api_key.get_secret_value())),
        model=endpoint_data.get("model", settings.model),
        provider=LLMProvider(endpoint_data.get("provider", settings.provider)),
        temperature=endpoint_data.get("temperature", settings.temperature),
        max_tokens=endpoint_data.get("max_tokens", settings.max_tokens),
        timeout_ms=endpoint_data.get("timeout_ms", settings.timeout_ms),
        retry=RetryConfig(**(endpoint_data.get("retry") or {})),
    )

    def tool_config(name: str, env_enabled: bool) -> ToolLLMConfig:
        tool_data = data.get(name) or {}
        return ToolLLMConfig(
            enabled=tool_data.get("enabled", env_enabled),
            temperature_override=tool_data.get("temperature"),
            custom_system_prompt=tool_data.get("system_prompt"),
        )

    return LLMConfig(
        enabled=data.get("enabled", settings.enabled),
        default_endpoint=endpoint,
        judge=tool_config("judge", settings.judge_enabled),
        diff_oracle=tool_config("diff_oracle", settings.diff_oracle_enabled),
    )


def load_llm_config(config_file: Path | str | None = None) -> LLMConfig:
    """
    Load LLM configuration from file and environment.

    Priority (highest to lowest):
    1. Config file (explicit, else the first standard location found)
    2. Environment variables
    3. Defaults
    """
    path = Path(config_file) if config_file else None
    if path is None:
        path = next((p for p in STANDARD_CONFIG_PATHS if p.exists()), None)
    return LLMSettings(config_file=path).config
