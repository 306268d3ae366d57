"""
Verification engine configuration.

Provides Pydantic-validated configuration for retry budgets, stabilization
delays, credential handling and session management, loadable from YAML and
overridable from ``SPECQA_`` environment variables.
"""

from __future__ import annotations

from enum import StrEnum
from functools import cached_property
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class CyclePolicy(StrEnum):
    """How the chain builder treats dependency cycles."""

    TOLERATE = "tolerate"  # first visit wins
    REJECT = "reject"


class RetryPolicy(BaseModel):
    """Shared retry budget for Act execution and semantic Checks."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1, le=10)
    delay_ms: int = Field(default=1000, ge=0, le=60000)


class StabilizationConfig(BaseModel):
    """Fixed waits applied after actions that may animate or re-render."""

    model_config = ConfigDict(frozen=True)

    post_click_ms: int = Field(default=2000, ge=0)
    select_rerender_ms: int = Field(default=500, ge=0)
    dropdown_open_ms: int = Field(default=300, ge=0)
    escape_settle_ms: int = Field(default=500, ge=0)
    dom_click_settle_ms: int = Field(default=1000, ge=0)
    form_dismissal_timeout_ms: int = Field(default=3000, ge=0)
    form_dismissal_delay_ms: int = Field(default=500, ge=0)
    modal_poll_attempts: int = Field(default=4, ge=1)
    modal_appear_poll_ms: int = Field(default=500, ge=0)
    modal_dismiss_poll_ms: int = Field(default=300, ge=0)
    modal_llm_timeout_ms: int = Field(default=1500, ge=0)
    modal_confirm_delay_ms: int = Field(default=500, ge=0)
    modal_click_timeout_ms: int = Field(default=2000, ge=0)
    network_idle_timeout_ms: int = Field(default=30000, ge=0)

    @classmethod
    def immediate(cls) -> StabilizationConfig:
        """All delays zeroed; used for tests and fast local runs."""
        return cls(
            post_click_ms=0,
            select_rerender_ms=0,
            dropdown_open_ms=0,
            escape_settle_ms=0,
            dom_click_settle_ms=0,
            form_dismissal_timeout_ms=0,
            form_dismissal_delay_ms=0,
            modal_appear_poll_ms=0,
            modal_dismiss_poll_ms=0,
            modal_llm_timeout_ms=0,
            modal_confirm_delay_ms=0,
        )


class CredentialPolicy(BaseModel):
    """How registration credentials flow between behaviors."""

    model_config = ConfigDict(frozen=True)

    injection_window: int = Field(
        default=5,
        ge=0,
        description="Only Act steps with an index below this are rewritten",
    )
    signup_markers: tuple[str, ...] = ("sign-up", "signup")
    invalid_markers: tuple[str, ...] = ("invalid", "wrong")

    def is_signup(self, behavior_id: str) -> bool:
        lowered = behavior_id.lower()
        return any(marker in lowered for marker in self.signup_markers)

    def is_invalid_credentials(self, behavior_id: str) -> bool:
        lowered = behavior_id.lower()
        return any(marker in lowered for marker in self.invalid_markers)


class VerificationConfig(BaseModel):
    """Complete configuration for a verification run."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = Field(default="http://localhost:3000")
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    stabilization: StabilizationConfig = Field(default_factory=StabilizationConfig)
    credentials: CredentialPolicy = Field(default_factory=CredentialPolicy)
    cycle_policy: CyclePolicy = CyclePolicy.TOLERATE

    behavior_timeout_ms: int = Field(default=120_000, ge=1000)

    detect_port: bool = True
    alternative_ports: tuple[int, ...] = (3000, 5173, 8080, 4200, 3001)
    port_probe_timeout_ms: int = Field(default=5000, ge=100)
    alternative_port_probe_timeout_ms: int = Field(default=3000, ge=100)

    auto_confirm_modals: bool = False
    dismiss_leftover_modals: bool = True
    headless: bool = True

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base_url is an http(s) URL without a trailing slash."""
        v = v.rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v

    @model_validator(mode="after")
    def validate_ports(self) -> Self:
        for port in self.alternative_ports:
            if not 0 < port < 65536:
                raise ValueError(f"Invalid alternative port: {port}")
        return self

    @property
    def behavior_timeout_s(self) -> float:
        return self.behavior_timeout_ms / 1000


class VerificationSettings(BaseSettings):
    """
    Environment-based verification settings.

    Loads configuration from environment variables with SPECQA_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="SPECQA_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    base_url: str | None = None
    max_attempts: int | None = None
    retry_delay_ms: int | None = None
    injection_window: int | None = None
    cycle_policy: CyclePolicy | None = None
    behavior_timeout_ms: int | None = None
    detect_port: bool | None = None
    auto_confirm_modals: bool | None = None
    headless: bool | None = None

    config_file: Path | None = None

    def overrides(self) -> dict[str, Any]:
        """Nested overrides for fields explicitly set in the environment."""
        data: dict[str, Any] = {}
        for key in (
            "base_url",
            "cycle_policy",
            "behavior_timeout_ms",
            "detect_port",
            "auto_confirm_modals",
            "headless",
        ):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.max_attempts is not None:
            data.setdefault("retry", {})["max_attempts"] = self.max_attempts
        if self.retry_delay_ms is not None:
            data.setdefault("retry", {})["delay_ms"] = self.retry_delay_ms
        if self.injection_window is not None:
            data.setdefault("credentials", {})["injection_window"] = self.injection_window
        return data

    @cached_property
    def config(self) -> VerificationConfig:
        """Build the VerificationConfig from an optional file plus environment."""
        file_config = _read_yaml(self.config_file) if self.config_file else {}
        return VerificationConfig(**_merge(file_config, self.overrides()))


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open() as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


STANDARD_CONFIG_PATHS = (
    Path(".specqa/config.yaml"),
    Path(".specqa/config.yml"),
    Path("specqa.yaml"),
    Path("specqa.yml"),
)


def load_verification_config(
    config_file: Path | str | None = None,
    env_override: bool = True,
    **overrides: Any,
) -> VerificationConfig:
    """
    Load verification configuration from file and/or environment.

    Priority (highest to lowest):
    1. Keyword overrides
    2. Environment variables (if env_override=True)
    3. Config file (explicit, else the first standard location found)
    4. Defaults
    """
    path: Path | None = Path(config_file) if config_file else None
    if path is None:
        path = next((p for p in STANDARD_CONFIG_PATHS if p.exists()), None)

    data = _read_yaml(path) if path else {}
    if env_override:
        data = _merge(data, VerificationSettings().overrides())
    data = _merge(data, {k: v for k, v in overrides.items() if v is not None})
    return VerificationConfig(**data)
