"""
Credential propagation between behaviors.

Captures the credentials typed during a sign-up behavior and injects them
into the sign-in preamble of later behaviors in the same chain.
"""

from __future__ import annotations

import itertools
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from specqa.config import CredentialPolicy

if TYPE_CHECKING:
    from specqa.dsl.models import Behavior, SpecStep

logger = structlog.get_logger(__name__)

TYPE_PATTERN = re.compile(r"Type\s+[\"']([^\"']+)[\"']\s+into\s+(?:the\s+)?(.+)", re.I)
_TYPED_VALUE = re.compile(r"Type\s+[\"']([^\"']+)[\"']", re.I)


@dataclass(frozen=True)
class CredentialSet:
    """Captured credentials; None means not captured yet."""

    email: str | None = None
    password: str | None = None

    @property
    def complete(self) -> bool:
        return self.email is not None and self.password is not None


def _quote_for(instruction: str) -> str:
    return '"' if '"' in instruction else "'"


def _replace_typed_value(instruction: str, value: str) -> str:
    quote = _quote_for(instruction)
    replacement = f"Type {quote}{value}{quote}"
    return _TYPED_VALUE.sub(lambda _: replacement, instruction, count=1)


class CredentialTracker:
    """
    Tracks the most recent registration credentials.

    The uniquification counter is never reset, so repeated attempts at the
    same chain never register the same identity twice.
    """

    def __init__(self) -> None:
        self._email: str | None = None
        self._password: str | None = None
        self._counter = itertools.count(1)
        self._log = logger.bind(component="credential_tracker")

    def uniquify_email(self, email: str) -> str:
        """Insert ``_N`` before the ``@``; the counter advances even without one."""
        n = next(self._counter)
        local, sep, domain = email.partition("@")
        if not sep:
            return email
        return f"{local}_{n}@{domain}"

    def capture_from_step(self, instruction: str) -> None:
        match = TYPE_PATTERN.search(instruction)
        if not match:
            return
        value = match.group(1).strip()
        field = match.group(2).lower()
        if "email" in field:
            self._email = value
            self._log.debug("Captured email", email=value)
        elif "password" in field:
            self._password = value
            self._log.debug("Captured password")

    def inject_into_step(self, instruction: str) -> str:
        """Substitute tracked values into a "Type X into the <field>" instruction."""
        match = TYPE_PATTERN.search(instruction)
        if not match:
            return instruction
        field = match.group(2).lower()
        if "email" in field and self._email:
            return _replace_typed_value(instruction, self._email)
        if "password" in field and self._password:
            return _replace_typed_value(instruction, self._password)
        return instruction

    def has_credentials(self) -> bool:
        return self._email is not None and self._password is not None

    def get_credentials(self) -> CredentialSet:
        return CredentialSet(email=self._email, password=self._password)

    def reset(self) -> None:
        """Forget captured values; the uniquification counter keeps counting."""
        self._email = None
        self._password = None

    def capture_from_steps(self, steps: list[SpecStep] | tuple[SpecStep, ...]) -> None:
        for step in steps:
            if step.is_act:
                self.capture_from_step(step.instruction)


def process_steps_with_credentials(
    behavior: Behavior,
    steps: list[SpecStep] | tuple[SpecStep, ...],
    tracker: CredentialTracker,
    policy: CredentialPolicy | None = None,
) -> list[SpecStep]:
    """
    Return a processed copy of a behavior's steps.

    - sign-up behaviors get their own email step uniquified
    - invalid-credential behaviors are left untouched
    - everything else gets tracked credentials injected into Act steps whose
      index falls inside the injection window
    """
    policy = policy or CredentialPolicy()

    if policy.is_signup(behavior.id):
        processed = []
        for step in steps:
            match = TYPE_PATTERN.search(step.instruction) if step.is_act else None
            if match and "email" in match.group(2).lower():
                unique = tracker.uniquify_email(match.group(1))
                step = step.with_instruction(_replace_typed_value(step.instruction, unique))
            processed.append(step)
        return processed

    if policy.is_invalid_credentials(behavior.id):
        return list(steps)

    if not tracker.has_credentials():
        return list(steps)

    return [
        step.with_instruction(tracker.inject_into_step(step.instruction))
        if step.is_act and index < policy.injection_window
        else step
        for index, step in enumerate(steps)
    ]
