"""
Browser session management between chain members.

Three mutually exclusive policies:

- hard reset: leave the origin, come back, wipe storage and cookies, reload.
  Used only for the first member of a chain.
- soft navigate: in-page location change to the member's page path,
  preserving client-held state, with sign-in recovery when the session was
  lost on the way.
- preserve: leave the page exactly as the previous member left it.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import structlog
from playwright.async_api import Error as PlaywrightError

from specqa.config import VerificationConfig

if TYPE_CHECKING:
    from playwright.async_api import Page

    from specqa.auth.credentials import CredentialSet
    from specqa.runner.adapters import ActionAgent
    from specqa.runner.results import RunOptions, SessionState

logger = structlog.get_logger(__name__)

SIGN_IN_PATH = re.compile(r"/(sign[-_]?in|login|auth)")
PARAMETERIZED_SEGMENT = re.compile(r":\w+")

CLEAR_STORAGE_JS = """
() => {
  try { localStorage.clear(); } catch (e) {}
  try { sessionStorage.clear(); } catch (e) {}
  try {
    document.cookie.split(';').forEach((c) => {
      const name = c.split('=')[0].trim();
      if (name) document.cookie = `${name}=;expires=Thu, 01 Jan 1970 00:00:00 GMT;path=/`;
    });
  } catch (e) {}
}
"""

SOFT_NAVIGATE_JS = "(url) => { window.location.href = url; }"

CLEAR_FIELDS_JS = """
() => {
  const inputSetter = Object.getOwnPropertyDescriptor(window.HTMLInputElement.prototype, 'value');
  const textareaSetter = Object.getOwnPropertyDescriptor(window.HTMLTextAreaElement.prototype, 'value');
  document.querySelectorAll('input:not([type="hidden"]), textarea').forEach((el) => {
    el.focus();
    const setter = el.tagName === 'TEXTAREA' ? textareaSetter : inputSetter;
    if (setter && setter.set) setter.set.call(el, '');
    else el.value = '';
    el.dispatchEvent(new Event('input', { bubbles: true }));
    el.dispatchEvent(new Event('change', { bubbles: true }));
  });
}
"""

FIELDS_STILL_FILLED_JS = """
() => Array.from(document.querySelectorAll('input:not([type="hidden"]), textarea')).some((el) => {
  const r = el.getBoundingClientRect();
  return r.height > 0 && r.width > 0 && el.value.length > 0;
})
"""


class SessionPolicy(StrEnum):
    """How a scenario run treats the session left by the previous run."""

    HARD_RESET = "hard_reset"
    SOFT_NAVIGATE = "soft_navigate"
    PRESERVE = "preserve"


def select_policy(clear_session: bool, navigate_to_path: str | None = None) -> SessionPolicy:
    if clear_session:
        return SessionPolicy.HARD_RESET
    if navigate_to_path:
        return SessionPolicy.SOFT_NAVIGATE
    return SessionPolicy.PRESERVE


def urls_match(a: str, b: str) -> bool:
    """Compare URLs ignoring a trailing slash."""
    return a.rstrip("/") == b.rstrip("/")


def is_sign_in_redirect(current_url: str, target_url: str) -> bool:
    """Whether navigating to target_url landed on a sign-in page instead."""
    if urls_match(current_url, target_url):
        return False
    return bool(SIGN_IN_PATH.search(urlparse(current_url).path.lower()))


def is_parameterized_path(path: str) -> bool:
    """Route templates like ``/projects/:id`` cannot be navigated to directly."""
    return bool(PARAMETERIZED_SEGMENT.search(path))


class SessionManager:
    """Applies session policies and recovers lost sessions."""

    def __init__(self, agent: ActionAgent, config: VerificationConfig | None = None) -> None:
        self._agent = agent
        self._config = config or VerificationConfig()
        self._idle_timeout = self._config.stabilization.network_idle_timeout_ms
        self._log = logger.bind(component="session_manager")

    async def prepare(self, page: Page, session: SessionState, options: RunOptions) -> SessionState:
        """Apply the policy selected by ``options``; returns the updated session record."""
        policy = select_policy(options.clear_session, options.navigate_to_path)
        self._log.info(
            "Preparing session",
            policy=policy.value,
            navigate_to_path=options.navigate_to_path,
            current_url=page.url,
        )

        if policy is SessionPolicy.HARD_RESET:
            if self._config.detect_port and not session.port_detected:
                session = session.with_base_url(await self.detect_port(page, session.base_url))
            await self.hard_reset(page, session.base_url)
        elif policy is SessionPolicy.SOFT_NAVIGATE:
            await self.soft_navigate(
                page, options.navigate_to_path or "/", session.base_url, options.credentials
            )
        return session

    async def detect_port(self, page: Page, base_url: str) -> str:
        """
        Find the port the application answers on.

        The configured port is probed first, then the common dev-server ports.
        Falls back to ``base_url`` when nothing answers.
        """
        parsed = urlparse(base_url)
        host = parsed.hostname or "localhost"
        expected = str(parsed.port or 3000)

        if await self._probe(page, f"http://{host}:{expected}", self._config.port_probe_timeout_ms):
            self._log.info("App responding on configured port", port=expected)
            return base_url

        for port in self._config.alternative_ports:
            if str(port) == expected:
                continue
            candidate = f"http://{host}:{port}"
            if await self._probe(page, candidate, self._config.alternative_port_probe_timeout_ms):
                self._log.info(
                    "App found on alternative port, overriding base URL",
                    port=port,
                    expected=expected,
                    base_url=candidate,
                )
                return candidate

        self._log.warning("No app found on any probed port", port=expected)
        return base_url

    async def _probe(self, page: Page, url: str, timeout_ms: int) -> bool:
        try:
            response = await page.goto(url, timeout=timeout_ms)
        except PlaywrightError:
            return False
        return response is not None and response.ok

    async def hard_reset(self, page: Page, base_url: str) -> None:
        """Unload the app, return to its origin, clear all client state and reload."""
        await page.goto("about:blank")
        await page.goto(base_url)
        try:
            await page.evaluate(CLEAR_STORAGE_JS)
        except PlaywrightError as e:
            self._log.debug("Could not clear storage", error=str(e))
        await page.reload()
        await page.wait_for_load_state("networkidle", timeout=self._idle_timeout)
        self._log.info("Hard reset complete", url=page.url)

    async def soft_navigate(
        self,
        page: Page,
        path: str,
        base_url: str,
        credentials: CredentialSet | None = None,
    ) -> bool:
        """
        Move to ``path`` without a full reload.

        Skipped when already there, when the path is a route template, or
        when the current page is already below the target path. Returns
        whether a navigation happened.
        """
        target_url = f"{base_url.rstrip('/')}{path}"
        current_url = page.url

        if urls_match(current_url, target_url):
            self._log.debug("Already on target path", path=path)
            return False

        if is_parameterized_path(path):
            self._log.info("Parameterized route, trusting chain navigation", path=path)
            return False

        current_path = urlparse(current_url).path.rstrip("/")
        target_path = path.rstrip("/")
        if current_path.startswith(target_path + "/"):
            self._log.info(
                "Already below target path, preserving chain context",
                current_path=current_path,
                path=target_path,
            )
            return False

        self._log.info("Soft-navigating", url=target_url)
        await self._set_location(page, target_url)

        after_url = page.url
        if is_sign_in_redirect(after_url, target_url) and credentials and credentials.complete:
            self._log.warning("Session lost, redirected to sign-in", url=after_url)
            await self.recover_auth(page, credentials, target_url)
        return True

    async def _set_location(self, page: Page, url: str) -> None:
        try:
            await page.evaluate(SOFT_NAVIGATE_JS, url)
        except PlaywrightError as e:
            # The execution context can be torn down by the navigation itself.
            self._log.debug("Location change interrupted evaluation", error=str(e))
        await page.wait_for_load_state("networkidle", timeout=self._idle_timeout)

    async def recover_auth(self, page: Page, credentials: CredentialSet, target_url: str) -> bool:
        """Sign back in through the agent, then return to ``target_url``."""
        try:
            for instruction in (
                f'Type "{credentials.email}" into the email field',
                f'Type "{credentials.password}" into the password field',
                "Click the sign in button",
            ):
                outcome = await self._agent.act(instruction)
                if not outcome.success:
                    raise RuntimeError(outcome.message or f"Could not {instruction}")
            await page.wait_for_load_state("networkidle", timeout=self._idle_timeout)

            if not urls_match(page.url, target_url):
                await self._set_location(page, target_url)
        except Exception as e:
            self._log.warning("Auth recovery failed", error=str(e))
            return False

        self._log.info("Auth recovery succeeded", url=page.url)
        return True

    async def reload_and_clear(self, page: Page) -> None:
        await page.reload()
        await page.wait_for_load_state("networkidle", timeout=self._idle_timeout)
        await self.clear_form_fields(page)

    async def clear_form_fields(self, page: Page) -> None:
        """
        Empty every visible input and textarea.

        Native value setters plus input/change events keep framework state in
        sync; fields that resist are cleared by select-all and delete.
        """
        try:
            await page.evaluate(CLEAR_FIELDS_JS)
            still_filled = await page.evaluate(FIELDS_STILL_FILLED_JS)
        except PlaywrightError as e:
            self._log.debug("Programmatic field clearing failed", error=str(e))
            return

        if not still_filled:
            return

        self._log.info("Fields resisted programmatic clearing, using keyboard fallback")
        for field in ("email", "password"):
            try:
                await self._agent.act(f"Triple-click on the {field} input field to select all text")
                await page.keyboard.press("Delete")
            except Exception as e:
                self._log.debug("Keyboard clearing failed", field=field, error=str(e))
