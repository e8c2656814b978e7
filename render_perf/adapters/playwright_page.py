"""Playwright-backed ``Page`` and ``Session``.

The only place where driver errors are translated into
``SessionUnsupported`` and ``CapabilityUnsupportedError``.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from playwright.async_api import CDPSession, Error as PlaywrightError, Page as PlaywrightPage

from ..domain.errors import CapabilityUnsupportedError
from ..ports.session import EventCallback, SessionResult, SessionUnsupported

LOG = logging.getLogger("render_perf.adapters.playwright")

BLANK_URL = "about:blank"
CDP_BROWSER = "chromium"

_UNSUPPORTED_MARKERS = ("wasn't found", "not supported", "only available in chromium")


def _is_unsupported_message(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _UNSUPPORTED_MARKERS)


class PlaywrightSession:
    def __init__(self, session: CDPSession) -> None:
        self._session = session

    async def send(self, method: str, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        try:
            result = await self._session.send(method, dict(params) if params else None)
        except PlaywrightError as exc:
            if _is_unsupported_message(exc.message):
                raise CapabilityUnsupportedError(f"{method}: {exc.message}") from exc
            raise
        return result or {}

    def on(self, event: str, callback: EventCallback) -> None:
        self._session.on(event, callback)

    def once(self, event: str, callback: EventCallback) -> None:
        self._session.once(event, callback)

    def off(self, event: str, callback: EventCallback) -> None:
        self._session.remove_listener(event, callback)

    async def detach(self) -> None:
        await self._session.detach()


class PlaywrightPageAdapter:
    def __init__(self, page: PlaywrightPage) -> None:
        self._page = page

    @property
    def url(self) -> str:
        return self._page.url

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        return await self._page.evaluate(expression, arg)

    async def goto_blank(self) -> None:
        await self._page.goto(BLANK_URL)

    async def add_init_script(self, script: str) -> None:
        await self._page.add_init_script(script=script)

    async def new_session(self) -> SessionResult:
        browser = self._page.context.browser
        if browser is not None and browser.browser_type.name != CDP_BROWSER:
            return SessionUnsupported(f"debug protocol is not available on {browser.browser_type.name}")
        try:
            session = await self._page.context.new_cdp_session(self._page)
        except PlaywrightError as exc:
            if _is_unsupported_message(exc.message):
                return SessionUnsupported(exc.message)
            raise
        LOG.debug("opened debug session for %s", self._page.url)
        return PlaywrightSession(session)
