from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Optional

from playwright.async_api import Browser, BrowserContext, BrowserType, Page
from playwright.async_api import Error as PlaywrightError

from appshot.constants import DEFAULT_BROWSER_ARGS, DEFAULT_PERMISSIONS
from appshot.errors import AppshotError, SessionFatalError
from appshot.schemas import GenerationSettings, SizeSpec
from appshot.services import controls

LOGGER = logging.getLogger("appshot.session")

_FATAL_MARKERS = (
    "target closed",
    "target page, context or browser has been closed",
    "browser has been closed",
    "browser has disconnected",
    "connection closed",
)


def is_session_fatal(exc: BaseException) -> bool:
    """Return True when ``exc`` means the browser or its context is gone."""
    if isinstance(exc, SessionFatalError):
        return True
    if isinstance(exc, PlaywrightError):
        message = str(exc).lower()
        return any(marker in message for marker in _FATAL_MARKERS)
    return False


@dataclass
class Session:
    session_id: int
    context: BrowserContext
    page: Page
    tasks_processed: int = 0


class SessionManager:
    """Own one Chromium process and hand out fresh editor sessions inside it."""

    _ids = itertools.count(1)

    def __init__(self, browser_type: BrowserType, settings: GenerationSettings) -> None:
        self._browser_type = browser_type
        self._settings = settings
        self._browser: Optional[Browser] = None

    @property
    def browser(self) -> Optional[Browser]:
        return self._browser

    async def launch_process(self) -> Browser:
        """Start Chromium. Failures propagate: a browser that cannot start is an environment problem."""
        self._browser = await self._browser_type.launch(
            headless=self._settings.headless,
            args=list(DEFAULT_BROWSER_ARGS),
        )
        LOGGER.debug("Launched browser process")
        return self._browser

    async def relaunch_process(self) -> Browser:
        await self.close()
        return await self.launch_process()

    async def create_session(self, navigation_target: str, size: SizeSpec) -> Session:
        """Open a context, load the editor and select ``size``.

        A failed attempt relaunches the browser and tries exactly once more.
        """
        try:
            return await self._open_session(navigation_target, size)
        except (PlaywrightError, AppshotError) as exc:
            LOGGER.info("Browser session unusable (%s); relaunching", exc)
        try:
            await self.relaunch_process()
            return await self._open_session(navigation_target, size)
        except (PlaywrightError, AppshotError) as exc:
            raise SessionFatalError(f"Could not open editor session at {navigation_target}: {exc}") from exc

    async def _open_session(self, navigation_target: str, size: SizeSpec) -> Session:
        if self._browser is None or not self._browser.is_connected():
            await self.launch_process()
        assert self._browser is not None
        viewport = self._settings.viewport
        context = await self._browser.new_context(
            viewport={"width": viewport.width, "height": viewport.height},
            permissions=list(DEFAULT_PERMISSIONS),
        )
        try:
            page = await context.new_page()
            await page.goto(navigation_target, wait_until="networkidle")
            await page.wait_for_timeout(self._settings.settle_ms)
            await controls.select_size(page, size)
        except BaseException:
            await self._close_quietly(context)
            raise
        session = Session(session_id=next(self._ids), context=context, page=page)
        LOGGER.debug("Opened session %s for %s", session.session_id, size.label)
        return session

    async def destroy_session(self, session: Optional[Session]) -> None:
        if session is None:
            return
        await self._close_quietly(session.context)

    async def close(self) -> None:
        browser, self._browser = self._browser, None
        await self._close_quietly(browser)

    @staticmethod
    async def _close_quietly(resource: Any) -> None:
        if resource is None:
            return
        try:
            await resource.close()
        except Exception as exc:  # noqa: BLE001 - a crashed browser cannot report reliably
            LOGGER.debug("Ignoring close failure for %r: %s", resource, exc)
