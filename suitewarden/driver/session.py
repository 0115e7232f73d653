"""Playwright sync-API adapter for one browser-driving session."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional, Protocol

from playwright.sync_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    sync_playwright,
)

logger = logging.getLogger("suitewarden.driver.session")

CONNECT_TIMEOUT_MS = 30_000
SCREEN_SIZE_SCRIPT = "() => ({width: window.screen.availWidth, height: window.screen.availHeight})"


class BrowserSession(Protocol):
    """Minimal surface the lifecycle core needs from a driving session."""

    session_id: str

    def close(self) -> None: ...

    def execute_script(self, code: str) -> Any: ...

    def maximize_window(self) -> None: ...

    def screenshot(self) -> bytes: ...


class PlaywrightSession:
    """Owns a Playwright driver, browser, context and active page.

    All methods must be called from the thread that created the session;
    DriverHandle takes care of that by pinning each session to its own
    executor thread.
    """

    def __init__(
        self,
        playwright: Playwright,
        browser: Browser,
        context: BrowserContext,
        page: Page,
    ) -> None:
        self.session_id = uuid.uuid4().hex
        self._playwright: Optional[Playwright] = playwright
        self._browser: Optional[Browser] = browser
        self._context: Optional[BrowserContext] = context
        self._page: Optional[Page] = page

    @classmethod
    def start(
        cls,
        browser_name: str,
        *,
        headless: bool = True,
        ws_endpoint: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> "PlaywrightSession":
        """Launch a local browser, or connect to a remote Playwright server."""
        playwright = sync_playwright().start()
        try:
            browser_type = getattr(playwright, browser_name)
            if ws_endpoint:
                logger.info("Connecting to remote %s at %s", browser_name, ws_endpoint)
                browser = browser_type.connect(
                    ws_endpoint,
                    timeout=CONNECT_TIMEOUT_MS,
                    headers=headers,
                )
            else:
                logger.info("Launching local %s (headless=%s)", browser_name, headless)
                browser = browser_type.launch(headless=headless)
            context = browser.new_context()
            page = context.new_page()
        except Exception:
            playwright.stop()
            raise
        return cls(playwright, browser, context, page)

    @property
    def page(self) -> Page:
        if self._page is None or self._page.is_closed():
            raise RuntimeError("Session page is closed")
        return self._page

    def execute_script(self, code: str) -> Any:
        return self.page.evaluate(code)

    def maximize_window(self) -> None:
        """Grow the viewport to the screen's available area."""
        size = self.page.evaluate(SCREEN_SIZE_SCRIPT)
        self.page.set_viewport_size({"width": int(size["width"]), "height": int(size["height"])})

    def screenshot(self) -> bytes:
        return self.page.screenshot()

    def close(self) -> None:
        """Close browser and Playwright resources."""
        logger.info("Closing browser session %s", self.session_id)
        try:
            if self._context is not None:
                self._context.close()
                self._context = None
            if self._browser is not None:
                self._browser.close()
                self._browser = None
        finally:
            self._page = None
            if self._playwright is not None:
                self._playwright.stop()
                self._playwright = None
