"""
Page sources the observer can watch.

A PageSource exposes the current URL and HTML of a conversation page and
reports page events (mutations, hotkeys, visibility) to a listener.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from playwright.async_api import async_playwright

logger = logging.getLogger(__name__)


class PageEvent:
    MUTATION = "mutation"
    MANUAL = "manual"
    USER_ACTION = "user-action"
    NAVIGATED = "navigated"
    HIDDEN = "hidden"
    VISIBLE = "visible"


Listener = Callable[[str], None]


class PageSource:
    """Base page source."""

    def __init__(self):
        self._listener: Optional[Listener] = None

    def set_listener(self, listener: Listener):
        self._listener = listener

    def emit(self, event: str):
        if self._listener is not None:
            self._listener(event)

    async def url(self) -> str:
        raise NotImplementedError

    async def content(self) -> str:
        raise NotImplementedError

    async def start(self):
        pass

    async def close(self):
        pass


class FilePageSource(PageSource):
    """
    A saved HTML file standing in for the live page.

    Modification-time changes are reported as mutations.
    """

    def __init__(self, path: Path, page_url: str, check_interval: float = 0.5):
        super().__init__()
        self.path = path
        self.page_url = page_url
        self.check_interval = check_interval
        self._mtime: Optional[float] = None
        self._task: Optional[asyncio.Task] = None

    async def url(self) -> str:
        return self.page_url

    async def content(self) -> str:
        return self.path.read_text(encoding="utf-8")

    def _current_mtime(self) -> Optional[float]:
        try:
            return self.path.stat().st_mtime
        except OSError:
            return None

    async def _watch(self):
        while True:
            await asyncio.sleep(self.check_interval)
            mtime = self._current_mtime()
            if mtime != self._mtime:
                self._mtime = mtime
                self.emit(PageEvent.MUTATION)

    async def start(self):
        self._mtime = self._current_mtime()
        self._task = asyncio.get_running_loop().create_task(self._watch())

    async def close(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None


# Injected into the page: mutation observer, Alt+Shift+S hotkey, send-action
# nudges and visibility changes, all reported through one exposed binding.
PAGE_HOOKS_JS = """
(() => {
  if (window.__driveLoggerHooked) return;
  window.__driveLoggerHooked = true;
  const emit = (kind) => { try { window.__driveLoggerEvent(kind); } catch (_) {} };
  new MutationObserver(() => emit("mutation"))
    .observe(document.documentElement, { childList: true, subtree: true, characterData: true });
  window.addEventListener("keydown", (e) => {
    if (e.altKey && e.shiftKey && e.key.toLowerCase() === "s") emit("manual");
    else if (e.key === "Enter") emit("user-action");
  });
  document.addEventListener("click", (e) => {
    const t = e.target;
    const label = t && t.getAttribute && (t.getAttribute("aria-label") || t.getAttribute("data-testid"));
    if (label && /send|submit/i.test(label)) emit("user-action");
  });
  document.addEventListener("visibilitychange", () => {
    emit(document.visibilityState === "visible" ? "visible" : "hidden");
  });
})();
"""


class BrowserPageSource(PageSource):
    """
    A live tab in a running Chromium, attached over CDP with Playwright.

    Start the browser with --remote-debugging-port=9222 and open the
    conversation; the first tab whose URL contains url_match is used.
    """

    def __init__(self, cdp_url: str, url_match: str = "chatgpt.com"):
        super().__init__()
        self.cdp_url = cdp_url
        self.url_match = url_match
        self._playwright = None
        self._browser = None
        self.page = None

    async def start(self):
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.connect_over_cdp(self.cdp_url)
        context = self._browser.contexts[0]
        for page in context.pages:
            if self.url_match in page.url:
                self.page = page
                break
        if self.page is None:
            self.page = await context.new_page()
            await self.page.goto(f"https://{self.url_match}/")

        await self.page.expose_binding("__driveLoggerEvent", lambda source, kind: self.emit(kind))
        await self.page.add_init_script(PAGE_HOOKS_JS)
        await self.page.evaluate(PAGE_HOOKS_JS)
        self.page.on("framenavigated", self._on_navigated)
        logger.info("[Sync] Attached to %s", self.page.url)

    def _on_navigated(self, frame):
        if frame == self.page.main_frame:
            self.emit(PageEvent.NAVIGATED)

    async def url(self) -> str:
        return self.page.url

    async def content(self) -> str:
        return await self.page.content()

    async def close(self):
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
