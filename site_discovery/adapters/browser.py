"""
Headless browser adapter.

A BrowserSession owns one Chromium browser and one context; it is opened
by the component that needs it and closed on every exit path. Pages are
exposed through BrowserPage, which only hands out HTML snapshots and turns
playwright failures into NavigationError.
"""
import re
from typing import Any, Callable, List, Optional, Tuple

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    Response,
    async_playwright,
)

from site_discovery.config import config
from site_discovery.errors import NavigationError
from site_discovery.utils.logger import LayerLogger

ResponseSink = List[Tuple[str, str]]
ResponseFilter = Callable[[str, str], bool]

CHARSET_PARAM = re.compile(r"charset=[\"']?([\w.:-]+)", re.IGNORECASE)


def decode_body(body: bytes, content_type: str) -> str:
    """
    Decode a captured response body.

    Uses the charset of the content type (euc-kr is common on Korean
    storefronts), else UTF-8; undecodable bytes are replaced.
    """
    match = CHARSET_PARAM.search(content_type or "")
    encoding = match.group(1) if match else "utf-8"
    try:
        return body.decode(encoding, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


class BrowserPage:
    """Thin wrapper over a playwright Page."""

    def __init__(self, page: Page, logger: LayerLogger):
        self._page = page
        self.logger = logger

    @property
    def url(self) -> str:
        return self._page.url

    async def goto(
        self,
        url: str,
        timeout: Optional[float] = None,
        idle_timeout_ms: int = 0,
        settle_ms: int = 0,
    ) -> str:
        """
        Navigate and wait for DOMContentLoaded.

        Optionally waits for network idle (best-effort) and a fixed settle
        delay. Returns the final page URL.
        """
        timeout_ms = int((timeout or config.NAVIGATION_TIMEOUT) * 1000)
        try:
            await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightError as e:
            raise NavigationError(f"Navigation failed: {str(e)}", url=url) from e

        if idle_timeout_ms:
            try:
                await self._page.wait_for_load_state("networkidle", timeout=idle_timeout_ms)
            except PlaywrightError:
                # Pages with long-polling never reach network idle
                pass
        if settle_ms:
            await self.settle(settle_ms)
        return self._page.url

    async def html(self) -> str:
        """Snapshot of the current DOM."""
        try:
            return await self._page.content()
        except PlaywrightError as e:
            raise NavigationError(f"Snapshot failed: {str(e)}", url=self.url) from e

    async def settle(self, ms: int) -> None:
        if ms > 0:
            await self._page.wait_for_timeout(ms)

    async def click_by_id(self, element_id: str) -> bool:
        """Click the element with the given id; False when it does not exist."""
        try:
            return bool(await self._page.evaluate(
                """(id) => {
                    const el = document.getElementById(id);
                    if (el instanceof HTMLElement) { el.click(); return true; }
                    return false;
                }""",
                element_id,
            ))
        except PlaywrightError as e:
            self.logger.log_error(
                f"Trigger click failed: {str(e)}",
                error_type="click_error",
                element_id=element_id,
            )
            return False

    def capture_responses(self, accept: ResponseFilter, sink: ResponseSink) -> Callable[[Response], Any]:
        """
        Append (url, body) of every accepted response to sink.

        accept receives the response URL and its lowercased content type.
        Returns the handler to pass to release_capture.
        """
        async def _on_response(response: Response) -> None:
            try:
                content_type = (response.headers.get("content-type") or "").lower()
                if not accept(response.url, content_type):
                    return
                body = decode_body(await response.body(), content_type)
            except PlaywrightError:
                return
            sink.append((response.url, body))

        self._page.on("response", _on_response)
        return _on_response

    def release_capture(self, handler: Callable[[Response], Any]) -> None:
        self._page.remove_listener("response", handler)

    async def close(self) -> None:
        try:
            await self._page.close()
        except PlaywrightError:
            pass


class BrowserSession:
    """
    Async context manager around one headless browser + context.

    Usage:
        async with BrowserSession() as session:
            page = await session.new_page()
    """

    def __init__(self, user_agent: Optional[str] = None, headless: Optional[bool] = None):
        self.user_agent = user_agent or config.BROWSER_USER_AGENT
        self.headless = config.BROWSER_HEADLESS if headless is None else headless
        self.logger = LayerLogger("browser")
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    async def __aenter__(self) -> "BrowserSession":
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
            self._context = await self._browser.new_context(user_agent=self.user_agent)
        except BaseException:
            await self.close()
            raise
        self.logger.log_action("browser_session", "opened", headless=self.headless)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def new_page(self) -> BrowserPage:
        if self._context is None:
            raise RuntimeError("BrowserSession is not open")
        page = await self._context.new_page()
        return BrowserPage(page, self.logger)

    async def close(self) -> None:
        if self._context is not None:
            try:
                await self._context.close()
            except PlaywrightError:
                pass
            self._context = None
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError:
                pass
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
            self.logger.log_action("browser_session", "closed")


BrowserFactory = Callable[[], BrowserSession]
