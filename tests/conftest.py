import os
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from site_discovery.errors import NavigationError
from site_discovery.models.discovery import (
    OfficialSiteDecision,
    ProductInfoResult,
    SearchAttempt,
)


class FakePage:
    """In-memory stand-in for BrowserPage backed by a url -> html map."""

    def __init__(self, site: "FakeSite"):
        self.site = site
        self._url = "about:blank"
        self._html = ""
        self._captures: List[Tuple[object, list]] = []
        self.closed = False

    @property
    def url(self) -> str:
        return self._url

    async def goto(self, url, timeout=None, idle_timeout_ms=0, settle_ms=0):
        self.site.navigations.append(url)
        final = self.site.redirects.get(url, url)
        if final not in self.site.pages:
            raise NavigationError(f"Navigation failed: {url}", url=url)
        self._url = final
        self._html = self.site.pages[final]
        for accept, sink in self._captures:
            for resp_url, content_type, body in self.site.responses.get(final, []):
                if accept(resp_url, content_type):
                    sink.append((resp_url, body))
        return final

    async def html(self):
        return self._html

    async def settle(self, ms):
        self.site.settles.append(ms)

    async def click_by_id(self, element_id):
        replacement = self.site.clicks.get((self._url, element_id))
        if replacement is None:
            return False
        self._html = replacement
        return True

    def capture_responses(self, accept, sink):
        handler = (accept, sink)
        self._captures.append(handler)
        return handler

    def release_capture(self, handler):
        self._captures.remove(handler)

    async def close(self):
        self.closed = True


class FakeBrowserSession:
    def __init__(self, site: "FakeSite"):
        self.site = site

    async def __aenter__(self):
        self.site.opened += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.site.closed += 1

    async def new_page(self):
        return FakePage(self.site)


class FakeSite:
    """A fixed set of pages served to fake browser sessions."""

    def __init__(
        self,
        pages: Dict[str, str],
        redirects: Optional[Dict[str, str]] = None,
        responses: Optional[Dict[str, List[Tuple[str, str, str]]]] = None,
        clicks: Optional[Dict[Tuple[str, str], str]] = None,
    ):
        self.pages = pages
        self.redirects = redirects or {}
        self.responses = responses or {}
        self.clicks = clicks or {}
        self.navigations: List[str] = []
        self.settles: List[int] = []
        self.opened = 0
        self.closed = 0

    def factory(self) -> FakeBrowserSession:
        return FakeBrowserSession(self)


class FakeOracle:
    """Deterministic replacement for ClaudeClient."""

    def __init__(
        self,
        decision: Optional[OfficialSiteDecision] = None,
        product: Optional[ProductInfoResult] = None,
        search_rows: Optional[List[Dict[str, str]]] = None,
    ):
        self.decision = decision or OfficialSiteDecision()
        self.product = product or ProductInfoResult()
        self.search_rows = search_rows or []
        self.verify_calls: List[tuple] = []
        self.product_calls: List[tuple] = []
        self.search_calls: List[tuple] = []

    async def verify_official_site(self, brand, product_name_ko, product_name_en, candidates):
        self.verify_calls.append((brand, product_name_ko, product_name_en, list(candidates)))
        return self.decision

    async def extract_product_info(self, keyword, candidates, mode="fill"):
        self.product_calls.append((keyword, list(candidates), mode))
        return self.product

    async def extract_search_list(
        self,
        keyword: str,
        page_url: str,
        attempts: Sequence[SearchAttempt],
        priority_keywords: Sequence[str],
    ):
        self.search_calls.append((keyword, page_url, list(attempts), list(priority_keywords)))
        return self.search_rows


@pytest.fixture
def make_site():
    return FakeSite


@pytest.fixture
def fake_oracle():
    return FakeOracle


@pytest.fixture
def db_path(tmp_path):
    return os.path.join(str(tmp_path), "discovery.db")


class BrokenBrowserSession:
    """Browser session whose launch always fails."""

    async def __aenter__(self):
        raise RuntimeError("browser launch failed")

    async def __aexit__(self, exc_type, exc, tb):
        return None


@pytest.fixture
def broken_factory():
    return BrokenBrowserSession
