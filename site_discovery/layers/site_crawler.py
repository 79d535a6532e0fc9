"""
Site Crawler Layer
Bounded breadth-first crawl of an official site for product-page candidates.

The crawl switches to search-only mode as soon as the start page exposes a
GET search form: the queue is replaced by the built search URL and only the
links of that result page are scored from then on.
"""
import re
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple

from site_discovery.adapters.browser import BrowserFactory, BrowserSession
from site_discovery.config import config
from site_discovery.errors import NavigationError
from site_discovery.layers.link_scoring import score_candidate
from site_discovery.layers.product_signals import collapse_whitespace, parse_html
from site_discovery.layers.search_form import locate_search_form
from site_discovery.models.discovery import ScoredUrl
from site_discovery.utils.logger import LayerLogger
from site_discovery.utils.urls import is_same_origin_or_subdomain, normalize_url

NETWORK_IDLE_MS = 1500
PAGE_SETTLE_MS = 300
MAX_CATEGORY_SEEDS = 5

DATA_LINK_ATTRS = ("data-href", "data-url", "data-link")
ONCLICK_LOCATION = re.compile(r"""location\.href\s*=\s*['"]([^'"]+)['"]""")


class CrawlMode(Enum):
    EXPLORING = "exploring"
    SEARCH_ONLY = "search_only"


@dataclass
class CrawlState:
    """Mutable state of one crawl invocation."""
    queue: Deque[Tuple[str, int]] = field(default_factory=deque)
    visited: List[str] = field(default_factory=list)
    best_scores: Dict[str, int] = field(default_factory=dict)
    search_candidates: List[str] = field(default_factory=list)
    search_url: Optional[str] = None
    mode: CrawlMode = CrawlMode.EXPLORING
    category_seeds: int = 0

    def record_score(self, url: str, score: int) -> None:
        if score > 0 and score > self.best_scores.get(url, 0):
            self.best_scores[url] = score

    def ranked_candidates(self) -> List[ScoredUrl]:
        ranked = sorted(self.best_scores.items(), key=lambda item: item[1], reverse=True)
        return [ScoredUrl(url=url, score=score) for url, score in ranked]


@dataclass
class CrawlResult:
    visited: List[str] = field(default_factory=list)
    product_candidates: List[ScoredUrl] = field(default_factory=list)
    search_url: Optional[str] = None
    search_candidates: List[str] = field(default_factory=list)

    def best(self, min_score: int = 0) -> Optional[ScoredUrl]:
        """Top candidate when its score reaches min_score."""
        if self.product_candidates and self.product_candidates[0].score >= min_score:
            return self.product_candidates[0]
        return None


def extract_page_links(html: str) -> List[Tuple[str, str]]:
    """
    Raw (href, anchor text) pairs of a page.

    Covers a[href], data-href/data-url/data-link attributes and
    onclick="location.href='...'" handlers; javascript: links are dropped.
    """
    soup = parse_html(html)
    links: List[Tuple[str, str]] = []

    def push(value: Optional[str], text: str = "") -> None:
        value = (value or "").strip()
        if value and not value.lower().startswith("javascript:"):
            links.append((value, text))

    for anchor in soup.find_all("a", href=True):
        push(anchor["href"], collapse_whitespace(anchor.get_text()))
    for node in soup.select("[data-href],[data-url],[data-link]"):
        for attr in DATA_LINK_ATTRS:
            push(node.get(attr))
    for node in soup.find_all(onclick=True):
        match = ONCLICK_LOCATION.search(node.get("onclick") or "")
        if match:
            push(match.group(1))
    return links


def _is_category_url(url: str) -> bool:
    lower = url.lower()
    return "category" in lower or "cate_no=" in lower


class SiteCrawler:
    """Bounded BFS over one site, owning its own browser session."""

    def __init__(
        self,
        browser_factory: Optional[BrowserFactory] = None,
        max_pages: Optional[int] = None,
        max_depth: Optional[int] = None,
    ):
        self.browser_factory = browser_factory or BrowserSession
        self.max_pages = max_pages or config.MAX_CRAWL_PAGES
        self.max_depth = max_depth if max_depth is not None else config.MAX_CRAWL_DEPTH
        self.logger = LayerLogger("site_crawler")

    async def crawl(self, start_url: str, keyword: str) -> CrawlResult:
        state = CrawlState()
        state.queue.append((start_url, 0))
        self.logger.log_action("crawl", "started", start_url=start_url, keyword=keyword)

        try:
            async with self.browser_factory() as session:
                while state.queue and len(state.visited) < self.max_pages:
                    url, depth = state.queue.popleft()
                    normalized = normalize_url(start_url, url)
                    if not normalized or normalized in state.visited:
                        continue
                    state.visited.append(normalized)

                    page = await session.new_page()
                    try:
                        page_url = await page.goto(
                            normalized,
                            idle_timeout_ms=NETWORK_IDLE_MS,
                            settle_ms=PAGE_SETTLE_MS,
                        )
                        html = await page.html()
                    except NavigationError as e:
                        self.logger.log_error(
                            f"Crawl page failed: {e.message}",
                            error_type="navigation_error",
                            url=normalized,
                        )
                        continue
                    finally:
                        await page.close()

                    try:
                        self._visit(state, start_url, normalized, page_url or normalized, depth, html, keyword)
                    except Exception as e:
                        self.logger.log_error(
                            f"Crawl page evaluation failed: {str(e)}",
                            error_type="evaluation_error",
                            url=normalized,
                        )
        except Exception as e:
            self.logger.log_error(
                f"Crawl aborted: {str(e)}",
                error_type="crawl_error",
                start_url=start_url,
            )
            return CrawlResult(visited=list(state.visited))

        result = CrawlResult(
            visited=list(state.visited),
            product_candidates=state.ranked_candidates(),
            search_url=state.search_url,
            search_candidates=list(state.search_candidates),
        )
        self.logger.log_action(
            "crawl",
            "completed",
            start_url=start_url,
            visited=len(result.visited),
            candidates=len(result.product_candidates),
            search_url=result.search_url,
        )
        return result

    def _visit(
        self,
        state: CrawlState,
        start_url: str,
        url: str,
        page_url: str,
        depth: int,
        html: str,
        keyword: str,
    ) -> None:
        """Apply one loaded page to the crawl state."""
        if depth == 0 and state.search_url is None:
            descriptor, _ = locate_search_form(html, page_url, keyword)
            if descriptor is not None:
                state.search_url = normalize_url(page_url, descriptor.action) or descriptor.action
                state.mode = CrawlMode.SEARCH_ONLY
                state.queue.clear()
                state.queue.append((state.search_url, min(depth + 1, self.max_depth)))
                self.logger.log_decision(
                    decision="search_only",
                    reason="search_form_found",
                    url=url,
                    search_url=state.search_url,
                )
                return

        exploring = state.mode is CrawlMode.EXPLORING
        on_search_page = state.search_url is not None and url == state.search_url

        for href, text in extract_page_links(html):
            absolute = normalize_url(page_url, href)
            if not absolute or not is_same_origin_or_subdomain(start_url, absolute):
                continue

            if exploring and depth == 0 and state.category_seeds < MAX_CATEGORY_SEEDS and _is_category_url(absolute):
                state.queue.append((absolute, depth + 1))
                state.category_seeds += 1

            state.record_score(absolute, score_candidate(absolute, text, keyword))

            if on_search_page and absolute not in state.search_candidates:
                state.search_candidates.append(absolute)

            if exploring and depth + 1 <= self.max_depth:
                state.queue.append((absolute, depth + 1))
