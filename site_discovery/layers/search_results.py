"""
Search Result Collection Layer
Probes a confirmed search endpoint with several queries and turns the
evidence into a validated product list.

DESIGN PRINCIPLES:
- Evidence (page text, captured network bodies, candidate cards) is
  gathered by the browser; interpretation is left to the oracle
- Oracle rows are re-validated here: menu words, missing prices and
  nameless rows never reach the record
- Items matching a priority keyword are ranked first
"""
import re
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from bs4 import Tag
from pydantic import ValidationError

from site_discovery.adapters.browser import BrowserFactory, BrowserSession
from site_discovery.errors import NavigationError
from site_discovery.layers.product_signals import (
    collapse_whitespace,
    is_rejected_name,
    main_content_text,
    parse_html,
    strip_non_content,
)
from site_discovery.layers.search_form import dedupe_keywords
from site_discovery.models.discovery import (
    CandidateCard,
    SearchAttempt,
    SearchFormCollection,
    SearchFormProductItem,
)
from site_discovery.utils.logger import LayerLogger
from site_discovery.utils.urls import normalize_url, set_query_param

SEARCH_PARAM_NAMES = ("q", "keyword", "search", "kwrd")
MAX_URLS_PER_KEYWORD = 3
RESULT_SETTLE_MS = 1200

NETWORK_CHUNK_LIMIT = 1200
NETWORK_TEXT_LIMIT = 10000
PAGE_TEXT_LIMIT = 8000
CARD_TEXT_LIMIT = 400
MAX_CANDIDATE_CARDS = 30
DEBUG_TEXT_LIMIT = 3000
MAX_ITEMS = 10
PRIORITY_SCORE = 10

RELEVANT_URL_HINTS = ("search", "query", "product", "goods", "graphql", "api")
RELEVANT_CONTENT_TYPES = ("json", "text", "javascript")
DETAIL_URL_HINTS = ("/product", "/products", "/item", "/goods", "product_no=", "goodsno=", "itemid=")
CARD_CONTAINER_TAGS = ("li", "article", "div")
CARD_CONTAINER_CLASSES = ("item", "card", "product")
MENU_WORDS = ("shop", "world shipping", "home", "category", "공지", "배송", "리뷰")

_WHITESPACE = re.compile(r"\s+")


class SearchListOracle(Protocol):
    async def extract_search_list(
        self,
        keyword: str,
        page_url: str,
        attempts: Sequence[SearchAttempt],
        priority_keywords: Sequence[str],
    ) -> List[Dict[str, str]]:
        ...


def is_relevant_response(url: str, content_type: str) -> bool:
    """Network responses worth keeping as search evidence."""
    lower = (url or "").lower()
    if not (lower.startswith("http://") or lower.startswith("https://")):
        return False
    if not any(hint in lower for hint in RELEVANT_URL_HINTS):
        return False
    return any(kind in (content_type or "") for kind in RELEVANT_CONTENT_TYPES)


def format_network_text(chunks: Sequence[Tuple[str, str]]) -> str:
    parts = []
    for url, body in chunks:
        compact = collapse_whitespace(body)
        if compact:
            parts.append(f"URL={url}\nBODY={compact[:NETWORK_CHUNK_LIMIT]}")
    return "\n---\n".join(parts)[:NETWORK_TEXT_LIMIT]


def search_urls_for(confirmed_url: str, keyword: str) -> List[str]:
    """The confirmed URL, then the same URL with each search parameter set, first three unique."""
    urls = [confirmed_url]
    for name in SEARCH_PARAM_NAMES:
        candidate = set_query_param(confirmed_url, name, keyword)
        if candidate not in urls:
            urls.append(candidate)
    return urls[:MAX_URLS_PER_KEYWORD]


def _looks_like_detail(url: str) -> bool:
    lower = url.lower()
    return any(hint in lower for hint in DETAIL_URL_HINTS)


def _is_card_container(node: Tag) -> bool:
    if node.name in CARD_CONTAINER_TAGS:
        return True
    classes = node.get("class") or []
    return any(name in classes for name in CARD_CONTAINER_CLASSES)


def _card_for(anchor: Tag) -> Optional[Tag]:
    if _is_card_container(anchor):
        return anchor
    for parent in anchor.parents:
        if isinstance(parent, Tag) and _is_card_container(parent):
            return parent
    return anchor.parent if isinstance(anchor.parent, Tag) else None


def _pick_image(root: Optional[Tag], page_url: str) -> str:
    if root is None:
        return ""
    img = root if root.name == "img" else root.find("img")
    if img is None:
        return ""
    src = img.get("src") or img.get("data-src") or img.get("data-original") or ""
    if not src:
        srcset = (img.get("srcset") or "").split(",")[0].strip()
        src = srcset.split(" ")[0] if srcset else ""
    if not src:
        return ""
    return normalize_url(page_url, src) or ""


def extract_candidate_cards(html: str, page_url: str) -> List[CandidateCard]:
    """
    Product-looking anchors of a result page with their card container.

    Cards are de-duplicated by detail URL; thumbnails of repeated anchors
    accumulate on the first card.
    """
    soup = parse_html(html)
    cards: Dict[str, CandidateCard] = {}

    for anchor in soup.find_all("a", href=True):
        detail_url = normalize_url(page_url, anchor["href"])
        if not detail_url or not _looks_like_detail(detail_url):
            continue
        card = _card_for(anchor)
        thumb = _pick_image(card, page_url) or _pick_image(anchor, page_url)
        card_text = collapse_whitespace(card.get_text() if card is not None else "")[:CARD_TEXT_LIMIT]

        existing = cards.get(detail_url)
        if existing is None:
            cards[detail_url] = CandidateCard(
                detail_url=detail_url,
                thumb_candidates=[thumb] if thumb else [],
                card_text=card_text,
            )
            continue
        if thumb and thumb not in existing.thumb_candidates:
            existing.thumb_candidates.append(thumb)
        if not existing.card_text and card_text:
            existing.card_text = card_text

    return list(cards.values())[:MAX_CANDIDATE_CARDS]


def page_text_of(html: str) -> str:
    soup = strip_non_content(parse_html(html))
    return collapse_whitespace(main_content_text(soup))[:PAGE_TEXT_LIMIT]


def _compact(value: str) -> str:
    return _WHITESPACE.sub("", (value or "").lower())


def is_menu_name(name: str) -> bool:
    """True when the name is a navigation/menu label rather than a product."""
    normalized = collapse_whitespace(name).lower()
    if normalized in MENU_WORDS:
        return True
    return any(word in normalized for word in MENU_WORDS if not word.isascii())


def has_priority_keyword_match(text: str, keywords: Sequence[str]) -> bool:
    """Whitespace- and case-insensitive containment of any keyword."""
    haystack = _compact(text)
    if not haystack:
        return False
    return any(_compact(k) and _compact(k) in haystack for k in keywords)


def pick_search_form_confirmed_url(info: Optional[Dict[str, Any]]) -> Optional[str]:
    """The probe's result URL, else its submitted action URL."""
    if not info:
        return None
    for key in ("resultUrl", "action"):
        value = info.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def narrow_confirmed_url(
    confirmed_url: Optional[str],
    items: Sequence[SearchFormProductItem],
    attempts: Sequence[Dict[str, Any]],
) -> Optional[str]:
    """
    Replace the confirmed URL by the attempt URL that produced the first item.

    The first item with a URL selects the attempt whose keyword equals its
    keywordUsed (case-insensitive); otherwise the URL is unchanged.
    """
    first = next((item for item in items if item.url), None)
    if first is None:
        return confirmed_url
    wanted = first.keyword_used.strip().lower()
    for attempt in attempts:
        if (attempt.get("keyword") or "").strip().lower() == wanted and attempt.get("url"):
            return attempt["url"]
    return confirmed_url


def build_items(
    rows: Sequence[Dict[str, str]],
    confirmed_url: str,
    keywords: Sequence[str],
    fallback_keyword: str,
) -> List[SearchFormProductItem]:
    """Validate, resolve, score and rank the oracle's product rows."""
    default_keyword = keywords[0] if keywords else fallback_keyword
    lowered = {k.lower(): k for k in keywords}
    items: List[SearchFormProductItem] = []

    for row in rows:
        name = (row.get("productName") or "").strip()
        if not name or is_menu_name(name) or is_rejected_name(name):
            continue
        raw_url = (row.get("url") or "").strip()
        url = (normalize_url(confirmed_url, raw_url) or raw_url) if raw_url else ""
        reason = (row.get("reason") or "search_form_text_parse").strip()
        if not url:
            reason += " | detail_url_not_resolved"
        reported = (row.get("searchKeyword") or "").strip().lower()

        try:
            item = SearchFormProductItem(
                url=url,
                product_name=name,
                list_price=(row.get("listPrice") or "").strip(),
                sale_price=(row.get("salePrice") or "").strip(),
                image_src=(row.get("imageSrc") or "").strip(),
                reason=reason,
                keyword_used=lowered.get(reported, default_keyword),
            )
        except ValidationError:
            continue

        if has_priority_keyword_match(f"{item.product_name} {item.url} {item.reason}", keywords):
            item.score = PRIORITY_SCORE
        items.append(item)

    items.sort(key=lambda item: item.score, reverse=True)
    return items[:MAX_ITEMS]


class SearchResultCollector:
    """Multi-query probing of one confirmed search endpoint."""

    def __init__(
        self,
        oracle: SearchListOracle,
        browser_factory: Optional[BrowserFactory] = None,
        settle_ms: int = RESULT_SETTLE_MS,
    ):
        self.oracle = oracle
        self.browser_factory = browser_factory or BrowserSession
        self.settle_ms = settle_ms
        self.logger = LayerLogger("search_results")

    async def collect(
        self,
        confirmed_url: str,
        keywords: Sequence[str],
        fallback_keyword: str,
    ) -> SearchFormCollection:
        keywords = dedupe_keywords(keywords)
        if not keywords and fallback_keyword.strip():
            keywords = [fallback_keyword.strip()]
        debug: Dict[str, Any] = {"stage": "search_form_products", "confirmedUrl": confirmed_url}
        if not keywords:
            debug["reason"] = "no_keywords"
            return SearchFormCollection(debug=debug)

        try:
            attempts = await self._gather(confirmed_url, keywords)
        except Exception as e:
            self.logger.log_error(
                f"Search result browser failed: {str(e)}",
                error_type="browser_error",
                url=confirmed_url,
            )
            debug["reason"] = "browser_unavailable"
            debug["error"] = str(e)
            return SearchFormCollection(debug=debug)
        if not attempts:
            debug["reason"] = "no_attempt_text"
            self.logger.log_decision(decision="no_products", reason="no_attempt_text", url=confirmed_url)
            return SearchFormCollection(debug=debug)

        rows = await self.oracle.extract_search_list(fallback_keyword, confirmed_url, attempts, keywords)
        items = build_items(rows, confirmed_url, keywords, fallback_keyword)

        debug.update({
            "reason": "ok" if items else "no_products_after_parse",
            "keyword": fallback_keyword,
            "attempts": [
                {
                    "url": a.url,
                    "keyword": a.keyword,
                    "pageText": a.page_text[:DEBUG_TEXT_LIMIT],
                    "networkText": a.network_text[:DEBUG_TEXT_LIMIT],
                }
                for a in attempts
            ],
        })
        self.logger.log_action(
            "collect_search_products",
            "completed",
            confirmed_url=confirmed_url,
            attempts=len(attempts),
            oracle_rows=len(rows),
            items=len(items),
        )
        return SearchFormCollection(items=items, debug=debug)

    async def _gather(self, confirmed_url: str, keywords: Sequence[str]) -> List[SearchAttempt]:
        attempts: List[SearchAttempt] = []
        async with self.browser_factory() as session:
            page = await session.new_page()
            try:
                for keyword in keywords:
                    for url in search_urls_for(confirmed_url, keyword):
                        attempt = await self._attempt(page, url, keyword)
                        if attempt is not None:
                            attempts.append(attempt)
            finally:
                await page.close()
        return attempts

    async def _attempt(self, page, url: str, keyword: str) -> Optional[SearchAttempt]:
        chunks: List[Tuple[str, str]] = []
        handler = page.capture_responses(is_relevant_response, chunks)
        try:
            await page.goto(url, settle_ms=self.settle_ms)
            html = await page.html()
        except NavigationError as e:
            self.logger.log_error(
                f"Search result page failed: {e.message}",
                error_type="navigation_error",
                url=url,
                keyword=keyword,
            )
            return None
        finally:
            page.release_capture(handler)

        page_text = page_text_of(html)
        network_text = format_network_text(chunks)
        if not page_text and not network_text:
            return None
        return SearchAttempt(
            url=url,
            keyword=keyword,
            page_text=page_text,
            network_text=network_text,
            candidate_products=extract_candidate_cards(html, page.url or url),
        )
