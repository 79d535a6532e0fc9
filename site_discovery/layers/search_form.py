"""
Search Form Probe Layer
Locates an in-site GET search form, submits it and checks the result page.

DESIGN PRINCIPLES:
- Form lookup is a pure function of one HTML snapshot
- Every outcome, positive or negative, carries its debug trace
- Only GET forms are submitted (the result must be a plain URL)
- The browser session is always closed, whatever happens
"""
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, Tag

from site_discovery.adapters.browser import BrowserFactory, BrowserPage, BrowserSession
from site_discovery.errors import NavigationError
from site_discovery.layers.product_signals import collapse_whitespace, parse_html
from site_discovery.models.discovery import SearchFormDescriptor, SearchFormProbeResult
from site_discovery.utils.logger import LayerLogger
from site_discovery.utils.urls import normalize_url, set_query_param

INPUT_NAME_HINTS = ("search", "query", "keyword", "kwrd", "q")
SELECTOR_HINT = "type=search|name*=search/query/keyword/kwrd/q"
MAX_INPUT_CANDIDATES = 20

TRIGGER_SETTLE_MS = 400
RETRY_DELAY_MS = 2000

INPUT_NOT_FOUND = "input_not_found"
FORM_NOT_FOUND = "form_not_found"
METHOD_NOT_GET = "method_not_get"
INVALID_ACTION_URL = "invalid_action_url"

WON_PRICE = re.compile(r"([0-9]{1,3}(?:,[0-9]{3})+)\s*원")
SYMBOL_PRICE = re.compile(r"([$€£]\s?[0-9][0-9,.]*|[0-9][0-9,.]*\s?(USD|EUR|GBP))", re.IGNORECASE)


def dedupe_keywords(keywords: Sequence[str]) -> List[str]:
    """Strip, drop empties and de-duplicate, keeping first-seen order."""
    seen = set()
    result = []
    for keyword in keywords:
        value = (keyword or "").strip()
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _describe_input(node: Tag) -> Dict[str, str]:
    return {
        "type": node.get("type") or "",
        "name": node.get("name") or "",
        "id": node.get("id") or "",
        "className": " ".join(node.get("class") or []),
        "placeholder": node.get("placeholder") or "",
    }


def _describe_form(form: Tag) -> Dict[str, str]:
    return {
        "actionRaw": form.get("action") or "",
        "methodRaw": form.get("method") or "",
        "id": form.get("id") or "",
        "className": " ".join(form.get("class") or []),
    }


def find_search_input(soup: BeautifulSoup) -> Optional[Tag]:
    """
    Pick the search input by priority: type=search first, then the first
    input whose name contains one of the hints, tried hint by hint.
    """
    inputs = soup.find_all("input")
    for node in inputs:
        if (node.get("type") or "").lower() == "search":
            return node
    for hint in INPUT_NAME_HINTS:
        for node in inputs:
            if hint in (node.get("name") or "").lower():
                return node
    return None


def locate_search_form(html: str, page_url: str, keyword: str) -> Tuple[Optional[SearchFormDescriptor], Dict[str, Any]]:
    """
    Find the search form in a page snapshot and build its submission URL.

    Returns (descriptor, debug). descriptor is None on failure and
    debug["errorReason"] names the cause.
    """
    soup = parse_html(html)
    input_candidates = [_describe_input(n) for n in soup.find_all("input")[:MAX_INPUT_CANDIDATES]]

    node = find_search_input(soup)
    if node is None:
        return None, {
            "errorReason": INPUT_NOT_FOUND,
            "pageUrl": page_url,
            "inputCandidates": input_candidates,
        }

    form = node.find_parent("form")
    if form is None:
        return None, {
            "errorReason": FORM_NOT_FOUND,
            "pageUrl": page_url,
            "inputCandidates": input_candidates,
            "inputDebug": _describe_input(node),
        }

    method = (form.get("method") or "get").strip().lower()
    if method != "get":
        return None, {
            "errorReason": METHOD_NOT_GET,
            "pageUrl": page_url,
            "inputCandidates": input_candidates,
            "formDebug": _describe_form(form),
        }

    action_base = normalize_url(page_url, form.get("action") or page_url)
    if action_base is None:
        return None, {
            "errorReason": INVALID_ACTION_URL,
            "pageUrl": page_url,
            "inputCandidates": input_candidates,
            "formDebug": _describe_form(form),
        }

    input_name = node.get("name") or "q"
    descriptor = SearchFormDescriptor(
        action=set_query_param(action_base, input_name, keyword),
        method=method,
        input_name=input_name,
    )
    debug = {
        "inputDebug": dict(_describe_input(node), selectorHint=SELECTOR_HINT),
        "formDebug": _describe_form(form),
    }
    return descriptor, debug


def body_text(html: str) -> str:
    soup = parse_html(html)
    body = soup.body or soup
    return body.get_text()


def evaluate_result_page(text: str, product_name: str, keyword: str) -> Tuple[bool, bool]:
    """(nameHit, priceHit) for the visible text of a search result page."""
    normalized = collapse_whitespace(text).lower()
    name_hit = False
    for needle in (product_name, keyword):
        needle = (needle or "").lower()
        if needle and needle in normalized:
            name_hit = True
            break
    price_hit = bool(WON_PRICE.search(text) or SYMBOL_PRICE.search(text))
    return name_hit, price_hit


class SearchFormProbe:
    """
    Two-round search-form probe over one homepage.

    Round one tries every keyword once; round two waits before each keyword
    and tries again, for sites whose search widget is wired up late.
    """

    def __init__(
        self,
        browser_factory: Optional[BrowserFactory] = None,
        trigger_settle_ms: int = TRIGGER_SETTLE_MS,
        retry_delay_ms: int = RETRY_DELAY_MS,
    ):
        self.browser_factory: Callable[[], BrowserSession] = browser_factory or BrowserSession
        self.trigger_settle_ms = trigger_settle_ms
        self.retry_delay_ms = retry_delay_ms
        self.logger = LayerLogger("search_form")

    async def probe(self, homepage_url: str, keywords: Sequence[str], product_name: str) -> SearchFormProbeResult:
        keywords = dedupe_keywords(keywords)
        if not keywords:
            self.logger.log_decision(
                decision="search_form_skipped",
                reason="no_keywords",
                homepage_url=homepage_url,
            )
            return SearchFormProbeResult(
                available=False,
                info={"reason": "no_keywords", "homepageUrl": homepage_url},
            )

        history: List[Dict[str, Any]] = []
        last_info: Dict[str, Any] = {}

        try:
            async with self.browser_factory() as session:
                page = await session.new_page()
                try:
                    try:
                        landing_url = await page.goto(homepage_url)
                    except NavigationError as e:
                        self.logger.log_error(
                            f"Homepage unreachable: {e.message}",
                            error_type="navigation_error",
                            url=homepage_url,
                        )
                        return SearchFormProbeResult(
                            available=False,
                            info={
                                "reason": "homepage_unreachable",
                                "homepageUrl": homepage_url,
                                "productName": product_name,
                                "error": e.message,
                            },
                        )

                    for round_no, source in ((1, "homepage"), (2, "homepage_retry")):
                        for keyword in keywords:
                            if round_no == 2:
                                await page.settle(self.retry_delay_ms)
                            available, info = await self._probe_once(
                                page, landing_url, source, keyword, product_name
                            )
                            last_info = info
                            history.append(dict(info, round=round_no))
                            self.logger.log_probe(
                                "attempt_done",
                                source,
                                keyword,
                                homepage_url=homepage_url,
                                available=available,
                                reason=info.get("reason"),
                            )
                            if available:
                                return SearchFormProbeResult(available=True, info=info)
                finally:
                    await page.close()
        except Exception as e:
            self.logger.log_error(
                f"Search form browser failed: {str(e)}",
                error_type="browser_error",
                homepage_url=homepage_url,
            )
            return SearchFormProbeResult(
                available=False,
                info={
                    "reason": "browser_unavailable",
                    "homepageUrl": homepage_url,
                    "productName": product_name,
                    "error": str(e),
                    "attempts": history,
                },
            )

        failed = {
            "source": "homepage",
            "homepageUrl": homepage_url,
            "productName": product_name,
        }
        failed.update(last_info)
        failed.setdefault("reason", "all_probe_failed")
        failed["attempts"] = history
        self.logger.log_decision(
            decision="search_form_unavailable",
            reason=failed["reason"],
            homepage_url=homepage_url,
            attempts=len(history),
        )
        return SearchFormProbeResult(available=False, info=failed)

    async def _read_form(self, page: BrowserPage, keyword: str):
        return locate_search_form(await page.html(), page.url, keyword)

    async def _probe_once(
        self,
        page: BrowserPage,
        landing_url: str,
        source: str,
        keyword: str,
        product_name: str,
    ) -> Tuple[bool, Dict[str, Any]]:
        try:
            if page.url != landing_url:
                await page.goto(landing_url)
            descriptor, debug = await self._read_form(page, keyword)

            if descriptor is None and debug.get("errorReason") == FORM_NOT_FOUND:
                trigger_id = (debug.get("inputDebug") or {}).get("id", "").strip()
                if trigger_id and await page.click_by_id(trigger_id):
                    await page.settle(self.trigger_settle_ms)
                    descriptor, debug = await self._read_form(page, keyword)
                    self.logger.log_probe(
                        "trigger_reprobe",
                        source,
                        keyword,
                        trigger_id=trigger_id,
                        recovered_action=descriptor is not None,
                        reason=debug.get("errorReason"),
                    )

            if descriptor is None:
                info = {
                    "source": source,
                    "submittedText": keyword,
                    "fromUrl": page.url,
                    "action": "",
                    "resultUrl": page.url,
                    "searchKeyword": keyword,
                    "productName": product_name,
                    "nameHit": False,
                    "priceHit": False,
                    "reason": debug.get("errorReason", "unknown"),
                    "debug": debug,
                }
                self.logger.log_probe("no_form", source, keyword, reason=info["reason"], from_url=page.url)
                return False, info

            self.logger.log_probe(
                "submit",
                source,
                keyword,
                from_url=page.url,
                action=descriptor.action,
                input_name=descriptor.input_name,
            )
            result_url = await page.goto(descriptor.action)
            self.logger.log_probe("result_page", source, keyword, result_url=result_url)
        except NavigationError as e:
            self.logger.log_error(
                f"Search form probe navigation failed: {e.message}",
                error_type="navigation_error",
                url=e.url,
                keyword=keyword,
            )
            return False, {
                "source": source,
                "submittedText": keyword,
                "searchKeyword": keyword,
                "productName": product_name,
                "nameHit": False,
                "priceHit": False,
                "reason": "navigation_failed",
                "error": e.message,
            }

        try:
            text = body_text(await page.html())
        except NavigationError:
            text = ""
        name_hit, price_hit = evaluate_result_page(text, product_name, keyword)

        info = {
            "source": source,
            "submittedText": keyword,
            "resultUrl": result_url,
            "searchKeyword": keyword,
            "productName": product_name,
            "action": descriptor.action,
            "method": descriptor.method,
            "inputName": descriptor.input_name,
            "nameHit": name_hit,
            "priceHit": price_hit,
        }
        info.update(debug)
        return name_hit, info
