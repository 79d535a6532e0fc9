"""
Discovery Pipeline
Orchestrates one discovery request from brand + product name to a stored record.

FLOW:
1. Web search candidates, enriched with each page's top text
2. Oracle picks the official site and the product keywords
3. Detail URL from the oracle, the scored candidate pool or a site crawl
4. DOM signals of the detail page, reconciled by the product oracle
5. Search-form probe and result-list collection on the official site
6. Record insert
"""
import time
from typing import Any, Dict, List, Optional, Tuple

from site_discovery.adapters.browser import BrowserFactory, BrowserSession
from site_discovery.adapters.claude_client import MODE_FILL, MODE_VALIDATE, ClaudeClient
from site_discovery.adapters.page_fetcher import PageFetcher
from site_discovery.adapters.search_api import SearchAPIClient
from site_discovery.adapters.store import DiscoveryStore
from site_discovery.config import config
from site_discovery.errors import NavigationError
from site_discovery.layers.link_scoring import (
    score_keyword_match,
    score_keyword_text,
    score_product_url,
)
from site_discovery.layers.price_normalization import is_price_anomalous
from site_discovery.layers.product_signals import extract_product_signals, signals_from_snippet
from site_discovery.layers.search_form import SearchFormProbe
from site_discovery.layers.search_results import (
    SearchResultCollector,
    narrow_confirmed_url,
    pick_search_form_confirmed_url,
)
from site_discovery.layers.site_crawler import SiteCrawler
from site_discovery.models.discovery import (
    DiscoveryRecord,
    DiscoveryRequest,
    OfficialSiteDecision,
    ParsedCandidate,
    ProductSignals,
    ScoredUrl,
    SearchCandidate,
    SearchFormCollection,
    SearchFormProbeResult,
)
from site_discovery.utils.logger import LayerLogger

MAX_POOL_SIZE = 5
MAX_SEARCH_KEYWORDS = 2
DETAIL_IDLE_MS = 1500


def split_product_name(raw: str) -> str:
    """First comma-separated segment of the product name."""
    raw = (raw or "").strip()
    return raw.split(",")[0].strip() or raw


def build_candidate_pool(candidates: List[SearchCandidate], keyword: str) -> List[ScoredUrl]:
    pool = []
    for item in candidates:
        if not item.link:
            continue
        score = (
            score_product_url(item.link)
            + score_keyword_match(item.link, keyword)
            + score_keyword_text(item.snippet, keyword)
        )
        pool.append(ScoredUrl(url=item.link, score=score))
    return pool[:MAX_POOL_SIZE]


def best_pool_url(pool: List[ScoredUrl], min_score: int) -> Optional[ScoredUrl]:
    eligible = [item for item in pool if item.score >= min_score]
    if not eligible:
        return None
    return max(eligible, key=lambda item: item.score)


def pick_search_keywords(product_keywords: List[str]) -> List[str]:
    """
    Keyword 1, then keyword 3 when it differs from keyword 1 (case-insensitive),
    else keyword 2 when it differs; at most two.
    """
    padded = [(k or "").strip() for k in product_keywords] + ["", "", ""]
    k0, k1, k2 = padded[:3]
    picked = [k0] if k0 else []
    if k2 and k2.lower() != k0.lower():
        picked.append(k2)
    elif k1 and k1.lower() != k0.lower():
        picked.append(k1)
    return picked[:MAX_SEARCH_KEYWORDS]


def merge_oracle_fields(base: ParsedCandidate, oracle_result) -> ParsedCandidate:
    """Non-empty oracle fields override the DOM fields."""
    if not oracle_result.has_content():
        return base
    return base.model_copy(update={
        "url": oracle_result.detail_url or base.url,
        "product_name": oracle_result.product_name or base.product_name,
        "list_price": oracle_result.list_price or base.list_price,
        "sale_price": oracle_result.sale_price or base.sale_price,
        "reason": "oracle corrected",
    })


class _Stopwatch:
    def __init__(self, logger: LayerLogger):
        self.logger = logger
        self.started = time.perf_counter()

    def lap(self, stage: str, since: float) -> float:
        now = time.perf_counter()
        self.logger.log_timing(stage, int((now - since) * 1000))
        return now


class DiscoveryPipeline:
    """
    Request orchestrator.

    Every collaborator can be injected; the defaults are the production
    adapters. Configuration and upstream API errors propagate to the caller.
    """

    def __init__(
        self,
        search_client: Optional[SearchAPIClient] = None,
        page_fetcher: Optional[PageFetcher] = None,
        oracle: Optional[ClaudeClient] = None,
        store: Optional[DiscoveryStore] = None,
        browser_factory: Optional[BrowserFactory] = None,
        crawler: Optional[SiteCrawler] = None,
        probe: Optional[SearchFormProbe] = None,
        collector: Optional[SearchResultCollector] = None,
    ):
        self.search_client = search_client or SearchAPIClient()
        self.page_fetcher = page_fetcher or PageFetcher()
        self.oracle = oracle or ClaudeClient()
        self.store = store or DiscoveryStore()
        self.browser_factory = browser_factory or BrowserSession
        self.crawler = crawler or SiteCrawler(self.browser_factory)
        self.probe = probe or SearchFormProbe(self.browser_factory)
        self.collector = collector or SearchResultCollector(self.oracle, self.browser_factory)
        self.min_product_score = config.MIN_PRODUCT_SCORE
        self.logger = LayerLogger("discovery")

    async def run(self, request: DiscoveryRequest) -> Tuple[int, DiscoveryRecord]:
        """Execute the full pipeline and persist the record; returns (id, record)."""
        brand = request.brand.strip()
        product_name_input = request.product_name.strip()
        product_name = split_product_name(product_name_input)
        product_name_en = (request.product_name_en or "").strip()
        keyword = f"{brand} {product_name}".strip()

        self.logger.log_action("discovery", "started", brand=brand, keyword=keyword)
        clock = _Stopwatch(self.logger)
        mark = clock.started

        candidates = await self.search_client.search(keyword)
        mark = clock.lap("web_search", mark)

        decision = await self._verify(brand, product_name, product_name_en, candidates)
        mark = clock.lap("verify_official_site", mark)
        source_url = decision.official_url or (candidates[0].link if candidates else None) or None

        pool = build_candidate_pool(candidates, keyword)
        detail_url, detail_score, detail_source = await self._pick_detail_url(
            decision, pool, source_url, keyword
        )
        mark = clock.lap("detail_url", mark)

        parsed_candidates: List[ParsedCandidate] = []
        signals: Optional[ProductSignals] = None
        if detail_url:
            signals = await self._collect_signals(detail_url, detail_score, candidates)
            mark = clock.lap("dom_parse", mark)
            parsed_candidates.append(await self._reconcile(keyword, signals))
            mark = clock.lap("product_oracle", mark)
        parsed = parsed_candidates[0] if parsed_candidates else None

        search_keywords = pick_search_keywords(decision.product_keywords)
        probe_result: Optional[SearchFormProbeResult] = None
        confirmed_url: Optional[str] = None
        collection = SearchFormCollection()
        if source_url:
            probe_result = await self.probe.probe(source_url, search_keywords, product_name)
            if probe_result.info.get("action"):
                confirmed_url = pick_search_form_confirmed_url(probe_result.info)
        if confirmed_url:
            collection = await self.collector.collect(confirmed_url, search_keywords, product_name)
            confirmed_url = narrow_confirmed_url(
                confirmed_url, collection.items, collection.debug.get("attempts") or []
            )
        mark = clock.lap("search_form", mark)

        error_log = collection.debug or {
            "stage": "search_form_products",
            "reason": "search_form_not_confirmed",
            "confirmedUrl": confirmed_url or "",
            "keyword": product_name,
            "attempts": [],
        }
        keywords = decision.product_keywords + [None, None, None]

        record = DiscoveryRecord(
            brand=brand,
            product_name_input=product_name_input,
            keyword=keyword,
            official_homepage=decision.official_url,
            business_alias=decision.business_alias,
            official_en=decision.official_en,
            official_ko=decision.official_ko,
            product_keyword1=keywords[0],
            product_keyword2=keywords[1],
            product_keyword3=keywords[2],
            search_form_available=probe_result.available if probe_result else None,
            search_form_info=probe_result.info if probe_result else None,
            search_form_confirmed_url=confirmed_url,
            search_form_product_list=[item.to_dict() for item in collection.items] or None,
            error_log=error_log,
            source_url=source_url,
            detail_url=(parsed.url if parsed else None) or detail_url,
            product_name=(parsed.product_name if parsed else None) or None,
            list_price=(parsed.list_price if parsed else None) or None,
            sale_price=(parsed.sale_price if parsed else None) or None,
            image_src=(signals.image_src if signals else None) or None,
            candidates=[item.to_dict() for item in pool],
            raw_data={
                "stage": "grounded_search",
                "query": self.search_client.build_query(keyword),
                "items": [item.to_dict() for item in candidates],
                "grounded": decision.to_dict(),
            },
            raw_data_parse={
                "stage": "parse",
                "detailSource": detail_source,
                "signals": signals.to_dict() if signals else None,
                "parsed": parsed.to_dict() if parsed else None,
                "parsedCandidates": [c.to_dict() for c in parsed_candidates],
            },
        )

        record_id = self.store.insert(record)
        clock.lap("db", mark)
        clock.lap("total", clock.started)
        self.logger.log_action(
            "discovery",
            "completed",
            id=record_id,
            source_url=source_url,
            detail_url=record.detail_url,
            search_form_items=len(collection.items),
        )
        return record_id, record

    async def _verify(
        self,
        brand: str,
        product_name: str,
        product_name_en: str,
        candidates: List[SearchCandidate],
    ) -> OfficialSiteDecision:
        enriched: List[Dict[str, Any]] = []
        for item in candidates:
            entry = item.to_dict()
            entry["topText"] = await self.page_fetcher.fetch_top_text(item.link)
            enriched.append(entry)
        decision = await self.oracle.verify_official_site(brand, product_name, product_name_en, enriched)
        self.logger.log_decision(
            decision="official_site",
            reason=decision.reason or "",
            url=decision.official_url,
            confidence=decision.confidence,
            product_keywords=decision.product_keywords,
        )
        return decision

    async def _pick_detail_url(
        self,
        decision: OfficialSiteDecision,
        pool: List[ScoredUrl],
        source_url: Optional[str],
        keyword: str,
    ) -> Tuple[Optional[str], int, str]:
        """(detail URL, score, where it came from)."""
        if decision.official_detail_url:
            return decision.official_detail_url, 0, "oracle"

        best = best_pool_url(pool, self.min_product_score)
        if best is not None:
            return best.url, best.score, "candidate_pool"

        if source_url:
            self.logger.log_fallback(
                from_source="candidate_pool",
                to_source="site_crawl",
                reason="no_pool_url_above_threshold",
                source_url=source_url,
            )
            crawl = await self.crawler.crawl(source_url, keyword)
            top = crawl.best(self.min_product_score)
            if top is not None:
                return top.url, top.score, "site_crawl"

        return None, 0, "none"

    async def _collect_signals(
        self,
        detail_url: str,
        score: int,
        candidates: List[SearchCandidate],
    ) -> ProductSignals:
        signals = await self._load_dom_signals(detail_url, score)
        if signals.has_content():
            return signals

        hit = next((item for item in candidates if item.link == detail_url), None)
        self.logger.log_fallback(
            from_source="dom",
            to_source="search_snippet",
            reason="no_dom_signals",
            url=detail_url,
        )
        return signals_from_snippet(
            detail_url,
            hit.title if hit else "",
            hit.snippet if hit else "",
            score=score,
        )

    async def _load_dom_signals(self, url: str, score: int) -> ProductSignals:
        try:
            async with self.browser_factory() as session:
                page = await session.new_page()
                try:
                    await page.goto(url, idle_timeout_ms=DETAIL_IDLE_MS)
                    html = await page.html()
                finally:
                    await page.close()
        except NavigationError as e:
            self.logger.log_error(
                f"Detail page failed: {e.message}",
                error_type="navigation_error",
                url=url,
            )
            return ProductSignals.empty(url)
        except Exception as e:
            self.logger.log_error(
                f"Browser unavailable: {str(e)}",
                error_type="browser_error",
                url=url,
            )
            return ProductSignals.empty(url)
        return extract_product_signals(html, url, score=score)

    async def _reconcile(self, keyword: str, signals: ProductSignals) -> ParsedCandidate:
        anomaly = is_price_anomalous(signals.list_price, signals.sale_price)
        base = ParsedCandidate(
            url=signals.url,
            product_name=signals.product_name,
            list_price=signals.list_price,
            sale_price=signals.sale_price,
            score=signals.score,
            reason="dom parsed",
            price_anomaly=anomaly,
        )
        mode = MODE_VALIDATE if signals.product_name and signals.list_price and not anomaly else MODE_FILL
        if anomaly:
            self.logger.log_decision(
                decision="price_anomaly",
                reason="sale_price_above_list_price",
                url=signals.url,
                list_price=signals.list_price,
                sale_price=signals.sale_price,
            )
        result = await self.oracle.extract_product_info(keyword, [signals], mode)
        merged = merge_oracle_fields(base, result)
        self.logger.log_action(
            "reconcile_product",
            "completed",
            mode=mode,
            url=merged.url,
            product_name=merged.product_name,
            list_price=merged.list_price,
            sale_price=merged.sale_price,
        )
        return merged
