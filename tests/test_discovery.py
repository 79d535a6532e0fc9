import asyncio

from site_discovery.adapters.store import DiscoveryStore
from site_discovery.layers.discovery import (
    DiscoveryPipeline,
    build_candidate_pool,
    pick_search_keywords,
    split_product_name,
)
from site_discovery.models.discovery import (
    DiscoveryRequest,
    OfficialSiteDecision,
    ProductInfoResult,
    SearchCandidate,
)
from site_discovery.utils.urls import set_query_param

HOME = "https://brand.co.kr/"
DETAIL = "https://brand.co.kr/product/fan-prime-3"

DETAIL_PAGE = """
<html><body><main>
<h1>무선선풍기 FAN PRIME 3</h1>
<ul><li>소비자 가격 66,000원</li><li>판매가 57,900원</li></ul>
</main></body></html>
"""
ANOMALY_PAGE = """
<html><body><main>
<h1>무선선풍기 FAN PRIME 3</h1>
<ul><li>정가 10,000원</li><li>판매가 12,000원</li></ul>
</main></body></html>
"""
HOME_WITH_FORM = '<html><body><form action="/search"><input name="q"></form></body></html>'


class FakeSearchClient:
    def __init__(self, candidates):
        self.candidates = candidates
        self.keywords = []

    def build_query(self, keyword):
        return f"{keyword} official store"

    async def search(self, keyword):
        self.keywords.append(keyword)
        return self.candidates


class FakeFetcher:
    async def fetch_top_text(self, url, limit=1500):
        return f"top text of {url}"


def make_pipeline(site, oracle, candidates, db_path):
    return DiscoveryPipeline(
        search_client=FakeSearchClient(candidates),
        page_fetcher=FakeFetcher(),
        oracle=oracle,
        store=DiscoveryStore(db_path=db_path),
        browser_factory=site.factory,
    )


def test_split_product_name():
    assert split_product_name(" FAN PRIME 3, 화이트, 1개 ") == "FAN PRIME 3"
    assert split_product_name(", only") == ", only"


def test_pick_search_keywords():
    assert pick_search_keywords(["선풍기", "선풍기", "fan"]) == ["선풍기", "fan"]
    assert pick_search_keywords(["Fan", "선풍기", "FAN"]) == ["Fan", "선풍기"]
    assert pick_search_keywords(["fan", "fan", "FAN"]) == ["fan"]
    assert pick_search_keywords(["", "선풍기", ""]) == ["선풍기"]
    assert pick_search_keywords([]) == []


def test_candidate_pool_scores_links():
    pool = build_candidate_pool(
        [
            SearchCandidate(title="a", link=DETAIL, snippet="brand fan prime 3"),
            SearchCandidate(title="b", link=""),
        ],
        "brand fan prime 3",
    )
    assert [p.url for p in pool] == [DETAIL]
    assert pool[0].score == 1 + 3 + 3


def test_full_run_with_search_form(make_site, fake_oracle, db_path):
    result_url = set_query_param("https://brand.co.kr/search", "q", "선풍기")
    site = make_site({
        HOME: HOME_WITH_FORM,
        DETAIL: DETAIL_PAGE,
        result_url: "<html><body><main>무선선풍기 FAN PRIME 3 57,900원</main></body></html>",
    })
    oracle = fake_oracle(
        decision=OfficialSiteDecision(
            official_url=HOME,
            business_alias="브랜드",
            product_keywords=["선풍기", "선풍기", "fan"],
        ),
        product=ProductInfoResult(product_name="무선선풍기 FAN PRIME 3", list_price="66,000원", sale_price="57,900원"),
        search_rows=[{
            "productName": "무선선풍기 FAN PRIME 3",
            "listPrice": "66,000원",
            "salePrice": "57,900원",
            "url": "/product/fan-prime-3",
            "searchKeyword": "fan",
        }],
    )
    candidates = [SearchCandidate(title="Fan Prime 3 - Brand", link=DETAIL, snippet="brand fan prime 3 57,900원")]
    pipeline = make_pipeline(site, oracle, candidates, db_path)

    record_id, record = asyncio.run(pipeline.run(DiscoveryRequest(brand="Brand", product_name="Fan Prime 3, white")))

    assert pipeline.search_client.keywords == ["Brand Fan Prime 3"]
    assert oracle.verify_calls[0][3][0]["topText"] == f"top text of {DETAIL}"
    assert oracle.product_calls[0][2] == "validate"
    assert record.source_url == HOME
    assert record.detail_url == DETAIL
    assert record.list_price == "66,000원"
    assert record.sale_price == "57,900원"
    assert record.product_keyword3 == "fan"
    assert record.search_form_available is True
    assert record.search_form_confirmed_url == result_url
    assert record.search_form_product_list[0]["keywordUsed"] == "fan"
    assert record.error_log["reason"] == "ok"
    assert record.raw_data_parse["detailSource"] == "candidate_pool"
    assert site.opened == site.closed == 3

    stored = pipeline.store.get(record_id)
    assert stored["product_name"] == "무선선풍기 FAN PRIME 3"
    assert stored["product_name_input"] == "Fan Prime 3, white"


def test_price_anomaly_uses_fill_mode(make_site, fake_oracle, db_path):
    site = make_site({DETAIL: ANOMALY_PAGE})
    oracle = fake_oracle(
        decision=OfficialSiteDecision(official_detail_url=DETAIL),
        product=ProductInfoResult(sale_price="9,000원"),
    )
    candidates = [SearchCandidate(title="Brand", link=DETAIL)]
    pipeline = make_pipeline(site, oracle, candidates, db_path)

    _, record = asyncio.run(pipeline.run(DiscoveryRequest(brand="Brand", product_name="Fan Prime 3")))

    assert oracle.product_calls[0][2] == "fill"
    assert record.source_url == DETAIL
    assert record.list_price == "10,000원"
    assert record.sale_price == "9,000원"
    assert record.raw_data_parse["parsed"]["priceAnomaly"] is True
    assert record.search_form_info["reason"] == "no_keywords"
    assert record.search_form_confirmed_url is None
    assert record.error_log["reason"] == "search_form_not_confirmed"


def test_detail_url_from_site_crawl(make_site, fake_oracle, db_path):
    crawled = "https://brand.co.kr/product/fan-prime"
    site = make_site({
        HOME: '<html><body><a href="/product/fan-prime">Brand Fan</a></body></html>',
        crawled: DETAIL_PAGE,
    })
    oracle = fake_oracle(decision=OfficialSiteDecision(official_url=HOME))
    candidates = [SearchCandidate(title="Brand", link=HOME)]
    pipeline = make_pipeline(site, oracle, candidates, db_path)

    _, record = asyncio.run(pipeline.run(DiscoveryRequest(brand="Brand", product_name="Fan")))

    assert record.detail_url == crawled
    assert record.raw_data_parse["detailSource"] == "site_crawl"
    assert record.product_name == "무선선풍기 FAN PRIME 3"
    assert record.sale_price == "57,900원"


def test_snippet_seed_when_page_has_no_signals(make_site, fake_oracle, db_path):
    site = make_site({})
    oracle = fake_oracle(decision=OfficialSiteDecision(official_detail_url=DETAIL))
    candidates = [SearchCandidate(title="Fan Prime 3 - Brand", link=DETAIL, snippet="57,900원")]
    pipeline = make_pipeline(site, oracle, candidates, db_path)

    _, record = asyncio.run(pipeline.run(DiscoveryRequest(brand="Brand", product_name="Fan Prime 3")))

    sent = oracle.product_calls[0][1][0]
    assert sent.product_name == "Fan Prime 3 - Brand"
    assert sent.price_lines == "57,900원"
    assert oracle.product_calls[0][2] == "fill"
    assert record.product_name == "Fan Prime 3 - Brand"


def test_browser_failure_still_stores_record(fake_oracle, broken_factory, db_path):
    oracle = fake_oracle(
        decision=OfficialSiteDecision(official_url=HOME, product_keywords=["선풍기"]),
        product=ProductInfoResult(product_name="무선선풍기 FAN PRIME 3", list_price="66,000원", sale_price="57,900원"),
    )
    candidates = [SearchCandidate(title="Fan Prime 3 - Brand", link=DETAIL, snippet="brand fan prime 3 57,900원")]
    pipeline = DiscoveryPipeline(
        search_client=FakeSearchClient(candidates),
        page_fetcher=FakeFetcher(),
        oracle=oracle,
        store=DiscoveryStore(db_path=db_path),
        browser_factory=broken_factory,
    )

    record_id, record = asyncio.run(pipeline.run(DiscoveryRequest(brand="Brand", product_name="Fan Prime 3")))

    assert record.detail_url == DETAIL
    assert record.search_form_available is False
    assert record.search_form_info["reason"] == "browser_unavailable"
    assert record.search_form_confirmed_url is None
    assert record.error_log["reason"] == "search_form_not_confirmed"
    assert pipeline.store.get(record_id) is not None
