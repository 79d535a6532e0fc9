import asyncio
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from site_discovery.adapters.claude_client import (
    MODE_VALIDATE,
    ClaudeClient,
    parse_official_decision,
    parse_product_info,
    parse_search_list,
)
from site_discovery.errors import ConfigurationError, UpstreamAPIError
from site_discovery.models.discovery import CandidateCard, ProductSignals, SearchAttempt
from site_discovery.utils.json_extract import extract_json_object, slice_json_object, strip_code_fences


class FakeMessages:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(
            content=[SimpleNamespace(text=self.text)],
            usage=SimpleNamespace(input_tokens=10, output_tokens=5),
        )


def client_returning(text=None, error=None):
    messages = FakeMessages(text, error)
    return ClaudeClient(api_key="test", client=SimpleNamespace(messages=messages)), messages


def test_strip_code_fences_and_slice():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert slice_json_object('Sure! {"a": {"b": 2}} done') == '{"a": {"b": 2}}'
    assert extract_json_object('```\n{"a": 1}\n```') == {"a": 1}
    assert extract_json_object("no json here") is None
    assert extract_json_object("[1, 2]") is None


def test_official_decision_parsing():
    decision = parse_official_decision(
        '```json\n{"officialHomepage": "https://brand.co.kr", "businessAlias": "브랜드",'
        ' "productKeywords": ["선풍기", "선풍기", "fan"], "confidence": 0.9, "reason": "공식몰"}\n```'
    )

    assert decision.official_url == "https://brand.co.kr"
    assert decision.business_alias == "브랜드"
    assert decision.official_detail_url is None
    assert decision.product_keywords == ["선풍기", "선풍기", "fan"]
    assert decision.confidence == 0.9


def test_official_decision_falls_back_to_first_url():
    decision = parse_official_decision("The official site is https://brand.co.kr/ and also https://x.com")

    assert decision.official_url == "https://brand.co.kr/"
    assert decision.product_keywords == []
    assert decision.reason.startswith("The official site")


def test_product_info_parsing():
    result = parse_product_info('{"productName": "Fan Prime 3", "listPrice": "66,000원", "salePrice": null}')
    assert result.product_name == "Fan Prime 3"
    assert result.sale_price == ""
    assert result.has_content()

    assert not parse_product_info("garbage").has_content()


def test_search_list_parsing():
    rows = parse_search_list('{"products": [{"productName": "Fan", "listPrice": 1000}, "junk"]}')
    assert rows == [{
        "url": "",
        "productName": "Fan",
        "listPrice": "1000",
        "salePrice": "",
        "imageSrc": "",
        "searchKeyword": "",
        "reason": "",
    }]
    assert parse_search_list('{"products": "none"}') == []
    assert parse_search_list("") == []


def test_missing_key_raises_configuration_error():
    client = ClaudeClient(api_key="")
    assert not client.is_available()
    with pytest.raises(ConfigurationError):
        asyncio.run(client.verify_official_site("brand", "fan", "", []))


def test_verify_sends_candidates_with_top_text():
    client, messages = client_returning('{"officialHomepage": "https://brand.co.kr"}')
    candidates = [{"title": "Brand", "link": "https://brand.co.kr", "snippet": "공식몰", "topText": "welcome"}]

    decision = asyncio.run(client.verify_official_site("Brand", "선풍기", "Fan", candidates))

    assert decision.official_url == "https://brand.co.kr"
    call = messages.calls[0]
    assert call["temperature"] == 0
    prompt = call["messages"][0]["content"]
    assert "https://brand.co.kr" in prompt
    assert "TOP_TEXT: welcome" in prompt


def test_product_prompt_carries_hints():
    client, messages = client_returning('{"productName": "Fan Prime 3", "listPrice": "66,000원"}')
    signals = ProductSignals(url="https://brand.co.kr/p/1", product_name="Fan Prime 3", list_price="66,000원")

    result = asyncio.run(client.extract_product_info("brand fan", [signals], MODE_VALIDATE))

    assert result.list_price == "66,000원"
    prompt = messages.calls[0]["messages"][0]["content"]
    assert "HINT_LIST_PRICE: 66,000원" in prompt
    assert "HINT_SALE_PRICE: (없음)" in prompt


def test_search_list_prompt_serializes_cards():
    client, messages = client_returning('{"products": []}')
    attempt = SearchAttempt(
        url="https://brand.co.kr/search?q=fan",
        keyword="fan",
        page_text="Fan Prime 3 57,900원",
        candidate_products=[CandidateCard(detail_url="https://brand.co.kr/product/1", card_text="Fan Prime 3")],
    )

    rows = asyncio.run(client.extract_search_list("fan", attempt.url, [attempt], ["fan"]))

    assert rows == []
    prompt = messages.calls[0]["messages"][0]["content"]
    assert '"detailUrl": "https://brand.co.kr/product/1"' in prompt
    assert "SEARCH_KEYWORD: fan" in prompt


def test_api_errors_become_upstream_errors():
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    client, _ = client_returning(error=anthropic.APIConnectionError(request=request))

    with pytest.raises(UpstreamAPIError):
        asyncio.run(client.extract_product_info("fan", []))
