"""
Claude API Client used as the pipeline's extraction oracle.
Provides async interface to Claude for site verification, product
extraction and search-result list parsing.

DESIGN PRINCIPLES:
- Only values present in the supplied evidence may be returned
- Output is a single JSON object matching the requested schema
- Unparseable output is an empty answer, never an exception
- Missing credentials and API failures abort the request
"""
import json
import re
from typing import Any, Dict, List, Optional, Sequence

import anthropic

from site_discovery.config import config
from site_discovery.errors import ConfigurationError, UpstreamAPIError
from site_discovery.models.discovery import (
    OfficialSiteDecision,
    ProductInfoResult,
    ProductSignals,
    SearchAttempt,
)
from site_discovery.utils.json_extract import extract_json_object, strip_code_fences
from site_discovery.utils.logger import LayerLogger


SYSTEM_PROMPT = """You are a strict extraction assistant for an e-commerce discovery system.

You may ONLY:
• Select among the candidates you are given
• Copy names, prices and URLs that appear in the supplied evidence
• Return empty strings when a value is not present

ABSOLUTE RULES:
• Never invent product names, prices or URLs
• Never use external knowledge about the brand
• Output exactly one JSON object and nothing else"""

MISSING = "(없음)"
_URL_PATTERN = re.compile(r"https?://[^\s\"'<>]+")

MODE_VALIDATE = "validate"
MODE_FILL = "fill"


def _or_missing(value: Optional[str]) -> str:
    return value if value else MISSING


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


class ClaudeClient:
    """
    Claude API client for the three extraction oracles.

    Temperature=0 for the most repeatable output the API allows.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        self.logger = LayerLogger("claude_client")
        self.model = model or config.CLAUDE_MODEL
        self.max_tokens = config.CLAUDE_MAX_TOKENS
        key = api_key if api_key is not None else config.CLAUDE_API_KEY

        if client is not None:
            self.client = client
        elif not key:
            self.logger.log_error("CLAUDE_API_KEY not found in environment", error_type="config_error")
            self.client = None
        else:
            self.client = anthropic.AsyncAnthropic(api_key=key)
            self.logger.log_action("init", "completed", model=self.model)

    def is_available(self) -> bool:
        """Check if Claude client is properly configured."""
        return self.client is not None

    async def _complete(self, operation: str, prompt: str) -> str:
        """Send one prompt and return the raw text of the first content block."""
        if self.client is None:
            raise ConfigurationError("Missing CLAUDE_API_KEY in env")

        self.logger.log_action(operation, "started", prompt_length=len(prompt))
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIStatusError as e:
            self.logger.log_error(
                f"Claude API error: {str(e)}",
                error_type="api_error",
                operation=operation,
                status_code=e.status_code,
            )
            raise UpstreamAPIError(
                f"Claude request failed: {e.status_code} {e.message}",
                status_code=e.status_code,
                body=str(e.body or ""),
            ) from e
        except anthropic.APIError as e:
            self.logger.log_error(f"Claude API error: {str(e)}", error_type="api_error", operation=operation)
            raise UpstreamAPIError(f"Claude request failed: {str(e)}") from e

        text = ""
        if response.content:
            text = (getattr(response.content[0], "text", "") or "").strip()
        usage = getattr(response, "usage", None)
        self.logger.log_action(
            operation,
            "completed",
            output_length=len(text),
            tokens=(usage.input_tokens + usage.output_tokens) if usage else None,
        )
        return text

    # =========================================================================
    # SITE VERIFICATION
    # =========================================================================

    def build_verification_prompt(
        self,
        brand: str,
        product_name_ko: str,
        product_name_en: str,
        candidates: Sequence[Dict[str, str]],
    ) -> str:
        candidate_text = "\n\n".join(
            "\n".join([
                f"{i + 1}. {item.get('title', '')}",
                item.get("link", ""),
                item.get("snippet", ""),
                f"TOP_TEXT: {item['topText']}" if item.get("topText") else f"TOP_TEXT: {MISSING}",
            ])
            for i, item in enumerate(candidates)
        )
        return "\n".join([
            "당신은 브랜드의 공식 온라인 판매몰을 판별하는 검증기입니다.",
            f"브랜드: {brand}",
            f"제품명(한글): {product_name_ko}",
            f"제품명(영문): {_or_missing(product_name_en)}",
            "",
            "아래 검색 결과 후보만을 근거로 판단하고, 다음 항목을 JSON으로 반환하세요:",
            "- officialHomepage: 브랜드 공식 판매점/스토어 홈페이지",
            "- officialStoreUrl: 공식 온라인몰 도메인(있다면)",
            "- officialDetailUrl: 후보 중 공식 판매점의 제품 상세 페이지 URL(있다면)",
            "- businessAlias: 브랜드 별칭",
            "- officialEn: 공식 영문명",
            "- officialKo: 공식 한글명",
            "- productKeywords: [원문 키워드, 한글 키워드, 영문 키워드]",
            "  1) 원문: 제품명(한글)에서 브랜드명을 제외하고 제품 유형을 가장 잘 나타내는 단어 1개를 원문 그대로",
            "  2) 한글: 1)이 한글이면 그대로, 영문이면 입력 또는 후보 텍스트에 실제로 있는 한글 표현",
            "  3) 영문: 제품명(영문)에서 우선 선택, 없으면 후보 텍스트에 실제로 있는 영문 표현",
            "  새 단어 생성/의역/추측 금지, 브랜드명(또는 그 일부)과 같은 단어 금지, 없으면 빈 문자열",
            "- confidence: 0~1",
            "- reason: 간단한 이유",
            "",
            "JSON만 반환하세요. 형식:",
            '{"officialHomepage":"https://...","officialStoreUrl":"https://...","officialDetailUrl":"https://...",'
            '"businessAlias":"...","officialEn":"...","officialKo":"...",'
            '"productKeywords":["<original>","<ko>","<en>"],"confidence":0.0,"reason":"..."}',
            "",
            "후보 목록:",
            candidate_text or "(후보 없음)",
        ])

    async def verify_official_site(
        self,
        brand: str,
        product_name_ko: str,
        product_name_en: str,
        candidates: Sequence[Dict[str, str]],
    ) -> OfficialSiteDecision:
        """
        Pick the brand's official storefront among search candidates.

        Each candidate is a dict with title, link, snippet and topText.
        When the answer is not JSON, the first URL in it is used as the
        homepage and the raw text becomes the reason.
        """
        prompt = self.build_verification_prompt(brand, product_name_ko, product_name_en, candidates)
        text = await self._complete("verify_official_site", prompt)
        return parse_official_decision(text)

    # =========================================================================
    # PRODUCT EXTRACTION
    # =========================================================================

    def build_product_prompt(self, keyword: str, candidates: Sequence[ProductSignals], mode: str) -> str:
        if mode == MODE_VALIDATE:
            header = [
                "너는 DOM에서 추출된 가격/상품명을 검증하는 검증기다.",
                f"사용자 키워드: {keyword}",
                "",
                "DOM에서 추출한 값이 실제 제품을 의미하는지 확인하고, 필요하면 교정하라.",
                "값을 추론으로 만들지 말고 TEXT_HEAD에 근거가 없는 제품명/가격은 제외한다.",
            ]
        else:
            header = [
                "너는 상품 상세 페이지에서 정보를 추출하는 파서다.",
                f"사용자 키워드: {keyword}",
                "",
                "DOM에서 누락되었거나 잘못된 값이 있을 수 있다. 제공된 힌트와 텍스트로 채워라.",
            ]

        rules = [
            "출력 JSON 스키마:",
            '{"productName":"...","listPrice":"...","salePrice":"...","detailUrl":"...","reason":"..."}',
            "",
            "규칙:",
            "- detailUrl은 실제 상품 정보가 있는 후보 URL이어야 함",
            "- 텍스트에 여러 상품이 있으면 위에서부터 처음 등장하는 상품을 선택",
            "- productName과 listPrice가 확인되는 최초 정보를 우선",
            "- productName은 실제 상품명이어야 하며 배송/공지/브랜드명/사이트명/카테고리명은 제외",
            "- salePrice가 listPrice보다 크면 두 값을 다시 확인",
            "- salePrice가 없으면 빈 문자열",
            "- JSON 외 다른 텍스트 출력 금지",
            "",
            "후보:",
        ]

        blocks = []
        for i, item in enumerate(candidates):
            blocks.append("\n".join([
                f"{i + 1}. {item.url}",
                f"HINT_NAME: {_or_missing(item.product_name)}",
                f"HINT_LIST_PRICE: {_or_missing(item.list_price)}",
                f"HINT_SALE_PRICE: {_or_missing(item.sale_price)}",
                f"PRICE_BLOCK: {_or_missing(item.price_block_text)}",
                f"TITLE_BLOCK: {_or_missing(item.title_block_text)}",
                f"PRICE_LINES: {_or_missing(item.price_lines)}",
                f"CURRENCY_HINT: {_or_missing(item.currency_hint)}",
                f"TEXT_HEAD: {_or_missing(item.text)}",
            ]))

        return "\n".join(header + [""] + rules + ["\n\n".join(blocks) or "(후보 없음)"])

    async def extract_product_info(
        self,
        keyword: str,
        candidates: Sequence[ProductSignals],
        mode: str = MODE_FILL,
    ) -> ProductInfoResult:
        """Validate (or fill) name and prices of a detail-page candidate."""
        prompt = self.build_product_prompt(keyword, candidates, mode)
        text = await self._complete(f"extract_product_info_{mode}", prompt)
        return parse_product_info(text)

    # =========================================================================
    # SEARCH RESULT LIST EXTRACTION
    # =========================================================================

    def build_search_list_prompt(
        self,
        keyword: str,
        page_url: str,
        attempts: Sequence[SearchAttempt],
        priority_keywords: Sequence[str],
    ) -> str:
        evidence = "\n\n".join(
            "\n".join([
                f"{i + 1}. URL: {attempt.url}",
                f"SEARCH_KEYWORD: {attempt.keyword}",
                "CANDIDATE_PRODUCTS: " + json.dumps(
                    [card.to_dict() for card in attempt.candidate_products],
                    ensure_ascii=False,
                ),
                f"PAGE_TEXT: {_or_missing(attempt.page_text)}",
                f"NETWORK_TEXT: {_or_missing(attempt.network_text)}",
            ])
            for i, attempt in enumerate(attempts)
        )
        priority = ", ".join(k for k in priority_keywords if k)
        return "\n".join([
            "너는 검색 결과 페이지 텍스트에서 상품 목록을 구조화하는 파서다.",
            "목표: 실제 판매 상품만 최대 10개 추출.",
            f"사용자 키워드: {keyword}",
            f"기준 페이지 URL: {page_url}",
            f"우선 키워드: {_or_missing(priority)}",
            "",
            "출력 JSON 스키마:",
            '{"products":[{"url":"...","productName":"...","listPrice":"...","salePrice":"...",'
            '"imageSrc":"...","searchKeyword":"...","reason":"..."}]}',
            "",
            "규칙:",
            "- products는 최대 10개",
            "- productName은 실제 상품명이어야 함",
            "- productName으로 사용 금지: SHOP, WORLD SHIPPING, Home, Category, 공지, 배송, 리뷰, 브랜드명 단독",
            "- 가격 정보(listPrice 또는 salePrice)가 없는 항목은 제외",
            "- 우선 키워드가 productName 또는 근거 텍스트에 포함된 항목을 먼저 채택",
            "- 우선 키워드 매칭 항목이 5개 미만이면 나머지를 보조 항목으로 채움",
            "- listPrice/salePrice는 텍스트 원문 유지(통화/기호 포함)",
            "- salePrice가 없으면 빈 문자열",
            "- imageSrc는 해당 상품의 thumbCandidates를 우선 사용",
            "- searchKeyword는 해당 상품을 찾은 입력의 SEARCH_KEYWORD 값",
            "- 확신이 낮으면 해당 항목을 제외",
            "- JSON 외 텍스트 금지",
            "",
            "좋은 예:",
            '{"products":[{"url":"https://.../product/123","productName":"무선선풍기 FAN PRIME 3",'
            '"listPrice":"66,000원","salePrice":"57,900원","imageSrc":"https://.../image.jpg",'
            '"searchKeyword":"선풍기","reason":"우선 키워드 매칭 + 가격 확인"}]}',
            "나쁜 예:",
            '{"products":[{"url":"https://...","productName":"SHOP","listPrice":"","salePrice":"",'
            '"imageSrc":"","searchKeyword":"","reason":"메뉴 텍스트"}]}',
            "",
            "입력 텍스트:",
            evidence,
        ])

    async def extract_search_list(
        self,
        keyword: str,
        page_url: str,
        attempts: Sequence[SearchAttempt],
        priority_keywords: Sequence[str],
    ) -> List[Dict[str, str]]:
        """Raw product rows (at most 10) parsed from search-result evidence."""
        prompt = self.build_search_list_prompt(keyword, page_url, attempts, priority_keywords)
        text = await self._complete("extract_search_list", prompt)
        return parse_search_list(text)


def parse_official_decision(text: str) -> OfficialSiteDecision:
    parsed = extract_json_object(text)
    if parsed is None:
        match = _URL_PATTERN.search(strip_code_fences(text))
        return OfficialSiteDecision(
            official_url=match.group(0) if match else None,
            reason=text or None,
        )

    keywords = parsed.get("productKeywords")
    confidence = parsed.get("confidence")
    return OfficialSiteDecision(
        official_url=parsed.get("officialHomepage") or None,
        official_store_url=parsed.get("officialStoreUrl") or None,
        official_detail_url=parsed.get("officialDetailUrl") or None,
        business_alias=parsed.get("businessAlias") or None,
        official_en=parsed.get("officialEn") or None,
        official_ko=parsed.get("officialKo") or None,
        product_keywords=[_as_str(k) for k in keywords] if isinstance(keywords, list) else [],
        confidence=float(confidence) if isinstance(confidence, (int, float)) else None,
        reason=parsed.get("reason") or None,
    )


def parse_product_info(text: str) -> ProductInfoResult:
    parsed = extract_json_object(text)
    if parsed is None:
        return ProductInfoResult(reason=text)
    return ProductInfoResult(
        product_name=_as_str(parsed.get("productName")),
        list_price=_as_str(parsed.get("listPrice")),
        sale_price=_as_str(parsed.get("salePrice")),
        detail_url=_as_str(parsed.get("detailUrl")),
        reason=_as_str(parsed.get("reason")),
    )


def parse_search_list(text: str) -> List[Dict[str, str]]:
    parsed = extract_json_object(text)
    if parsed is None:
        return []
    products = parsed.get("products")
    if not isinstance(products, list):
        return []
    rows = []
    for item in products[:10]:
        if not isinstance(item, dict):
            continue
        rows.append({
            key: _as_str(item.get(key))
            for key in ("url", "productName", "listPrice", "salePrice", "imageSrc", "searchKeyword", "reason")
        })
    return rows
