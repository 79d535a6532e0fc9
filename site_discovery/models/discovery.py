"""
Data model for the official-store discovery pipeline.

Every record produced by the crawler, the probes and the oracles is
normalized into these models before it is merged or persisted.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that serializes with the camelCase keys used in prompts and records."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class SearchCandidate(CamelModel):
    """One web-search hit."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    title: str = ""
    link: str = ""
    snippet: str = ""


class ScoredUrl(CamelModel):
    """A normalized URL with its best heuristic score."""
    url: str
    score: int = Field(default=0, ge=0)


class ProductSignals(CamelModel):
    """Facts extracted from a single page snapshot."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    url: str
    text: str = ""
    title_block_text: str = ""
    price_block_text: str = ""
    price_lines: str = ""
    currency_hint: str = ""
    image_src: str = ""
    product_name: str = ""
    list_price: str = ""
    sale_price: str = ""
    score: int = 0

    @classmethod
    def empty(cls, url: str) -> "ProductSignals":
        return cls(url=url)

    def has_content(self) -> bool:
        return bool(self.product_name or self.list_price or self.sale_price)


class SearchFormDescriptor(CamelModel):
    """A GET search endpoint discovered on a page."""
    action: str
    method: str = "get"
    input_name: str = "q"

    @field_validator("method")
    @classmethod
    def _require_get(cls, value: str) -> str:
        method = (value or "").lower()
        if method != "get":
            raise ValueError(f"search form method must be 'get', got {value!r}")
        return method


class SearchFormProbeResult(CamelModel):
    """Outcome of a search-form probe, with the trace needed to explain it."""
    available: bool = False
    info: Dict[str, Any] = Field(default_factory=dict)


class CandidateCard(CamelModel):
    """An anchor + container pair that looks like one product in a listing."""
    detail_url: str
    thumb_candidates: List[str] = Field(default_factory=list)
    card_text: str = ""


class SearchAttempt(CamelModel):
    """Evidence gathered from one search-result URL."""
    url: str
    keyword: str
    page_text: str = ""
    network_text: str = ""
    candidate_products: List[CandidateCard] = Field(default_factory=list)


class SearchFormProductItem(CamelModel):
    """One product row of a search-result listing."""
    url: str = ""
    product_name: str
    list_price: str = ""
    sale_price: str = ""
    image_src: str = ""
    score: int = 0
    reason: str = ""
    keyword_used: str = ""

    @model_validator(mode="after")
    def _require_name_and_price(self) -> "SearchFormProductItem":
        if not self.product_name.strip():
            raise ValueError("productName is required")
        if not (self.list_price.strip() or self.sale_price.strip()):
            raise ValueError("listPrice or salePrice is required")
        return self


class SearchFormCollection(CamelModel):
    """Validated listing items plus the debug trace of the collection run."""
    items: List[SearchFormProductItem] = Field(default_factory=list)
    debug: Dict[str, Any] = Field(default_factory=dict)


class OfficialSiteDecision(CamelModel):
    """Site verification oracle answer."""
    official_url: Optional[str] = None
    official_store_url: Optional[str] = None
    official_detail_url: Optional[str] = None
    business_alias: Optional[str] = None
    official_en: Optional[str] = None
    official_ko: Optional[str] = None
    product_keywords: List[str] = Field(default_factory=list)
    confidence: Optional[float] = None
    reason: Optional[str] = None


class ProductInfoResult(CamelModel):
    """Product extraction oracle answer."""
    product_name: str = ""
    list_price: str = ""
    sale_price: str = ""
    detail_url: str = ""
    reason: str = ""

    def has_content(self) -> bool:
        return bool(self.product_name or self.list_price or self.sale_price)


class ParsedCandidate(CamelModel):
    """A detail-page candidate after DOM extraction and oracle reconciliation."""
    url: str
    product_name: str = ""
    list_price: str = ""
    sale_price: str = ""
    score: int = 0
    reason: str = ""
    price_anomaly: bool = False


class DiscoveryRequest(BaseModel):
    """Input of one discovery run."""
    brand: str
    product_name: str
    product_name_en: str = ""


class DiscoveryRecord(BaseModel):
    """Row persisted for one completed discovery run."""
    brand: str
    product_name_input: str
    keyword: str
    official_homepage: Optional[str] = None
    business_alias: Optional[str] = None
    official_en: Optional[str] = None
    official_ko: Optional[str] = None
    product_keyword1: Optional[str] = None
    product_keyword2: Optional[str] = None
    product_keyword3: Optional[str] = None
    search_form_available: Optional[bool] = None
    search_form_info: Optional[Dict[str, Any]] = None
    search_form_confirmed_url: Optional[str] = None
    search_form_product_list: Optional[List[Dict[str, Any]]] = None
    error_log: Dict[str, Any] = Field(default_factory=dict)
    source_url: Optional[str] = None
    detail_url: Optional[str] = None
    product_name: Optional[str] = None
    list_price: Optional[str] = None
    sale_price: Optional[str] = None
    image_src: Optional[str] = None
    candidates: List[Dict[str, Any]] = Field(default_factory=list)
    raw_data: Dict[str, Any] = Field(default_factory=dict)
    raw_data_parse: Dict[str, Any] = Field(default_factory=dict)
    status: str = "done"
