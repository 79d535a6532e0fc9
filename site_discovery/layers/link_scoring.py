"""
Link scoring for product-page discovery.

All scores are additive, non-negative integers computed from the URL and
anchor text alone. Higher means more likely to be a product detail page.
"""
import re
from typing import List

PRODUCT_URL_MARKERS = (
    "/product",
    "/products",
    "/item",
    "/goods",
    "/detail",
    "/category",
    "/categories",
    "/shop",
    "/store",
    "/mall",
    "product_id=",
    "goods_id=",
    "item_id=",
    "cate_no=",
    "category=",
    "category_no=",
    "goodsno=",
)

URL_EXACT_MATCH_SCORE = 3
# Visible anchor text is a stronger relevance signal than the URL.
TEXT_EXACT_MATCH_SCORE = 4

_WHITESPACE = re.compile(r"\s+")


def score_product_url(url: str) -> int:
    """+1 for every product marker found in the lowercased URL."""
    lower = (url or "").lower()
    return sum(1 for marker in PRODUCT_URL_MARKERS if marker in lower)


def _keyword_tokens(keyword: str) -> List[str]:
    return [t for t in _WHITESPACE.split(keyword.lower().strip()) if len(t) >= 2]


def _score_keyword(haystack: str, keyword: str, exact_score: int) -> int:
    normalized = _WHITESPACE.sub("", (keyword or "").lower())
    if not normalized:
        return 0
    haystack = (haystack or "").lower()
    if normalized in haystack:
        return exact_score
    return sum(1 for token in _keyword_tokens(keyword) if token in haystack)


def score_keyword_match(url: str, keyword: str) -> int:
    """3 when the space-stripped keyword is in the URL, else +1 per matching token."""
    return _score_keyword(url, keyword, URL_EXACT_MATCH_SCORE)


def score_keyword_text(text: str, keyword: str) -> int:
    """4 when the space-stripped keyword is in the text, else +1 per matching token."""
    return _score_keyword(text, keyword, TEXT_EXACT_MATCH_SCORE)


def score_candidate(url: str, text: str, keyword: str) -> int:
    """Combined score of a link: URL markers + keyword in URL + keyword in anchor text."""
    return (
        score_product_url(url)
        + score_keyword_match(url, keyword)
        + score_keyword_text(text, keyword)
    )
