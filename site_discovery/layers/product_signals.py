"""
Product signal extraction from a single HTML snapshot.

The browser only supplies the rendered markup; everything here is a pure
function of (html, url), so it can be exercised with synthetic documents.
"""
import re
from typing import Iterable, List, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from site_discovery.layers.price_normalization import (
    format_price_field,
    resolve_currency,
)
from site_discovery.models.discovery import ProductSignals
from site_discovery.utils.logger import LayerLogger

TEXT_HEAD_LIMIT = 1000
PRICE_BLOCK_LIMIT = 800
PRICE_LINE_LIMIT = 20
SHORT_TEXT_LIMIT = 120

TITLE_SELECTORS = (
    "h1",
    "h2",
    ".product_name",
    ".prd_name",
    ".product_title",
    ".product-name",
)
EXTRA_TITLE_SELECTORS = (".title",)

STRUCTURED_LIST_PRICE_SELECTORS = (".custom.through", ".price .custom.through", ".dk-custom")
STRUCTURED_SALE_PRICE_SELECTORS = (
    "#span_product_price_text",
    ".price.msale",
    ".price .msale",
    ".dk-sale",
)
LIST_PRICE_SELECTORS = (
    "#span_product_price_text",
    ".prdPrice",
    ".price",
    ".product_price",
    ".product-price",
    "[itemprop='price']",
)
SALE_PRICE_SELECTORS = (".sale_price", ".discount_price", ".price--sale", ".price.sale")

LABEL_NODE_SELECTOR = "li, tr, p, div, span"
LABEL_BLOCK_TAGS = ("li", "tr", "p", "div")

INVALID_NAME_PATTERN = re.compile(
    r"배송|공지|로그인|장바구니|품절|SOLD OUT|WORLD SHIPPING", re.IGNORECASE
)
LIST_PRICE_LABEL = re.compile(r"정가|소비자\s*가격")
SALE_PRICE_LABEL = re.compile(r"판매가|할인가|할인\s*가")
ANY_PRICE_LABEL = re.compile(r"정가|소비자\s*가격|판매가|할인가|할인\s*가")
WON_AMOUNT = re.compile(r"([0-9][0-9,.]*)\s*(원|₩)")
PRICE_LINE_PATTERN = re.compile(
    r"([0-9]{1,3}(?:,[0-9]{3})+|\d+)\s*(원|₩|\$|€|£|USD|EUR|GBP)", re.IGNORECASE
)

_WHITESPACE = re.compile(r"\s+")

logger = LayerLogger("product_signals")


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE.sub(" ", value or "").strip()


def is_rejected_name(value: str) -> bool:
    """True for empty, very short, purely numeric or non-product (notice/cart/shipping) names."""
    name = collapse_whitespace(value)
    if not name:
        return True
    if len(name) <= 3:
        return True
    if name.isdigit():
        return True
    return bool(INVALID_NAME_PATTERN.search(name))


def resolve_title(candidates: Iterable[str]) -> str:
    """First candidate that survives the name rejection rules, whitespace-collapsed."""
    for candidate in candidates:
        name = collapse_whitespace(candidate)
        if not is_rejected_name(name):
            return name
    return ""


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def pick_text(soup: BeautifulSoup, selector: str) -> str:
    node = soup.select_one(selector)
    return node.get_text().strip() if node else ""


def pick_first(soup: BeautifulSoup, selectors: Iterable[str]) -> str:
    for selector in selectors:
        value = pick_text(soup, selector)
        if value:
            return value
    return ""


def meta_content(soup: BeautifulSoup, prop: str) -> str:
    tag = soup.find("meta", attrs={"property": prop})
    if tag and tag.get("content"):
        return tag["content"].strip()
    return ""


def main_content_text(soup: BeautifulSoup) -> str:
    """Raw text of <main>, else #container, else <body>."""
    for selector in ("main", "#container", "body"):
        node = soup.select_one(selector)
        if node:
            text = node.get_text()
            if text:
                return text
    return ""


def strip_non_content(soup: BeautifulSoup) -> BeautifulSoup:
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    return soup


def _title_candidates(soup: BeautifulSoup) -> List[str]:
    candidates = [pick_text(soup, s) for s in TITLE_SELECTORS + EXTRA_TITLE_SELECTORS]
    candidates.append(meta_content(soup, "og:title"))
    title_tag = soup.find("title")
    candidates.append(title_tag.get_text() if title_tag else "")
    return candidates


def _labeled_prices(soup: BeautifulSoup) -> Tuple[str, str, str]:
    """Scan short labelled text nodes for list/sale won amounts and the enclosing price block."""
    list_price = ""
    sale_price = ""
    nodes = soup.select(LABEL_NODE_SELECTOR)

    for node in nodes:
        text = collapse_whitespace(node.get_text())
        if not text or len(text) >= SHORT_TEXT_LIMIT:
            continue
        if not list_price and LIST_PRICE_LABEL.search(text):
            match = WON_AMOUNT.search(text)
            if match:
                list_price = match.group(1)
        if not sale_price and SALE_PRICE_LABEL.search(text):
            match = WON_AMOUNT.search(text)
            if match:
                sale_price = match.group(1)
        if list_price and sale_price:
            break

    if not (list_price or sale_price):
        return "", "", ""

    blocks = []
    for node in nodes:
        if not ANY_PRICE_LABEL.search(collapse_whitespace(node.get_text())):
            continue
        block = node if node.name in LABEL_BLOCK_TAGS else node.find_parent(list(LABEL_BLOCK_TAGS))
        text = collapse_whitespace((block or node).get_text())
        if text:
            blocks.append(text)
    return list_price, sale_price, " | ".join(blocks)[:PRICE_BLOCK_LIMIT]


def _image_src(soup: BeautifulSoup, url: str) -> str:
    og_image = meta_content(soup, "og:image")
    if og_image:
        return og_image
    img = soup.find("img", src=True)
    if isinstance(img, Tag) and img.get("src", "").strip():
        return urljoin(url, img["src"].strip())
    return ""


def _price_lines(main_text: str) -> str:
    lines = []
    for line in (main_text or "").splitlines():
        line = collapse_whitespace(line)
        if line and PRICE_LINE_PATTERN.search(line):
            lines.append(line)
        if len(lines) >= PRICE_LINE_LIMIT:
            break
    return " | ".join(lines)


def extract_product_signals(html: str, url: str, score: int = 0) -> ProductSignals:
    """
    Build the signal bundle for one page snapshot.

    Never raises: a failure produces an empty record for url so the
    pipeline can continue with the next candidate.
    """
    try:
        return _extract(html, url, score)
    except Exception as e:
        logger.log_error(
            f"Signal extraction failed: {str(e)}",
            error_type="extraction_error",
            url=url,
        )
        return ProductSignals.empty(url)


def _extract(html: str, url: str, score: int) -> ProductSignals:
    soup = strip_non_content(parse_html(html))

    title = resolve_title(_title_candidates(soup))
    title_block_text = " | ".join(
        value for value in (pick_text(soup, s) for s in TITLE_SELECTORS) if value
    )

    structured_list = pick_first(soup, STRUCTURED_LIST_PRICE_SELECTORS)
    structured_sale = pick_first(soup, STRUCTURED_SALE_PRICE_SELECTORS)
    labeled_list, labeled_sale, price_block_text = _labeled_prices(soup)
    selector_list = pick_first(soup, LIST_PRICE_SELECTORS) or meta_content(
        soup, "product:price:amount"
    )
    selector_sale = pick_first(soup, SALE_PRICE_SELECTORS)

    raw_list_price = structured_list or labeled_list or selector_list
    raw_sale_price = structured_sale or labeled_sale or selector_sale

    main_text = main_content_text(soup)
    currency = resolve_currency(raw_list_price, raw_sale_price, main_text)
    price_lines = _price_lines(main_text)

    signals = ProductSignals(
        url=url,
        text=collapse_whitespace(main_text)[:TEXT_HEAD_LIMIT],
        title_block_text=title_block_text,
        price_block_text=price_block_text,
        price_lines=price_lines,
        currency_hint=currency,
        image_src=_image_src(soup, url),
        product_name=title,
        list_price=format_price_field(raw_list_price, currency, price_lines),
        sale_price=format_price_field(raw_sale_price, currency, price_lines),
        score=score,
    )

    logger.log_action(
        "extract_signals",
        "completed",
        url=url,
        product_name=signals.product_name,
        list_price=signals.list_price,
        sale_price=signals.sale_price,
        currency=currency,
        has_price_block=bool(price_block_text),
    )
    return signals


def signals_from_snippet(candidate_url: str, title: str, snippet: str, score: int = 0) -> ProductSignals:
    """Seed signals from a search hit when the page itself yields nothing."""
    return ProductSignals(
        url=candidate_url,
        text=snippet,
        price_block_text=snippet,
        title_block_text=title,
        price_lines=snippet,
        product_name=title,
        score=score,
    )
