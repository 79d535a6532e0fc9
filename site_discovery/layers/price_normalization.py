"""
Price and currency normalization for free-form price text.

KRW amounts are reduced to a canonical "12,000원" form. Other currencies
are kept verbatim, because their amount formats are locale-specific and
cannot be reliably re-rendered.
"""
import re
from typing import List, Optional

KRW = "KRW"

_AMOUNT = re.compile(r"([0-9]{1,3}(?:,[0-9]{3})+|[0-9]+)")
_CURRENCY_PRICE = re.compile(
    r"([$€£]\s?[0-9][0-9,.]*|[0-9][0-9,.]*\s?(USD|EUR|GBP))",
    re.IGNORECASE,
)
# Ordered: the first matching category wins.
_CURRENCY_MARKERS = (
    (KRW, re.compile(r"[₩원]")),
    ("USD", re.compile(r"\$|USD", re.IGNORECASE)),
    ("EUR", re.compile(r"€|EUR", re.IGNORECASE)),
    ("GBP", re.compile(r"£|GBP", re.IGNORECASE)),
)

# Below this an amount is more likely a unit count, a rating or a page index.
MIN_PLAUSIBLE_PRICE = 1000


def parse_amounts(value: str) -> List[int]:
    """All grouped-thousands or bare-digit numbers in value."""
    amounts = []
    for match in _AMOUNT.findall(value or ""):
        try:
            amounts.append(int(match.replace(",", "")))
        except ValueError:
            continue
    return amounts


def normalize_price(value: str) -> str:
    """
    Reduce price text to a digit string.

    Prefers the largest amount >= 1000, else the largest amount found.
    Returns "" when the text holds no number.
    """
    amounts = parse_amounts(value)
    if not amounts:
        return ""
    plausible = [n for n in amounts if n >= MIN_PLAUSIBLE_PRICE]
    return str(max(plausible) if plausible else max(amounts))


def detect_currency(value: str) -> str:
    """KRW, USD, EUR, GBP or "" for the first marker category found."""
    if not value:
        return ""
    for code, pattern in _CURRENCY_MARKERS:
        if pattern.search(value):
            return code
    return ""


def resolve_currency(list_price_text: str, sale_price_text: str, page_text: str) -> str:
    """Currency of list-price text, else sale-price text, else page text."""
    return (
        detect_currency(list_price_text)
        or detect_currency(sale_price_text)
        or detect_currency(page_text)
    )


def extract_currency_price(lines: str) -> str:
    """First symbol- or code-qualified amount in lines, verbatim."""
    if not lines:
        return ""
    match = _CURRENCY_PRICE.search(lines)
    return match.group(0).strip() if match else ""


def parse_price_number(value: str) -> Optional[int]:
    """Digits of value as a positive integer, or None."""
    digits = re.sub(r"[^\d]", "", value or "")
    if not digits:
        return None
    number = int(digits)
    return number if number > 0 else None


def format_krw(value: str) -> str:
    """Canonical won string ("12,000원") for a digit string, "" if not positive."""
    number = parse_price_number(value)
    return f"{number:,}원" if number else ""


def format_price_field(raw_text: str, currency: str, price_lines: str) -> str:
    """Final price field for the detected currency."""
    if currency and currency != KRW:
        return extract_currency_price(price_lines) or (raw_text or "").strip()
    return format_krw(normalize_price(raw_text))


def is_price_anomalous(list_price: str, sale_price: str) -> bool:
    """True when both prices are present and the sale price exceeds the list price."""
    list_number = parse_price_number(list_price)
    sale_number = parse_price_number(sale_price)
    if not list_number or not sale_number:
        return False
    return sale_number > list_number
