import pytest

from site_discovery.layers.price_normalization import (
    detect_currency,
    extract_currency_price,
    format_krw,
    format_price_field,
    is_price_anomalous,
    normalize_price,
    parse_price_number,
    resolve_currency,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("12,000원", "12000"),
        ("₩12,000", "12000"),
        ("정가 66,000원 판매가 57,900원", "66000"),
        ("3개 구매시 9,900원", "9900"),
        ("리뷰 12", "12"),
        ("가격 문의", ""),
        ("", ""),
    ],
)
def test_normalize_price(text, expected):
    assert normalize_price(text) == expected


def test_won_suffix_and_prefix_agree():
    assert format_krw(normalize_price("12,000원")) == format_krw(normalize_price("₩12,000")) == "12,000원"


@pytest.mark.parametrize("text", ["12,000원", "₩ 1,250,000", "할인 15% 39,000원", "7"])
def test_normalize_is_idempotent_through_formatting(text):
    once = normalize_price(text)
    assert normalize_price(format_krw(once)) == once


def test_format_krw_rejects_non_positive():
    assert format_krw("0") == ""
    assert format_krw("") == ""
    assert format_krw("1500") == "1,500원"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("12,000원", "KRW"),
        ("₩9,900", "KRW"),
        ("$19.99", "USD"),
        ("19.99 USD", "USD"),
        ("€25", "EUR"),
        ("£30", "GBP"),
        ("1200", ""),
    ],
)
def test_detect_currency(text, expected):
    assert detect_currency(text) == expected


def test_resolve_currency_order():
    assert resolve_currency("", "$10", "12,000원") == "USD"
    assert resolve_currency("", "", "12,000원") == "KRW"
    assert resolve_currency("", "", "") == ""


def test_extract_currency_price_verbatim():
    assert extract_currency_price("Sale | $ 19.99 | $29.99") == "$ 19.99"
    assert extract_currency_price("price 45.00 EUR") == "45.00 EUR"
    assert extract_currency_price("no price") == ""


def test_format_price_field_non_krw_prefers_price_lines():
    assert format_price_field("19.99", "USD", "Now $19.99 | Was $25.00") == "$19.99"
    assert format_price_field(" 19.99 ", "USD", "") == "19.99"


def test_format_price_field_krw():
    assert format_price_field("판매가 57,900원", "KRW", "") == "57,900원"
    assert format_price_field("", "KRW", "") == ""


def test_parse_price_number():
    assert parse_price_number("57,900원") == 57900
    assert parse_price_number("무료") is None
    assert parse_price_number("0원") is None


def test_price_anomaly():
    assert is_price_anomalous("10,000원", "12,000원")
    assert not is_price_anomalous("12,000원", "10,000원")
    assert not is_price_anomalous("", "12,000원")
