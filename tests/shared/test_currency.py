from __future__ import annotations

from decimal import Decimal

import pytest

from expense_cli.shared import currency


def test_lookup_of_known_code_is_case_insensitive() -> None:
    assert currency.is_supported("eur")
    assert currency.symbol("gbp") == "£"
    assert currency.name("JPY") == "Japanese Yen"


def test_unknown_code_falls_back_to_code() -> None:
    assert currency.is_supported("XXX") is False
    assert currency.symbol("XXX") == "XXX"
    assert currency.name("XXX") == "XXX"


def test_supported_codes_sorted_and_complete() -> None:
    codes = currency.supported_codes()

    assert list(codes) == sorted(codes)
    assert {"USD", "EUR", "GBP", "INR", "JPY", "CAD", "AUD"} <= set(codes)


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("€", "EUR"),
        ("£", "GBP"),
        ("Rs.", "INR"),
        ("R$", "BRL"),
        ("usd", "USD"),
        ("$", None),
        ("¥", None),
        ("", None),
    ],
)
def test_code_for_symbol_only_resolves_unambiguous_tokens(token: str, expected: str | None) -> None:
    assert currency.code_for_symbol(token) == expected


@pytest.mark.parametrize(
    ("amount", "code", "expected"),
    [
        (Decimal("1234.5"), "USD", "$1,234.50"),
        (Decimal("1234.5"), "EUR", "1.234,50\u00a0€"),
        (Decimal("1234567.5"), "SEK", "1\u00a0234\u00a0567,50\u00a0kr"),
        (Decimal("98765.4"), "HUF", "98\u00a0765\u00a0Ft"),
        (Decimal("12.5"), "CHF", "CHF\u00a012.50"),
        (Decimal("1234567.891"), "INR", "₹12,34,567.89"),
        (Decimal("1500.4"), "JPY", "¥1,500"),
        (Decimal("-12.5"), "GBP", "-£12.50"),
    ],
)
def test_format_amount_uses_regional_conventions(amount: Decimal, code: str, expected: str) -> None:
    assert currency.format_amount(amount, code) == expected


def test_format_amount_falls_back_for_codes_without_hint() -> None:
    assert currency.format_amount(Decimal("12.345"), "ZAR") == "R12.35"
    assert currency.format_amount(3, "XXX") == "XXX3.00"


def test_format_amount_never_raises_on_odd_input() -> None:
    assert currency.format_amount(float("nan"), "USD").startswith("$")
    assert currency.format_amount(Decimal("Infinity"), "EUR").startswith("€")
