from __future__ import annotations

import pytest

from expense_cli.shared.merchants import (
    guess_currency,
    is_international_chain,
    merchant_key,
    normalize_merchant,
)


def test_normalize_and_key_fold_case_and_whitespace() -> None:
    assert normalize_merchant("  Tesco   Express ") == "tesco express"
    assert merchant_key(" TESCO Express") == "tesco express"
    assert merchant_key(None) == ""


@pytest.mark.parametrize(
    ("merchant", "code"),
    [
        ("TESCO STORES 3021", "GBP"),
        ("Rewe Markt GmbH", "EUR"),
        ("Tim Hortons #221", "CAD"),
        ("Swiggy", "INR"),
        ("Woolworths Metro", "AUD"),
    ],
)
def test_known_merchants_map_to_currency(merchant: str, code: str) -> None:
    guess = guess_currency(merchant)

    assert guess is not None
    assert guess.code == code
    assert guess.source == "merchant"
    assert guess.confidence == pytest.approx(0.9)


def test_international_chain_is_not_a_currency_signal() -> None:
    assert is_international_chain("Starbucks Coffee")
    assert guess_currency("Starbucks Coffee") is None


def test_regional_chain_entry_still_matches() -> None:
    guess = guess_currency("Amazon India Marketplace")

    assert guess is not None
    assert guess.code == "INR"


def test_location_in_description_gives_lower_confidence() -> None:
    guess = guess_currency("Corner Cafe", description="12 High Street, London")

    assert guess is not None
    assert guess.code == "GBP"
    assert guess.source == "location"
    assert guess.confidence == pytest.approx(0.7)


def test_postcode_pattern_detected() -> None:
    guess = guess_currency("Corner Cafe", text="Receipt SW1A 1AA")

    assert guess is not None
    assert guess.code == "GBP"


def test_locations_match_whole_words_only() -> None:
    # "usa" inside "Busan" and "uk" inside "Ukulele" must not count.
    assert guess_currency("Busan Ukulele Shop") is None


def test_no_signal_returns_none() -> None:
    assert guess_currency("Corner Cafe") is None
    assert guess_currency("") is None
