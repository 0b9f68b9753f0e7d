"""Merchant normalization and currency hints shared across modules."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache

MERCHANT_MATCH_CONFIDENCE = 0.9
LOCATION_MATCH_CONFIDENCE = 0.7

# Known store names mapped to the currency they trade in.
MERCHANT_CURRENCIES: dict[str, str] = {
    # UK
    "tesco": "GBP",
    "asda": "GBP",
    "sainsbury": "GBP",
    "sainsburys": "GBP",
    "morrisons": "GBP",
    "waitrose": "GBP",
    "marks & spencer": "GBP",
    "m&s": "GBP",
    "boots": "GBP",
    "argos": "GBP",
    "currys": "GBP",
    "john lewis": "GBP",
    "primark": "GBP",
    "costa coffee": "GBP",
    "greggs": "GBP",
    "pret a manger": "GBP",
    "nandos": "GBP",
    "subway uk": "GBP",
    # Germany
    "rewe": "EUR",
    "edeka": "EUR",
    "aldi": "EUR",
    "lidl": "EUR",
    "kaufland": "EUR",
    "rossmann": "EUR",
    "media markt": "EUR",
    "saturn": "EUR",
    "zalando": "EUR",
    "douglas": "EUR",
    # US
    "walmart": "USD",
    "target": "USD",
    "costco": "USD",
    "sams club": "USD",
    "kroger": "USD",
    "safeway": "USD",
    "cvs": "USD",
    "walgreens": "USD",
    "home depot": "USD",
    "lowes": "USD",
    "best buy": "USD",
    "macys": "USD",
    "chipotle": "USD",
    # India
    "reliance": "INR",
    "big bazaar": "INR",
    "spencers": "INR",
    "dmart": "INR",
    "flipkart": "INR",
    "amazon india": "INR",
    "swiggy": "INR",
    "zomato": "INR",
    "uber india": "INR",
    "paytm": "INR",
    "jio": "INR",
    "airtel": "INR",
    "bsnl": "INR",
    # Canada
    "loblaws": "CAD",
    "sobeys": "CAD",
    "shoppers drug mart": "CAD",
    "canadian tire": "CAD",
    "tim hortons": "CAD",
    "tim horton": "CAD",
    "a&w canada": "CAD",
    # Australia
    "woolworths": "AUD",
    "coles": "AUD",
    "bunnings": "AUD",
    "jb hi-fi": "AUD",
    "big w": "AUD",
    "kmart australia": "AUD",
    "myer": "AUD",
    "david jones": "AUD",
    # France, Spain, Italy
    "carrefour": "EUR",
    "leclerc": "EUR",
    "auchan": "EUR",
    "intermarche": "EUR",
    "monoprix": "EUR",
    "franprix": "EUR",
    "mercadona": "EUR",
    "corte ingles": "EUR",
    "alcampo": "EUR",
    "conad": "EUR",
    "coop italia": "EUR",
    "esselunga": "EUR",
    "eurospin": "EUR",
    # Japan
    "7-eleven japan": "JPY",
    "lawson": "JPY",
    "familymart": "JPY",
    "uniqlo": "JPY",
    "muji": "JPY",
    "don quijote": "JPY",
    "bic camera": "JPY",
    "yodobashi": "JPY",
}

INTERNATIONAL_CHAINS: tuple[str, ...] = (
    "mcdonald",
    "subway",
    "starbucks",
    "kfc",
    "burger king",
    "pizza hut",
    "domino",
    "coca cola",
    "pepsi",
    "shell",
    "bp",
    "exxon",
    "chevron",
    "7-eleven",
    "amazon",
    "google",
    "apple",
    "microsoft",
    "netflix",
    "uber",
    "booking.com",
    "airbnb",
)

# Country suffixes that make a chain entry regional ("amazon india").
_REGIONAL_QUALIFIERS = ("uk", "india", "japan", "canada", "australia", "spain", "italia")

_WORD_LOCATIONS: dict[str, tuple[str, ...]] = {
    "GBP": (
        "uk", "united kingdom", "england", "scotland", "wales",
        "london", "manchester", "birmingham", "edinburgh", "glasgow",
    ),
    "EUR": (
        "deutschland", "germany", "berlin", "munich", "münchen", "hamburg",
        "frankfurt", "köln", "cologne", "france", "paris", "spain", "madrid",
        "barcelona", "italy", "rome", "milan", "netherlands", "amsterdam",
        "belgium", "brussels", "austria", "vienna",
    ),
    "USD": (
        "usa", "united states", "new york", "los angeles", "chicago", "houston",
        "phoenix", "philadelphia", "san antonio", "san diego", "dallas", "san jose",
    ),
    "INR": (
        "india", "mumbai", "delhi", "bangalore", "bengaluru", "hyderabad",
        "chennai", "kolkata", "pune", "ahmedabad", "jaipur",
    ),
    "CAD": ("canada", "toronto", "vancouver", "montreal", "calgary", "ottawa"),
    "AUD": ("australia", "sydney", "melbourne", "brisbane", "perth", "adelaide"),
    "JPY": ("japan", "tokyo", "osaka", "kyoto", "yokohama"),
}

# Postcode and domain patterns are matched against the original casing.
_STRUCTURAL_LOCATIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\b[A-Z]{1,2}\d{1,2}[A-Z]?\s?\d[A-Z]{2}\b"), "GBP"),
    (re.compile(r"\.co\.uk\b", re.IGNORECASE), "GBP"),
    (re.compile(r"\.de\b", re.IGNORECASE), "EUR"),
    (re.compile(r"\b[A-Z]\d[A-Z]\s?\d[A-Z]\d\b"), "CAD"),
)


def _word_pattern(phrases: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(phrase) for phrase in sorted(phrases, key=len, reverse=True))
    return re.compile(rf"(?<!\w)(?:{alternatives})(?!\w)", re.IGNORECASE)


_LOCATION_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (_word_pattern(words), code) for code, words in _WORD_LOCATIONS.items()
)
_MERCHANT_KEYS: tuple[str, ...] = tuple(sorted(MERCHANT_CURRENCIES, key=len, reverse=True))


@dataclass(frozen=True, slots=True)
class CurrencyGuess:
    """A currency inferred from merchant or location context."""

    code: str
    confidence: float
    source: str
    evidence: str


def normalize_merchant(merchant: str) -> str:
    """Return a lowercase, whitespace-collapsed merchant label."""

    cleaned = (merchant or "").strip().casefold()
    return " ".join(cleaned.split())


def merchant_key(merchant: str | None) -> str:
    """Comparison key used for duplicate detection: trimmed and case-folded."""

    return (merchant or "").strip().casefold()


@lru_cache(maxsize=2048)
def _contains_phrase(text: str, phrase: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(phrase)}(?!\w)", text) is not None


def is_international_chain(merchant: str) -> bool:
    """True for chains that trade in many currencies (never a currency signal)."""

    normalized = normalize_merchant(merchant)
    return any(_contains_phrase(normalized, chain) for chain in INTERNATIONAL_CHAINS)


def _is_regional_entry(key: str) -> bool:
    return key.rsplit(" ", 1)[-1] in _REGIONAL_QUALIFIERS


def guess_currency(
    merchant: str,
    description: str | None = None,
    text: str | None = None,
) -> CurrencyGuess | None:
    """Infer a currency from context.

    Merchant mappings win (confidence 0.9), then location patterns found in the
    merchant, description or extra text (0.7). Returns ``None`` when nothing
    points at a currency.
    """

    normalized = normalize_merchant(merchant)
    if normalized:
        chain = is_international_chain(normalized)
        for key in _MERCHANT_KEYS:
            if not _contains_phrase(normalized, key):
                continue
            if chain and not _is_regional_entry(key):
                continue
            return CurrencyGuess(
                code=MERCHANT_CURRENCIES[key],
                confidence=MERCHANT_MATCH_CONFIDENCE,
                source="merchant",
                evidence=key,
            )

    full_text = " ".join(part for part in (merchant, description, text) if part)
    if not full_text.strip():
        return None
    for pattern, code in _STRUCTURAL_LOCATIONS:
        match = pattern.search(full_text)
        if match:
            return CurrencyGuess(
                code=code,
                confidence=LOCATION_MATCH_CONFIDENCE,
                source="location",
                evidence=match.group(0),
            )
    for pattern, code in _LOCATION_PATTERNS:
        match = pattern.search(full_text)
        if match:
            return CurrencyGuess(
                code=code,
                confidence=LOCATION_MATCH_CONFIDENCE,
                source="location",
                evidence=match.group(0),
            )
    return None
