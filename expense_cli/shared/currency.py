"""Currency lookup and display helpers.

Everything here is a pure function over static tables: code to symbol, code
to human readable name, membership in the supported set, and a best-effort
locale-style formatter. Unknown codes are never an error; lookups fall back
to the code itself so display and export code can always render something.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation


@dataclass(frozen=True, slots=True)
class CurrencyInfo:
    code: str
    symbol: str
    name: str
    region: str


@dataclass(frozen=True, slots=True)
class FormatHint:
    """How amounts in a currency are conventionally written."""

    decimal_sep: str = "."
    group_sep: str = ","
    symbol_first: bool = True
    spaced: bool = False
    minor_units: int = 2
    indian_grouping: bool = False


def _info(code: str, symbol: str, name: str, region: str) -> tuple[str, CurrencyInfo]:
    return code, CurrencyInfo(code=code, symbol=symbol, name=name, region=region)


CURRENCIES: dict[str, CurrencyInfo] = dict(
    [
        # Americas
        _info("USD", "$", "US Dollar", "americas"),
        _info("CAD", "$", "Canadian Dollar", "americas"),
        _info("MXN", "$", "Mexican Peso", "americas"),
        _info("BRL", "R$", "Brazilian Real", "americas"),
        _info("ARS", "$", "Argentine Peso", "americas"),
        _info("CLP", "$", "Chilean Peso", "americas"),
        _info("COP", "$", "Colombian Peso", "americas"),
        _info("PEN", "S/", "Peruvian Sol", "americas"),
        _info("UYU", "$", "Uruguayan Peso", "americas"),
        # Europe
        _info("EUR", "€", "Euro", "europe"),
        _info("GBP", "£", "British Pound", "europe"),
        _info("CHF", "CHF", "Swiss Franc", "europe"),
        _info("SEK", "kr", "Swedish Krona", "europe"),
        _info("NOK", "kr", "Norwegian Krone", "europe"),
        _info("DKK", "kr", "Danish Krone", "europe"),
        _info("PLN", "zł", "Polish Złoty", "europe"),
        _info("CZK", "Kč", "Czech Koruna", "europe"),
        _info("HUF", "Ft", "Hungarian Forint", "europe"),
        _info("RON", "lei", "Romanian Leu", "europe"),
        _info("BGN", "лв", "Bulgarian Lev", "europe"),
        _info("HRK", "kn", "Croatian Kuna", "europe"),
        _info("RSD", "дин", "Serbian Dinar", "europe"),
        _info("TRY", "₺", "Turkish Lira", "europe"),
        # Asia-Pacific
        _info("INR", "₹", "Indian Rupee", "asia_pacific"),
        _info("JPY", "¥", "Japanese Yen", "asia_pacific"),
        _info("CNY", "¥", "Chinese Yuan", "asia_pacific"),
        _info("AUD", "$", "Australian Dollar", "asia_pacific"),
        _info("NZD", "$", "New Zealand Dollar", "asia_pacific"),
        _info("SGD", "$", "Singapore Dollar", "asia_pacific"),
        _info("MYR", "RM", "Malaysian Ringgit", "asia_pacific"),
        _info("THB", "฿", "Thai Baht", "asia_pacific"),
        _info("IDR", "Rp", "Indonesian Rupiah", "asia_pacific"),
        _info("PHP", "₱", "Philippine Peso", "asia_pacific"),
        _info("VND", "₫", "Vietnamese Dong", "asia_pacific"),
        _info("KRW", "₩", "South Korean Won", "asia_pacific"),
        _info("TWD", "$", "Taiwan Dollar", "asia_pacific"),
        _info("HKD", "$", "Hong Kong Dollar", "asia_pacific"),
        # Middle East / Africa
        _info("ILS", "₪", "Israeli Shekel", "middle_east_africa"),
        _info("AED", "د.إ", "UAE Dirham", "middle_east_africa"),
        _info("SAR", "ر.س", "Saudi Riyal", "middle_east_africa"),
        _info("QAR", "ر.ق", "Qatari Riyal", "middle_east_africa"),
        _info("KWD", "د.ك", "Kuwaiti Dinar", "middle_east_africa"),
        _info("BHD", ".د.ب", "Bahraini Dinar", "middle_east_africa"),
        _info("OMR", "ر.ع", "Omani Rial", "middle_east_africa"),
        _info("EGP", "ج.م", "Egyptian Pound", "middle_east_africa"),
        _info("ZAR", "R", "South African Rand", "middle_east_africa"),
        _info("NGN", "₦", "Nigerian Naira", "middle_east_africa"),
        _info("KES", "KSh", "Kenyan Shilling", "middle_east_africa"),
        _info("GHS", "₵", "Ghanaian Cedi", "middle_east_africa"),
        # CIS
        _info("RUB", "₽", "Russian Ruble", "cis"),
        _info("UAH", "₴", "Ukrainian Hryvnia", "cis"),
        _info("KZT", "₸", "Kazakhstani Tenge", "cis"),
        _info("UZS", "soʻm", "Uzbekistani Som", "cis"),
    ]
)

# Spaced currencies keep the symbol on the same line as the number.
NBSP = "\u00a0"

_EURO_STYLE = FormatHint(decimal_sep=",", group_sep=".", symbol_first=False, spaced=True)
_NORDIC_STYLE = FormatHint(decimal_sep=",", group_sep=NBSP, symbol_first=False, spaced=True)

FORMAT_HINTS: dict[str, FormatHint] = {
    "USD": FormatHint(),
    "CAD": FormatHint(),
    "AUD": FormatHint(),
    "NZD": FormatHint(),
    "MXN": FormatHint(),
    "SGD": FormatHint(),
    "HKD": FormatHint(),
    "GBP": FormatHint(),
    "CNY": FormatHint(),
    "PHP": FormatHint(),
    "THB": FormatHint(),
    "ILS": FormatHint(),
    "INR": FormatHint(indian_grouping=True),
    "JPY": FormatHint(minor_units=0),
    "KRW": FormatHint(minor_units=0),
    "VND": FormatHint(group_sep=".", symbol_first=False, spaced=True, minor_units=0),
    "IDR": FormatHint(decimal_sep=",", group_sep=".", minor_units=0),
    "CLP": FormatHint(group_sep=".", minor_units=0),
    "BRL": FormatHint(decimal_sep=",", group_sep=".", spaced=True),
    "CHF": FormatHint(group_sep="'", spaced=True),
    "EUR": _EURO_STYLE,
    "TRY": FormatHint(decimal_sep=",", group_sep="."),
    "SEK": _NORDIC_STYLE,
    "NOK": _NORDIC_STYLE,
    "DKK": FormatHint(decimal_sep=",", group_sep=".", symbol_first=False, spaced=True),
    "PLN": _NORDIC_STYLE,
    "CZK": _NORDIC_STYLE,
    "HUF": FormatHint(decimal_sep=",", group_sep=NBSP, symbol_first=False, spaced=True, minor_units=0),
    "RUB": _NORDIC_STYLE,
    "UAH": _NORDIC_STYLE,
}

# Symbols that identify exactly one supported currency. "$", "¥" and "kr" are
# shared by several codes and deliberately absent.
_SYMBOL_TO_CODE: dict[str, str] = {
    "€": "EUR",
    "£": "GBP",
    "₹": "INR",
    "RS.": "INR",
    "RS": "INR",
    "₺": "TRY",
    "₪": "ILS",
    "₦": "NGN",
    "₵": "GHS",
    "₱": "PHP",
    "₫": "VND",
    "₩": "KRW",
    "₽": "RUB",
    "₴": "UAH",
    "₸": "KZT",
    "฿": "THB",
    "ZŁ": "PLN",
    "KČ": "CZK",
    "FT": "HUF",
    "R$": "BRL",
    "RM": "MYR",
    "RP": "IDR",
    "KSH": "KES",
    "S/": "PEN",
    "C$": "CAD",
    "CA$": "CAD",
    "A$": "AUD",
    "AU$": "AUD",
    "NZ$": "NZD",
    "HK$": "HKD",
    "S$": "SGD",
    "MX$": "MXN",
    "NT$": "TWD",
    "US$": "USD",
    "AR$": "ARS",
    "CLP$": "CLP",
    "COL$": "COP",
    "$U": "UYU",
    "CHF": "CHF",
}


def normalize_code(code: str | None) -> str:
    """Upper-cased, whitespace-stripped form of a currency code."""
    return (code or "").strip().upper()


def is_supported(code: str | None) -> bool:
    """True when ``code`` (case-insensitive) is in the supported currency set."""
    return normalize_code(code) in CURRENCIES


def supported_codes() -> tuple[str, ...]:
    return tuple(sorted(CURRENCIES))


def symbol(code: str) -> str:
    """Canonical symbol for a known code, the code itself otherwise."""
    info = CURRENCIES.get(normalize_code(code))
    return info.symbol if info else code


def name(code: str) -> str:
    """Human readable currency name, the code itself when unknown."""
    info = CURRENCIES.get(normalize_code(code))
    return info.name if info else code


def code_for_symbol(token: str) -> str | None:
    """Resolve an unambiguous symbol (or an ISO code) to a supported code."""
    cleaned = normalize_code(token)
    if not cleaned:
        return None
    if cleaned in CURRENCIES:
        return cleaned
    return _SYMBOL_TO_CODE.get(cleaned)


def format_amount(amount: Decimal | float | int, code: str) -> str:
    """Render ``amount`` the way receipts in ``code`` usually show it.

    Falls back to ``symbol + amount with 2 decimals`` for codes without a
    formatting hint or when the amount cannot be formatted; never raises.
    """

    normalized = normalize_code(code)
    hint = FORMAT_HINTS.get(normalized)
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
        if not value.is_finite():
            raise InvalidOperation(f"non-finite amount {amount!r}")
        if hint is None:
            return _plain(value, code)
        return _apply_hint(value, symbol(normalized), hint)
    except (InvalidOperation, ValueError, TypeError, ArithmeticError):
        return _fallback_text(amount, code)


def _plain(value: Decimal, code: str) -> str:
    quantized = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{symbol(code)}{quantized:.2f}"


def _fallback_text(amount: object, code: str) -> str:
    try:
        return f"{symbol(code)}{float(amount):.2f}"  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return f"{symbol(code)}{amount}"


def _apply_hint(value: Decimal, sym: str, hint: FormatHint) -> str:
    exponent = Decimal(1).scaleb(-hint.minor_units)
    quantized = value.quantize(exponent, rounding=ROUND_HALF_UP)
    negative = quantized < 0
    text = f"{abs(quantized):.{hint.minor_units}f}"
    whole, _, fraction = text.partition(".")
    grouped = _group_indian(whole, hint.group_sep) if hint.indian_grouping else _group(whole, hint.group_sep)
    number = grouped + (hint.decimal_sep + fraction if fraction else "")
    gap = NBSP if hint.spaced else ""
    rendered = f"{sym}{gap}{number}" if hint.symbol_first else f"{number}{gap}{sym}"
    return f"-{rendered}" if negative else rendered


def _group(digits: str, sep: str) -> str:
    parts: list[str] = []
    while len(digits) > 3:
        parts.insert(0, digits[-3:])
        digits = digits[:-3]
    parts.insert(0, digits)
    return sep.join(parts)


def _group_indian(digits: str, sep: str) -> str:
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    parts: list[str] = []
    while len(head) > 2:
        parts.insert(0, head[-2:])
        head = head[:-2]
    if head:
        parts.insert(0, head)
    return sep.join(parts + [tail])
