"""Amount and timestamp parsing helpers."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from dateutil import parser as date_parser

# A space only counts as grouping when exactly three digits follow it.
_NUMBER_RE = re.compile(r"\d(?:[\d.,']|\s(?=\d{3}(?!\d)))*\d|\d")
_MINUS_CHARS = ("–", "−", "—")


def parse_amount(value: str) -> Decimal:
    """Parse money strings into Decimals.

    Handles values such as ``-$1,234.56``, ``(123.45)``, ``€12,50`` and
    ``1.234,56 €``. The right-most separator followed by one or two digits
    is taken as the decimal point; every other separator is grouping.
    """

    cleaned = (value or "").strip()
    for char in _MINUS_CHARS:
        cleaned = cleaned.replace(char, "-")
    negative = False
    if cleaned.startswith("(") and cleaned.endswith(")"):
        negative = True
        cleaned = cleaned[1:-1].strip()
    match = _NUMBER_RE.search(cleaned)
    if not match:
        raise ValueError(f"Empty amount in '{value}'")
    if "-" in cleaned[: match.start()]:
        negative = True
    number = _normalise_separators(match.group())
    try:
        amount = Decimal(number)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount '{value}'") from exc
    return -amount if negative else amount


def _normalise_separators(token: str) -> str:
    token = re.sub(r"[\s']", "", token).strip(".,")
    last_comma = token.rfind(",")
    last_dot = token.rfind(".")
    if last_comma == -1 and last_dot == -1:
        return token
    if last_comma != -1 and last_dot != -1:
        decimal_sep = "," if last_comma > last_dot else "."
    elif last_comma != -1:
        tail = token[last_comma + 1 :]
        decimal_sep = "," if token.count(",") == 1 and len(tail) in (1, 2) else ""
    else:
        decimal_sep = "." if token.count(".") == 1 else ""
    if not decimal_sep:
        return token.replace(",", "").replace(".", "")
    grouping = "." if decimal_sep == "," else ","
    whole, _, fraction = token.rpartition(decimal_sep)
    whole = whole.replace(grouping, "").replace(decimal_sep, "")
    return f"{whole}.{fraction}"


def coerce_decimal(value: Any) -> Decimal | None:
    """Best-effort conversion of a JSON value to Decimal; ``None`` when unusable."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        result = Decimal(str(value))
        return result if result.is_finite() else None
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return parse_amount(value)
        except ValueError:
            return None
    return None


def decimal_to_json(value: Decimal | None) -> str | None:
    """Exact JSON form of a Decimal amount: its plain digits as a string.

    Readers get the value back through ``coerce_decimal``; a JSON number would
    pass through a binary float on most parsers.
    """

    if value is None:
        return None
    return format(value, "f")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and normalise aware ones to UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp (``2025-01-01T12:00:00Z``) into aware UTC."""

    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = date_parser.isoparse(value.strip())
    except (ValueError, OverflowError):
        return None
    return ensure_utc(parsed)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC rendering with a ``Z`` suffix; microseconds kept when set."""

    aware = ensure_utc(value)
    timespec = "microseconds" if aware.microsecond else "seconds"
    return aware.isoformat(timespec=timespec).replace("+00:00", "Z")
