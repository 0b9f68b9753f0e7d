"""Receipt date parsing."""

from __future__ import annotations

import re
from datetime import date, datetime

from dateutil import parser as date_parser

MONTHS = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?"

ISO_DATE_RE = re.compile(
    r"\b\d{4}-\d{2}-\d{2}(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?"
)
DATE_PATTERNS: tuple[re.Pattern[str], ...] = (
    ISO_DATE_RE,
    re.compile(r"\b\d{4}[/.]\d{1,2}[/.]\d{1,2}\b"),
    re.compile(r"\b\d{1,2}[/.\-]\d{1,2}[/.\-]\d{2,4}\b"),
    re.compile(rf"\b\d{{1,2}}\s+{MONTHS},?\s+\d{{2,4}}\b", re.IGNORECASE),
    re.compile(rf"\b{MONTHS}\s+\d{{1,2}},?\s+\d{{2,4}}\b", re.IGNORECASE),
)


def find_date(text: str) -> str | None:
    """First date-looking substring of ``text``."""

    for pattern in DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


def parse_receipt_date(value: str | None, *, today: date) -> date | None:
    """Parse the date formats receipts commonly use.

    ISO dates are read as-is. Numeric dates are read day-first and fall back
    to month-first when the day-first reading is impossible (``01/25/2025``).
    Returns ``None`` for anything that does not look like a date.
    """

    if not value or not value.strip():
        return None
    text = value.strip()
    if ISO_DATE_RE.fullmatch(text):
        try:
            return date_parser.isoparse(text).date()
        except (ValueError, OverflowError):
            return None
    if find_date(text) is None:
        return None
    default = datetime(today.year, today.month, today.day)
    try:
        return date_parser.parse(text, dayfirst=True, default=default).date()
    except (date_parser.ParserError, ValueError, OverflowError):
        return None


def with_year(value: date, year: int) -> date:
    """``value`` moved to ``year``; Feb 29 becomes Feb 28 in common years."""

    try:
        return value.replace(year=year)
    except ValueError:
        return value.replace(year=year, day=28)
