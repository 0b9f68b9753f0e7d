from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from expense_cli.shared.amounts import (
    coerce_decimal,
    decimal_to_json,
    format_timestamp,
    parse_amount,
    parse_timestamp,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("$1,234.56", Decimal("1234.56")),
        ("-$45.00", Decimal("-45.00")),
        ("(123.45)", Decimal("-123.45")),
        ("€12,50", Decimal("12.50")),
        ("1.234,56 €", Decimal("1234.56")),
        ("1 234,56", Decimal("1234.56")),
        ("1\u00a0234,50\u00a0kr", Decimal("1234.50")),
        ("12,345", Decimal("12345")),
        ("CHF 1'250.00", Decimal("1250.00")),
        ("7", Decimal("7")),
    ],
)
def test_parse_amount_variants(raw: str, expected: Decimal) -> None:
    assert parse_amount(raw) == expected


def test_parse_amount_rejects_text_without_digits() -> None:
    with pytest.raises(ValueError):
        parse_amount("n/a")


def test_coerce_decimal_handles_json_values() -> None:
    assert coerce_decimal(Decimal("12.85")) == Decimal("12.85")
    assert coerce_decimal(12) == Decimal("12")
    assert coerce_decimal(0.1) == Decimal("0.1")
    assert coerce_decimal("12,50") == Decimal("12.50")
    assert coerce_decimal("") is None
    assert coerce_decimal(True) is None
    assert coerce_decimal({"amount": 1}) is None


def test_decimal_to_json_keeps_every_digit() -> None:
    assert decimal_to_json(Decimal("12.85")) == "12.85"
    assert decimal_to_json(Decimal("12345678901234567.89")) == "12345678901234567.89"
    assert decimal_to_json(Decimal("1E+3")) == "1000"
    assert decimal_to_json(Decimal("-0.50")) == "-0.50"
    assert decimal_to_json(None) is None


def test_parse_timestamp_normalises_to_utc() -> None:
    assert parse_timestamp("2025-01-01T12:00:00Z") == datetime(2025, 1, 1, 12, tzinfo=timezone.utc)
    assert parse_timestamp("2025-01-01T14:00:00+02:00") == datetime(
        2025, 1, 1, 12, tzinfo=timezone.utc
    )
    assert parse_timestamp("2025-01-01") == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert parse_timestamp("yesterday") is None
    assert parse_timestamp(None) is None


def test_format_timestamp_uses_z_suffix() -> None:
    stamp = datetime(2025, 1, 1, 12, tzinfo=timezone.utc)

    assert format_timestamp(stamp) == "2025-01-01T12:00:00Z"
    assert format_timestamp(stamp.replace(microsecond=500)) == "2025-01-01T12:00:00.000500Z"
