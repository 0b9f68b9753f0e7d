from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from expense_cli.expense_parse.financial import FinancialValidator
from expense_cli.expense_parse.parser import ResponseParser
from expense_cli.expense_parse.promote import promote
from expense_cli.shared.exceptions import ExpenseCLIError
from expense_cli.shared.models import (
    ExtractionItem,
    ExtractionResult,
    record_from_mapping,
    record_to_dict,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _result(**overrides: object) -> ExtractionResult:
    fields: dict[str, object] = {
        "date": "2025-02-28",
        "merchant": "  Corner Cafe ",
        "amount": Decimal("12.85"),
        "currency": "USD",
        "category": "Food & Dining",
    }
    fields.update(overrides)
    return ExtractionResult(**fields)  # type: ignore[arg-type]


def test_date_only_becomes_utc_midnight() -> None:
    record = promote(_result(), record_id="rec-1", now=NOW)

    assert record.id == "rec-1"
    assert record.date == datetime(2025, 2, 28, tzinfo=timezone.utc)
    assert record.merchant == "Corner Cafe"
    assert record.created_at == NOW
    assert record.updated_at == NOW


def test_timestamp_is_normalised_to_utc() -> None:
    record = promote(_result(date="2025-02-28T14:30:00+02:00"), now=NOW)

    assert record.date == datetime(2025, 2, 28, 12, 30, tzinfo=timezone.utc)


def test_items_receive_ids() -> None:
    items = [
        ExtractionItem(name="Latte", total_price=Decimal("4.50")),
        ExtractionItem(name="Bagel", total_price=Decimal("3.25")),
    ]

    record = promote(_result(items=items), now=NOW)

    assert record.items is not None
    assert [item.name for item in record.items] == ["Latte", "Bagel"]
    assert len({item.id for item in record.items}) == 2


def test_absent_items_stay_absent() -> None:
    assert promote(_result(), now=NOW).items is None
    assert promote(_result(items=[]), now=NOW).items == ()


@pytest.mark.parametrize("overrides", [{"date": None}, {"date": "smudged"}, {"currency": None}])
def test_unvalidated_results_are_rejected(overrides: dict[str, object]) -> None:
    with pytest.raises(ExpenseCLIError):
        promote(_result(**overrides))


def test_parsed_response_survives_export_and_import() -> None:
    raw = json.dumps(
        {
            "date": "2025-02-28",
            "merchant": "Corner Cafe",
            "amount": 12.85,
            "currency": "USD",
            "category": "Food & Dining",
            "description": "Breakfast",
            "paymentMethod": "Credit Card",
            "taxAmount": 1.03,
            "subtotal": 11.82,
            "tip": 0,
            "items": [
                {"name": "Latte", "quantity": 2, "unitPrice": 4.5, "totalPrice": 9.0},
                {"name": "Bagel", "totalPrice": 2.82},
            ],
        }
    )
    extraction = ResponseParser().parse(raw)
    validated = FinancialValidator(clock=lambda: NOW).validate(extraction)
    record = promote(validated, now=NOW, receipt_image_url="file:///receipts/1.jpg")

    exported = json.dumps(record_to_dict(record))
    restored = record_from_mapping(json.loads(exported, parse_float=Decimal))

    assert restored == record
    assert restored.tip == Decimal("0")
    assert restored.discounts is None
