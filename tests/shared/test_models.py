from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal

from expense_cli.shared.models import (
    Correction,
    CorrectionField,
    ExpenseItem,
    ExpenseRecord,
    ExtractionItem,
    ExtractionResult,
    record_from_mapping,
    record_to_dict,
)

NOW = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)


def _record(**overrides: object) -> ExpenseRecord:
    fields: dict[str, object] = {
        "id": "rec-1",
        "date": datetime(2025, 2, 28, tzinfo=timezone.utc),
        "merchant": "Corner Cafe",
        "amount": Decimal("12.85"),
        "currency": "USD",
        "category": "Food & Dining",
        "created_at": NOW,
        "updated_at": NOW,
    }
    fields.update(overrides)
    return ExpenseRecord(**fields)  # type: ignore[arg-type]


def test_calculated_total_prefers_subtotal_then_items() -> None:
    items = (
        ExpenseItem(id="a", name="Latte", total_price=Decimal("4.50")),
        ExpenseItem(id="b", name="Bagel", total_price=Decimal("3.25")),
    )
    record = _record(
        items=items,
        subtotal=Decimal("12.20"),
        tax_amount=Decimal("1.03"),
        tip=Decimal("1.00"),
        discounts=Decimal("0.50"),
    )

    assert record.items_sum == Decimal("7.75")
    assert record.calculated_total == Decimal("13.73")
    assert _record(items=items).calculated_total == Decimal("7.75")
    assert _record(items=items, items_total=Decimal("8.00")).calculated_total == Decimal("8.00")


def test_breakdown_flags() -> None:
    plain = _record()
    taxed = _record(tax_amount=Decimal("0"))
    tipped = _record(tip=Decimal("2"))

    assert not plain.has_detailed_breakdown
    assert not plain.has_financial_breakdown
    assert taxed.has_detailed_breakdown
    assert taxed.has_financial_breakdown
    assert not tipped.has_detailed_breakdown
    assert tipped.has_financial_breakdown


def test_edited_bumps_updated_at_only() -> None:
    record = _record()
    edited = record.edited(merchant="Corner Cafe & Bakery")

    assert edited.merchant == "Corner Cafe & Bakery"
    assert edited.created_at == NOW
    assert edited.updated_at > NOW
    assert record.merchant == "Corner Cafe"


def test_extraction_copy_has_independent_lists() -> None:
    result = ExtractionResult(
        date="2025-02-28",
        merchant="Corner Cafe",
        amount=Decimal("4.50"),
        currency="USD",
        category="Food & Dining",
        items=[ExtractionItem(name="Latte", total_price=Decimal("4.50"))],
    )
    copied = result.copy()
    copied.corrections.append(
        Correction(
            field=CorrectionField.CATEGORY,
            original_value=None,
            corrected_value="Other",
            reason="test",
        )
    )
    copied.items.append(ExtractionItem(name="Bagel", total_price=Decimal("3.25")))  # type: ignore[union-attr]

    assert result.corrections == []
    assert len(result.items or []) == 1


def test_correction_messages() -> None:
    missing = Correction(
        field=CorrectionField.DATE,
        original_value=None,
        corrected_value="2025-03-01",
        reason="date was unparseable or absent",
    )
    currency = Correction(
        field=CorrectionField.CURRENCY,
        original_value="XYZ",
        corrected_value="USD",
        reason="no currency signal",
    )

    assert missing.message == "Date was not visible, used today's date (2025-03-01)"
    assert currency.message.startswith("Currency changed from XYZ to USD")


def test_record_round_trips_through_json() -> None:
    record = _record(
        description="Breakfast",
        payment_method="Credit Card",
        tax_amount=Decimal("1.03"),
        subtotal=Decimal("11.82"),
        items=(ExpenseItem(id="i1", name="Latte", total_price=Decimal("4.5"), quantity=Decimal("1")),),
    )

    text = json.dumps(record_to_dict(record))
    restored = record_from_mapping(json.loads(text, parse_float=Decimal))

    assert restored == record


def test_high_precision_amounts_survive_json() -> None:
    amount = Decimal("12345678901234567.89")
    record = _record(
        amount=amount,
        subtotal=Decimal("12345678901234566.8850"),
        items=(ExpenseItem(id="i1", name="Ledger", total_price=amount, unit_price=Decimal("0.000000000000000001")),),
    )

    restored = record_from_mapping(json.loads(json.dumps(record_to_dict(record)), parse_float=Decimal))

    assert restored.amount == amount
    assert str(restored.subtotal) == "12345678901234566.8850"
    assert restored.items[0].unit_price == Decimal("1E-18")
    assert restored == record


def test_record_to_dict_uses_camel_case_keys() -> None:
    payload = record_to_dict(_record(tax_amount=Decimal("1.03")))

    assert payload["date"] == "2025-02-28T00:00:00Z"
    assert payload["taxAmount"] == "1.03"
    assert payload["itemsTotal"] is None
    assert payload["createdAt"] == "2025-03-01T09:30:00Z"
    assert "tax_amount" not in payload


def test_record_from_mapping_is_lenient() -> None:
    record = record_from_mapping(
        {"merchant": "Corner Cafe", "amount": "n/a", "date": "someday", "currency": "usd"},
        now=NOW,
    )

    assert record.id
    assert record.amount is None
    assert record.date is None
    assert record.currency == "USD"
    assert record.category == "Other"
    assert record.created_at == NOW
