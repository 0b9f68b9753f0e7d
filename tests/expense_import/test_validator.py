from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from expense_cli.expense_import.validator import RecordValidator
from expense_cli.shared.models import ExpenseItem, ExpenseRecord

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _clock() -> datetime:
    return NOW


def _record(**overrides: object) -> ExpenseRecord:
    fields: dict[str, object] = {
        "id": "rec-1",
        "date": datetime(2025, 2, 28, tzinfo=timezone.utc),
        "merchant": "Corner Cafe",
        "amount": Decimal("12.85"),
        "currency": "USD",
        "category": "Food & Dining",
    }
    fields.update(overrides)
    return ExpenseRecord(**fields)  # type: ignore[arg-type]


def test_valid_record_has_no_violations() -> None:
    assert RecordValidator(_clock).validate(_record()) == []


def test_reports_every_violation() -> None:
    record = _record(amount=Decimal("-10"), merchant="  ", date=NOW + timedelta(days=2))

    errors = RecordValidator(_clock).validate(record)

    assert len(errors) == 3
    assert errors[0].startswith("Invalid amount")
    assert errors[1] == "Empty merchant"
    assert errors[2].startswith("Future date")


def test_missing_fields_and_unknown_currency() -> None:
    record = _record(amount=None, date=None, currency="XYZ")

    errors = RecordValidator(_clock).validate(record)

    assert "Invalid amount: missing or unreadable" in errors
    assert "Invalid date: missing or unreadable" in errors
    assert "Unsupported currency: 'XYZ'" in errors


def test_zero_amount_rejected() -> None:
    assert RecordValidator(_clock).validate(_record(amount=Decimal("0"))) == ["Invalid amount: 0"]


def test_breakdown_only_enforced_in_strict_mode() -> None:
    record = _record(subtotal=Decimal("12.20"), tax_amount=Decimal("1.03"))

    assert RecordValidator(_clock).validate(record) == []
    (error,) = RecordValidator(_clock, strict_breakdown=True).validate(record)
    assert error.startswith("Breakdown mismatch")


def test_items_total_enforced_in_strict_mode() -> None:
    record = _record(
        items=(ExpenseItem(id="a", name="Latte", total_price=Decimal("4.50")),),
        items_total=Decimal("9.00"),
        tax_amount=Decimal("3.85"),
    )

    (error,) = RecordValidator(_clock, strict_breakdown=True).validate(record)
    assert error.startswith("Items total mismatch")


def test_validate_many_prefixes_positions() -> None:
    errors = RecordValidator(_clock).validate_many([_record(), _record(merchant="")])

    assert errors == ["Expense 2: Empty merchant"]
