"""Convert validated extraction results into expense records."""

from __future__ import annotations

import uuid
from datetime import datetime, time, timezone

from dateutil import parser as date_parser

from expense_cli.shared.amounts import ensure_utc, utcnow
from expense_cli.shared.exceptions import ExpenseCLIError
from expense_cli.shared.models import ExpenseItem, ExpenseRecord, ExtractionResult


def _record_date(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        parsed = date_parser.isoparse(raw)
    except (ValueError, OverflowError):
        return None
    if isinstance(parsed, datetime) and len(raw) > 10:
        return ensure_utc(parsed)
    # Date-only values become UTC midnight so today's date is never in the future.
    return datetime.combine(parsed.date(), time(0, 0), tzinfo=timezone.utc)


def promote(
    result: ExtractionResult,
    *,
    record_id: str | None = None,
    now: datetime | None = None,
    receipt_image_url: str | None = None,
) -> ExpenseRecord:
    """Build an ExpenseRecord from a result that went through FinancialValidator.

    Raises ``ExpenseCLIError`` when the result still lacks a parseable date or
    a currency, which only happens if validation was skipped.
    """

    record_date = _record_date(result.date)
    if record_date is None:
        raise ExpenseCLIError(f"Cannot promote extraction with unreadable date {result.date!r}")
    if not result.currency:
        raise ExpenseCLIError("Cannot promote extraction without a currency")

    stamp = now or utcnow()
    items = (
        tuple(ExpenseItem.from_extraction(item) for item in result.items)
        if result.items is not None
        else None
    )
    return ExpenseRecord(
        id=record_id or str(uuid.uuid4()),
        date=record_date,
        merchant=result.merchant.strip(),
        amount=result.amount,
        currency=result.currency,
        category=result.category,
        description=result.description,
        payment_method=result.payment_method,
        tax_amount=result.tax_amount,
        receipt_image_url=receipt_image_url,
        items=items,
        subtotal=result.subtotal,
        discounts=result.discounts,
        fees=result.fees,
        tip=result.tip,
        items_total=result.items_total,
        created_at=stamp,
        updated_at=stamp,
    )
