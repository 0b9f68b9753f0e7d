"""Aggregate statistics over a batch of expense records."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from expense_cli.shared.models import ExpenseRecord, ImportSummary


def summarize(records: Iterable[ExpenseRecord]) -> ImportSummary:
    """Summarize ``records`` without side effects.

    Amounts are added as-is regardless of currency; unreadable dates and
    amounts are skipped by the respective aggregates.
    """

    summary = ImportSummary()
    earliest = latest = None
    total = Decimal("0")
    for record in records:
        summary.total_expenses += 1
        if record.amount is not None:
            total += record.amount
        if record.category:
            summary.categories.add(record.category)
        if record.currency:
            summary.currencies.add(record.currency)
        if record.date is not None:
            earliest = record.date if earliest is None or record.date < earliest else earliest
            latest = record.date if latest is None or record.date > latest else latest
        if record.items:
            summary.has_items = True
        if record.has_financial_breakdown:
            summary.has_financial_breakdown = True
    summary.total_amount = total
    if earliest is not None and latest is not None:
        summary.date_range = (earliest, latest)
    return summary
