"""Hard acceptance rules for expense records entering the store."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Callable, Sequence

from expense_cli.shared import currency
from expense_cli.shared.amounts import format_timestamp, utcnow
from expense_cli.shared.config import ValidationSettings, default_config
from expense_cli.shared.models import ExpenseRecord, breakdown_total


class RecordValidator:
    """Check ExpenseRecords against the storage invariants.

    Violations are returned as messages, never raised. Each message starts
    with a stable phrase ("Invalid amount", "Empty merchant", "Future date",
    "Invalid date", "Unsupported currency", and in strict mode "Breakdown
    mismatch" / "Items total mismatch") that callers may match on.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        *,
        strict_breakdown: bool = False,
        settings: ValidationSettings | None = None,
    ) -> None:
        self.clock = clock
        self.strict_breakdown = strict_breakdown
        self.settings = settings or default_config().validation

    def validate(self, candidate: ExpenseRecord) -> list[str]:
        errors: list[str] = []
        if candidate.amount is None:
            errors.append("Invalid amount: missing or unreadable")
        elif candidate.amount <= 0:
            errors.append(f"Invalid amount: {candidate.amount}")

        if not candidate.merchant.strip():
            errors.append("Empty merchant")

        if candidate.date is None:
            errors.append("Invalid date: missing or unreadable")
        elif candidate.date > self.clock():
            errors.append(f"Future date: {format_timestamp(candidate.date)}")

        if not currency.is_supported(candidate.currency):
            errors.append(f"Unsupported currency: '{candidate.currency}'")

        if self.strict_breakdown and candidate.amount is not None:
            errors.extend(self._breakdown_errors(candidate, candidate.amount))
        return errors

    def validate_many(self, records: Sequence[ExpenseRecord]) -> list[str]:
        """Violations for a batch, each prefixed with the 1-based record position."""

        errors: list[str] = []
        for index, record in enumerate(records, start=1):
            errors.extend(f"Expense {index}: {message}" for message in self.validate(record))
        return errors

    def _breakdown_errors(self, record: ExpenseRecord, amount: Decimal) -> list[str]:
        errors: list[str] = []
        base = record.subtotal if record.subtotal is not None else record.items_total
        if base is not None:
            calculated = breakdown_total(
                base,
                tax_amount=record.tax_amount,
                fees=record.fees,
                tip=record.tip,
                discounts=record.discounts,
            )
            if abs(calculated - amount) > self.settings.tolerance_for(amount):
                errors.append(
                    f"Breakdown mismatch: parts add up to {calculated}, amount is {amount}"
                )
        if record.items and record.items_total is not None:
            items_sum = sum((item.total_price for item in record.items), Decimal("0"))
            if abs(items_sum - record.items_total) > self.settings.tolerance_for(record.items_total):
                errors.append(
                    f"Items total mismatch: items add up to {items_sum}, itemsTotal is {record.items_total}"
                )
        return errors
