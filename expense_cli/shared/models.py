"""Data models for extraction results, expense records and import reports."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from .amounts import (
    coerce_decimal,
    decimal_to_json,
    format_timestamp,
    parse_timestamp,
    utcnow,
)

DEFAULT_CATEGORY = "Other"


class CorrectionField(str, Enum):
    DATE = "date"
    CURRENCY = "currency"
    MERCHANT = "merchant"
    AMOUNT = "amount"
    CATEGORY = "category"


@dataclass(frozen=True, slots=True)
class Correction:
    """An automatic substitution applied to an extraction result."""

    field: CorrectionField
    original_value: str | None
    corrected_value: str
    reason: str
    confidence: float = 1.0
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def message(self) -> str:
        """Sentence suitable for showing to the person who scanned the receipt."""

        if self.field is CorrectionField.DATE:
            if self.original_value is not None:
                return f"Date was unclear ({self.original_value}), used {self.corrected_value}"
            return f"Date was not visible, used today's date ({self.corrected_value})"
        if self.field is CorrectionField.CURRENCY:
            if self.original_value is not None:
                return (
                    f"Currency changed from {self.original_value} to {self.corrected_value} "
                    f"({self.reason})"
                )
            return f"Currency determined as {self.corrected_value} ({self.reason})"
        if self.field is CorrectionField.MERCHANT:
            return f"Merchant name corrected: {self.corrected_value}"
        if self.field is CorrectionField.AMOUNT:
            return f"Amount corrected: {self.corrected_value}"
        return f"Category assigned: {self.corrected_value}"


@dataclass(slots=True)
class ValidationIssue:
    """Single validation finding."""

    code: str
    message: str
    severity: str = "warning"  # "error" | "warning"


@dataclass(slots=True)
class ExtractionItem:
    name: str
    total_price: Decimal
    quantity: Decimal | None = None
    unit_price: Decimal | None = None
    category: str | None = None
    description: str | None = None


@dataclass(slots=True)
class ExtractionResult:
    """Structured output of the response parser, before validation.

    ``date`` stays a raw string until the financial validator has parsed or
    replaced it. Optional money fields are ``None`` when the source omitted
    them; ``0`` means the source said zero.
    """

    date: str | None
    merchant: str
    amount: Decimal
    currency: str | None
    category: str
    description: str | None = None
    payment_method: str | None = None
    tax_amount: Decimal | None = None
    items: list[ExtractionItem] | None = None
    subtotal: Decimal | None = None
    discounts: Decimal | None = None
    fees: Decimal | None = None
    tip: Decimal | None = None
    items_total: Decimal | None = None
    confidence: float = 0.7
    corrections: list[Correction] = field(default_factory=list)
    issues: list[ValidationIssue] = field(default_factory=list)
    parse_stage: str = "strict"

    def copy(self, **changes: Any) -> ExtractionResult:
        """Return a copy whose list fields are independent of this instance."""

        changes.setdefault("corrections", list(self.corrections))
        changes.setdefault("issues", list(self.issues))
        if self.items is not None:
            changes.setdefault("items", list(self.items))
        return replace(self, **changes)


@dataclass(frozen=True, slots=True)
class ExpenseItem:
    id: str
    name: str
    total_price: Decimal
    quantity: Decimal | None = None
    unit_price: Decimal | None = None
    category: str | None = None
    description: str | None = None

    @classmethod
    def from_extraction(cls, item: ExtractionItem, *, item_id: str | None = None) -> ExpenseItem:
        return cls(
            id=item_id or str(uuid.uuid4()),
            name=item.name,
            total_price=item.total_price,
            quantity=item.quantity,
            unit_price=item.unit_price,
            category=item.category,
            description=item.description,
        )


@dataclass(frozen=True, slots=True)
class ExpenseRecord:
    """A persisted (or about to be persisted) expense."""

    id: str
    date: datetime | None
    merchant: str
    amount: Decimal | None
    currency: str
    category: str
    description: str | None = None
    payment_method: str | None = None
    tax_amount: Decimal | None = None
    receipt_image_url: str | None = None
    items: tuple[ExpenseItem, ...] | None = None
    subtotal: Decimal | None = None
    discounts: Decimal | None = None
    fees: Decimal | None = None
    tip: Decimal | None = None
    items_total: Decimal | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def edited(self, **changes: Any) -> ExpenseRecord:
        """Return a modified copy with ``updated_at`` bumped."""

        changes.setdefault("updated_at", utcnow())
        return replace(self, **changes)

    @property
    def items_sum(self) -> Decimal | None:
        if not self.items:
            return None
        return sum((item.total_price for item in self.items), Decimal("0"))

    @property
    def calculated_total(self) -> Decimal:
        """Total implied by the breakdown; absent parts count as zero."""

        base = self.subtotal
        if base is None:
            base = self.items_total
        if base is None:
            base = self.items_sum
        return breakdown_total(
            base,
            tax_amount=self.tax_amount,
            fees=self.fees,
            tip=self.tip,
            discounts=self.discounts,
        )

    @property
    def has_detailed_breakdown(self) -> bool:
        return bool(self.items) or self.subtotal is not None or self.tax_amount is not None

    @property
    def has_financial_breakdown(self) -> bool:
        return any(
            value is not None
            for value in (
                self.subtotal,
                self.tax_amount,
                self.fees,
                self.tip,
                self.discounts,
                self.items_total,
            )
        )


@dataclass(slots=True)
class ImportSummary:
    total_expenses: int = 0
    total_amount: Decimal = Decimal("0")
    categories: set[str] = field(default_factory=set)
    currencies: set[str] = field(default_factory=set)
    date_range: tuple[datetime, datetime] | None = None
    has_items: bool = False
    has_financial_breakdown: bool = False


@dataclass(slots=True)
class ImportResult:
    imported_count: int = 0
    duplicate_count: int = 0
    skipped_count: int = 0
    errors: list[str] = field(default_factory=list)
    accepted: list[ExpenseRecord] = field(default_factory=list)
    summary: ImportSummary = field(default_factory=ImportSummary)

    @property
    def total_processed(self) -> int:
        return self.imported_count + self.duplicate_count + self.skipped_count


def breakdown_total(
    base: Decimal | None,
    *,
    tax_amount: Decimal | None = None,
    fees: Decimal | None = None,
    tip: Decimal | None = None,
    discounts: Decimal | None = None,
) -> Decimal:
    zero = Decimal("0")
    return (
        (base or zero)
        + (tax_amount or zero)
        + (fees or zero)
        + (tip or zero)
        - (discounts or zero)
    )


# ---------------------------------------------------------------------------
# Serialization (camelCase JSON documents)
# ---------------------------------------------------------------------------

_MONEY_FIELDS = (
    ("tax_amount", "taxAmount"),
    ("subtotal", "subtotal"),
    ("discounts", "discounts"),
    ("fees", "fees"),
    ("tip", "tip"),
    ("items_total", "itemsTotal"),
)


def _item_to_dict(item: ExpenseItem | ExtractionItem) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if isinstance(item, ExpenseItem):
        payload["id"] = item.id
    payload.update(
        {
            "name": item.name,
            "quantity": decimal_to_json(item.quantity),
            "unitPrice": decimal_to_json(item.unit_price),
            "totalPrice": decimal_to_json(item.total_price),
            "category": item.category,
            "description": item.description,
        }
    )
    return payload


def record_to_dict(record: ExpenseRecord) -> dict[str, Any]:
    """Serialize an ExpenseRecord to the import/export JSON shape."""

    payload: dict[str, Any] = {
        "id": record.id,
        "date": format_timestamp(record.date) if record.date else None,
        "merchant": record.merchant,
        "amount": decimal_to_json(record.amount),
        "currency": record.currency,
        "category": record.category,
        "description": record.description,
        "paymentMethod": record.payment_method,
        "receiptImageUrl": record.receipt_image_url,
    }
    for attr, key in _MONEY_FIELDS:
        payload[key] = decimal_to_json(getattr(record, attr))
    payload["items"] = (
        [_item_to_dict(item) for item in record.items] if record.items is not None else None
    )
    payload["createdAt"] = format_timestamp(record.created_at)
    payload["updatedAt"] = format_timestamp(record.updated_at)
    return payload


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _item_from_mapping(data: Mapping[str, Any]) -> ExpenseItem | None:
    name = _optional_text(data.get("name"))
    total = coerce_decimal(data.get("totalPrice"))
    if name is None or total is None:
        return None
    return ExpenseItem(
        id=_optional_text(data.get("id")) or str(uuid.uuid4()),
        name=name,
        total_price=total,
        quantity=coerce_decimal(data.get("quantity")),
        unit_price=coerce_decimal(data.get("unitPrice")),
        category=_optional_text(data.get("category")),
        description=_optional_text(data.get("description")),
    )


def record_from_mapping(data: Mapping[str, Any], *, now: datetime | None = None) -> ExpenseRecord:
    """Build an ExpenseRecord from a camelCase mapping.

    Coercion is lenient: unknown keys are ignored, a missing ``id`` gets a new
    UUID, and an unreadable ``date`` or ``amount`` is left ``None`` so record
    validation can reject just this entry.
    """

    stamp = now or utcnow()
    raw_items = data.get("items")
    items: tuple[ExpenseItem, ...] | None = None
    if isinstance(raw_items, list):
        parsed = (_item_from_mapping(entry) for entry in raw_items if isinstance(entry, Mapping))
        items = tuple(item for item in parsed if item is not None)

    money = {attr: coerce_decimal(data.get(key)) for attr, key in _MONEY_FIELDS}
    return ExpenseRecord(
        id=_optional_text(data.get("id")) or str(uuid.uuid4()),
        date=parse_timestamp(data.get("date")),
        merchant=str(data.get("merchant") or ""),
        amount=coerce_decimal(data.get("amount")),
        currency=str(data.get("currency") or "").strip().upper(),
        category=_optional_text(data.get("category")) or DEFAULT_CATEGORY,
        description=_optional_text(data.get("description")),
        payment_method=_optional_text(data.get("paymentMethod")),
        receipt_image_url=_optional_text(data.get("receiptImageUrl")),
        items=items,
        created_at=parse_timestamp(data.get("createdAt")) or stamp,
        updated_at=parse_timestamp(data.get("updatedAt")) or stamp,
        **money,
    )


def correction_to_dict(correction: Correction) -> dict[str, Any]:
    return {
        "field": correction.field.value,
        "originalValue": correction.original_value,
        "correctedValue": correction.corrected_value,
        "reason": correction.reason,
        "confidence": correction.confidence,
        "timestamp": format_timestamp(correction.timestamp),
        "message": correction.message,
    }


def extraction_to_dict(result: ExtractionResult) -> dict[str, Any]:
    """Serialize a (validated) extraction result for display or hand-off."""

    payload: dict[str, Any] = {
        "date": result.date,
        "merchant": result.merchant,
        "amount": decimal_to_json(result.amount),
        "currency": result.currency,
        "category": result.category,
        "description": result.description,
        "paymentMethod": result.payment_method,
    }
    for attr, key in _MONEY_FIELDS:
        payload[key] = decimal_to_json(getattr(result, attr))
    payload["items"] = (
        [_item_to_dict(item) for item in result.items] if result.items is not None else None
    )
    payload["confidence"] = round(result.confidence, 4)
    payload["parseStage"] = result.parse_stage
    payload["corrections"] = [correction_to_dict(c) for c in result.corrections]
    payload["issues"] = [
        {"code": issue.code, "message": issue.message, "severity": issue.severity}
        for issue in result.issues
    ]
    return payload


def summary_to_dict(summary: ImportSummary) -> dict[str, Any]:
    return {
        "totalExpenses": summary.total_expenses,
        "totalAmount": decimal_to_json(summary.total_amount),
        "categories": sorted(summary.categories),
        "currencies": sorted(summary.currencies),
        "dateRange": (
            [format_timestamp(summary.date_range[0]), format_timestamp(summary.date_range[1])]
            if summary.date_range
            else None
        ),
        "hasItems": summary.has_items,
        "hasFinancialBreakdown": summary.has_financial_breakdown,
    }
