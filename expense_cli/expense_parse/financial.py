"""Financial consistency checks and automatic corrections for extractions."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Callable

from expense_cli.expense_parse.dates import ISO_DATE_RE, parse_receipt_date, with_year
from expense_cli.shared import currency
from expense_cli.shared.amounts import utcnow
from expense_cli.shared.config import ValidationSettings, default_config
from expense_cli.shared.logging import Logger, get_logger
from expense_cli.shared.merchants import guess_currency
from expense_cli.shared.models import (
    DEFAULT_CATEGORY,
    Correction,
    CorrectionField,
    ExtractionResult,
    ValidationIssue,
    breakdown_total,
)

MISSING_DATE_CONFIDENCE = 0.7
STALE_YEAR_CONFIDENCE = 0.8
DEFAULT_CURRENCY_CONFIDENCE = 0.5


class FinancialValidator:
    """Validate an extraction result and apply auditable corrections.

    ``validate`` never raises. Corrections are appended, never rewritten, and
    the returned confidence is never higher than the input confidence.
    """

    def __init__(
        self,
        settings: ValidationSettings | None = None,
        logger: Logger | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings or default_config().validation
        self.logger = logger or get_logger()
        self.clock = clock

    def validate(self, result: ExtractionResult) -> ExtractionResult:
        checked = result.copy(
            merchant=result.merchant.strip(),
            confidence=min(1.0, max(0.0, result.confidence)),
        )
        today = self.clock().date()
        self._check_date(checked, today)
        self._check_currency(checked)
        self._check_category(checked)
        self._check_amount(checked)
        self._check_breakdown(checked)
        self._check_items_total(checked)
        return checked

    def _correct(self, result: ExtractionResult, correction: Correction) -> None:
        result.corrections.append(correction)
        result.confidence *= correction.confidence
        self.logger.info(f"Correction: {correction.message}")

    def _flag(self, result: ExtractionResult, issue: ValidationIssue, penalty: float = 1.0) -> None:
        result.issues.append(issue)
        result.confidence *= min(1.0, max(0.0, penalty))
        self.logger.warning(issue.message)

    # -- date -------------------------------------------------------------

    def _check_date(self, result: ExtractionResult, today: date) -> None:
        original = result.date.strip() if result.date and result.date.strip() else None
        parsed = parse_receipt_date(original, today=today)
        if parsed is None:
            corrected = today.isoformat()
            result.date = corrected
            self._correct(
                result,
                Correction(
                    field=CorrectionField.DATE,
                    original_value=original,
                    corrected_value=corrected,
                    reason="date was unparseable or absent",
                    confidence=MISSING_DATE_CONFIDENCE,
                ),
            )
            return

        if self.settings.correct_stale_years and parsed.year < today.year - 1:
            moved = with_year(parsed, today.year)
            if moved > today:
                moved = with_year(parsed, today.year - 1)
            result.date = moved.isoformat()
            self._correct(
                result,
                Correction(
                    field=CorrectionField.DATE,
                    original_value=original,
                    corrected_value=result.date,
                    reason=f"year {parsed.year} looks misread",
                    confidence=STALE_YEAR_CONFIDENCE,
                ),
            )
            return

        # Keep full ISO timestamps; rewrite regional formats to ISO dates.
        if original is not None and not ISO_DATE_RE.fullmatch(original):
            result.date = parsed.isoformat()
        else:
            result.date = original

    # -- currency ---------------------------------------------------------

    def _check_currency(self, result: ExtractionResult) -> None:
        raw = result.currency.strip() if result.currency and result.currency.strip() else None
        code = currency.normalize_code(raw) if raw else None
        guess = guess_currency(result.merchant, result.description)

        if code and currency.is_supported(code):
            result.currency = code
            if guess is not None and guess.code != code:
                self.logger.warning(
                    f"{result.merchant} suggests {guess.code} ({guess.source} '{guess.evidence}') "
                    f"but {code} was extracted; keeping {code}"
                )
            return

        if guess is not None:
            corrected = guess.code
            confidence = guess.confidence
            reason = (
                "based on business location"
                if guess.source == "location"
                else f"based on known merchant '{guess.evidence}'"
            )
        else:
            corrected = self.settings.default_currency
            confidence = DEFAULT_CURRENCY_CONFIDENCE
            reason = "no currency signal; used the default currency"
        if raw is not None:
            reason = f"'{raw}' is not a supported currency; {reason}"
        result.currency = corrected
        self._correct(
            result,
            Correction(
                field=CorrectionField.CURRENCY,
                original_value=raw,
                corrected_value=corrected,
                reason=reason,
                confidence=confidence,
            ),
        )

    # -- category and amount ----------------------------------------------

    def _check_category(self, result: ExtractionResult) -> None:
        category = (result.category or "").strip()
        if category:
            result.category = category
            return
        result.category = DEFAULT_CATEGORY
        self._correct(
            result,
            Correction(
                field=CorrectionField.CATEGORY,
                original_value=None,
                corrected_value=DEFAULT_CATEGORY,
                reason="category was empty",
            ),
        )

    def _check_amount(self, result: ExtractionResult) -> None:
        if result.amount <= 0:
            self._flag(
                result,
                ValidationIssue(
                    code="non_positive_amount",
                    message=f"Amount {result.amount} is not positive",
                    severity="error",
                ),
            )

    # -- breakdown --------------------------------------------------------

    def _penalty(self, deviation: Decimal, reference: Decimal) -> float:
        if reference == 0:
            relative = 1.0
        else:
            relative = float(deviation / abs(reference))
        return max(0.0, 1.0 - self.settings.mismatch_penalty_weight * relative)

    def _check_breakdown(self, result: ExtractionResult) -> None:
        base = result.subtotal if result.subtotal is not None else result.items_total
        if base is None:
            return
        calculated = breakdown_total(
            base,
            tax_amount=result.tax_amount,
            fees=result.fees,
            tip=result.tip,
            discounts=result.discounts,
        )
        deviation = abs(calculated - result.amount)
        if deviation <= self.settings.tolerance_for(result.amount):
            return
        self._flag(
            result,
            ValidationIssue(
                code="breakdown_mismatch",
                message=(
                    f"Breakdown adds up to {calculated} but the amount is {result.amount} "
                    f"(off by {deviation})"
                ),
            ),
            penalty=self._penalty(deviation, result.amount),
        )

    def _check_items_total(self, result: ExtractionResult) -> None:
        if not result.items or result.items_total is None:
            return
        items_sum = sum((item.total_price for item in result.items), Decimal("0"))
        deviation = abs(items_sum - result.items_total)
        if deviation <= self.settings.tolerance_for(result.items_total):
            return
        self._flag(
            result,
            ValidationIssue(
                code="items_total_mismatch",
                message=(
                    f"Items add up to {items_sum} but itemsTotal is {result.items_total} "
                    f"(off by {deviation})"
                ),
            ),
            penalty=self._penalty(deviation, result.items_total),
        )
