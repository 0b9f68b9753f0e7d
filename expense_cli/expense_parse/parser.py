"""Turn raw extraction-service text into an ``ExtractionResult``.

Parsing degrades in stages: strict JSON, then a single structural repair of
truncated output, then a heuristic fallback that recovers only the required
fields. Each stage lowers the confidence ceiling of what it returns.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping

from expense_cli.expense_parse.dates import DATE_PATTERNS, find_date
from expense_cli.shared import currency
from expense_cli.shared.amounts import coerce_decimal, parse_amount
from expense_cli.shared.config import ParserSettings, default_config
from expense_cli.shared.exceptions import ParseErrorKind, ResponseParseError
from expense_cli.shared.logging import Logger, get_logger
from expense_cli.shared.models import (
    DEFAULT_CATEGORY,
    ExtractionItem,
    ExtractionResult,
    ValidationIssue,
)

REQUIRED_FIELDS = ("date", "merchant", "amount", "currency", "category")

_COMPLETE_LITERAL_RE = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?|true|false|null")
_TRAILING_BARE_RE = re.compile(r"[A-Za-z0-9.+\-]+$")
_CLOSED_WORDS = frozenset({"true", "false", "null"})


def strip_fences(raw: str) -> str:
    """Remove Markdown fences or other wrappers around JSON responses."""

    text = (raw or "").strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        if first_newline == -1:
            # Lone fence line, possibly with a language hint.
            return ""
        remainder = text[first_newline + 1 :]
        closing = remainder.rfind("```")
        if closing != -1:
            remainder = remainder[:closing]
        text = remainder.strip()
    elif "```" in text:
        # Prose followed by a fenced block.
        start = text.find("```")
        return strip_fences(text[start:])
    if text and not text.startswith(("{", "[")) and "{" in text:
        text = text[text.find("{") :]
    return text


@dataclass(slots=True)
class _Scan:
    stack: list[str] = field(default_factory=list)
    in_string: bool = False
    string_start: int | None = None
    last_string_start: int | None = None


def _scan(text: str) -> _Scan:
    """Walk ``text`` tracking open brackets and string state."""

    state = _Scan()
    escaped = False
    for index, char in enumerate(text):
        if state.in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                state.in_string = False
                state.last_string_start = state.string_start
                state.string_start = None
            continue
        if char == '"':
            state.in_string = True
            state.string_start = index
        elif char in "{[":
            state.stack.append(char)
        elif char in "}]":
            if state.stack:
                state.stack.pop()
    return state


def is_truncated(text: str) -> bool:
    """True when ``text`` looks like JSON cut off before its end."""

    stripped = text.rstrip()
    if not stripped.startswith(("{", "[")):
        return False
    state = _scan(stripped)
    return state.in_string or bool(state.stack) or not stripped.endswith("}")


def _preceding_char(text: str, index: int) -> str:
    head = text[:index].rstrip()
    return head[-1] if head else ""


def repair_truncated_json(text: str) -> str | None:
    """Close a truncated JSON document with the fewest edits.

    Drops an unterminated trailing string, a dangling ``,`` or ``:`` (with its
    orphaned key) or a partial literal, then appends the closing brackets in
    stack order. A number right at the cut may have lost digits, so it goes
    too. Returns ``None`` when nothing is left to close.
    """

    trimmed = text.rstrip()
    working = trimmed
    # Each pass removes at least one character, so the loop terminates.
    while working:
        state = _scan(working)
        if state.in_string and state.string_start is not None:
            working = working[: state.string_start].rstrip()
            continue
        last = working[-1]
        if last == ",":
            working = working[:-1].rstrip()
            continue
        if last == ":":
            working = working[:-1].rstrip()
            if working.endswith('"') and state.last_string_start is not None:
                working = working[: state.last_string_start].rstrip()
            continue
        if (
            last == '"'
            and state.stack
            and state.stack[-1] == "{"
            and state.last_string_start is not None
            and _preceding_char(working, state.last_string_start) in {",", "{"}
        ):
            # Key without a value.
            working = working[: state.last_string_start].rstrip()
            continue
        if last in "{[" and len(state.stack) > 1 and _preceding_char(working, len(working) - 1) == ",":
            working = working[:-1].rstrip()
            continue
        bare = _TRAILING_BARE_RE.search(working)
        at_cut = len(working) == len(trimmed)
        if bare and (
            (at_cut and bare.group() not in _CLOSED_WORDS)
            or not _COMPLETE_LITERAL_RE.fullmatch(bare.group())
        ):
            working = working[: bare.start()].rstrip()
            continue
        break

    if not working:
        return None
    state = _scan(working)
    closers = "".join("}" if opener == "{" else "]" for opener in reversed(state.stack))
    return working + closers


class _IncompleteResponse(Exception):
    """Structured response parsed but lacks usable required fields."""


@dataclass(slots=True)
class _StructuredAttempt:
    data: Any = None
    stage: str = "strict"
    kind: ParseErrorKind = ParseErrorKind.MALFORMED
    message: str = ""


class ResponseParser:
    """Staged parser for extraction-service responses."""

    def __init__(self, settings: ParserSettings | None = None, logger: Logger | None = None) -> None:
        self.settings = settings or default_config().parser
        self.logger = logger or get_logger()
        self._decoder = json.JSONDecoder(parse_float=Decimal)

    def parse(self, raw: str, *, allow_fallback: bool = True) -> ExtractionResult:
        text = strip_fences(raw)
        self.logger.debug(f"Parsing response ({len(text)} characters after fence stripping)")
        attempt = self._parse_structured(text)
        partial: Mapping[str, Any] | None = None

        if isinstance(attempt.data, Mapping):
            partial = attempt.data
            try:
                return self._build_result(attempt.data, stage=attempt.stage)
            except _IncompleteResponse as exc:
                if attempt.stage == "strict":
                    attempt.kind = ParseErrorKind.MALFORMED
                attempt.message = str(exc)
        elif attempt.data is not None:
            attempt.message = f"expected a JSON object, got {type(attempt.data).__name__}"

        if not allow_fallback:
            raise ResponseParseError(attempt.kind, attempt.message or "response could not be parsed")

        self.logger.debug(f"Structured parse failed ({attempt.kind.value}): {attempt.message}")
        result = self._fallback(text, partial)
        if result is None:
            raise ResponseParseError(
                ParseErrorKind.UNRECOVERABLE,
                "response could not be parsed and no merchant/amount could be recovered",
            )
        self.logger.warning(
            f"Recovered {result.merchant} / {result.amount} with heuristic fallback "
            f"(confidence {result.confidence:.2f})"
        )
        return result

    # -- structured stages -------------------------------------------------

    def _decode(self, text: str) -> Any:
        data, end = self._decoder.raw_decode(text)
        if text[end:].strip():
            self.logger.debug("Ignoring trailing text after JSON document")
        return data

    def _parse_structured(self, text: str) -> _StructuredAttempt:
        if not text:
            return _StructuredAttempt(kind=ParseErrorKind.MALFORMED, message="empty response")
        try:
            return _StructuredAttempt(data=self._decode(text), stage="strict")
        except json.JSONDecodeError as exc:
            strict_error = exc

        if not is_truncated(text):
            return _StructuredAttempt(
                kind=ParseErrorKind.MALFORMED, message=f"invalid JSON: {strict_error.msg}"
            )

        repaired = repair_truncated_json(text)
        if repaired is None:
            return _StructuredAttempt(kind=ParseErrorKind.TRUNCATED, message="truncated before any content")
        try:
            data = self._decode(repaired)
        except json.JSONDecodeError as exc:
            return _StructuredAttempt(
                kind=ParseErrorKind.TRUNCATED, message=f"truncated and repair failed: {exc.msg}"
            )
        self.logger.debug("Repaired truncated response")
        return _StructuredAttempt(data=data, stage="repaired", kind=ParseErrorKind.TRUNCATED)

    def _build_result(self, data: Mapping[str, Any], *, stage: str) -> ExtractionResult:
        missing = [name for name in REQUIRED_FIELDS if data.get(name) is None]
        if missing:
            raise _IncompleteResponse(f"missing required field(s): {', '.join(missing)}")
        merchant = data["merchant"]
        if not isinstance(merchant, str) or not merchant.strip():
            raise _IncompleteResponse("merchant is empty")
        amount = coerce_decimal(data["amount"])
        if amount is None:
            raise _IncompleteResponse(f"amount {data['amount']!r} is not a number")
        for name in ("date", "currency", "category"):
            if not isinstance(data[name], str):
                raise _IncompleteResponse(f"{name} must be a string")

        issues: list[ValidationIssue] = []
        items = self._parse_items(data.get("items"), issues)
        confidence = self._confidence(data.get("confidence"))
        if stage == "repaired":
            confidence *= self.settings.repair_confidence_factor
            issues.append(
                ValidationIssue(
                    code="truncated_response",
                    message="Response was truncated and structurally repaired",
                    severity="warning",
                )
            )

        return ExtractionResult(
            date=data["date"].strip(),
            merchant=merchant.strip(),
            amount=amount,
            currency=data["currency"].strip().upper(),
            category=data["category"].strip(),
            description=_optional_text(data.get("description")),
            payment_method=_optional_text(data.get("paymentMethod")),
            tax_amount=coerce_decimal(data.get("taxAmount")),
            items=items,
            subtotal=coerce_decimal(data.get("subtotal")),
            discounts=coerce_decimal(data.get("discounts")),
            fees=coerce_decimal(data.get("fees")),
            tip=coerce_decimal(data.get("tip")),
            items_total=coerce_decimal(data.get("itemsTotal")),
            confidence=confidence,
            issues=issues,
            parse_stage=stage,
        )

    def _parse_items(self, raw_items: Any, issues: list[ValidationIssue]) -> list[ExtractionItem] | None:
        if raw_items is None:
            return None
        if not isinstance(raw_items, list):
            issues.append(
                ValidationIssue(code="partial_items", message="items is not a list; ignored")
            )
            return None
        items: list[ExtractionItem] = []
        dropped = 0
        for entry in raw_items:
            if not isinstance(entry, Mapping):
                dropped += 1
                continue
            name = _optional_text(entry.get("name"))
            total = coerce_decimal(entry.get("totalPrice"))
            if name is None or total is None:
                dropped += 1
                continue
            items.append(
                ExtractionItem(
                    name=name,
                    total_price=total,
                    quantity=coerce_decimal(entry.get("quantity")),
                    unit_price=coerce_decimal(entry.get("unitPrice")),
                    category=_optional_text(entry.get("category")),
                    description=_optional_text(entry.get("description")),
                )
            )
        if dropped:
            issues.append(
                ValidationIssue(
                    code="partial_items",
                    message=f"Dropped {dropped} item(s) without a name or total price",
                )
            )
        return items

    def _confidence(self, value: Any) -> float:
        number = coerce_decimal(value)
        if number is None:
            return self.settings.default_confidence
        return min(1.0, max(0.0, float(number)))

    # -- heuristic fallback ------------------------------------------------

    def _fallback(self, text: str, partial: Mapping[str, Any] | None) -> ExtractionResult | None:
        fields = _fields_from_mapping(partial) if partial is not None else {}
        recovered = _fields_from_text(text)
        for key, value in recovered.items():
            if fields.get(key) in (None, ""):
                fields[key] = value

        merchant = fields.get("merchant")
        amount = fields.get("amount")
        if not merchant or amount is None or amount <= 0:
            return None

        raw_confidence = partial.get("confidence") if partial is not None else None
        confidence = min(self._confidence(raw_confidence), self.settings.fallback_confidence_cap)
        return ExtractionResult(
            date=fields.get("date"),
            merchant=merchant,
            amount=amount,
            currency=fields.get("currency"),
            category=fields.get("category") or DEFAULT_CATEGORY,
            confidence=confidence,
            issues=[
                ValidationIssue(
                    code="fallback_parse",
                    message="Only required fields were recovered; optional fields and items were dropped",
                    severity="warning",
                )
            ],
            parse_stage="fallback",
        )


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _fields_from_mapping(data: Mapping[str, Any]) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    merchant = data.get("merchant")
    if isinstance(merchant, str) and merchant.strip():
        fields["merchant"] = merchant.strip()
    amount = coerce_decimal(data.get("amount"))
    if amount is not None:
        fields["amount"] = amount
    raw_date = data.get("date")
    if isinstance(raw_date, str) and raw_date.strip():
        fields["date"] = raw_date.strip()
    raw_currency = data.get("currency")
    if isinstance(raw_currency, str):
        code = currency.code_for_symbol(raw_currency) or raw_currency.strip().upper()
        if code:
            fields["currency"] = code
    category = data.get("category")
    if isinstance(category, str) and category.strip():
        fields["category"] = category.strip()
    return fields


_QUOTED_STRING_RE = r'"{key}"\s*:\s*"((?:[^"\\]|\\.)*)"'
_QUOTED_NUMBER_RE = re.compile(
    r'"amount"\s*:\s*(?:"(?P<quoted>[^"]*)"|(?P<number>-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?))',
    re.IGNORECASE,
)
_TOTAL_LINE_RE = re.compile(
    r"^[ \t]*(?:grand[ \t]+)?(?:total(?:[ \t]+amount)?|amount[ \t]+due|balance[ \t]+due)\b[^\n\d]{0,20}?"
    r"(?P<value>-?\d[\d.,' ]*\d|\d)",
    re.IGNORECASE | re.MULTILINE,
)
_MERCHANT_LINE_RE = re.compile(
    r"^[ \t]*(?:merchant|store|vendor|shop|business)[ \t]*[:\-][ \t]*(?P<name>.+?)[ \t]*$",
    re.IGNORECASE | re.MULTILINE,
)
_ISO_CODE_RE = re.compile(r"\b([A-Z]{3})\b")
_SYMBOL_TOKEN_RE = re.compile(
    r"(?:[A-Za-z]{1,3}\$|\$[A-Z]|R\$|S/|[€£₹₺₪₦₵₱₫₩₽₴₸฿]|\bzł|\bKč|\bRs\.?|\bRM|\bRp|\bKSh)"
)


def _quoted(text: str, key: str) -> str | None:
    match = re.search(_QUOTED_STRING_RE.format(key=key), text, re.IGNORECASE)
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def _fields_from_text(text: str) -> dict[str, Any]:
    fields: dict[str, Any] = {}

    merchant = _quoted(text, "merchant")
    if merchant is None:
        label = _MERCHANT_LINE_RE.search(text)
        if label:
            merchant = label.group("name").strip().strip('",')
    if merchant is None:
        merchant = _first_plain_line(text)
    if merchant:
        fields["merchant"] = merchant

    amount = _amount_from_text(text)
    if amount is not None:
        fields["amount"] = amount

    raw_date = _quoted(text, "date")
    if raw_date is None:
        raw_date = find_date(text)
    if raw_date:
        fields["date"] = raw_date

    code = _currency_from_text(text)
    if code:
        fields["currency"] = code

    category = _quoted(text, "category")
    if category:
        fields["category"] = category
    return fields


def _amount_from_text(text: str) -> Decimal | None:
    candidates: list[str] = []
    quoted = _QUOTED_NUMBER_RE.search(text)
    if quoted:
        candidates.append(quoted.group("quoted") or quoted.group("number") or "")
    candidates.extend(match.group("value") for match in _TOTAL_LINE_RE.finditer(text))
    for candidate in candidates:
        try:
            return parse_amount(candidate)
        except ValueError:
            continue
    return None


def _currency_from_text(text: str) -> str | None:
    quoted = _quoted(text, "currency")
    if quoted:
        return currency.code_for_symbol(quoted) or quoted.upper()
    for match in _ISO_CODE_RE.finditer(text):
        if currency.is_supported(match.group(1)):
            return match.group(1)
    for match in _SYMBOL_TOKEN_RE.finditer(text):
        code = currency.code_for_symbol(match.group(0))
        if code:
            return code
    return None


def _first_plain_line(text: str) -> str | None:
    for line in text.splitlines():
        candidate = line.strip()
        if not candidate or candidate[0] in '{}[]"`#':
            continue
        if ":" in candidate or not re.search(r"[A-Za-z]", candidate):
            continue
        if any(pattern.search(candidate) for pattern in DATE_PATTERNS):
            continue
        return candidate
    return None
