"""Load bulk import documents (``{"expenses": [...]}``)."""

from __future__ import annotations

import json
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, TextIO

from expense_cli.shared.amounts import parse_timestamp
from expense_cli.shared.exceptions import ImportDocumentError
from expense_cli.shared.models import ExpenseRecord, record_from_mapping


@dataclass(slots=True)
class InvalidEntry:
    """An ``expenses`` entry that could not even be read as a record."""

    position: int
    message: str


@dataclass(slots=True)
class ImportDocument:
    records: list[ExpenseRecord]
    invalid_entries: list[InvalidEntry] = field(default_factory=list)
    export_date: datetime | None = None
    version: str | None = None
    declared_total: int | None = None
    source: str = "<stream>"

    @property
    def entry_count(self) -> int:
        return len(self.records) + len(self.invalid_entries)


def load_import_document(path: str | Path) -> ImportDocument:
    """Read an import document from ``path`` (``-`` for stdin)."""

    if str(path) == "-":
        return load_import_document_from_stream(sys.stdin, source="<stdin>")
    resolved = Path(path).expanduser()
    try:
        text = resolved.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ImportDocumentError(f"Import file not found: {resolved}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ImportDocumentError(f"Unable to read import file {resolved}: {exc}") from exc
    return parse_import_document(text, source=str(resolved))


def load_import_document_from_stream(stream: TextIO, *, source: str = "<stream>") -> ImportDocument:
    try:
        text = stream.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise ImportDocumentError(f"Unable to read import document from {source}: {exc}") from exc
    return parse_import_document(text, source=source)


def parse_import_document(text: str, *, source: str = "<stream>") -> ImportDocument:
    """Decode and coerce an import document.

    Whole-document problems raise ``ImportDocumentError``. Per-entry problems
    never do: non-object entries are collected in ``invalid_entries`` and
    unreadable fields are left for record validation to reject.
    """

    if not text.strip():
        raise ImportDocumentError(f"Import document {source} is empty")
    try:
        payload = json.loads(text, parse_float=Decimal)
    except json.JSONDecodeError as exc:
        raise ImportDocumentError(f"Import document {source} is not valid JSON: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise ImportDocumentError(f"Import document {source} must be a JSON object")
    entries = payload.get("expenses")
    if entries is None:
        raise ImportDocumentError(f"Import document {source} has no 'expenses' list")
    if not isinstance(entries, list):
        raise ImportDocumentError(f"'expenses' in {source} must be a list")

    records: list[ExpenseRecord] = []
    invalid: list[InvalidEntry] = []
    for position, entry in enumerate(entries, start=1):
        if not isinstance(entry, Mapping):
            invalid.append(
                InvalidEntry(
                    position=position,
                    message=f"Expense {position}: entry is a {_json_type(entry)}, not an object",
                )
            )
            continue
        records.append(record_from_mapping(entry))

    declared = payload.get("totalExpenses")
    return ImportDocument(
        records=records,
        invalid_entries=invalid,
        export_date=parse_timestamp(payload.get("exportDate")),
        version=str(payload["version"]) if payload.get("version") is not None else None,
        declared_total=declared if isinstance(declared, int) and not isinstance(declared, bool) else None,
        source=source,
    )


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, Decimal, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "list"
    return type(value).__name__
