from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from expense_cli.expense_import.main import cli as import_cli
from expense_cli.shared.store import SQLiteExpenseStore

EXPENSES: list[Any] = [
    {
        "id": "a",
        "date": "2025-02-28T09:00:00Z",
        "merchant": "Corner Cafe",
        "amount": 12.85,
        "currency": "USD",
        "category": "Food & Dining",
        "taxAmount": 1.03,
    },
    {
        "id": "b",
        "date": "2025-02-27T18:30:00Z",
        "merchant": "Whole Foods",
        "amount": 54.10,
        "currency": "USD",
        "category": "Food & Dining",
    },
    {
        "id": "c",
        "date": "2025-02-26T12:00:00Z",
        "merchant": "Tesco",
        "amount": -10,
        "currency": "GBP",
        "category": "Shopping",
    },
    "not an expense",
]


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def document(tmp_path: Path) -> Path:
    path = tmp_path / "export.json"
    path.write_text(
        json.dumps({"version": "1.0", "totalExpenses": len(EXPENSES), "expenses": EXPENSES}),
        encoding="utf-8",
    )
    return path


def _payload(output: str) -> dict[str, Any]:
    lines = output.splitlines()
    start = next(index for index, line in enumerate(lines) if line.startswith("{"))
    return json.loads("\n".join(lines[start:]))


def _args(tmp_path: Path, *extra: str) -> list[str]:
    return ["--config", str(tmp_path / "config.yaml"), "--db", str(tmp_path / "expenses.db"), *extra]


def test_import_reports_counts(runner: CliRunner, tmp_path: Path, document: Path) -> None:
    result = runner.invoke(import_cli, _args(tmp_path, str(document), "--json"))

    assert result.exit_code == 0, result.output
    payload = _payload(result.output)
    assert payload["importedCount"] == 2
    assert payload["duplicateCount"] == 0
    assert payload["skippedCount"] == 2
    assert any("Invalid amount" in message for message in payload["errors"])
    assert payload["summary"]["totalExpenses"] == 2
    assert payload["summary"]["currencies"] == ["USD"]
    with SQLiteExpenseStore(tmp_path / "expenses.db") as store:
        assert [record.id for record in store.all()] == ["a", "b"]


def test_second_import_finds_duplicates(runner: CliRunner, tmp_path: Path, document: Path) -> None:
    runner.invoke(import_cli, _args(tmp_path, str(document)))

    result = runner.invoke(import_cli, _args(tmp_path, str(document), "--json"))

    assert result.exit_code == 0, result.output
    payload = _payload(result.output)
    assert payload["importedCount"] == 0
    assert payload["duplicateCount"] == 2


def test_allow_duplicates_flag(runner: CliRunner, tmp_path: Path, document: Path) -> None:
    runner.invoke(import_cli, _args(tmp_path, str(document)))

    result = runner.invoke(import_cli, _args(tmp_path, str(document), "--allow-duplicates", "--json"))

    assert result.exit_code == 0, result.output
    assert _payload(result.output)["importedCount"] == 2
    with SQLiteExpenseStore(tmp_path / "expenses.db") as store:
        assert len(store) == 4


def test_preview_touches_no_store(runner: CliRunner, tmp_path: Path, document: Path) -> None:
    result = runner.invoke(import_cli, _args(tmp_path, str(document), "--preview", "--json"))

    assert result.exit_code == 0, result.output
    payload = _payload(result.output)
    assert payload["totalExpenses"] == 3
    assert payload["currencies"] == ["GBP", "USD"]
    assert not (tmp_path / "expenses.db").exists()


def test_dry_run_without_database(runner: CliRunner, tmp_path: Path, document: Path) -> None:
    result = runner.invoke(import_cli, _args(tmp_path, str(document), "--dry-run", "--json"))

    assert result.exit_code == 0, result.output
    assert _payload(result.output)["importedCount"] == 2
    assert not (tmp_path / "expenses.db").exists()


def test_human_readable_output(runner: CliRunner, tmp_path: Path, document: Path) -> None:
    result = runner.invoke(import_cli, _args(tmp_path, str(document)))

    assert result.exit_code == 0, result.output
    assert "Import finished: 2 imported" in result.output
    assert "$66.95" in result.output


def test_missing_document_fails(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(import_cli, _args(tmp_path, str(tmp_path / "missing.json")))

    assert result.exit_code == 1
    assert "Import file not found" in result.output


def test_invalid_document_fails(runner: CliRunner, tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text('{"expenses": "nope"}', encoding="utf-8")

    result = runner.invoke(import_cli, _args(tmp_path, str(path)))

    assert result.exit_code == 1
    assert "must be a list" in result.output
