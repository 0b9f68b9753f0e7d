from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from expense_cli.expense_parse.main import cli as parse_cli
from expense_cli.shared.store import SQLiteExpenseStore

RECENT = (datetime.now(timezone.utc).date() - timedelta(days=3)).isoformat()


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _response(**overrides: Any) -> str:
    payload: dict[str, Any] = {
        "date": RECENT,
        "merchant": "Corner Cafe",
        "amount": 12.85,
        "currency": "USD",
        "category": "Food & Dining",
        "taxAmount": 1.03,
        "subtotal": 11.82,
    }
    payload.update(overrides)
    return json.dumps(payload)


def _payload(output: str) -> dict[str, Any]:
    # Log lines share the captured output; the JSON document starts at column 0.
    lines = output.splitlines()
    start = next(index for index, line in enumerate(lines) if line.startswith("{"))
    return json.loads("\n".join(lines[start:]))


def _args(tmp_path: Path, *extra: str) -> list[str]:
    return ["--config", str(tmp_path / "config.yaml"), "--db", str(tmp_path / "expenses.db"), *extra]


def test_parse_prints_validated_extraction(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(parse_cli, _args(tmp_path, "-"), input=_response())

    assert result.exit_code == 0, result.output
    payload = _payload(result.output)
    assert payload["merchant"] == "Corner Cafe"
    assert payload["amount"] == "12.85"
    assert payload["parseStage"] == "strict"
    assert payload["corrections"] == []
    assert payload["issues"] == []


def test_parse_reports_corrections(runner: CliRunner, tmp_path: Path) -> None:
    raw = "```json\n" + _response(merchant="Tesco Metro", currency="") + "\n```"

    result = runner.invoke(parse_cli, _args(tmp_path, "--compact"), input=raw)

    assert result.exit_code == 0, result.output
    payload = _payload(result.output)
    assert payload["currency"] == "GBP"
    assert payload["corrections"][0]["field"] == "currency"


def test_strict_mode_surfaces_parse_kind(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(parse_cli, _args(tmp_path, "--strict"), input="not json at all")

    assert result.exit_code == 1
    assert "Could not parse response (malformed)" in result.output


def test_unrecoverable_response_fails(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(parse_cli, _args(tmp_path), input="I cannot read this receipt.")

    assert result.exit_code == 1
    assert "unrecoverable" in result.output


def test_promote_prints_record(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(parse_cli, _args(tmp_path, "--promote"), input=_response())

    assert result.exit_code == 0, result.output
    payload = _payload(result.output)
    assert payload["id"]
    assert payload["date"] == f"{RECENT}T00:00:00Z"
    assert payload["taxAmount"] == "1.03"
    assert not (tmp_path / "expenses.db").exists()


def test_save_stores_once(runner: CliRunner, tmp_path: Path) -> None:
    first = runner.invoke(parse_cli, _args(tmp_path, "--save"), input=_response())
    second = runner.invoke(parse_cli, _args(tmp_path, "--save"), input=_response())

    assert first.exit_code == 0, first.output
    assert second.exit_code == 0, second.output
    assert "already stored" in second.output
    with SQLiteExpenseStore(tmp_path / "expenses.db") as store:
        assert len(store) == 1


def test_save_dry_run_writes_nothing(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(parse_cli, _args(tmp_path, "--save", "--dry-run"), input=_response())

    assert result.exit_code == 0, result.output
    assert not (tmp_path / "expenses.db").exists()


def test_save_rejects_invalid_record(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(parse_cli, _args(tmp_path, "--save"), input=_response(amount=-4))

    assert result.exit_code == 1
    assert "Invalid amount" in result.output
