"""Expense persistence: the store interface and its implementations.

Stores are handed to the import merger explicitly; nothing here is a global.
Writes happen inside a batch. A batch holds the store's write lock and, for
SQLite, an immediate transaction, so a batch that reads ``all()`` after
opening sees every record committed before it. Reads outside a batch take
no lock.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from importlib import resources
from pathlib import Path
from types import TracebackType
from typing import Iterable, Iterator, Sequence

from .amounts import format_timestamp
from .config import AppConfig
from .exceptions import DatabaseError
from .merchants import merchant_key
from .models import ExpenseRecord, record_from_mapping, record_to_dict

MIGRATION_PACKAGE = "expense_cli.shared.migrations"

# How long a batch waits for another process to finish its own.
BUSY_TIMEOUT_SECONDS = 30.0


class ExpenseStore(ABC):
    """Abstract record store with single-writer batches."""

    def __init__(self) -> None:
        # A plain Lock: async imports open and close a batch from worker threads.
        self._write_lock = threading.Lock()

    def begin_batch(self) -> None:
        """Block until this caller is the only writer."""

        self._write_lock.acquire()

    def end_batch(self) -> None:
        """Make the batch's inserts durable and let the next writer in."""

        self._write_lock.release()

    @contextmanager
    def batch(self) -> Iterator[ExpenseStore]:
        self.begin_batch()
        try:
            yield self
        finally:
            self.end_batch()

    @abstractmethod
    def all(self) -> list[ExpenseRecord]:
        """Every stored record in insertion order."""

    @abstractmethod
    def get(self, record_id: str) -> ExpenseRecord | None:
        """Record with ``record_id`` or ``None``."""

    @abstractmethod
    def insert(self, record: ExpenseRecord) -> None:
        """Write one record inside an open batch; raises ``DatabaseError`` when the id exists."""

    def add(self, record: ExpenseRecord) -> None:
        with self.batch():
            self.insert(record)

    def add_many(self, records: Iterable[ExpenseRecord]) -> int:
        count = 0
        with self.batch():
            for record in records:
                self.insert(record)
                count += 1
        return count

    def __contains__(self, record_id: object) -> bool:
        return isinstance(record_id, str) and self.get(record_id) is not None

    def __len__(self) -> int:
        return len(self.all())

    def close(self) -> None:
        """Release resources held by the store."""

    def __enter__(self) -> ExpenseStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class InMemoryExpenseStore(ExpenseStore):
    """Dictionary-backed store for tests and embedding."""

    def __init__(self, records: Iterable[ExpenseRecord] = ()) -> None:
        super().__init__()
        self._records: dict[str, ExpenseRecord] = {}
        self.add_many(records)

    def all(self) -> list[ExpenseRecord]:
        return list(self._records.values())

    def get(self, record_id: str) -> ExpenseRecord | None:
        return self._records.get(record_id)

    def insert(self, record: ExpenseRecord) -> None:
        if record.id in self._records:
            raise DatabaseError(f"Expense '{record.id}' already exists")
        self._records[record.id] = record

    def __len__(self) -> int:
        return len(self._records)


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    description: str
    sql: str


def _load_migrations() -> Sequence[Migration]:
    migrations: list[Migration] = []
    for entry in sorted(resources.files(MIGRATION_PACKAGE).iterdir(), key=lambda e: e.name):
        if not entry.name.lower().endswith(".sql"):
            continue
        name = entry.name[: -len(".sql")]
        try:
            version_str, description = name.split("_", 1)
        except ValueError:
            version_str, description = name, name
        try:
            version = int(version_str)
        except ValueError as exc:  # pragma: no cover - packaging time error
            raise DatabaseError(f"Invalid migration filename '{entry.name}'") from exc
        sql = entry.read_text(encoding="utf-8")
        migrations.append(Migration(version=version, name=name, description=description, sql=sql))
    migrations.sort(key=lambda m: m.version)
    return migrations


def _get_applied_versions(connection: sqlite3.Connection) -> set[int]:
    try:
        rows = connection.execute("SELECT version FROM schema_versions").fetchall()
    except sqlite3.OperationalError:
        return set()
    return {int(row[0]) for row in rows}


def run_migrations(connection: sqlite3.Connection) -> list[int]:
    """Apply pending migrations and return the versions that were applied."""

    applied = _get_applied_versions(connection)
    newly_applied: list[int] = []
    for migration in _load_migrations():
        if migration.version in applied:
            continue
        try:
            connection.executescript(migration.sql)
            connection.execute(
                "INSERT OR REPLACE INTO schema_versions(version, description) VALUES (?, ?)",
                (migration.version, migration.description),
            )
            connection.commit()
        except sqlite3.Error as exc:
            connection.rollback()
            raise DatabaseError(f"Migration {migration.name} failed: {exc}") from exc
        newly_applied.append(migration.version)
    return newly_applied


class SQLiteExpenseStore(ExpenseStore):
    """SQLite-backed store keeping each record as a JSON payload.

    The payload is the source of truth. The ``date``, ``merchant_key``,
    ``amount`` and ``currency`` columns mirror it for inspection with plain SQL.

    A batch runs inside ``BEGIN IMMEDIATE``, which also shuts out writers in
    other processes holding their own handle on the same file.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        if str(path) != ":memory:":
            self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            # Batches may be opened and committed from worker threads.
            self._connection = sqlite3.connect(
                str(path), timeout=BUSY_TIMEOUT_SECONDS, check_same_thread=False
            )
            self._connection.row_factory = sqlite3.Row
            run_migrations(self._connection)
        except sqlite3.Error as exc:
            raise DatabaseError(f"Unable to open expense store at {path}: {exc}") from exc
        self._closed = False

    @property
    def connection(self) -> sqlite3.Connection:
        if self._closed:
            raise DatabaseError("Expense store is closed")
        return self._connection

    def begin_batch(self) -> None:
        super().begin_batch()
        try:
            self.connection.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            super().end_batch()
            raise DatabaseError(f"Unable to lock expense store at {self.path}: {exc}") from exc
        except DatabaseError:
            super().end_batch()
            raise

    def end_batch(self) -> None:
        # Records inserted before a failure or cancellation are kept.
        try:
            self.connection.commit()
        except sqlite3.Error as exc:
            raise DatabaseError(f"Failed to commit expenses: {exc}") from exc
        finally:
            super().end_batch()

    def all(self) -> list[ExpenseRecord]:
        rows = self.connection.execute("SELECT payload FROM expenses ORDER BY seq").fetchall()
        return [_decode_row(row["payload"]) for row in rows]

    def get(self, record_id: str) -> ExpenseRecord | None:
        row = self.connection.execute(
            "SELECT payload FROM expenses WHERE id = ?", (record_id,)
        ).fetchone()
        return _decode_row(row["payload"]) if row else None

    def insert(self, record: ExpenseRecord) -> None:
        payload = json.dumps(record_to_dict(record), ensure_ascii=False, sort_keys=True)
        # A failed statement is undone on its own; the batch stays open.
        try:
            self.connection.execute(
                """
                INSERT INTO expenses (id, seq, date, merchant_key, amount, currency, payload, created_at)
                VALUES (?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM expenses), ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.date.date().isoformat() if record.date else None,
                    merchant_key(record.merchant),
                    str(record.amount) if record.amount is not None else None,
                    record.currency,
                    payload,
                    format_timestamp(record.created_at),
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise DatabaseError(f"Expense '{record.id}' already exists") from exc
        except sqlite3.Error as exc:
            raise DatabaseError(f"Failed to store expense '{record.id}': {exc}") from exc

    def __len__(self) -> int:
        row = self.connection.execute("SELECT COUNT(*) FROM expenses").fetchone()
        return int(row[0])

    def close(self) -> None:
        if not self._closed:
            self._connection.close()
            self._closed = True


def _decode_row(payload: str) -> ExpenseRecord:
    try:
        data = json.loads(payload, parse_float=Decimal)
    except json.JSONDecodeError as exc:
        raise DatabaseError(f"Corrupt expense payload: {exc}") from exc
    return record_from_mapping(data)


def open_store(config: AppConfig) -> SQLiteExpenseStore:
    """Open the SQLite store configured in ``config``."""

    return SQLiteExpenseStore(config.database.path)
