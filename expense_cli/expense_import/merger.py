"""Duplicate detection and merging of candidate records into a store."""

from __future__ import annotations

import asyncio
import dataclasses
import uuid
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from typing import TypeVar

from expense_cli.expense_import.document import ImportDocument
from expense_cli.expense_import.summary import summarize
from expense_cli.expense_import.validator import RecordValidator
from expense_cli.shared.config import ImportSettings, default_config
from expense_cli.shared.logging import Logger, get_logger
from expense_cli.shared.merchants import merchant_key
from expense_cli.shared.models import ExpenseRecord, ImportResult, ImportSummary
from expense_cli.shared.store import ExpenseStore

_T = TypeVar("_T")

ProgressCallback = Callable[[float], None]

DEFAULT_AMOUNT_EPSILON = Decimal("0.01")


class DuplicateDetector:
    """Index of known records answering "is this candidate already here?".

    Similarity means same calendar date (UTC), the same merchant after
    trimming and case-folding, and amounts closer than ``amount_epsilon``.
    """

    def __init__(
        self,
        records: Iterable[ExpenseRecord] = (),
        *,
        amount_epsilon: Decimal = DEFAULT_AMOUNT_EPSILON,
    ) -> None:
        self.amount_epsilon = amount_epsilon
        self._ids: set[str] = set()
        self._amounts: dict[tuple[date, str], list[Decimal]] = {}
        for record in records:
            self.add(record)

    @staticmethod
    def _key(record: ExpenseRecord) -> tuple[date, str] | None:
        if record.date is None:
            return None
        return record.date.date(), merchant_key(record.merchant)

    def add(self, record: ExpenseRecord) -> None:
        self._ids.add(record.id)
        key = self._key(record)
        if key is not None and record.amount is not None:
            self._amounts.setdefault(key, []).append(record.amount)

    def has_id(self, record_id: str) -> bool:
        return record_id in self._ids

    def is_similar(self, record: ExpenseRecord) -> bool:
        key = self._key(record)
        if key is None or record.amount is None:
            return False
        return any(
            abs(amount - record.amount) < self.amount_epsilon for amount in self._amounts.get(key, ())
        )

    def is_duplicate(self, record: ExpenseRecord) -> bool:
        return self.has_id(record.id) or self.is_similar(record)


class _MergeRun:
    """Per-candidate merge state shared by the sync and async loops."""

    def __init__(
        self,
        existing: Iterable[ExpenseRecord],
        *,
        allow_duplicates: bool,
        validator: RecordValidator,
        amount_epsilon: Decimal,
        logger: Logger,
    ) -> None:
        self.allow_duplicates = allow_duplicates
        self.validator = validator
        self.logger = logger
        self.detector = DuplicateDetector(existing, amount_epsilon=amount_epsilon)
        self.result = ImportResult()

    def process(self, position: int, candidate: ExpenseRecord) -> ExpenseRecord | None:
        """Classify one candidate; returns the record to commit, if any."""

        violations = self.validator.validate(candidate)
        if violations:
            self.result.skipped_count += 1
            label = candidate.merchant.strip() or "no merchant"
            self.result.errors.extend(f"Expense {position} ({label}): {message}" for message in violations)
            self.logger.debug(f"Skipped expense {position}: {'; '.join(violations)}")
            return None

        record = candidate
        if not self.allow_duplicates:
            if self.detector.is_duplicate(candidate):
                self.result.duplicate_count += 1
                self.logger.debug(f"Expense {position} ({candidate.merchant}) is a duplicate")
                return None
        elif self.detector.has_id(candidate.id):
            record = dataclasses.replace(candidate, id=str(uuid.uuid4()))
            self.logger.debug(f"Expense {position} reuses id {candidate.id}; assigned {record.id}")

        self.detector.add(record)
        self.result.accepted.append(record)
        self.result.imported_count += 1
        return record

    def finish(self) -> ImportResult:
        self.result.summary = summarize(self.result.accepted)
        return self.result


def _report(progress: ProgressCallback | None, done: int, total: int) -> None:
    if progress is not None:
        progress(done / total if total else 1.0)


def merge(
    candidates: Sequence[ExpenseRecord],
    existing: Iterable[ExpenseRecord],
    allow_duplicates: bool = False,
    *,
    validator: RecordValidator | None = None,
    amount_epsilon: Decimal = DEFAULT_AMOUNT_EPSILON,
    progress: ProgressCallback | None = None,
    on_accept: Callable[[ExpenseRecord], None] | None = None,
    logger: Logger | None = None,
) -> ImportResult:
    """Merge ``candidates`` into ``existing`` in order.

    Each candidate is validated, then checked against existing records and
    earlier accepted candidates. ``progress`` receives ``(i + 1) / n`` after
    every candidate (a single ``1.0`` for an empty batch). ``on_accept`` is
    called with every accepted record as soon as it is accepted.
    """

    run = _MergeRun(
        existing,
        allow_duplicates=allow_duplicates,
        validator=validator or RecordValidator(),
        amount_epsilon=amount_epsilon,
        logger=logger or get_logger(),
    )
    total = len(candidates)
    for index, candidate in enumerate(candidates):
        accepted = run.process(index + 1, candidate)
        if accepted is not None and on_accept is not None:
            on_accept(accepted)
        _report(progress, index + 1, total)
    if total == 0:
        _report(progress, 0, 0)
    return run.finish()


def fold_invalid_entries(result: ImportResult, document: ImportDocument) -> ImportResult:
    """Count unreadable document entries as skipped records."""

    result.skipped_count += len(document.invalid_entries)
    result.errors.extend(entry.message for entry in document.invalid_entries)
    return result


class ImportMerger:
    """Merge candidate records into an injected store, one batch per import."""

    def __init__(
        self,
        store: ExpenseStore,
        settings: ImportSettings | None = None,
        logger: Logger | None = None,
        *,
        validator: RecordValidator | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or default_config().imports
        self.logger = logger or get_logger()
        self.validator = validator or RecordValidator(strict_breakdown=self.settings.strict_breakdown)

    def _allow(self, allow_duplicates: bool | None) -> bool:
        return self.settings.allow_duplicates if allow_duplicates is None else allow_duplicates

    def _run(self, existing: Iterable[ExpenseRecord], allow_duplicates: bool) -> _MergeRun:
        return _MergeRun(
            existing,
            allow_duplicates=allow_duplicates,
            validator=self.validator,
            amount_epsilon=self.settings.duplicate_amount_epsilon,
            logger=self.logger,
        )

    def import_records(
        self,
        candidates: Sequence[ExpenseRecord],
        allow_duplicates: bool | None = None,
        progress: ProgressCallback | None = None,
    ) -> ImportResult:
        """Merge and commit ``candidates`` as one batch.

        Existing records are read after the batch opens, so a concurrent
        import either finishes first or waits for this one.
        """

        with self.store.batch() as store:
            result = merge(
                candidates,
                store.all(),
                self._allow(allow_duplicates),
                validator=self.validator,
                amount_epsilon=self.settings.duplicate_amount_epsilon,
                progress=progress,
                on_accept=store.insert,
                logger=self.logger,
            )
        self._log_result(result)
        return result

    async def import_records_async(
        self,
        candidates: Sequence[ExpenseRecord],
        allow_duplicates: bool | None = None,
        progress: ProgressCallback | None = None,
    ) -> ImportResult:
        """Async variant that yields to the event loop between candidates.

        Store calls run on a single worker thread in submission order, under
        the same batch as ``import_records``. Cancelling the task stops the
        import before the next candidate; records inserted up to that point
        are committed.
        """

        loop = asyncio.get_running_loop()
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="expense-import") as writer:

            def in_writer(func: Callable[..., _T], *args: object) -> asyncio.Future[_T]:
                return loop.run_in_executor(writer, func, *args)

            opening = in_writer(self.store.begin_batch)
            try:
                await asyncio.shield(opening)
            except asyncio.CancelledError:
                # The worker may still be waiting for the batch; close it once it opens.
                await asyncio.wait([opening])
                if opening.exception() is None:
                    await in_writer(self.store.end_batch)
                raise

            try:
                run = self._run(await in_writer(self.store.all), self._allow(allow_duplicates))
                total = len(candidates)
                for index, candidate in enumerate(candidates):
                    await asyncio.sleep(0)
                    accepted = run.process(index + 1, candidate)
                    if accepted is not None:
                        await in_writer(self.store.insert, accepted)
                    _report(progress, index + 1, total)
                if total == 0:
                    _report(progress, 0, 0)
                result = run.finish()
            finally:
                await asyncio.shield(in_writer(self.store.end_batch))
        self._log_result(result)
        return result

    def import_document(
        self,
        document: ImportDocument,
        allow_duplicates: bool | None = None,
        progress: ProgressCallback | None = None,
    ) -> ImportResult:
        result = self.import_records(document.records, allow_duplicates, progress)
        return fold_invalid_entries(result, document)

    def dry_run(self, candidates: Sequence[ExpenseRecord], allow_duplicates: bool | None = None) -> ImportResult:
        """Outcome of an import without writing anything."""

        return merge(
            candidates,
            self.store.all(),
            self._allow(allow_duplicates),
            validator=self.validator,
            amount_epsilon=self.settings.duplicate_amount_epsilon,
            logger=self.logger,
        )

    def preview(self, candidates: Sequence[ExpenseRecord]) -> ImportSummary:
        """Summary of the candidates themselves; reads nothing and writes nothing."""

        return summarize(candidates)

    def _log_result(self, result: ImportResult) -> None:
        self.logger.info(
            f"Imported {result.imported_count}, duplicates {result.duplicate_count}, "
            f"skipped {result.skipped_count}"
        )
