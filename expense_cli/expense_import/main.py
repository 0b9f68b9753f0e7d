"""expense-import CLI entrypoint."""

from __future__ import annotations

import json

import click
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from expense_cli.expense_import.document import load_import_document
from expense_cli.expense_import.merger import ImportMerger, fold_invalid_entries
from expense_cli.expense_import.summary import summarize
from expense_cli.expense_import.validator import RecordValidator
from expense_cli.shared import currency
from expense_cli.shared.cli import CLIContext, common_cli_options, handle_cli_errors
from expense_cli.shared.logging import Logger
from expense_cli.shared.models import ImportResult, ImportSummary, summary_to_dict
from expense_cli.shared.store import ExpenseStore, InMemoryExpenseStore


@click.command(help="Validate, de-duplicate and import expenses from a JSON export document.")
@click.argument("document_path", metavar="DOCUMENT", type=click.Path(path_type=str))
@click.option(
    "--allow-duplicates/--skip-duplicates",
    default=None,
    help="Import records even when they match an existing expense (default from config).",
)
@click.option("--preview", is_flag=True, help="Only summarize the document; touch no store.")
@click.option("--json", "as_json", is_flag=True, help="Print the outcome as JSON on stdout.")
@common_cli_options
@handle_cli_errors
def cli(
    document_path: str,
    allow_duplicates: bool | None,
    preview: bool,
    as_json: bool,
    cli_ctx: CLIContext,
) -> None:
    """Import an expense document into the configured store."""

    logger = cli_ctx.logger
    document = load_import_document(document_path)
    logger.info(f"Loaded {document.entry_count} expense(s) from {document.source}")
    if document.declared_total is not None and document.declared_total != document.entry_count:
        logger.warning(
            f"Document declares {document.declared_total} expense(s) but contains {document.entry_count}"
        )

    if preview:
        summary = summarize(document.records)
        if as_json:
            click.echo(json.dumps(summary_to_dict(summary), indent=2))
        else:
            _render_summary(summary, logger, title="Import preview")
        return

    config = cli_ctx.config
    record_validator = RecordValidator(
        strict_breakdown=config.imports.strict_breakdown,
        settings=config.validation,
    )
    with _store_for(cli_ctx) as store:
        merger = ImportMerger(store, config.imports, logger, validator=record_validator)
        if cli_ctx.dry_run:
            result = fold_invalid_entries(merger.dry_run(document.records, allow_duplicates), document)
            logger.info("[dry-run] No expenses were written.")
        else:
            with Progress(
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                console=logger.log,
                transient=True,
            ) as bar:
                task_id = bar.add_task("Importing expenses", total=1.0)
                result = merger.import_document(
                    document,
                    allow_duplicates,
                    progress=lambda fraction: bar.update(task_id, completed=fraction),
                )

    if as_json:
        click.echo(json.dumps(_result_payload(result), indent=2))
    else:
        _render_result(result, logger)


def _store_for(cli_ctx: CLIContext) -> ExpenseStore:
    # A dry run against a database that does not exist yet compares with nothing.
    if cli_ctx.dry_run and not cli_ctx.db_path.exists():
        return InMemoryExpenseStore()
    return cli_ctx.open_store()


def _result_payload(result: ImportResult) -> dict[str, object]:
    return {
        "importedCount": result.imported_count,
        "duplicateCount": result.duplicate_count,
        "skippedCount": result.skipped_count,
        "errors": list(result.errors),
        "summary": summary_to_dict(result.summary),
    }


def _render_result(result: ImportResult, logger: Logger) -> None:
    label = "Import finished" if result.imported_count else "Nothing imported"
    logger.success(
        f"{label}: {result.imported_count} imported, {result.duplicate_count} duplicate(s), "
        f"{result.skipped_count} skipped"
    )
    for message in result.errors:
        logger.warning(message)
    if result.imported_count:
        _render_summary(result.summary, logger, title="Imported expenses")


def _render_summary(summary: ImportSummary, logger: Logger, *, title: str) -> None:
    table = Table(title=title, show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Expenses", str(summary.total_expenses))
    if len(summary.currencies) == 1:
        (code,) = summary.currencies
        total = currency.format_amount(summary.total_amount, code)
    else:
        total = f"{summary.total_amount:.2f} (mixed currencies)" if summary.currencies else "0.00"
    table.add_row("Total amount", total)
    table.add_row("Categories", ", ".join(sorted(summary.categories)) or "-")
    table.add_row("Currencies", ", ".join(sorted(summary.currencies)) or "-")
    if summary.date_range:
        start, end = summary.date_range
        table.add_row("Date range", f"{start:%Y-%m-%d} – {end:%Y-%m-%d}")
    table.add_row("Item details", "yes" if summary.has_items else "no")
    table.add_row("Financial breakdown", "yes" if summary.has_financial_breakdown else "no")
    logger.output.print(table)


def main() -> None:
    """Entry point for console_scripts."""
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
