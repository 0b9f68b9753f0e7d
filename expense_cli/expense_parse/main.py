"""expense-parse CLI entrypoint."""

from __future__ import annotations

import json
from typing import Any, TextIO

import click

from expense_cli.expense_import.merger import ImportMerger
from expense_cli.expense_import.validator import RecordValidator
from expense_cli.expense_parse.financial import FinancialValidator
from expense_cli.expense_parse.parser import ResponseParser
from expense_cli.expense_parse.promote import promote
from expense_cli.shared.cli import CLIContext, common_cli_options, handle_cli_errors
from expense_cli.shared.models import ExpenseRecord, extraction_to_dict, record_to_dict


@click.command(help="Parse an extraction-service response into a validated expense.")
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.option("--strict", is_flag=True, help="Fail instead of falling back to heuristic recovery.")
@click.option(
    "--promote",
    "promote_record",
    is_flag=True,
    help="Print the expense record built from the validated extraction.",
)
@click.option("--save", is_flag=True, help="Promote the expense and add it to the store.")
@click.option("--compact", is_flag=True, help="Print single-line JSON.")
@common_cli_options
@handle_cli_errors
def cli(
    source: TextIO,
    strict: bool,
    promote_record: bool,
    save: bool,
    compact: bool,
    cli_ctx: CLIContext,
) -> None:
    """Parse, validate and optionally store one extraction response."""

    logger = cli_ctx.logger
    parser = ResponseParser(cli_ctx.config.parser, logger)
    validator = FinancialValidator(cli_ctx.config.validation, logger)

    extraction = parser.parse(source.read(), allow_fallback=not strict)
    logger.debug(f"Parsed with stage '{extraction.parse_stage}'")
    validated = validator.validate(extraction)

    if not (promote_record or save):
        _emit(extraction_to_dict(validated), compact)
        return

    record = promote(validated)
    if save:
        _save(record, cli_ctx)
    _emit(record_to_dict(record), compact)


def _save(record: ExpenseRecord, cli_ctx: CLIContext) -> None:
    logger = cli_ctx.logger
    if cli_ctx.dry_run:
        logger.info(f"[dry-run] Would store expense {record.id} ({record.merchant})")
        return
    record_validator = RecordValidator(
        strict_breakdown=cli_ctx.config.imports.strict_breakdown,
        settings=cli_ctx.config.validation,
    )
    with cli_ctx.open_store() as store:
        merger = ImportMerger(store, cli_ctx.config.imports, logger, validator=record_validator)
        result = merger.import_records([record])
    if result.skipped_count:
        raise click.ClickException("; ".join(result.errors))
    if result.duplicate_count:
        logger.warning(f"{record.merchant} on {record.date:%Y-%m-%d} is already stored; not added")
        return
    logger.success(f"Stored expense {record.id} in {cli_ctx.db_path}")


def _emit(payload: dict[str, Any], compact: bool) -> None:
    if compact:
        click.echo(json.dumps(payload, ensure_ascii=False, separators=(",", ":")))
    else:
        click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def main() -> None:
    """Entry point for console_scripts."""
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
