"""
Command-line interface for splitting card statements into ledger entries.
"""

from decimal import Decimal
from pathlib import Path
from typing import NoReturn, Optional
import json
import logging
import sys

import click
import yaml
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import DEFAULT_CONFIG_PATH, SplitConfig, generate_default_config, load_config
from .extraction.ai_extractor import AnthropicExtractor
from .matching.totals import compute_item_sum
from .models.statement import BatchGroup, StatementLineItem
from .parsers.patterns import StatementPatterns
from .reader import StatementReader
from .service import create_service
from .utils.exceptions import StatementSplitError
from .utils.logging_config import setup_logging

console = Console()


@click.group()
@click.version_option(version=__version__)
def main():
    """Split aggregated card statements into itemized ledger entries."""
    pass


@main.command()
@click.argument("statement_file", type=click.Path(exists=True, path_type=Path))
@click.argument("original_id")
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option("-t", "--tag", default=None, help="Tag for the child entries")
@click.option("--force-ai", is_flag=True, help="Run the AI extractor even when it is not primary")
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Write the preview as JSON")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def preview(
    statement_file: Path,
    original_id: str,
    config: Optional[Path],
    tag: Optional[str],
    force_ai: bool,
    output: Optional[Path],
    verbose: bool,
):
    """
    Parse a statement and compare it with a ledger transaction.

    STATEMENT_FILE: CSV, PDF or text statement
    ORIGINAL_ID: Ledger id of the settlement transaction
    """
    split_config, config_path = _load(config, verbose)

    try:
        service = create_service(split_config, config_path)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Parsing statement...", total=None)
            result = service.preview(
                statement_file.name,
                statement_file.read_bytes(),
                original_id,
                tag=tag,
                force_ai=force_ai,
            )
            progress.update(task, completed=True)

        _display_items(result.items, f"Statement: {statement_file.name}")
        _display_totals(result.totals.original, result.totals.sum, result.totals.diff)
        if result.meta.get("already_extracted"):
            console.print("[yellow]Original is already split; confirm needs --force[/yellow]")

        if output:
            output.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
            console.print(f"\n[green]Preview written: {output}[/green]")

    except StatementSplitError as e:
        _fail(e, verbose)


@main.command()
@click.argument("preview_file", type=click.Path(exists=True, path_type=Path))
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
@click.option("--original-id", default=None, help="Override the original id stored in the preview")
@click.option("-t", "--tag", default=None, help="Tag for the child entries")
@click.option("--proceed-on-mismatch", is_flag=True, help="Write even if the sums differ")
@click.option("--force", is_flag=True, help="Split an original that was already split")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def confirm(
    preview_file: Path,
    config: Optional[Path],
    original_id: Optional[str],
    tag: Optional[str],
    proceed_on_mismatch: bool,
    force: bool,
    verbose: bool,
):
    """
    Write the items of a saved preview as ledger entries.

    PREVIEW_FILE: JSON written by `preview --output`
    """
    split_config, config_path = _load(config, verbose)

    try:
        data = json.loads(preview_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Error reading preview file: {e}[/red]")
        sys.exit(1)

    meta = data.get("meta", {})
    statement_total = meta.get("statement_total")

    try:
        service = create_service(split_config, config_path)
        result = service.confirm(
            original_id or meta.get("original", {}).get("id"),
            data.get("items", []),
            tag=tag or meta.get("tag"),
            proceed_on_mismatch=proceed_on_mismatch,
            force=force,
            statement_total=Decimal(statement_total) if statement_total else None,
        )
    except StatementSplitError as e:
        _fail(e, verbose)

    console.print(
        f"[green]Created {result.created} entries for {result.original_id} "
        f"(diff {result.diff})[/green]"
    )
    for merchant in result.merchants:
        state = "created" if merchant.created else "found"
        console.print(f"  {merchant.type} account '{merchant.name}' {state}")
    if result.correction_id:
        console.print(f"  Correction entry: {result.correction_id}")
    for error in result.errors:
        console.print(f"[red]  {error}[/red]")


@main.command("batch-preview")
@click.argument("statement_files", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
@click.option("--candidate", "candidates", multiple=True, help="Candidate original id (repeatable)")
@click.option("--window", type=int, default=None, help="Override date window in days")
@click.option("--grace", type=int, default=None, help="Override grace before the last item date")
@click.option("-t", "--tag", default=None, help="Tag for the child entries")
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Write the groups as JSON")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def batch_preview(
    statement_files: tuple[Path, ...],
    config: Optional[Path],
    candidates: tuple[str, ...],
    window: Optional[int],
    grace: Optional[int],
    tag: Optional[str],
    output: Optional[Path],
    verbose: bool,
):
    """
    Match several statements to settlement transactions.

    STATEMENT_FILES: CSV, PDF or text statements
    """
    split_config, config_path = _load(config, verbose)

    try:
        service = create_service(split_config, config_path)
        groups = service.batch_preview(
            [(p.name, p.read_bytes()) for p in statement_files],
            candidate_ids=list(candidates) or None,
            date_window_days=window,
            grace_before_days=grace,
            tag=tag,
        )
    except StatementSplitError as e:
        _fail(e, verbose)

    _display_groups(groups)

    if output:
        output.write_text(json.dumps([g.to_dict() for g in groups], indent=2), encoding="utf-8")
        console.print(f"\n[green]Batch preview written: {output}[/green]")


@main.command("batch-confirm")
@click.argument("statement_files", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
@click.option("--candidate", "candidates", multiple=True, help="Candidate original id (repeatable)")
@click.option("--window", type=int, default=None, help="Override date window in days")
@click.option("--grace", type=int, default=None, help="Override grace before the last item date")
@click.option("-t", "--tag", default=None, help="Tag for the child entries")
@click.option("--proceed-on-mismatch", is_flag=True, help="Also confirm matched groups with a diff")
@click.option("--force", is_flag=True, help="Split originals that were already split")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def batch_confirm(
    statement_files: tuple[Path, ...],
    config: Optional[Path],
    candidates: tuple[str, ...],
    window: Optional[int],
    grace: Optional[int],
    tag: Optional[str],
    proceed_on_mismatch: bool,
    force: bool,
    verbose: bool,
):
    """
    Match several statements and confirm the matched groups.

    Only balanced groups are confirmed unless --proceed-on-mismatch is set.
    """
    split_config, config_path = _load(config, verbose)

    try:
        service = create_service(split_config, config_path)
        groups = service.batch_preview(
            [(p.name, p.read_bytes()) for p in statement_files],
            candidate_ids=list(candidates) or None,
            date_window_days=window,
            grace_before_days=grace,
            tag=tag,
        )
        _display_groups(groups)

        chosen = [
            g for g in groups if g.selectable or (proceed_on_mismatch and g.matched is not None)
        ]
        if not chosen:
            console.print("[yellow]No groups to confirm[/yellow]")
            return

        result = service.batch_confirm(
            chosen, proceed_on_mismatch=proceed_on_mismatch, tag=tag, force=force
        )
    except StatementSplitError as e:
        _fail(e, verbose)

    console.print(
        f"\n[green]Created {result.created} entries across {len(result.results)} statements[/green]"
    )
    for error in result.errors:
        console.print(f"[red]  {error.get('file_name')}: {error.get('error')}[/red]")


@main.command()
@click.argument("statement_file", type=click.Path(exists=True, path_type=Path))
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
@click.option("--no-ai", is_flag=True, help="Deterministic parsing only")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def parse(statement_file: Path, config: Optional[Path], no_ai: bool, verbose: bool):
    """
    Parse a statement and display its items without touching the ledger.

    STATEMENT_FILE: CSV, PDF or text statement
    """
    split_config, _ = _load(config, verbose)
    extractor = None
    if split_config.ai.api_key and not no_ai:
        extractor = AnthropicExtractor(split_config.ai)

    try:
        reader = StatementReader(split_config, extractor)
        statement = reader.read(statement_file.name, statement_file.read_bytes())
    except StatementSplitError as e:
        _fail(e, verbose)

    _display_items(statement.items, f"Statement: {statement_file.name} ({statement.source})")

    patterns = StatementPatterns(split_config.patterns, split_config.extraction.account_currency)
    console.print(f"\nItem sum: {compute_item_sum(statement.items, patterns)}")
    if statement.statement_total is not None:
        console.print(f"Statement total: {statement.statement_total}")


@main.group("config")
def config_group():
    """Show or change extraction settings."""
    pass


@config_group.command("show")
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
def config_show(config: Optional[Path]):
    """Display the extraction settings."""
    split_config, _ = _load(config, False)

    table = Table(title="Extraction Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in split_config.extraction.model_dump().items():
        table.add_row(key, json.dumps(value) if isinstance(value, dict) else str(value))
    console.print(table)


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.option("-c", "--config", type=click.Path(path_type=Path))
def config_set(key: str, value: str, config: Optional[Path]):
    """
    Change one extraction setting and persist it.

    VALUE is read as YAML, so `true`, `0.05` and `{description: Text}` work.
    """
    split_config, config_path = _load(config if config and config.exists() else None, False)

    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError as e:
        console.print(f"[red]Invalid value: {e}[/red]")
        sys.exit(1)

    try:
        service = create_service(split_config, config or config_path)
        updated = service.update_config({key: parsed})
    except StatementSplitError as e:
        _fail(e, False)

    console.print(f"[green]{key} = {updated[key]}[/green]")


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=DEFAULT_CONFIG_PATH
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _load(config: Optional[Path], verbose: bool) -> tuple[SplitConfig, Path]:
    """Set up logging and load the given or default configuration file."""
    config_path = config or DEFAULT_CONFIG_PATH

    try:
        split_config = load_config(config_path)
    except StatementSplitError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    level = logging.DEBUG if verbose else getattr(logging, split_config.logging.level.upper(), logging.INFO)
    log_file = Path(split_config.logging.file) if split_config.logging.file else None
    setup_logging(level, log_file=log_file, log_format=split_config.logging.format)
    return split_config, config_path


def _fail(error: Exception, verbose: bool) -> NoReturn:
    console.print(f"[red]Error: {error}[/red]")
    if verbose:
        console.print_exception()
    sys.exit(1)


def _display_items(items: list[StatementLineItem], title: str) -> None:
    """Display statement items in console."""
    table = Table(title=title)
    table.add_column("Date")
    table.add_column("Description")
    table.add_column("Payee")
    table.add_column("Amount", justify="right")
    table.add_column("Dir")

    for item in items[:50]:  # Show first 50
        table.add_row(
            str(item.date) if item.date else "-",
            item.description[:40] + "..." if len(item.description) > 40 else item.description,
            item.payee[:30],
            f"{item.amount:,.2f}",
            item.direction.value,
        )

    console.print(table)

    if len(items) > 50:
        console.print(f"\n... and {len(items) - 50} more items")


def _display_totals(original: Decimal, item_sum: Decimal, diff: Decimal) -> None:
    style = "green" if abs(diff) < Decimal("0.01") else "red"
    console.print(f"\nOriginal: {original}  Sum: {item_sum}  [{style}]Diff: {diff}[/{style}]")


def _display_groups(groups: list[BatchGroup]) -> None:
    """Display batch matching results in console."""
    table = Table(title="Batch Matching")
    table.add_column("File", style="cyan")
    table.add_column("Items", justify="right")
    table.add_column("Sum", justify="right")
    table.add_column("Original")
    table.add_column("Diff", justify="right")
    table.add_column("Status")

    for group in groups:
        if group.error:
            status = f"[red]{group.error}[/red]"
        elif group.matched is None:
            status = "[yellow]unmatched[/yellow]"
        elif group.selectable:
            status = "[green]ready[/green]"
        else:
            status = "[yellow]diff[/yellow]"

        table.add_row(
            group.file_name,
            str(len(group.items)),
            f"{group.sum:,.2f}",
            group.matched.original_id if group.matched else "-",
            str(group.matched.diff) if group.matched else "-",
            status,
        )

    console.print(table)


if __name__ == "__main__":
    main()
