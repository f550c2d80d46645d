#!/usr/bin/env python3
"""
CLI interface for the statement ledger core.
"""
import hashlib
import json
import traceback
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .core.catalog import get_warning_entry
from .core.detectors import detect_template
from .core.inbox import build_inbox
from .core.ledger import dedupe_transactions
from .core.registry import REGISTRY, UNKNOWN_TEMPLATE
from .core.runner import load_text, parse_statement
from .core.segment import segment_transaction_section
from .core.store import InboxStore
from .models.schema import InboxKind, ParsedStatement
from .tools.debug_overlay import DebugOverlay, create_debug_overlay

app = typer.Typer(help="Bank statement text parser and review inbox")
console = Console()

STATE_DIR_OPTION = typer.Option(
    Path(".ledgercore"), "--state-dir", envvar="LEDGERCORE_STATE_DIR",
    help="Directory holding overrides.json and review_state.json",
)


def _read_text_or_exit(text_path: Path) -> str:
    text = load_text(text_path)
    if text is None:
        console.print(f"[red]Error: text file not found: {text_path}[/red]")
        raise typer.Exit(1)
    return text


def _fail(message: str, verbose: bool = False):
    console.print(f"[red]{message}[/red]", markup=True)
    if verbose:
        console.print(traceback.format_exc(), markup=False)
    raise typer.Exit(1)


@app.command()
def parse(
    text_path: Path = typer.Argument(..., help="Path to extracted statement text"),
    output: Optional[Path] = typer.Option(None, "--out", "-o", help="Output JSON file path"),
    template: Optional[str] = typer.Option(None, "--template", "-t", help="Template ID to use"),
    file_id: Optional[str] = typer.Option(None, "--file-id", help="File identifier (defaults to the file name)"),
    account_id: Optional[str] = typer.Option(None, "--account-id", help="Account id hint"),
    debug_overlay: Optional[Path] = typer.Option(None, "--debug-overlay", help="Write a line overlay to this file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Parse statement text into structured JSON."""
    text = load_text(text_path)
    if text is None:
        console.print(f"[yellow]No statement text at {text_path}; writing an empty statement[/yellow]")

    file_hash = hashlib.sha1(text.encode('utf-8')).hexdigest() if text is not None else None

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Parsing statement...", total=None)
            result = parse_statement(
                text,
                file_id=file_id or text_path.name,
                file_hash=file_hash,
                template_id=template,
                account_id=account_id,
                verbose=verbose,
            )

            if debug_overlay and result.template_id != UNKNOWN_TEMPLATE:
                progress.update(task, description="Creating debug overlay...")
                create_debug_overlay(text, result.template_id, debug_overlay)
    except ValueError as e:
        _fail(f"Error parsing statement: {e}", verbose)

    payload = result.model_dump_json(indent=2)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(payload, encoding='utf-8')
        console.print(f"[green]✓ Parsed {len(result.transactions)} transactions. Output written to: {output}[/green]")
    else:
        typer.echo(payload)

    if debug_overlay and result.template_id != UNKNOWN_TEMPLATE:
        console.print(f"[blue]Debug overlay created in: {debug_overlay}[/blue]")

    for reason in result.quality.needs_review_reasons:
        entry = get_warning_entry(reason)
        console.print(f"[yellow]Needs review: {entry.title} ({reason})[/yellow]")


@app.command()
def detect(
    text_path: Path = typer.Argument(..., help="Path to extracted statement text"),
):
    """Detect which template matches a statement."""
    text = _read_text_or_exit(text_path)
    template_id = detect_template(text)
    if template_id == UNKNOWN_TEMPLATE:
        console.print("[red]No matching template found[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Detected template: {template_id}[/green]")


@app.command()
def templates():
    """List registered templates in detection order."""
    table = Table(title="Templates")
    table.add_column("ID")
    table.add_column("Bank")
    table.add_column("Strategy")
    table.add_column("Year")
    for template in REGISTRY:
        table.add_row(template.id, template.bank, template.parse.amount_balance_strategy.value,
                      template.parse.year_inference.value)
    console.print(table)


@app.command()
def segment(
    text_path: Path = typer.Argument(..., help="Path to extracted statement text"),
    template: Optional[str] = typer.Option(None, "--template", "-t", help="Template ID to use"),
):
    """Print the transaction section of a statement."""
    text = _read_text_or_exit(text_path)
    template_id = template or detect_template(text)
    if template_id == UNKNOWN_TEMPLATE:
        _fail("Error: could not detect template for this statement")
    try:
        config = REGISTRY.get(template_id)
    except ValueError as e:
        _fail(f"Error: {e}")

    result = segment_transaction_section(text, config)
    info = result.debug
    console.print(
        f"[blue]header_found={info.header_found} start_line={info.start_line} "
        f"end_line={info.end_line} removed={info.removed_lines} stop={info.stop_reason}[/blue]"
    )
    typer.echo(result.section_text)


@app.command()
def debug(
    text_path: Path = typer.Argument(..., help="Path to extracted statement text"),
    template: Optional[str] = typer.Option(None, "--template", "-t", help="Template ID to use"),
):
    """Show how each line was segmented and parsed."""
    text = _read_text_or_exit(text_path)
    try:
        overlay = DebugOverlay(text, template)
    except ValueError as e:
        _fail(f"Error: {e}")
    overlay.render(console)


@app.command()
def inbox(
    parsed_paths: List[Path] = typer.Argument(..., help="Parsed statement JSON files"),
    state_dir: Path = STATE_DIR_OPTION,
    as_json: bool = typer.Option(False, "--json", help="Print the inbox as JSON"),
    dedupe: bool = typer.Option(True, "--dedupe/--no-dedupe", help="Drop duplicate transactions across files"),
):
    """Show review inbox items for parsed statements."""
    statements = []
    for path in parsed_paths:
        try:
            statements.append(ParsedStatement.model_validate_json(path.read_text(encoding='utf-8')))
        except (OSError, ValueError) as e:
            _fail(f"Error reading {path}: {e}")

    transactions = [tx for statement in statements for tx in statement.transactions]
    if dedupe:
        transactions, duplicates = dedupe_transactions(transactions)
        if duplicates:
            console.print(f"[blue]Skipped {len(duplicates)} duplicate transactions[/blue]")

    store = InboxStore(state_dir)
    result = build_inbox(transactions, statements, store.get_review_state(), store.get_overrides())

    if as_json:
        typer.echo(result.model_dump_json(indent=2))
        return

    table = Table(title="Review inbox")
    table.add_column("ID")
    table.add_column("Kind")
    table.add_column("Severity")
    table.add_column("Date")
    table.add_column("Summary")
    for item in result.items:
        table.add_row(item.id, item.kind.value, item.severity, item.created_at, item.summary)
    console.print(table)
    console.print(
        f"all={result.totals.all} unresolved={result.totals.unresolved} "
        f"resolved={result.totals.resolved} suppressed_by_rule={result.suppressed_by_rule}"
    )


@app.command()
def resolve(
    item_id: str = typer.Argument(..., help="Inbox item id"),
    note: Optional[str] = typer.Option(None, "--note", help="Resolution note"),
    reopen: bool = typer.Option(False, "--reopen", help="Mark the item unresolved again"),
    state_dir: Path = STATE_DIR_OPTION,
):
    """Mark an inbox item resolved."""
    store = InboxStore(state_dir)
    try:
        if reopen:
            store.reopen_item(item_id)
            console.print(f"[green]Reopened {item_id}[/green]")
        else:
            store.resolve_item(item_id, note)
            console.print(f"[green]Resolved {item_id}[/green]")
    except (OSError, ValueError) as e:
        _fail(f"Error updating review state: {e}")


@app.command("add-rule")
def add_rule(
    kind: InboxKind = typer.Argument(..., help="Inbox item kind"),
    key: str = typer.Argument(..., help="Rule key (merchant, transfer signature or parse rule key)"),
    item_id: Optional[str] = typer.Option(None, "--item-id", help="Also resolve this inbox item"),
    note: Optional[str] = typer.Option(None, "--note", help="Rule note"),
    state_dir: Path = STATE_DIR_OPTION,
):
    """Add a suppression rule for an inbox kind."""
    store = InboxStore(state_dir)
    try:
        overrides = store.add_rule(kind, key, item_id=item_id, note=note)
    except (OSError, ValueError) as e:
        _fail(f"Error updating overrides: {e}")

    counts = {
        "merchant": len(overrides.merchant_rules),
        "transfer": len(overrides.transfer_rules),
        "parse": len(overrides.parse_rules),
    }
    console.print(f"[green]Added {kind.value} rule: {key}[/green]")
    console.print(json.dumps(counts), markup=False)


if __name__ == "__main__":
    app()
