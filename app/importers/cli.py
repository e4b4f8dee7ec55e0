"""Typer CLI for code lookups, location scans and reference data imports."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from app.codes.adapters.persistence import build_reference_store
from app.codes.master import build_master_loader
from app.codes.normalizer import extract_code_and_modifier, is_valid_code_format, normalize_code
from app.codes.reverse_index import LocalLexicalIndex
from app.codes.reverse_search import ReverseCodeSearch
from app.common.exceptions import ImportParseError
from app.importers.parsers import (
    parse_dmepos_rows,
    parse_gpci_rows,
    parse_mpfs_rows,
    parse_opps_rows,
    parse_zip_locality_rows,
)
from app.importers.sheets import read_sheet_rows
from app.importers.writer import ReferenceImporter
from app.location.prescan import LocationInferencer, extract_text_from_filename
from billing_schemas.codes import MatchCandidate
from billing_schemas.reference import ImportReport

app = typer.Typer(help="Resolve billing codes, scan for locations and import CMS reference data.")
import_app = typer.Typer(help="Import a CMS reference spreadsheet into the reference store.")
app.add_typer(import_app, name="import")
console = Console()


@app.command()
def normalize(value: str) -> None:
    """Normalize VALUE and split off any modifier."""
    normalized = normalize_code(value)
    split = extract_code_and_modifier(value)
    valid = is_valid_code_format(normalized)
    style = "green" if valid else "red"
    console.print(f"[{style}]{normalized or '(empty)'}[/{style}]  valid={valid}")
    if split.modifier:
        console.print(f"code={split.code} modifier={split.modifier}")


@app.command()
def search(
    text: str,
    max_results: int = typer.Option(5, "--max", "-n", help="Maximum candidates."),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output."),
) -> None:
    """Search the local master code list for TEXT."""

    async def _run() -> list[MatchCandidate]:
        index = LocalLexicalIndex(build_master_loader())
        if not await index.initialize():
            raise typer.Exit(code=1)
        return index.search(text, max_results)

    candidates = asyncio.run(_run())
    if json_output:
        typer.echo(json.dumps([c.model_dump() for c in candidates], indent=2))
        return
    _print_candidates(candidates, title=f"Master list matches for {text!r}")


@app.command()
def resolve(
    text: str,
    opps: bool = typer.Option(False, "--opps", help="Also search OPPS Addendum B."),
    dmepos: bool = typer.Option(False, "--dmepos", help="Also search the DMEPOS fee schedule."),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output."),
) -> None:
    """Resolve a free-text procedure description to candidate codes."""

    async def _run():
        store = build_reference_store()
        index = LocalLexicalIndex(build_master_loader())
        await index.initialize()
        return await ReverseCodeSearch(store, index).resolve(text, include_opps=opps, include_dmepos=dmepos)

    result = asyncio.run(_run())
    if json_output:
        typer.echo(result.model_dump_json(indent=2))
        return

    if not result.is_valid_query:
        console.print(Panel(result.query_validation_reason or "Invalid query", title="Not searched", style="yellow"))
        raise typer.Exit(code=2)

    _print_candidates(result.candidates, title=f"Candidates ({result.search_method})")
    if result.primary_candidate:
        primary = result.primary_candidate
        console.print(f"Primary: [cyan]{primary.code}[/cyan] ({primary.confidence})")


@app.command()
def scan(
    path: Path = typer.Argument(..., help="Text file to scan (its name is used if it is empty)"),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output."),
) -> None:
    """Infer a ZIP/state pair from a text file."""
    text = path.read_text(encoding="utf-8", errors="replace") if path.is_file() else ""
    if not text.strip():
        text = extract_text_from_filename(path.name)

    result = asyncio.run(LocationInferencer(build_reference_store()).scan(text))
    if json_output:
        typer.echo(result.model_dump_json(indent=2))
        return

    table = Table(title="Location", show_lines=False)
    table.add_column("ZIP", style="cyan")
    table.add_column("State")
    table.add_column("Source")
    table.add_column("Confidence")
    table.add_row(result.zip5 or "-", result.state_abbr or "-", result.state_source or "-", result.confidence)
    console.print(table)
    if result.evidence:
        console.print(Panel(result.evidence, title="Evidence"))
    if result.error:
        console.print(f"[yellow]{result.error}[/yellow]")


@app.command()
def status(json_output: bool = typer.Option(False, "--json", help="Emit JSON output.")) -> None:
    """Show how many rows each reference table holds."""
    statuses = asyncio.run(ReferenceImporter(build_reference_store()).dataset_status())
    if json_output:
        typer.echo(json.dumps([s.model_dump() for s in statuses], indent=2))
        return

    table = Table(title="Reference datasets", show_lines=False)
    table.add_column("Dataset", style="cyan")
    table.add_column("Table")
    table.add_column("Rows", justify="right")
    for entry in statuses:
        rows = f"[red]{entry.error}[/red]" if entry.error else str(entry.row_count)
        table.add_row(entry.dataset, entry.table, rows)
    console.print(table)


def _parse_rows(dataset: str, rows: list[list], year: int | None) -> list:
    if dataset == "mpfs":
        return parse_mpfs_rows(rows)
    if dataset == "gpci":
        return parse_gpci_rows(rows)
    if dataset == "opps":
        return parse_opps_rows(rows, year=year, strict=True)
    if dataset == "dmepos":
        return parse_dmepos_rows(rows, year=year, strict=True)
    return parse_zip_locality_rows(rows, strict=True)


def _run_import(dataset: str, path: Path, sheet: str, year: int | None = None) -> ImportReport:
    sheet_ref: int | str = int(sheet) if sheet.isdigit() else sheet
    records = _parse_rows(dataset, read_sheet_rows(path, sheet=sheet_ref), year)

    console.print(f"Parsed {len(records)} {dataset} records from {path.name}")
    importer = ReferenceImporter(build_reference_store())
    writers = {
        "mpfs": importer.import_mpfs,
        "gpci": importer.import_gpci,
        "zip": importer.import_zip_locality,
        "opps": importer.import_opps,
        "dmepos": importer.import_dmepos,
    }

    with Progress(
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(f"Importing {dataset}", total=len(records) or None)

        def _on_progress(imported: int, total: int) -> None:
            progress.update(task, completed=imported, total=total)

        return asyncio.run(writers[dataset](records, _on_progress))


def _import_command(dataset: str, path: Path, sheet: str, year: int | None = None) -> None:
    try:
        report = _run_import(dataset, path, sheet, year)
    except ImportParseError as exc:
        typer.secho(f"Could not parse {path.name}: {exc}", err=True)
        raise typer.Exit(code=1)

    summary = f"imported {report.imported}/{report.total} rows in {report.batches_written} batches"
    if report.duplicates_skipped:
        summary += f", skipped {report.duplicates_skipped} duplicates"
    if report.success:
        console.print(f"[green]{dataset}: {summary}[/green]")
        return

    console.print(Panel(f"{summary}\n{report.error}", title=f"{dataset} import failed", style="red"))
    raise typer.Exit(code=1)


@import_app.command("mpfs")
def import_mpfs(
    path: Path = typer.Argument(..., exists=True, readable=True, help="MPFS spreadsheet or CSV"),
    sheet: str = typer.Option("0", "--sheet", help="Sheet index or name."),
) -> None:
    """Import physician fee schedule rows."""
    _import_command("mpfs", path, sheet)


@import_app.command("gpci")
def import_gpci(
    path: Path = typer.Argument(..., exists=True, readable=True, help="GPCI spreadsheet or CSV"),
    sheet: str = typer.Option("0", "--sheet", help="Sheet index or name."),
) -> None:
    """Import GPCI locality rows."""
    _import_command("gpci", path, sheet)


@import_app.command("zip")
def import_zip(
    path: Path = typer.Argument(..., exists=True, readable=True, help="CMS ZIP5 crosswalk spreadsheet or CSV"),
    sheet: str = typer.Option("0", "--sheet", help="Sheet index or name."),
) -> None:
    """Import the ZIP-to-locality crosswalk."""
    _import_command("zip", path, sheet)


@import_app.command("opps")
def import_opps(
    path: Path = typer.Argument(..., exists=True, readable=True, help="OPPS Addendum B spreadsheet or CSV"),
    sheet: str = typer.Option("0", "--sheet", help="Sheet index or name."),
    year: Optional[int] = typer.Option(None, "--year", help="Payment year (defaults to IMPORT_OPPS_YEAR)."),
) -> None:
    """Import OPPS Addendum B payment rows."""
    _import_command("opps", path, sheet, year)


@import_app.command("dmepos")
def import_dmepos(
    path: Path = typer.Argument(..., exists=True, readable=True, help="DMEPOS fee schedule spreadsheet or CSV"),
    sheet: str = typer.Option("0", "--sheet", help="Sheet index or name."),
    year: Optional[int] = typer.Option(None, "--year", help="Fee schedule year (defaults to IMPORT_DMEPOS_YEAR)."),
) -> None:
    """Import DMEPOS fee schedule rows, one per state with a published fee."""
    _import_command("dmepos", path, sheet, year)


def _print_candidates(candidates: list[MatchCandidate], title: str) -> None:
    if not candidates:
        console.print("[yellow]No codes matched.[/yellow]")
        return

    table = Table(title=title, show_lines=False)
    table.add_column("Code", style="cyan", no_wrap=True)
    table.add_column("Description")
    table.add_column("Score", justify="right")
    table.add_column("Confidence")
    table.add_column("Reason")
    for candidate in candidates:
        table.add_row(
            candidate.code,
            (candidate.description or "")[:60],
            f"{candidate.score:.2f}",
            candidate.confidence,
            candidate.match_reason,
        )
    console.print(table)


if __name__ == "__main__":
    app()
