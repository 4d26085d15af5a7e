"""
lessonloop CLI - inspect and manage a learner's saved progress.

Usage:
    lessonloop status              # Levels per language and problem
    lessonloop mistakes            # Durable mistake log
    lessonloop export -o out.json  # Back up every document
    lessonloop import out.json     # Restore a backup
    lessonloop reset --yes         # Delete all saved documents
"""

from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from config import get_settings
from src.lessonloop.backup import BackupError, export_profile, import_profile
from src.lessonloop.mistake_log import MistakeLog
from src.lessonloop.stats import UserStats
from src.lessonloop.store import (
    DOCUMENT_KEYS,
    MISTAKES_KEY,
    PREFERENCES_KEY,
    PROGRESS_KEY,
    STATS_KEY,
    JsonFileStore,
    PersistenceError,
)

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="lessonloop",
    help="Adaptive lesson progression - saved progress and mistake log",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def _store(ctx: typer.Context) -> JsonFileStore:
    return ctx.obj["store"]


# =============================================================================
# Progress Commands
# =============================================================================


@app.command()
def status(
    ctx: typer.Context,
    language: Annotated[
        str | None, typer.Option("--language", "-l", help="Only show one language")
    ] = None,
) -> None:
    """Show mastery levels, XP and streak."""
    store = _store(ctx)
    settings = get_settings()
    progress = store.get(PROGRESS_KEY) or {}
    stats = UserStats.from_document(store.get(STATS_KEY))
    failed_skips = (store.get(PREFERENCES_KEY) or {}).get("failedSkips") or {}

    console.print(
        f"[bold]XP:[/] {stats.xp}   [bold]Streak:[/] {stats.streak}   "
        f"[bold]Last played:[/] {stats.last_played or '-'}"
    )

    languages = [language] if language else sorted(progress)
    if not any(progress.get(lang) for lang in languages):
        console.print("[dim]No progress recorded yet.[/]")
        return

    for lang in languages:
        levels = progress.get(lang) or {}
        if not levels:
            continue

        table = Table(title=f"Progress: {lang}")
        table.add_column("Problem", style="cyan")
        table.add_column("Level", justify="right")
        table.add_column("State")

        for problem_id, level in sorted(levels.items()):
            if level >= settings.mastery_level:
                state = "[green]mastered[/]"
            elif level == 0:
                state = "[dim]unstarted[/]"
            else:
                state = f"phase {level + 1}"
            table.add_row(problem_id, str(level), state)

        console.print(table)

    if failed_skips:
        names = ", ".join(sorted(name for name, failed in failed_skips.items() if failed))
        console.print(f"[yellow]Skip locked:[/] {names}")


@app.command()
def mistakes(
    ctx: typer.Context,
    show_all: Annotated[
        bool, typer.Option("--all", "-a", help="Include resolved mistakes")
    ] = False,
    problem: Annotated[
        str | None, typer.Option("--problem", "-p", help="Filter by problem name")
    ] = None,
) -> None:
    """Show the mistake log."""
    log = MistakeLog.from_document(_store(ctx).get(MISTAKES_KEY))
    records = log.records if show_all else log.unresolved()
    if problem:
        records = [r for r in records if r.problem_name == problem]

    if not records:
        console.print("[green]No mistakes to review.[/]")
        return

    table = Table(title=f"Mistakes ({len(records)})")
    table.add_column("ID", style="dim")
    table.add_column("Problem", style="cyan")
    table.add_column("Type")
    table.add_column("Context")
    table.add_column("Fails", justify="right")
    table.add_column("Prof", justify="right")
    table.add_column("Last seen")

    for record in sorted(records, key=lambda r: r.timestamp, reverse=True):
        table.add_row(
            record.id,
            record.problem_name,
            record.question_type,
            record.context,
            str(record.failure_count),
            "[green]resolved[/]" if record.is_resolved else str(record.proficiency),
            datetime.fromtimestamp(record.timestamp).strftime("%Y-%m-%d"),
        )

    console.print(table)


# =============================================================================
# Backup Commands
# =============================================================================


@app.command()
def export(
    ctx: typer.Context,
    output: Annotated[
        Path, typer.Option("--output", "-o", help="Output file path")
    ] = Path("lessonloop_backup.json"),
) -> None:
    """Export every saved document to one JSON file."""
    data = export_profile(_store(ctx))
    try:
        output.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Export failed: {e}[/]")
        raise typer.Exit(1)

    documents = [k for k in DOCUMENT_KEYS if k in data]
    console.print(f"[green]✓ Exported {len(documents)} document(s) to {output}[/]")


@app.command("import")
def import_data(
    ctx: typer.Context,
    input_file: Annotated[
        Path, typer.Argument(help="Backup file to restore")
    ],
) -> None:
    """Restore documents from a backup file."""
    if not input_file.exists():
        console.print(f"[red]File not found: {input_file}[/]")
        raise typer.Exit(1)

    try:
        data = json.loads(input_file.read_text(encoding="utf-8"))
        written = import_profile(_store(ctx), data)
    except json.JSONDecodeError as e:
        console.print(f"[red]Not a valid JSON file: {e}[/]")
        raise typer.Exit(1)
    except (BackupError, PersistenceError) as e:
        console.print(f"[red]Import failed: {e}[/]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Imported {len(written)} document(s) from {input_file}[/]")


@app.command()
def reset(
    ctx: typer.Context,
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Confirm deletion")
    ] = False,
) -> None:
    """Delete all saved progress, stats and mistakes."""
    if not yes:
        console.print("[yellow]This deletes all saved data. Re-run with --yes to confirm.[/]")
        raise typer.Exit(1)

    store = _store(ctx)
    removed = [key for key in DOCUMENT_KEYS if store.delete(key)]
    console.print(f"[green]✓ Removed {len(removed)} document(s) from {store.data_dir}[/]")


# =============================================================================
# Entry Point
# =============================================================================


@app.callback()
def main(
    ctx: typer.Context,
    data_dir: Annotated[
        Path | None, typer.Option("--data-dir", "-d", help="Directory holding saved documents")
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Verbose output")
    ] = False,
) -> None:
    """
    lessonloop - adaptive lesson progression

    \b
    Quick Start:
      lessonloop status
      lessonloop mistakes --all
      lessonloop export -o backup.json
    """
    settings = get_settings()

    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB")

    ctx.obj = {"store": JsonFileStore(data_dir or settings.data_dir)}


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
