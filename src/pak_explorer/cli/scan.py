import asyncio
import json
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from pak_explorer.cli.common import (
    console,
    load_settings,
    render_diagnostics,
    render_table,
    resolve_roots,
    scan_or_exit,
)
from pak_explorer.core.containers import validate_container
from pak_explorer.core.export import EXPORT_FORMATS
from pak_explorer.core.session import ScanSession

RootsArgument = Annotated[
    list[Path] | None,
    typer.Argument(help="Container files or directories to scan. Defaults to PAK_EXPLORER_ROOTS."),
]


def scan(roots: RootsArgument = None) -> None:
    """Scan containers and summarize what was found."""
    settings = load_settings()
    selected = resolve_roots(roots, settings)
    session = ScanSession(settings)

    async def _run() -> None:
        result = await scan_or_exit(session, selected)
        console.print(
            f"[green]Scanned[/green] {result.containers_scanned} of {result.containers_found} container(s), "
            f"{result.total_assets} asset(s)"
        )
        rows = [
            (c.name, c.kind.value, c.version, c.entry_count, str(c.path)) for c in session.snapshot.containers
        ]
        render_table(["container", "kind", "version", "entries", "path"], rows)
        render_diagnostics(result.diagnostics)

    asyncio.run(_run())


def stats(roots: RootsArgument = None) -> None:
    """Show catalog and dependency statistics."""
    settings = load_settings()
    selected = resolve_roots(roots, settings)
    session = ScanSession(settings)

    async def _run() -> None:
        await scan_or_exit(session, selected)
        console.print_json(json.dumps(session.statistics()))

    asyncio.run(_run())


def export(
    roots: RootsArgument = None,
    format: Annotated[str, typer.Option("--format", "-f", help=f"One of {', '.join(EXPORT_FORMATS)}.")] = "json",
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Write to a file instead of stdout.")] = None,
) -> None:
    """Export the dependency graph."""
    if format.strip().lower() not in EXPORT_FORMATS:
        console.print(f"[red]Unsupported export format '{format}'. Supported: {', '.join(EXPORT_FORMATS)}[/red]")
        raise typer.Exit(2)
    settings = load_settings()
    selected = resolve_roots(roots, settings)
    session = ScanSession(settings)

    async def _run() -> None:
        await scan_or_exit(session, selected)
        text = session.export_graph(format)
        if output is None:
            typer.echo(text, nl=False)
        else:
            output.write_text(text, encoding="utf-8")
            console.print(f"[green]Wrote[/green] {format} graph to {output}")

    asyncio.run(_run())


def validate(
    path: Annotated[Path, typer.Argument(help="Container file to validate.")],
) -> None:
    """Parse one container and report every problem found."""
    settings = load_settings()
    issues = validate_container(path, settings.max_entries)
    if not issues:
        console.print(f"[green]{path} is valid.[/green]")
        return
    for issue in issues:
        console.print(f"[red]-[/red] {escape(issue)}", highlight=False)
    console.print(f"({len(issues)} issue(s))")
    raise typer.Exit(1)
