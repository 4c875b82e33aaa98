"""Helpers shared by the CLI commands."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from pak_explorer.config import Settings, get_settings
from pak_explorer.core.errors import Diagnostic, NoReadableContainers, ScanCancelled
from pak_explorer.core.session import ScanResult, ScanSession

console = Console()


def render_table(headers: Sequence[str], rows: Sequence[tuple[Any, ...]]) -> None:
    table = Table(show_lines=False)
    for h in headers:
        table.add_column(h)
    for row in rows:
        table.add_row(*(str(v) for v in row))
    console.print(table)
    console.print(f"({len(rows)} rows)")


def render_diagnostics(diagnostics: Sequence[Diagnostic]) -> None:
    if not diagnostics:
        return
    console.print(f"[yellow]{len(diagnostics)} container(s) reported problems:[/yellow]")
    render_table(["path", "kind", "message"], [(str(d.path), d.kind, d.message) for d in diagnostics])


def load_settings() -> Settings:
    try:
        return get_settings()
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(2) from None


def resolve_roots(roots: Sequence[Path] | None, settings: Settings) -> list[Path]:
    selected = list(roots) if roots else list(settings.roots)
    if not selected:
        console.print("[red]No roots given. Pass one or more paths or set PAK_EXPLORER_ROOTS.[/red]")
        raise typer.Exit(2)
    return selected


async def scan_or_exit(session: ScanSession, roots: Sequence[Path]) -> ScanResult:
    """Run a scan, turning scan-level failures into a non-zero exit."""
    try:
        return await session.scan(roots)
    except NoReadableContainers as exc:
        console.print(f"[red]{exc}[/red]")
        render_diagnostics(exc.diagnostics)
        raise typer.Exit(1) from None
    except ScanCancelled as exc:
        console.print(f"[yellow]{exc}[/yellow]")
        raise typer.Exit(130) from None
