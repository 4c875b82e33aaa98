import asyncio
import base64
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from rich.markup import escape
from rich.tree import Tree

from pak_explorer.cli.common import console, load_settings, render_table, resolve_roots, scan_or_exit
from pak_explorer.cli.scan import RootsArgument
from pak_explorer.core.catalog import SORT_KEYS
from pak_explorer.core.errors import AssetNotFound
from pak_explorer.core.graph import DependencyTree
from pak_explorer.core.session import ScanSession


def _exit_not_found(exc: AssetNotFound) -> NoReturn:
    console.print(f"[red]{escape(str(exc))}[/red]")
    raise typer.Exit(1)


def assets(
    roots: RootsArgument = None,
    type: Annotated[str | None, typer.Option("--type", "-t", help="Only assets of this type (e.g. Texture).")] = None,
    search: Annotated[str | None, typer.Option("--search", "-s", help="Case-insensitive name/path filter.")] = None,
    sort: Annotated[str | None, typer.Option(help=f"Sort by one of {', '.join(SORT_KEYS)}.")] = None,
    desc: Annotated[bool, typer.Option("--desc", help="Reverse the order.")] = False,
    limit: Annotated[int, typer.Option(min=1, help="Max rows to return.")] = 50,
) -> None:
    """List catalog assets."""
    settings = load_settings()
    selected = resolve_roots(roots, settings)
    session = ScanSession(settings)

    async def _run() -> None:
        await scan_or_exit(session, selected)
        try:
            records = session.list_assets(type, search, sort, desc, limit)  # type: ignore[arg-type]
        except ValueError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(2) from None
        rows = [(r.canonical_id, r.asset_type.value, r.size, r.container.name, r.path) for r in records]
        render_table(["id", "type", "size", "container", "path"], rows)

    asyncio.run(_run())


def _add_branch(parent: Tree, node: DependencyTree) -> None:
    for child in node.children:
        label = escape(child.asset_id)
        if child.is_self_reference:
            label += " [yellow](self)[/yellow]"
        elif child.is_circular:
            label += " [yellow](cycle)[/yellow]"
        if child.is_external:
            label += " [dim](unresolved)[/dim]"
        _add_branch(parent.add(label), child)


def deps(
    roots: RootsArgument = None,
    asset: Annotated[str | None, typer.Option("--asset", "-a", help="Canonical id; omit for the whole graph.")] = None,
    transitive: Annotated[bool, typer.Option(help="Follow dependencies transitively.")] = False,
    reverse: Annotated[bool, typer.Option("--reverse", help="List dependents instead of dependencies.")] = False,
    tree: Annotated[bool, typer.Option("--tree", help="Render a dependency tree for --asset.")] = False,
    depth: Annotated[int, typer.Option(help="Max tree depth.")] = 5,
) -> None:
    """Show asset dependencies."""
    if (reverse or tree) and asset is None:
        console.print("[red]--reverse and --tree need --asset.[/red]")
        raise typer.Exit(2)
    settings = load_settings()
    selected = resolve_roots(roots, settings)
    session = ScanSession(settings)

    async def _run() -> None:
        await scan_or_exit(session, selected)
        try:
            if asset is not None and tree:
                root = session.dependency_tree(asset, depth)
                rendered = Tree(escape(root.asset_id))
                _add_branch(rendered, root)
                console.print(rendered)
                return
            if asset is not None and reverse:
                dependents = session.get_dependents(asset, transitive)
                render_table(["dependent"], [(d,) for d in dependents])
                return
            mapping = session.get_dependencies(asset, transitive)
        except AssetNotFound as exc:
            _exit_not_found(exc)
        rows = [(source, target) for source, targets in mapping.items() for target in targets]
        render_table(["asset", "depends on"], rows)

    asyncio.run(_run())


def preview(
    asset: Annotated[str, typer.Option("--asset", "-a", help="Canonical id of the asset to preview.")],
    roots: RootsArgument = None,
    budget: Annotated[int | None, typer.Option(help="Max stored bytes to read.")] = None,
    thumbnail: Annotated[
        Path | None, typer.Option("--thumbnail", help="Write the image thumbnail (PNG) to this file.")
    ] = None,
) -> None:
    """Build a byte-budgeted preview of one asset."""
    settings = load_settings()
    selected = resolve_roots(roots, settings)
    session = ScanSession(settings)

    async def _run() -> None:
        await scan_or_exit(session, selected)
        try:
            envelope = await session.get_preview(asset, budget)
        except AssetNotFound as exc:
            _exit_not_found(exc)
        except ValueError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(2) from None

        data = envelope.model_dump(mode="json")
        payload = data.get("payload") or {}
        encoded = payload.pop("thumbnail", None) if isinstance(payload, dict) else None
        if encoded and thumbnail is not None:
            thumbnail.write_bytes(base64.b64decode(encoded))
            console.print(f"[green]Wrote[/green] thumbnail to {thumbnail}")
        elif encoded:
            payload["thumbnail"] = f"<{len(encoded)} base64 chars>"
        console.print_json(data=data)

    asyncio.run(_run())
