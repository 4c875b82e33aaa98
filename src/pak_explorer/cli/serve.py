from pathlib import Path
from typing import Annotated

import typer

from pak_explorer.cli.common import console

serve_app = typer.Typer(help="Start servers.")


@serve_app.command("api")
def api(
    host: str = "127.0.0.1",
    port: int = 8000,
    root: Annotated[
        list[Path] | None,
        typer.Option("--root", "-r", help="Scan this root at startup (repeatable). Defaults to PAK_EXPLORER_ROOTS."),
    ] = None,
    watch: Annotated[bool, typer.Option("--watch", help="Rescan when container files change.")] = False,
) -> None:
    """Start the FastAPI REST API server."""
    import uvicorn

    from pak_explorer.api.app import create_app

    app = create_app(roots=root, watch=watch)
    console.print(f"[green]Starting API server on {host}:{port}[/green]")
    uvicorn.run(app, host=host, port=port)
