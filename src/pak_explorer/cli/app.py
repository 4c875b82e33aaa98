import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from pak_explorer.cli.assets import assets, deps, preview
from pak_explorer.cli.scan import export, scan, stats, validate
from pak_explorer.cli.serve import serve_app

app = typer.Typer(
    name="pak-explorer",
    help="Pak Explorer CLI: scan game-archive containers, browse assets and their dependencies.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def _configure(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


app.command("scan")(scan)
app.command("assets")(assets)
app.command("deps")(deps)
app.command("preview")(preview)
app.command("stats")(stats)
app.command("export")(export)
app.command("validate")(validate)
app.add_typer(serve_app, name="serve")


def main() -> None:
    app()
