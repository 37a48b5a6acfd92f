# Copyright (c) Syntropy Systems
"""Main CLI entry point for speedvitals."""

import typer
from rich.console import Console

from speedvitals import __version__
from speedvitals.cli.analyze import analyze

console = Console()

app = typer.Typer(
    name="speedvitals",
    help="SpeedVitals CLI Tool for Website Performance Analysis.",
    no_args_is_help=True,
    add_completion=False,
)


def version() -> None:
    """Show the speedvitals version."""
    console.print(f"speedvitals {__version__}")


# Register commands
_ = app.command()(analyze)
_ = app.command()(version)


if __name__ == "__main__":
    app()
