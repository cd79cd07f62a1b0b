from __future__ import annotations

import os
from pathlib import Path

import typer

from shipgate import __version__
from shipgate.cli.commands.release_cmd import release_app
from shipgate.cli.context import ROOT_ENV_VAR, set_console
from shipgate.core.errors import ErrorCode
from shipgate.logging import configure_logging
from shipgate.output.console import RichConsole


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Sub-apps
app.add_typer(release_app, name="release", help="Drive a governed release run.")


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    repo: Path | None = typer.Option(
        None,
        "--repo",
        help="Repository root (default: current directory)",
    ),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="More log output (-vv debug)."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colored log output."),
) -> None:
    if version:
        typer.echo(__version__)
        raise typer.Exit(code=0)

    set_console(RichConsole(configure_logging(verbosity=verbose, quiet=quiet, no_color=no_color)))

    if repo is not None:
        try:
            root = repo.expanduser().resolve()
        except OSError as e:
            typer.echo(f"error: invalid --repo: {e}", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))

        if not root.is_dir():
            typer.echo(f"error: --repo '{root}' is not a directory", err=True)
            raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

        os.environ[ROOT_ENV_VAR] = str(root)


def main() -> None:
    app()
