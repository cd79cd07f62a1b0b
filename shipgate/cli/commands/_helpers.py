"""Shared helpers for CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn, TypeVar

import typer

from shipgate.core.errors import ErrorCode
from shipgate.core.result import Err, Result
from shipgate.output.errors import print_release_error, release_error_code
from shipgate.services.release.errors import ReleaseError

if TYPE_CHECKING:
    from shipgate.cli.context import CLIContext

T = TypeVar("T")


def exit_on_error(result: Result[T, ReleaseError], ctx: CLIContext) -> T:
    """Return the Ok value, or print the error and exit with its mapped code."""
    if isinstance(result, Err):
        print_release_error(result.error, ctx.console)
        raise typer.Exit(code=int(release_error_code(result.error)))
    return result.value


def exit_with(message: str, ctx: CLIContext, *, code: ErrorCode) -> NoReturn:
    ctx.console.error(message)
    raise typer.Exit(code=int(code))
