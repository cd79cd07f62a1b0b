"""Logging configuration for the shipgate CLI."""

import logging
import sys
from enum import IntEnum
from typing import TextIO

from rich.console import Console
from rich.logging import RichHandler


class LogLevel(IntEnum):
    QUIET = logging.ERROR
    NORMAL = logging.WARNING
    VERBOSE = logging.INFO
    DEBUG = logging.DEBUG


def resolve_level(*, verbosity: int = 0, quiet: bool = False) -> LogLevel:
    """Flag precedence: quiet > verbosity (0=warnings, 1=info, 2+=debug)."""
    if quiet:
        return LogLevel.QUIET
    if verbosity >= 2:
        return LogLevel.DEBUG
    if verbosity == 1:
        return LogLevel.VERBOSE
    return LogLevel.NORMAL


def configure_logging(
    verbosity: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    stream: TextIO | None = None,
) -> Console:
    """Route ``shipgate.*`` loggers through a Rich handler on ``stream``.

    Returns the Rich console the handler writes to. ``stream`` defaults to the
    current ``sys.stderr``.
    """
    level = resolve_level(verbosity=verbosity, quiet=quiet)

    console = Console(
        file=stream if stream is not None else sys.stderr,
        force_terminal=False if no_color else None,
        no_color=no_color,
    )

    handler = RichHandler(
        console=console,
        show_time=verbosity >= 2,
        show_path=verbosity >= 2,
    )

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )

    return console
