from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import typer

from shipgate.core.result import Err
from shipgate.output.console import ConsoleProtocol, RichConsole
from shipgate.output.errors import print_release_error, release_error_code
from shipgate.services.release.service import ReleaseEnv, open_release_env

ROOT_ENV_VAR = "SHIPGATE_ROOT"


@dataclass(frozen=True, slots=True)
class CLIContext:
    env: ReleaseEnv
    console: ConsoleProtocol

    @property
    def root(self) -> Path:
        return self.env.root


def resolve_root() -> Path:
    raw = os.environ.get(ROOT_ENV_VAR, "").strip()
    return Path(raw).expanduser().resolve() if raw else Path.cwd().resolve()


_console: ConsoleProtocol | None = None


def set_console(console: ConsoleProtocol) -> None:
    """Register the console commands print to (set once by the root callback)."""
    global _console
    _console = console


def build_context() -> CLIContext:
    console = _console if _console is not None else RichConsole()
    env_result = open_release_env(root=resolve_root(), environ=os.environ)
    if isinstance(env_result, Err):
        print_release_error(env_result.error, console)
        raise typer.Exit(code=int(release_error_code(env_result.error)))

    return CLIContext(env=env_result.value, console=console)
