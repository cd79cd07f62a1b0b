"""Error presentation utilities.

Centralized error formatting and exit code mapping for release commands.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from shipgate.core.errors import ErrorCode
from shipgate.output.console import Style
from shipgate.services.release.errors import ReleaseError

if TYPE_CHECKING:
    from shipgate.output.console import ConsoleProtocol

__all__ = ["print_release_error", "release_error_code"]


def release_error_code(error: ReleaseError) -> ErrorCode:
    if error.is_guard_violation:
        return ErrorCode.USER_ERROR
    match error.kind:
        case "governance_rejected":
            return ErrorCode.GOVERNANCE_REJECTED
        case "governance_unconfigured" | "invalid_policy" | "invalid_config":
            return ErrorCode.ENV_ERROR
        case "active_run_exists" | "concurrent_modification":
            return ErrorCode.CONFLICT
        case "io_failed" | "memory_failed" | "publish_failed":
            return ErrorCode.IO_ERROR
        case _:
            return ErrorCode.USER_ERROR


def print_release_error(error: ReleaseError, console: ConsoleProtocol) -> None:
    match error.kind:
        case "governance_rejected":
            console.error(f"rejected: {error.message}")
        case "governance_unconfigured":
            console.error(f"governance not configured: {error.message}")
        case _:
            console.error(error.message)
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)
