from __future__ import annotations

from shipgate.core.result import Err, Ok, Result
from shipgate.services.release.errors import ReleaseError
from shipgate.services.release.model import BumpKind, ChangeSet
from shipgate.services.release.semver import SemVer, parse_version


def derive_bump(change_set: ChangeSet) -> BumpKind:
    """Highest bump any commit in the change set calls for."""
    if change_set.breaking > 0:
        return "major"
    if change_set.features > 0:
        return "minor"
    if change_set.fixes > 0 or change_set.perf > 0:
        return "patch"
    return "none"


def validate_next_version(*, current: SemVer, candidate: SemVer) -> Result[None, ReleaseError]:
    if candidate <= current:
        return Err(
            ReleaseError(
                kind="version_not_greater",
                message=f"version {candidate} must be greater than {current}",
                hint=f"Suggested: {current.bump('patch')}",
            )
        )
    return Ok(None)


def parse_version_arg(raw: str) -> Result[SemVer, ReleaseError]:
    parsed = parse_version(raw)
    if parsed is None:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"invalid version: {raw!r}",
                hint="Expected MAJOR.MINOR.PATCH, optionally prefixed with 'v'.",
            )
        )
    return Ok(parsed)


def parse_bump(raw: str | None) -> Result[BumpKind | None, ReleaseError]:
    match raw:
        case None:
            return Ok(None)
        case "major" | "minor" | "patch" | "none":
            return Ok(raw)
        case _:
            return Err(
                ReleaseError(
                    kind="invalid_input",
                    message=f"invalid bump: {raw!r}",
                    hint="Use one of: major, minor, patch, none.",
                )
            )
