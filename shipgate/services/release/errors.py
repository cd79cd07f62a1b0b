"""Error payload shared by the release and governance services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ReleaseErrorKind = Literal[
    # guard violations
    "invalid_transition",
    "version_not_greater",
    "notes_missing",
    "approval_required",
    "change_set_immutable",
    "empty_change_set",
    "invalid_input",
    # governance
    "governance_rejected",
    # configuration / infrastructure
    "governance_unconfigured",
    "invalid_policy",
    "invalid_config",
    "run_not_found",
    "active_run_exists",
    "concurrent_modification",
    "io_failed",
    "publish_failed",
    # outcome recording
    "memory_failed",
]

GUARD_KINDS: frozenset[str] = frozenset(
    {
        "invalid_transition",
        "version_not_greater",
        "notes_missing",
        "approval_required",
        "change_set_immutable",
        "empty_change_set",
        "invalid_input",
    }
)


@dataclass(frozen=True, slots=True)
class ReleaseError:
    """Canonical error payload.

    Guard violations never mutate a run; the caller retries after the
    missing step. ``governance_rejected`` is an expected business outcome.
    The remaining kinds are configuration or infrastructure faults.
    """

    kind: ReleaseErrorKind
    message: str
    hint: str | None = None

    @property
    def is_guard_violation(self) -> bool:
        return self.kind in GUARD_KINDS

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message
