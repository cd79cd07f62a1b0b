from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Literal


BumpKind = Literal["major", "minor", "patch", "none"]
CommitCategory = Literal["breaking", "feature", "fix", "perf", "other"]

BUMP_KINDS: tuple[BumpKind, ...] = ("major", "minor", "patch", "none")
COMMIT_CATEGORIES: tuple[CommitCategory, ...] = ("breaking", "feature", "fix", "perf", "other")


@dataclass(frozen=True, slots=True)
class Commit:
    """A commit as delivered by the classification pipeline."""

    sha: str
    subject: str
    category: CommitCategory
    scope: str | None = None
    body: str = ""


@dataclass(frozen=True, slots=True)
class ChangeSet:
    """Immutable, already classified set of commits for one release."""

    commits: tuple[Commit, ...]
    files_changed: int = 0

    def count(self, category: CommitCategory) -> int:
        return sum(1 for c in self.commits if c.category == category)

    @property
    def total(self) -> int:
        return len(self.commits)

    @property
    def breaking(self) -> int:
        return self.count("breaking")

    @property
    def features(self) -> int:
        return self.count("feature")

    @property
    def fixes(self) -> int:
        return self.count("fix")

    @property
    def perf(self) -> int:
        return self.count("perf")

    @property
    def other(self) -> int:
        return self.count("other")

    @property
    def scope(self) -> str:
        """Most frequent commit scope; ties go to the alphabetically first one."""
        scopes = Counter(c.scope for c in self.commits if c.scope)
        if not scopes:
            return ""
        return min(scopes.items(), key=lambda item: (-item[1], item[0]))[0]


@dataclass(frozen=True, slots=True)
class ReleaseNotes:
    text: str
    ai_generated: bool = False
    provider: str | None = None
    generated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class Approval:
    approved_by: str
    auto_approved: bool
    timestamp: datetime
    # Evaluation the approval was granted under, if governance ran.
    risk_score: float | None = None
    decision: str | None = None


@dataclass(frozen=True, slots=True)
class TransitionRecord:
    at: datetime
    from_state: str
    to_state: str
    event: str
    actor: str
    reason: str = ""
