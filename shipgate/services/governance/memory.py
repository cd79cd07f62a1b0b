"""Release Memory: an append-only log of release outcomes.

The governance engine reads it to adjust risk by a repository's track record;
the outcome recorder writes to it after publish and on rollback reports.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal, Protocol, cast

from shipgate.core.result import Err, Ok, Result
from shipgate.core.structured import as_str_dict, get_float, get_int, get_str
from shipgate.platform.files import append_line
from shipgate.services.governance.model import EMPTY_HISTORY, HistoricalContext
from shipgate.services.release.errors import ReleaseError

logger = logging.getLogger(__name__)

OutcomeKind = Literal["success", "failure", "rollback"]
OUTCOME_KINDS: tuple[OutcomeKind, ...] = ("success", "failure", "rollback")

DEFAULT_HISTORY_WINDOW = 10


@dataclass(frozen=True, slots=True)
class Outcome:
    release_id: str
    repository: str
    version: str
    actor_id: str
    actor_kind: str
    risk_score: float
    decision: str
    breaking_changes: int
    security_changes: int
    files_changed: int
    outcome: OutcomeKind
    duration_seconds: float
    recorded_at: datetime


class ReleaseMemory(Protocol):
    def record(self, outcome: Outcome) -> Result[None, ReleaseError]: ...

    def recent(self, repository: str, limit: int) -> Result[list[Outcome], ReleaseError]:
        """Most recent outcomes for ``repository``, newest first."""
        ...


def outcome_to_dict(outcome: Outcome) -> dict[str, object]:
    return {
        "release_id": outcome.release_id,
        "repository": outcome.repository,
        "version": outcome.version,
        "actor_id": outcome.actor_id,
        "actor_kind": outcome.actor_kind,
        "risk_score": outcome.risk_score,
        "decision": outcome.decision,
        "breaking_changes": outcome.breaking_changes,
        "security_changes": outcome.security_changes,
        "files_changed": outcome.files_changed,
        "outcome": outcome.outcome,
        "duration_seconds": outcome.duration_seconds,
        "recorded_at": outcome.recorded_at.isoformat(),
    }


def outcome_from_dict(obj: object) -> Outcome | None:
    d = as_str_dict(obj)
    if d is None:
        return None

    release_id = get_str(d, "release_id")
    repository = get_str(d, "repository")
    kind = get_str(d, "outcome")
    recorded_raw = get_str(d, "recorded_at")
    if release_id is None or repository is None or kind not in OUTCOME_KINDS or recorded_raw is None:
        return None

    try:
        recorded_at = datetime.fromisoformat(recorded_raw)
    except ValueError:
        return None

    return Outcome(
        release_id=release_id,
        repository=repository,
        version=get_str(d, "version") or "",
        actor_id=get_str(d, "actor_id") or "",
        actor_kind=get_str(d, "actor_kind") or "",
        risk_score=get_float(d, "risk_score") or 0.0,
        decision=get_str(d, "decision") or "",
        breaking_changes=get_int(d, "breaking_changes") or 0,
        security_changes=get_int(d, "security_changes") or 0,
        files_changed=get_int(d, "files_changed") or 0,
        outcome=cast(OutcomeKind, kind),
        duration_seconds=get_float(d, "duration_seconds") or 0.0,
        recorded_at=recorded_at,
    )


class InMemoryReleaseMemory:
    """List-backed memory for tests and embedding."""

    def __init__(self, outcomes: list[Outcome] | None = None) -> None:
        self._outcomes: list[Outcome] = list(outcomes or [])

    def record(self, outcome: Outcome) -> Result[None, ReleaseError]:
        self._outcomes.append(outcome)
        return Ok(None)

    def recent(self, repository: str, limit: int) -> Result[list[Outcome], ReleaseError]:
        matching = [o for o in reversed(self._outcomes) if o.repository == repository]
        return Ok(matching[: max(0, limit)])

    @property
    def outcomes(self) -> tuple[Outcome, ...]:
        return tuple(self._outcomes)


class FileReleaseMemory:
    """JSON Lines file; one outcome per line, never rewritten."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def record(self, outcome: Outcome) -> Result[None, ReleaseError]:
        line = json.dumps(outcome_to_dict(outcome), sort_keys=True)
        try:
            append_line(self._path, line)
        except OSError as e:
            return Err(
                ReleaseError(
                    kind="memory_failed",
                    message=f"failed to append release outcome: {e}",
                    hint=str(self._path),
                )
            )
        return Ok(None)

    def recent(self, repository: str, limit: int) -> Result[list[Outcome], ReleaseError]:
        if not self._path.exists():
            return Ok([])

        try:
            text = self._path.read_text(encoding="utf-8")
        except (OSError, ValueError) as e:
            return Err(
                ReleaseError(
                    kind="memory_failed",
                    message=f"failed to read release memory: {e}",
                    hint=str(self._path),
                )
            )

        outcomes: list[Outcome] = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                obj: object = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("skipping malformed memory record %s:%d", self._path, lineno)
                continue
            outcome = outcome_from_dict(obj)
            if outcome is None:
                logger.warning("skipping invalid memory record %s:%d", self._path, lineno)
                continue
            if outcome.repository == repository:
                outcomes.append(outcome)

        outcomes.reverse()
        return Ok(outcomes[: max(0, limit)])


def summarize(outcomes: list[Outcome]) -> HistoricalContext:
    """Count outcomes; a release that was later rolled back counts only as a rollback."""
    if not outcomes:
        return EMPTY_HISTORY
    rolled_back = {o.release_id for o in outcomes if o.outcome == "rollback"}
    counted = [o for o in outcomes if o.outcome == "rollback" or o.release_id not in rolled_back]
    return HistoricalContext(
        total=len(counted),
        successes=sum(1 for o in counted if o.outcome == "success"),
        failures=sum(1 for o in counted if o.outcome == "failure"),
        rollbacks=sum(1 for o in counted if o.outcome == "rollback"),
    )


def historical_context(
    memory: ReleaseMemory,
    repository: str,
    *,
    window: int = DEFAULT_HISTORY_WINDOW,
) -> Result[HistoricalContext, ReleaseError]:
    """Aggregate the last ``window`` outcomes; an empty memory yields zeros."""
    recent = memory.recent(repository, window)
    if isinstance(recent, Err):
        return recent
    return Ok(summarize(recent.value))
