from __future__ import annotations

import logging
from datetime import UTC, datetime

from shipgate.core.result import Err, Ok, Result
from shipgate.services.governance.actor import Actor
from shipgate.services.governance.memory import Outcome, OutcomeKind, ReleaseMemory
from shipgate.services.governance.risk import count_security_changes
from shipgate.services.release.errors import ReleaseError
from shipgate.services.release.run import ReleaseRun

logger = logging.getLogger(__name__)


def build_outcome(
    *,
    run: ReleaseRun,
    actor: Actor,
    kind: OutcomeKind,
    now: datetime | None = None,
) -> Outcome:
    at = now if now is not None else datetime.now(tz=UTC)
    change_set = run.change_set
    approval = run.approval
    return Outcome(
        release_id=run.run_id,
        repository=run.repo_path,
        version=(str(run.next_version) if run.next_version is not None else ""),
        actor_id=actor.id,
        actor_kind=actor.kind,
        risk_score=(approval.risk_score if approval and approval.risk_score is not None else 0.0),
        decision=(approval.decision if approval and approval.decision else "unevaluated"),
        breaking_changes=(change_set.breaking if change_set else 0),
        security_changes=(count_security_changes(change_set) if change_set else 0),
        files_changed=(change_set.files_changed if change_set else 0),
        outcome=kind,
        duration_seconds=max(0.0, (at - run.created_at).total_seconds()),
        recorded_at=at,
    )


def record_outcome(
    memory: ReleaseMemory,
    *,
    run: ReleaseRun,
    actor: Actor,
    kind: OutcomeKind,
    now: datetime | None = None,
) -> Result[Outcome, ReleaseError]:
    """Append the outcome of ``run`` to memory.

    Callers treat an ``Err`` as non-fatal: the release itself already
    happened (or failed) and must not be reported differently because the
    memory write did not land.
    """
    outcome = build_outcome(run=run, actor=actor, kind=kind, now=now)
    written = memory.record(outcome)
    if isinstance(written, Err):
        return Err(
            ReleaseError(
                kind="memory_failed",
                message=f"could not record {kind} for {run.run_id}: {written.error.message}",
                hint=written.error.hint,
            )
        )
    logger.info("recorded %s outcome for %s (%s)", kind, run.run_id, outcome.version or "-")
    return Ok(outcome)
