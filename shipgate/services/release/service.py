"""Release use cases: one function per lifecycle step.

Each function loads the active run, applies one transition, and persists the
result. Idempotent transitions return the stored run without writing.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from shipgate.core.config import ShipgateConfig, load_repo_config
from shipgate.core.result import Err, Ok, Result
from shipgate.services.governance.actor import Actor, actor_from_env
from shipgate.services.governance.engine import GovernanceEngine
from shipgate.services.governance.factory import build_engine, open_memory
from shipgate.services.governance.memory import Outcome, OutcomeKind, ReleaseMemory
from shipgate.services.governance.model import RiskEvaluation
from shipgate.services.governance.recorder import record_outcome
from shipgate.services.release.errors import ReleaseError
from shipgate.services.release.model import BumpKind, ChangeSet, ReleaseNotes
from shipgate.services.release.run import ReleaseRun, new_run
from shipgate.services.release.semver import SemVer
from shipgate.services.release.store import RunStore
from shipgate.services.release.versioning import parse_version_arg

logger = logging.getLogger(__name__)

Publisher = Callable[[ReleaseRun], Result[None, str]]


def noop_publisher(run: ReleaseRun) -> Result[None, str]:
    logger.info("no publisher configured; %s marked as published", run.run_id)
    return Ok(None)


@dataclass(frozen=True, slots=True)
class ReleaseEnv:
    """Everything a release step needs, resolved once per invocation."""

    root: Path
    config: ShipgateConfig
    store: RunStore
    actor: Actor
    engine: GovernanceEngine | None
    memory: ReleaseMemory | None

    @property
    def repo_path(self) -> str:
        return str(self.root)


def open_release_env(
    *,
    root: Path,
    environ: Mapping[str, str],
    memory: ReleaseMemory | None = None,
) -> Result[ReleaseEnv, ReleaseError]:
    cfg = load_repo_config(root)
    if isinstance(cfg, Err):
        return Err(
            ReleaseError(
                kind="invalid_config",
                message=cfg.error.message,
                hint=(str(cfg.error.path) if cfg.error.path else None),
            )
        )

    mem = memory if memory is not None else open_memory(root)
    engine = build_engine(cfg.value.governance, memory=mem)
    if isinstance(engine, Err):
        return engine

    return Ok(
        ReleaseEnv(
            root=root,
            config=cfg.value,
            store=RunStore(root),
            actor=actor_from_env(environ),
            engine=engine.value,
            memory=mem,
        )
    )


def _active_run(env: ReleaseEnv, run_id: str | None) -> Result[ReleaseRun, ReleaseError]:
    if run_id is not None:
        return env.store.load(run_id)
    active = env.store.find_active(env.repo_path)
    if isinstance(active, Err):
        return active
    if active.value is None:
        return Err(
            ReleaseError(
                kind="run_not_found",
                message="no active release run",
                hint="run 'shipgate release plan' first",
            )
        )
    return Ok(active.value)


def _persist(
    env: ReleaseEnv, before: ReleaseRun, after: Result[ReleaseRun, ReleaseError]
) -> Result[ReleaseRun, ReleaseError]:
    if isinstance(after, Err):
        return after
    if after.value is before:
        return after
    saved = env.store.save(after.value)
    if isinstance(saved, Ok):
        logger.info("%s: %s -> %s", before.run_id, before.state, saved.value.state)
    return saved


def _baseline_version(env: ReleaseEnv) -> Result[SemVer, ReleaseError]:
    """Version of the last published run, else the configured initial version."""
    listed = env.store.list_runs()
    if isinstance(listed, Err):
        return listed
    for run in listed.value:
        if run.state == "published" and run.next_version is not None:
            return Ok(run.next_version)
    return parse_version_arg(env.config.release.initial_version)


def plan_release(
    env: ReleaseEnv,
    *,
    change_set: ChangeSet,
    bump: BumpKind | None = None,
    current_version: SemVer | None = None,
    branch: str | None = None,
    now: datetime | None = None,
) -> Result[ReleaseRun, ReleaseError]:
    active = env.store.find_active(env.repo_path)
    if isinstance(active, Err):
        return active
    if active.value is not None:
        again = active.value.plan(change_set, bump=bump, actor=env.actor.id, now=now)
        if isinstance(again, Ok) and again.value is active.value:
            return again
        # Anything but an idempotent re-plan is a second run for this repository.
        return Err(
            ReleaseError(
                kind="active_run_exists",
                message=f"run {active.value.run_id} is still {active.value.state}",
                hint="Finish it or run 'shipgate release cancel' first.",
            )
        )

    if current_version is None:
        baseline = _baseline_version(env)
        if isinstance(baseline, Err):
            return baseline
        current_version = baseline.value

    draft = new_run(
        repo_path=env.repo_path,
        branch=branch or env.config.release.branch,
        current_version=current_version,
        now=now,
    )
    planned = draft.plan(change_set, bump=bump, actor=env.actor.id, now=now)
    if isinstance(planned, Err):
        return planned

    created = env.store.create(planned.value)
    if isinstance(created, Ok):
        logger.info(
            "%s planned: %d commit(s), bump %s",
            created.value.run_id,
            change_set.total,
            created.value.bump,
        )
    return created


def set_release_version(
    env: ReleaseEnv,
    *,
    version: SemVer | None = None,
    run_id: str | None = None,
    now: datetime | None = None,
) -> Result[ReleaseRun, ReleaseError]:
    """Set the next version; defaults to the version the planned bump suggests."""
    run = _active_run(env, run_id)
    if isinstance(run, Err):
        return run
    target = version if version is not None else run.value.suggested_version
    return _persist(env, run.value, run.value.set_version(target, actor=env.actor.id, now=now))


def generate_release_notes(
    env: ReleaseEnv,
    *,
    text: str,
    ai_generated: bool = False,
    provider: str | None = None,
    run_id: str | None = None,
    now: datetime | None = None,
) -> Result[ReleaseRun, ReleaseError]:
    run = _active_run(env, run_id)
    if isinstance(run, Err):
        return run
    notes = ReleaseNotes(text=text, ai_generated=ai_generated, provider=provider)
    return _persist(env, run.value, run.value.generate_notes(notes, actor=env.actor.id, now=now))


def _evaluate(
    env: ReleaseEnv, run: ReleaseRun, now: datetime | None
) -> Result[RiskEvaluation | None, ReleaseError]:
    if env.engine is None:
        return Ok(None)
    return env.engine.evaluate(
        run,
        env.actor,
        repository=run.repo_path,
        include_history=env.config.governance.include_history,
        now=now,
    )


def evaluate_release(
    env: ReleaseEnv,
    *,
    run_id: str | None = None,
    now: datetime | None = None,
) -> Result[RiskEvaluation, ReleaseError]:
    if env.engine is None:
        return Err(
            ReleaseError(
                kind="governance_unconfigured",
                message="governance is not enabled",
                hint="Set [governance] enabled = true in shipgate.toml.",
            )
        )
    run = _active_run(env, run_id)
    if isinstance(run, Err):
        return run
    return env.engine.evaluate(
        run.value,
        env.actor,
        repository=run.value.repo_path,
        include_history=env.config.governance.include_history,
        now=now,
    )


def approve_release(
    env: ReleaseEnv,
    *,
    auto_approve: bool = False,
    confirmed: bool = False,
    run_id: str | None = None,
    now: datetime | None = None,
) -> Result[ReleaseRun, ReleaseError]:
    strict = env.config.governance.strict_mode
    if strict and env.engine is None:
        return Err(
            ReleaseError(
                kind="governance_unconfigured",
                message="strict mode requires governance to be enabled",
                hint="Set [governance] enabled = true in shipgate.toml or turn off strict_mode.",
            )
        )

    run = _active_run(env, run_id)
    if isinstance(run, Err):
        return run

    evaluation: RiskEvaluation | None = None
    if run.value.state in ("notes_ready", "approved"):
        evaluated = _evaluate(env, run.value, now)
        if isinstance(evaluated, Err):
            return evaluated
        evaluation = evaluated.value
        if evaluation is not None:
            logger.info(
                "%s: risk %.2f (%s), decision %s",
                run.value.run_id,
                evaluation.risk_score,
                evaluation.severity,
                evaluation.decision,
            )

    approved = run.value.approve(
        env.actor.id,
        auto_approve=auto_approve,
        confirmed=confirmed,
        evaluation=evaluation,
        strict_mode=strict,
        require_approval=env.config.release.require_approval,
        now=now,
    )
    return _persist(env, run.value, approved)


def _record(env: ReleaseEnv, run: ReleaseRun, kind: OutcomeKind, now: datetime | None) -> None:
    if env.memory is None:
        return
    recorded = record_outcome(
        env.memory,
        run=run,
        actor=env.actor,
        kind=kind,
        now=now,
    )
    if isinstance(recorded, Err):
        logger.warning("%s", recorded.error.pretty())


def publish_release(
    env: ReleaseEnv,
    *,
    publisher: Publisher = noop_publisher,
    run_id: str | None = None,
    now: datetime | None = None,
) -> Result[ReleaseRun, ReleaseError]:
    """Run the publisher for an approved run and record the outcome.

    The run is saved as ``publishing`` before the publisher is called, so an
    interrupted publish is visible to the next invocation. A publisher that
    returns ``Err`` or raises leaves the run ``failed``.
    """
    if run_id is None:
        latest = env.store.find_latest()
        if isinstance(latest, Err):
            return latest
        if latest.value is not None and latest.value.state == "published":
            return Ok(latest.value)

    run = _active_run(env, run_id)
    if isinstance(run, Err):
        return run
    if run.value.state == "published":
        return Ok(run.value)

    if env.config.governance.strict_mode and run.value.state == "approved":
        # Re-check the gate: memory may have changed since approval.
        evaluated = _evaluate(env, run.value, now)
        if isinstance(evaluated, Err):
            return evaluated
        gate = run.value.approve(env.actor.id, evaluation=evaluated.value, strict_mode=True, now=now)
        if isinstance(gate, Err):
            return gate

    started = _persist(env, run.value, run.value.start_publishing(actor=env.actor.id, now=now))
    if isinstance(started, Err):
        return started
    publishing = started.value

    try:
        published = publisher(publishing)
    except Exception as e:
        logger.debug("%s: publisher raised", publishing.run_id, exc_info=True)
        published = Err(f"{type(e).__name__}: {e}")
    if isinstance(published, Err):
        failed = _persist(
            env, publishing, publishing.mark_failed(published.error, actor=env.actor.id, now=now)
        )
        if isinstance(failed, Err):
            return failed
        _record(env, failed.value, "failure", now)
        return Err(
            ReleaseError(
                kind="publish_failed",
                message=f"publish failed: {published.error}",
                hint="The run is now failed; fix the cause and plan a new release.",
            )
        )

    done = _persist(env, publishing, publishing.mark_published(actor=env.actor.id, now=now))
    if isinstance(done, Err):
        return done
    _record(env, done.value, "success", now)
    return done


def cancel_release(
    env: ReleaseEnv,
    *,
    reason: str = "",
    run_id: str | None = None,
    now: datetime | None = None,
) -> Result[ReleaseRun, ReleaseError]:
    run = _active_run(env, run_id)
    if isinstance(run, Err):
        return run
    return _persist(env, run.value, run.value.cancel(reason, actor=env.actor.id, now=now))


def report_rollback(
    env: ReleaseEnv,
    *,
    run_id: str | None = None,
    now: datetime | None = None,
) -> Result[Outcome, ReleaseError]:
    """Record that a published release was rolled back.

    Unlike publish, where recording is best effort, recording is the whole
    point here, so a memory failure is returned to the caller. Reporting the
    same release twice returns the rollback already on record.
    """
    if run_id is not None:
        loaded = env.store.load(run_id)
        if isinstance(loaded, Err):
            return loaded
        run: ReleaseRun | None = loaded.value
    else:
        listed = env.store.list_runs()
        if isinstance(listed, Err):
            return listed
        run = next((r for r in listed.value if r.state == "published"), None)

    if run is None:
        return Err(
            ReleaseError(
                kind="run_not_found",
                message="no published release to roll back",
            )
        )
    if run.state != "published":
        return Err(
            ReleaseError(
                kind="invalid_transition",
                message=f"cannot report a rollback for a run in state '{run.state}'",
                hint="Only published releases can be rolled back.",
            )
        )
    if env.memory is None:
        return Err(
            ReleaseError(
                kind="memory_failed",
                message="release memory is not available",
            )
        )

    known = env.memory.recent(run.repo_path, sys.maxsize)
    if isinstance(known, Err):
        return known
    for outcome in known.value:
        if outcome.release_id == run.run_id and outcome.outcome == "rollback":
            logger.info("%s: rollback already recorded", run.run_id)
            return Ok(outcome)

    return record_outcome(env.memory, run=run, actor=env.actor, kind="rollback", now=now)


def release_status(
    env: ReleaseEnv,
    *,
    run_id: str | None = None,
) -> Result[ReleaseRun | None, ReleaseError]:
    """The requested run, else the active run, else the most recent one."""
    if run_id is not None:
        loaded = env.store.load(run_id)
        if isinstance(loaded, Err):
            return loaded
        return Ok(loaded.value)
    active = env.store.find_active(env.repo_path)
    if isinstance(active, Err):
        return active
    if active.value is not None:
        return active
    return env.store.find_latest()


def release_history(env: ReleaseEnv, *, limit: int = 20) -> Result[list[ReleaseRun], ReleaseError]:
    listed = env.store.list_runs()
    if isinstance(listed, Err):
        return listed
    return Ok(listed.value[: max(0, limit)])
