"""Release run aggregate.

A run moves through draft -> planned -> versioned -> notes_ready -> approved
-> publishing -> published|failed, and may be canceled before publishing.
Every operation returns a new run inside ``Ok`` or an ``Err`` describing the
guard that did not hold; the receiver is never modified.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from uuid import uuid4

from shipgate.core.result import Err, Ok, Result
from shipgate.services.governance.model import RiskEvaluation
from shipgate.services.release.errors import ReleaseError
from shipgate.services.release.model import (
    Approval,
    BumpKind,
    ChangeSet,
    ReleaseNotes,
    TransitionRecord,
)
from shipgate.services.release.semver import SemVer
from shipgate.services.release.state import (
    CANCELABLE_STATES,
    RunState,
    can_transition,
    is_terminal,
    next_step_hint,
)
from shipgate.services.release.versioning import derive_bump, validate_next_version


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def new_run_id() -> str:
    return f"run-{uuid4().hex[:12]}"


@dataclass(frozen=True, slots=True)
class ReleaseRun:
    run_id: str
    repo_path: str
    branch: str
    state: RunState
    current_version: SemVer
    created_at: datetime
    updated_at: datetime
    change_set: ChangeSet | None = None
    next_version: SemVer | None = None
    bump: BumpKind = "none"
    notes: ReleaseNotes | None = None
    approval: Approval | None = None
    published_at: datetime | None = None
    last_error: str | None = None
    revision: int = 0
    history: tuple[TransitionRecord, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.state)

    @property
    def suggested_version(self) -> SemVer:
        return self.current_version.bump(self.bump)

    def with_revision(self, revision: int) -> ReleaseRun:
        return replace(self, revision=revision)

    # -- transitions ----------------------------------------------------------

    def plan(
        self,
        change_set: ChangeSet,
        *,
        bump: BumpKind | None = None,
        actor: str = "system",
        now: datetime | None = None,
    ) -> Result[ReleaseRun, ReleaseError]:
        if self.change_set is not None:
            if change_set != self.change_set:
                return Err(
                    ReleaseError(
                        kind="change_set_immutable",
                        message="change set is already fixed for this run",
                        hint="Cancel the run and plan a new one.",
                    )
                )
            if self.state == "planned" and (bump is None or bump == self.bump):
                return Ok(self)
            return self._invalid("plan")

        if self.state != "draft":
            return self._invalid("plan")

        if change_set.total == 0:
            return Err(
                ReleaseError(
                    kind="empty_change_set",
                    message="change set has no commits",
                    hint="There is nothing to release since the last version.",
                )
            )

        resolved: BumpKind = bump if bump is not None else derive_bump(change_set)
        return Ok(
            self._advance(
                "planned",
                event="plan",
                actor=actor,
                now=now,
                reason=f"{change_set.total} commit(s), bump {resolved}",
                change_set=change_set,
                bump=resolved,
            )
        )

    def set_version(
        self,
        version: SemVer,
        *,
        actor: str = "system",
        now: datetime | None = None,
    ) -> Result[ReleaseRun, ReleaseError]:
        if self.state == "versioned" and version == self.next_version:
            return Ok(self)

        match self.state:
            case "planned":
                floor = self.current_version
            case "versioned" if self.next_version is not None:
                floor = self.next_version
            case _:
                return self._invalid("set version")

        check = validate_next_version(current=floor, candidate=version)
        if isinstance(check, Err):
            return check

        reason = f"{self.current_version} -> {version}"
        if self.state == "versioned":
            return Ok(
                self._stamp(
                    event="reversion",
                    actor=actor,
                    now=now,
                    reason=reason,
                    next_version=version,
                )
            )
        return Ok(
            self._advance(
                "versioned",
                event="set_version",
                actor=actor,
                now=now,
                reason=reason,
                next_version=version,
            )
        )

    def generate_notes(
        self,
        notes: ReleaseNotes,
        *,
        actor: str = "system",
        now: datetime | None = None,
    ) -> Result[ReleaseRun, ReleaseError]:
        if self.state == "notes_ready" and self.notes is not None and _same_notes(self.notes, notes):
            return Ok(self)

        if self.state != "versioned":
            return self._invalid("generate notes")

        if not notes.text.strip():
            return Err(
                ReleaseError(
                    kind="notes_missing",
                    message="release notes are empty",
                    hint="Provide non-empty notes text.",
                )
            )

        at = self._now(now)
        stamped = notes if notes.generated_at is not None else replace(notes, generated_at=at)
        return Ok(
            self._advance(
                "notes_ready",
                event="generate_notes",
                actor=actor,
                now=at,
                notes=stamped,
            )
        )

    def approve(
        self,
        approved_by: str,
        *,
        auto_approve: bool = False,
        confirmed: bool = False,
        evaluation: RiskEvaluation | None = None,
        strict_mode: bool = False,
        require_approval: bool = False,
        now: datetime | None = None,
    ) -> Result[ReleaseRun, ReleaseError]:
        """Approve the run for publishing.

        Under ``strict_mode`` the governance evaluation is binding: a rejected
        decision fails, and auto-approval additionally needs
        ``can_auto_approve``. Outside strict mode the evaluation is advisory
        and only recorded on the approval.

        Re-approving an approved run returns it unchanged, unless a fresh
        strict-mode evaluation now rejects it.
        """
        if self.state == "approved":
            if strict_mode and evaluation is not None and evaluation.decision == "rejected":
                return Err(_rejection(evaluation))
            return Ok(self)

        if self.state != "notes_ready":
            return self._invalid("approve")

        if self.notes is None:
            return Err(
                ReleaseError(
                    kind="notes_missing",
                    message="cannot approve a release without notes",
                    hint="run 'shipgate release notes' first",
                )
            )

        if strict_mode:
            if evaluation is None:
                return Err(
                    ReleaseError(
                        kind="governance_unconfigured",
                        message="strict mode requires a governance evaluation",
                        hint="Enable [governance] in shipgate.toml or disable strict_mode.",
                    )
                )
            if evaluation.decision == "rejected":
                return Err(_rejection(evaluation))
            if auto_approve and not evaluation.can_auto_approve:
                return Err(
                    ReleaseError(
                        kind="approval_required",
                        message=(
                            f"auto-approval not permitted (decision={evaluation.decision}, "
                            f"severity={evaluation.severity})"
                        ),
                        hint="Approve interactively with --yes after review.",
                    )
                )

        if require_approval and not auto_approve and not confirmed:
            return Err(
                ReleaseError(
                    kind="approval_required",
                    message="explicit confirmation is required to approve",
                    hint="Re-run with --yes to confirm.",
                )
            )

        at = self._now(now)
        approval = Approval(
            approved_by=approved_by,
            auto_approved=auto_approve,
            timestamp=at,
            risk_score=(evaluation.risk_score if evaluation is not None else None),
            decision=(evaluation.decision if evaluation is not None else None),
        )
        reason = "auto-approved" if auto_approve else "approved"
        if evaluation is not None:
            reason += f" (risk {evaluation.risk_score:.2f}, {evaluation.decision})"
        return Ok(
            self._advance(
                "approved",
                event="approve",
                actor=approved_by,
                now=at,
                reason=reason,
                approval=approval,
            )
        )

    def start_publishing(
        self, *, actor: str = "system", now: datetime | None = None
    ) -> Result[ReleaseRun, ReleaseError]:
        if self.state != "approved":
            return self._invalid("publish")
        return Ok(self._advance("publishing", event="start_publishing", actor=actor, now=now))

    def mark_published(
        self, *, actor: str = "system", now: datetime | None = None
    ) -> Result[ReleaseRun, ReleaseError]:
        if self.state == "published":
            return Ok(self)
        if self.state != "publishing":
            return self._invalid("mark published")
        at = self._now(now)
        return Ok(
            self._advance(
                "published",
                event="mark_published",
                actor=actor,
                now=at,
                published_at=at,
                last_error=None,
            )
        )

    def mark_failed(
        self, reason: str, *, actor: str = "system", now: datetime | None = None
    ) -> Result[ReleaseRun, ReleaseError]:
        if self.state != "publishing":
            return self._invalid("mark failed")
        return Ok(
            self._advance(
                "failed",
                event="mark_failed",
                actor=actor,
                now=now,
                reason=reason,
                last_error=reason,
            )
        )

    def cancel(
        self, reason: str = "", *, actor: str = "system", now: datetime | None = None
    ) -> Result[ReleaseRun, ReleaseError]:
        if self.state == "canceled":
            return Ok(self)
        if self.state not in CANCELABLE_STATES:
            return self._invalid("cancel")
        return Ok(self._advance("canceled", event="cancel", actor=actor, now=now, reason=reason))

    # -- helpers --------------------------------------------------------------

    def _now(self, now: datetime | None) -> datetime:
        at = now if now is not None else _utcnow()
        # updated_at never moves backwards, even with a skewed clock.
        return max(at, self.updated_at)

    def _advance(
        self,
        target: RunState,
        *,
        event: str,
        actor: str,
        now: datetime | None,
        reason: str = "",
        **changes: object,
    ) -> ReleaseRun:
        if not can_transition(self.state, target):
            raise AssertionError(f"transition {self.state} -> {target} is not in the table")
        at = self._now(now)
        record = TransitionRecord(
            at=at,
            from_state=self.state,
            to_state=target,
            event=event,
            actor=actor,
            reason=reason,
        )
        return replace(
            self,
            state=target,
            updated_at=at,
            history=(*self.history, record),
            **changes,  # type: ignore[arg-type]
        )

    def _stamp(
        self,
        *,
        event: str,
        actor: str,
        now: datetime | None,
        reason: str = "",
        **changes: object,
    ) -> ReleaseRun:
        at = self._now(now)
        record = TransitionRecord(
            at=at,
            from_state=self.state,
            to_state=self.state,
            event=event,
            actor=actor,
            reason=reason,
        )
        return replace(
            self,
            updated_at=at,
            history=(*self.history, record),
            **changes,  # type: ignore[arg-type]
        )

    def _invalid(self, operation: str) -> Err[ReleaseError]:
        return Err(
            ReleaseError(
                kind="invalid_transition",
                message=f"cannot {operation} a run in state '{self.state}'",
                hint=next_step_hint(self.state),
            )
        )


def _same_notes(a: ReleaseNotes, b: ReleaseNotes) -> bool:
    return a.text == b.text and a.ai_generated == b.ai_generated and a.provider == b.provider


def _rejection(evaluation: RiskEvaluation) -> ReleaseError:
    # The decisive rule is always the last rationale entry.
    return ReleaseError(
        kind="governance_rejected",
        message=f"governance rejected the release (risk {evaluation.risk_score:.2f})",
        hint=(evaluation.rationale[-1] if evaluation.rationale else None),
    )


def new_run(
    *,
    repo_path: str,
    branch: str,
    current_version: SemVer,
    now: datetime | None = None,
    run_id: str | None = None,
) -> ReleaseRun:
    at = now if now is not None else _utcnow()
    return ReleaseRun(
        run_id=run_id or new_run_id(),
        repo_path=repo_path,
        branch=branch,
        state="draft",
        current_version=current_version,
        created_at=at,
        updated_at=at,
    )
