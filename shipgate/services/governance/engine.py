"""Governance risk-gate engine.

Evaluation is a pure function of the run's change set, the acting identity,
the loaded policy and (optionally) the repository's recent outcomes:

1. base risk from weighted change-set factors;
2. history adjustment from Release Memory;
3. rules in priority order, where the first decisive action wins;
4. severity and auto-approval eligibility.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from shipgate.core.result import Err, Ok, Result
from shipgate.services.governance.actor import Actor
from shipgate.services.governance.memory import (
    DEFAULT_HISTORY_WINDOW,
    ReleaseMemory,
    historical_context,
)
from shipgate.services.governance.model import (
    Decision,
    HistoricalContext,
    RiskEvaluation,
    severity_for,
)
from shipgate.services.governance.policy import (
    EMPTY_POLICY,
    Approve,
    Block,
    PolicySet,
    RequireApproval,
)
from shipgate.services.governance.risk import (
    RiskWeights,
    apply_history,
    base_risk,
    count_security_changes,
)
from shipgate.services.governance.schedule import ReleaseCalendar
from shipgate.services.release.errors import ReleaseError
from shipgate.services.release.model import BumpKind, ChangeSet
from shipgate.services.release.run import ReleaseRun

logger = logging.getLogger(__name__)

DEFAULT_AUTO_APPROVE_THRESHOLD = 0.3


@dataclass(frozen=True, slots=True)
class RuleOutcome:
    decision: Decision | None
    required_actions: tuple[str, ...]
    rationale: tuple[str, ...]
    matched_rules: tuple[str, ...]


def build_context(
    *,
    change_set: ChangeSet,
    actor: Actor,
    risk_score: float,
    bump: BumpKind,
    calendar: ReleaseCalendar | None = None,
    now: datetime | None = None,
) -> dict[str, object]:
    """Fields rules can test; time fields are present only with a calendar."""
    context: dict[str, object] = {
        "risk_score": risk_score,
        "has_breaking_changes": change_set.breaking > 0,
        "commit_count": change_set.total,
        "scope": change_set.scope,
        "actor_trust_level": actor.trust_ordinal,
        "files_changed": change_set.files_changed,
        "breaking_changes": change_set.breaking,
        "security_changes": count_security_changes(change_set),
        "actor_kind": actor.kind,
        "bump": bump,
    }
    if calendar is not None:
        context.update(calendar.context(now if now is not None else datetime.now(UTC)))
    return context


def evaluate_rules(policy: PolicySet, context: Mapping[str, object]) -> RuleOutcome:
    """Run enabled rules in order until a decisive action fires.

    ``block`` rejects and ``approve`` approves, both halting evaluation.
    ``require_approval`` only records the requirement, so later rules still run.
    """
    required: list[str] = []
    rationale: list[str] = []
    matched: list[str] = []
    decision: Decision | None = None

    for rule in policy.ordered():
        if not rule.matches(context):
            continue
        matched.append(rule.name)
        for action in rule.actions:
            match action:
                case RequireApproval(role=role):
                    required.append(f"approval by {role} ({rule.name})")
                    rationale.append(f"rule {rule.name}: requires approval by {role}")
                    decision = "requires_review"
                case Approve():
                    rationale.append(f"rule {rule.name}: approved")
                    return RuleOutcome("approved", tuple(required), tuple(rationale), tuple(matched))
                case Block(reason=reason):
                    rationale.append(f"rule {rule.name}: blocked: {reason}")
                    return RuleOutcome("rejected", tuple(required), tuple(rationale), tuple(matched))

    return RuleOutcome(decision, tuple(required), tuple(rationale), tuple(matched))


@dataclass(slots=True)
class GovernanceEngine:
    policy: PolicySet = EMPTY_POLICY
    memory: ReleaseMemory | None = None
    weights: RiskWeights = field(default_factory=RiskWeights)
    auto_approve_threshold: float = DEFAULT_AUTO_APPROVE_THRESHOLD
    history_window: int = DEFAULT_HISTORY_WINDOW
    calendar: ReleaseCalendar = field(default_factory=ReleaseCalendar)

    def evaluate(
        self,
        run: ReleaseRun,
        actor: Actor,
        *,
        repository: str | None = None,
        include_history: bool = True,
        now: datetime | None = None,
    ) -> Result[RiskEvaluation, ReleaseError]:
        change_set = run.change_set
        if change_set is None:
            return Err(
                ReleaseError(
                    kind="invalid_transition",
                    message=f"cannot evaluate a run in state '{run.state}' without a change set",
                    hint="run 'shipgate release plan' first",
                )
            )

        score, factors = base_risk(change_set, self.weights)
        rationale = [
            f"{f.name}: {f.description} (score {f.score:.2f} x weight {f.weight:.2f})"
            for f in factors
        ]

        history: HistoricalContext | None = None
        if include_history and self.memory is not None:
            history = self._load_history(repository or run.repo_path)
            if history is not None and history.total > 0:
                score, notes = apply_history(score, history)
                rationale.extend(notes)

        at = now if now is not None else datetime.now(UTC)
        freeze = self.calendar.active_freeze(at)
        if freeze is not None:
            rationale.append(
                f"freeze: {freeze.name} ({freeze.severity})" + (f": {freeze.reason}" if freeze.reason else "")
            )

        context = build_context(
            change_set=change_set,
            actor=actor,
            risk_score=score,
            bump=run.bump,
            calendar=self.calendar,
            now=at,
        )
        rules = evaluate_rules(self.policy, context)
        rationale.extend(rules.rationale)

        decision: Decision
        if rules.decision is not None:
            decision = rules.decision
        elif score < self.auto_approve_threshold:
            decision = "approved"
            rationale.append(
                f"default: risk {score:.2f} below auto-approve threshold "
                f"{self.auto_approve_threshold:.2f}"
            )
        else:
            decision = "requires_review"
            rationale.append(
                f"default: risk {score:.2f} at or above auto-approve threshold "
                f"{self.auto_approve_threshold:.2f}"
            )

        severity = severity_for(score)
        can_auto = decision == "approved" and severity != "high" and actor.can_auto_approve

        logger.debug(
            "evaluated %s: risk=%.3f severity=%s decision=%s rules=%s",
            run.run_id,
            score,
            severity,
            decision,
            ",".join(rules.matched_rules) or "-",
        )

        return Ok(
            RiskEvaluation(
                risk_score=score,
                severity=severity,
                decision=decision,
                can_auto_approve=can_auto,
                risk_factors=factors,
                required_actions=rules.required_actions,
                rationale=tuple(rationale),
                historical_context=history,
                matched_rules=rules.matched_rules,
            )
        )

    def _load_history(self, repository: str) -> HistoricalContext | None:
        if self.memory is None:
            return None
        loaded = historical_context(self.memory, repository, window=self.history_window)
        if isinstance(loaded, Err):
            # Evaluate without history.
            logger.warning("release memory unavailable: %s", loaded.error.message)
            return None
        return loaded.value
