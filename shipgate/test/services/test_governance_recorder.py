from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from shipgate.core.config import GovernanceConfig, WeightsConfig
from shipgate.core.result import Err, Ok
from shipgate.services.governance.factory import build_engine, memory_path, open_memory
from shipgate.services.governance.memory import InMemoryReleaseMemory, Outcome
from shipgate.services.governance.recorder import build_outcome, record_outcome
from shipgate.services.release.errors import ReleaseError
from shipgate.services.release.model import Approval, ChangeSet, ReleaseNotes
from shipgate.services.release.run import ReleaseRun
from shipgate.services.release.semver import SemVer
from shipgate.test._builders import actor, at, change_set, commit, draft


def _published() -> ReleaseRun:
    base = change_set(breaking=1, fixes=1)
    cs = ChangeSet(commits=(*base.commits, commit("fix", "fix: rotate token", scope="auth")), files_changed=6)
    steps = [
        lambda r: r.plan(cs, now=at(1)),
        lambda r: r.set_version(SemVer(2, 0, 0), now=at(2)),
        lambda r: r.generate_notes(ReleaseNotes(text="notes"), now=at(3)),
        lambda r: r.approve("alice", confirmed=True, now=at(4)),
        lambda r: r.start_publishing(now=at(5)),
        lambda r: r.mark_published(now=at(6)),
    ]
    run = draft()
    for step in steps:
        result = step(run)
        assert isinstance(result, Ok), result
        run = result.value
    return run


class TestBuildOutcome:
    def test_fields(self) -> None:
        outcome = build_outcome(run=_published(), actor=actor(), kind="success", now=at(10))
        assert outcome.release_id == "run-000000000001"
        assert outcome.repository == "/repo"
        assert outcome.version == "2.0.0"
        assert outcome.actor_id == "human:alice"
        assert outcome.breaking_changes == 1
        assert outcome.security_changes == 1
        assert outcome.files_changed == 6
        assert outcome.decision == "unevaluated"
        assert outcome.risk_score == 0.0
        assert outcome.duration_seconds == pytest.approx(600.0)

    def test_uses_approval_evaluation(self) -> None:
        run = _published()
        evaluated = replace(run, approval=Approval("alice", True, at(4), risk_score=0.42, decision="approved"))
        outcome = build_outcome(run=evaluated, actor=actor(), kind="rollback", now=at(10))
        assert outcome.risk_score == pytest.approx(0.42)
        assert outcome.decision == "approved"
        assert outcome.outcome == "rollback"


class TestRecordOutcome:
    def test_appends(self) -> None:
        memory = InMemoryReleaseMemory()
        result = record_outcome(memory, run=_published(), actor=actor(), kind="success", now=at(10))
        assert isinstance(result, Ok)
        assert memory.outcomes == (result.value,)

    def test_failure_is_wrapped(self) -> None:
        class FullDisk(InMemoryReleaseMemory):
            def record(self, outcome: Outcome) -> Err[ReleaseError]:  # type: ignore[override]
                return Err(ReleaseError(kind="io_failed", message="no space left", hint="/x"))

        result = record_outcome(FullDisk(), run=_published(), actor=actor(), kind="success", now=at(10))
        assert isinstance(result, Err)
        assert result.error.kind == "memory_failed"
        assert "no space left" in result.error.message


class TestFactory:
    def test_disabled_governance_has_no_engine(self) -> None:
        assert build_engine(GovernanceConfig(), memory=None) == Ok(None)

    def test_engine_carries_config(self, tmp_path: Path) -> None:
        config = GovernanceConfig(
            enabled=True,
            auto_approve_threshold=0.2,
            history_window=5,
            weights=WeightsConfig(breaking=0.7, security=0.2, volume=0.1),
            rules=({"name": "r", "then": [{"action": "approve"}]},),
        )
        result = build_engine(config, memory=open_memory(tmp_path))
        assert isinstance(result, Ok)
        engine = result.value
        assert engine is not None
        assert engine.auto_approve_threshold == 0.2
        assert engine.history_window == 5
        assert engine.weights.breaking == 0.7
        assert len(engine.policy) == 1

    def test_invalid_rules_fail_fast(self) -> None:
        config = GovernanceConfig(enabled=True, rules=({"name": "r", "then": [{"action": "nope"}]},))
        result = build_engine(config, memory=None)
        assert isinstance(result, Err)
        assert result.error.kind == "invalid_policy"

    def test_memory_path(self, tmp_path: Path) -> None:
        assert memory_path(tmp_path) == tmp_path / ".shipgate" / "memory" / "outcomes.jsonl"
