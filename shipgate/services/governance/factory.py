from __future__ import annotations

from pathlib import Path
from typing import cast

from shipgate.core.config import GovernanceConfig, TimeConfig
from shipgate.core.result import Err, Ok, Result
from shipgate.services.governance.engine import GovernanceEngine
from shipgate.services.governance.memory import FileReleaseMemory, ReleaseMemory
from shipgate.services.governance.policy import load_policy
from shipgate.services.governance.risk import RiskWeights
from shipgate.services.governance.schedule import FreezePeriod, FreezeSeverity, ReleaseCalendar
from shipgate.services.release.errors import ReleaseError
from shipgate.services.release.store import state_dir


def memory_path(root: Path) -> Path:
    return state_dir(root) / "memory" / "outcomes.jsonl"


def open_memory(root: Path) -> FileReleaseMemory:
    return FileReleaseMemory(memory_path(root))


def build_calendar(config: TimeConfig) -> ReleaseCalendar:
    return ReleaseCalendar(
        start_hour=config.business_start_hour,
        end_hour=config.business_end_hour,
        timezone=config.tz,
        allow_weekends=config.allow_weekends,
        freezes=tuple(
            FreezePeriod(
                name=f.name,
                start=f.start,
                end=f.end,
                reason=f.reason,
                severity=cast(FreezeSeverity, f.severity),
            )
            for f in config.freeze
        ),
    )


def build_engine(
    config: GovernanceConfig,
    *,
    memory: ReleaseMemory | None,
) -> Result[GovernanceEngine | None, ReleaseError]:
    """Engine for ``config``, or None when governance is disabled.

    Rules are validated here, so a malformed policy fails before any run is touched.
    """
    if not config.enabled:
        return Ok(None)

    policy = load_policy(list(config.rules))
    if isinstance(policy, Err):
        return policy

    return Ok(
        GovernanceEngine(
            policy=policy.value,
            memory=memory,
            weights=RiskWeights(
                breaking=config.weights.breaking,
                security=config.weights.security,
                volume=config.weights.volume,
            ),
            auto_approve_threshold=config.auto_approve_threshold,
            history_window=config.history_window,
            calendar=build_calendar(config.time),
        )
    )
