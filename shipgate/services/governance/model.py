from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


Severity = Literal["low", "medium", "high"]
Decision = Literal["approved", "rejected", "requires_review"]


@dataclass(frozen=True, slots=True)
class RiskFactor:
    name: str
    score: float
    weight: float
    description: str

    @property
    def contribution(self) -> float:
        return self.score * self.weight


@dataclass(frozen=True, slots=True)
class HistoricalContext:
    """Aggregate over the most recent outcomes of one repository."""

    total: int
    successes: int
    failures: int
    rollbacks: int

    @property
    def success_rate(self) -> float:
        return self.successes / self.total if self.total else 0.0

    @property
    def rollback_rate(self) -> float:
        return self.rollbacks / self.total if self.total else 0.0

    @property
    def failure_rate(self) -> float:
        return self.failures / self.total if self.total else 0.0


EMPTY_HISTORY = HistoricalContext(total=0, successes=0, failures=0, rollbacks=0)


@dataclass(frozen=True, slots=True)
class RiskEvaluation:
    risk_score: float
    severity: Severity
    decision: Decision
    can_auto_approve: bool
    risk_factors: tuple[RiskFactor, ...]
    required_actions: tuple[str, ...]
    rationale: tuple[str, ...]
    historical_context: HistoricalContext | None
    matched_rules: tuple[str, ...]


def severity_for(score: float) -> Severity:
    if score < 0.4:
        return "low"
    if score < 0.7:
        return "medium"
    return "high"
