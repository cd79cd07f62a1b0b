from __future__ import annotations

from dataclasses import dataclass

from shipgate.services.governance.model import HistoricalContext, RiskFactor
from shipgate.services.release.model import ChangeSet, Commit


SECURITY_SCOPES: frozenset[str] = frozenset(
    {
        "security",
        "auth",
        "authentication",
        "authorization",
        "crypto",
        "encryption",
        "ssl",
        "tls",
        "cert",
        "certificate",
        "oauth",
        "jwt",
        "token",
        "session",
        "password",
        "credential",
        "acl",
        "rbac",
        "permission",
        "access-control",
    }
)

SECURITY_KEYWORDS: tuple[str, ...] = (
    "security",
    "cve",
    "vulnerability",
    "vuln",
    "exploit",
    "injection",
    "xss",
    "csrf",
    "sqli",
    "rce",
    "authentication",
    "authorization",
    "privilege",
    "sanitize",
    "escape",
    "validate input",
    "secret",
    "credential",
    "password",
    "token",
    "encrypt",
    "decrypt",
    "hash",
    "salt",
    "owasp",
    "pentest",
    "security fix",
    "security patch",
)

ROLLBACK_PENALTY = 0.3
GOOD_TRACK_RECORD_BONUS = 0.05


@dataclass(frozen=True, slots=True)
class RiskWeights:
    breaking: float = 0.55
    security: float = 0.30
    volume: float = 0.15


def clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def is_security_relevant(commit: Commit) -> bool:
    if commit.scope is not None and commit.scope.lower() in SECURITY_SCOPES:
        return True
    text = f"{commit.subject}\n{commit.body}".lower()
    return any(keyword in text for keyword in SECURITY_KEYWORDS)


def count_security_changes(change_set: ChangeSet) -> int:
    return sum(1 for c in change_set.commits if is_security_relevant(c))


def breaking_score(count: int) -> float:
    if count <= 0:
        return 0.0
    if count == 1:
        return 0.8
    if count <= 3:
        return 0.9
    return 1.0


def security_score(count: int) -> float:
    if count <= 0:
        return 0.0
    if count == 1:
        return 0.5
    if count <= 3:
        return 0.7
    return 0.9


def _volume_band(count: int) -> float:
    if count <= 5:
        return 0.1
    if count <= 10:
        return 0.3
    if count <= 20:
        return 0.5
    if count <= 50:
        return 0.7
    return 1.0


def volume_score(*, commits: int, files_changed: int) -> float:
    file_band = _volume_band(files_changed) if files_changed > 0 else 0.0
    return (_volume_band(commits) + file_band) / 2


def base_risk(change_set: ChangeSet, weights: RiskWeights) -> tuple[float, tuple[RiskFactor, ...]]:
    """Weighted sum of the change-set factors, clamped to [0, 1]."""
    security = count_security_changes(change_set)
    factors = (
        RiskFactor(
            name="breaking_changes",
            score=breaking_score(change_set.breaking),
            weight=weights.breaking,
            description=f"{change_set.breaking} breaking change(s)",
        ),
        RiskFactor(
            name="security_changes",
            score=security_score(security),
            weight=weights.security,
            description=f"{security} security-relevant commit(s)",
        ),
        RiskFactor(
            name="change_volume",
            score=volume_score(commits=change_set.total, files_changed=change_set.files_changed),
            weight=weights.volume,
            description=(
                f"{change_set.total} commit(s), {change_set.files_changed} file(s) changed"
            ),
        ),
    )
    return clamp(sum(f.contribution for f in factors)), factors


def apply_history(score: float, history: HistoricalContext) -> tuple[float, list[str]]:
    """Adjust a base score by the repository's recent track record."""
    if history.total == 0:
        return score, []

    notes: list[str] = []
    adjusted = score
    if history.rollback_rate > 0:
        penalty = history.rollback_rate * ROLLBACK_PENALTY
        adjusted += penalty
        notes.append(
            f"history: rollback rate {history.rollback_rate:.0%} over {history.total} "
            f"release(s) (+{penalty:.2f})"
        )
    if history.success_rate >= 0.9 and history.rollback_rate <= 0.05:
        adjusted -= GOOD_TRACK_RECORD_BONUS
        notes.append(
            f"history: success rate {history.success_rate:.0%} over {history.total} "
            f"release(s) (-{GOOD_TRACK_RECORD_BONUS:.2f})"
        )
    return clamp(adjusted), notes
