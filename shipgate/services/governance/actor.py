"""Actors that drive a release and their trust levels."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal


ActorKind = Literal["human", "ci"]
TrustLevel = Literal["limited", "trusted", "full"]

TRUST_LEVELS: tuple[TrustLevel, ...] = ("limited", "trusted", "full")

_CI_MARKERS: tuple[str, ...] = (
    "CI",
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "BUILDKITE",
    "CIRCLECI",
    "JENKINS_URL",
)


@dataclass(frozen=True, slots=True)
class Actor:
    id: str
    kind: ActorKind
    name: str
    trust_level: TrustLevel

    @property
    def trust_ordinal(self) -> int:
        return trust_ordinal(self.trust_level)

    @property
    def can_auto_approve(self) -> bool:
        return self.trust_ordinal >= trust_ordinal("trusted")


def trust_ordinal(level: TrustLevel) -> int:
    """Ordered ints for comparisons in rules: limited=1, trusted=2, full=3."""
    return TRUST_LEVELS.index(level) + 1


def parse_trust_level(raw: str | None) -> TrustLevel | None:
    if raw is None:
        return None
    value = raw.strip().lower()
    for level in TRUST_LEVELS:
        if level == value:
            return level
    return None


def _is_set(environ: Mapping[str, str], key: str) -> bool:
    value = environ.get(key, "").strip().lower()
    return value not in ("", "0", "false", "no")


def is_ci(environ: Mapping[str, str]) -> bool:
    return any(_is_set(environ, key) for key in _CI_MARKERS)


def actor_from_env(environ: Mapping[str, str]) -> Actor:
    """Derive the acting identity from process environment variables.

    CI runners default to ``limited`` trust and humans to ``trusted``;
    ``SHIPGATE_TRUST_LEVEL`` overrides either when it names a known level.
    """
    ci = is_ci(environ)
    kind: ActorKind = "ci" if ci else "human"

    name = environ.get("SHIPGATE_ACTOR", "").strip()
    if not name:
        if ci:
            name = environ.get("GITHUB_ACTOR", "").strip() or "ci"
        else:
            name = environ.get("USER", "").strip() or environ.get("USERNAME", "").strip() or "unknown"

    default: TrustLevel = "limited" if ci else "trusted"
    trust = parse_trust_level(environ.get("SHIPGATE_TRUST_LEVEL")) or default

    return Actor(id=f"{kind}:{name}", kind=kind, name=name, trust_level=trust)
