from __future__ import annotations

import pytest

from shipgate.services.governance.actor import actor_from_env, is_ci, parse_trust_level, trust_ordinal


def test_trust_ordinals_are_ordered() -> None:
    assert trust_ordinal("limited") < trust_ordinal("trusted") < trust_ordinal("full")
    assert trust_ordinal("limited") == 1


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("full", "full"), (" Trusted ", "trusted"), ("admin", None), (None, None)],
)
def test_parse_trust_level(raw: str | None, expected: str | None) -> None:
    assert parse_trust_level(raw) == expected


def test_is_ci_ignores_falsey_values() -> None:
    assert is_ci({"CI": "true"})
    assert is_ci({"GITHUB_ACTIONS": "1"})
    assert not is_ci({"CI": "false"})
    assert not is_ci({"CI": "0", "GITLAB_CI": ""})
    assert not is_ci({})


class TestActorFromEnv:
    def test_human_defaults_to_trusted(self) -> None:
        actor = actor_from_env({"USER": "alice"})
        assert actor.kind == "human"
        assert actor.name == "alice"
        assert actor.id == "human:alice"
        assert actor.trust_level == "trusted"
        assert actor.can_auto_approve

    def test_ci_defaults_to_limited(self) -> None:
        actor = actor_from_env({"CI": "true", "GITHUB_ACTOR": "octocat", "USER": "runner"})
        assert actor.kind == "ci"
        assert actor.name == "octocat"
        assert actor.trust_level == "limited"
        assert not actor.can_auto_approve

    def test_explicit_overrides(self) -> None:
        actor = actor_from_env(
            {"CI": "1", "SHIPGATE_ACTOR": "release-bot", "SHIPGATE_TRUST_LEVEL": "full"}
        )
        assert actor.id == "ci:release-bot"
        assert actor.trust_level == "full"

    def test_unknown_trust_level_falls_back(self) -> None:
        actor = actor_from_env({"USER": "bob", "SHIPGATE_TRUST_LEVEL": "root"})
        assert actor.trust_level == "trusted"

    def test_anonymous(self) -> None:
        assert actor_from_env({}).name == "unknown"
        assert actor_from_env({"CI": "yes"}).name == "ci"
