from __future__ import annotations

from shipgate.core.result import Err, Ok
from shipgate.services.governance.policy import (
    Approve,
    Block,
    PolicySet,
    Predicate,
    RequireApproval,
    Rule,
    load_policy,
)


def _rule(name: str, *, priority: int = 0, enabled: bool = True) -> dict[str, object]:
    return {
        "name": name,
        "priority": priority,
        "enabled": enabled,
        "then": [{"action": "approve"}],
    }


def _load_error(raw: object) -> str:
    result = load_policy(raw)
    assert isinstance(result, Err), result
    assert result.error.kind == "invalid_policy"
    return result.error.message


class TestLoadPolicy:
    def test_none_is_empty(self) -> None:
        result = load_policy(None)
        assert isinstance(result, Ok)
        assert len(result.value) == 0

    def test_full_rule(self) -> None:
        result = load_policy(
            [
                {
                    "name": "block-risky-ci",
                    "priority": 100,
                    "description": "CI may not ship risky releases",
                    "when": [
                        {"field": "risk_score", "op": "gte", "value": 0.7},
                        {"field": "actor_kind", "op": "eq", "value": "ci"},
                    ],
                    "then": [{"action": "block", "reason": "needs a human"}],
                },
                {
                    "name": "review-breaking",
                    "when": [{"field": "has_breaking_changes", "op": "eq", "value": True}],
                    "then": [{"action": "require_approval"}],
                },
            ]
        )
        assert isinstance(result, Ok)
        block, review = result.value.rules
        assert block.guard[0] == Predicate(field="risk_score", op="gte", value=0.7)
        assert block.actions == (Block(reason="needs a human"),)
        assert review.priority == 0
        assert review.enabled
        assert review.actions == (RequireApproval(role="maintainer"),)

    def test_default_block_reason(self) -> None:
        result = load_policy([{"name": "stop", "then": [{"action": "block"}]}])
        assert isinstance(result, Ok)
        assert result.value.rules[0].actions == (Block(reason="blocked by rule stop"),)

    def test_trust_level_names_become_ordinals(self) -> None:
        result = load_policy(
            [
                {
                    "name": "trusted-only",
                    "when": [
                        {"field": "actor_trust_level", "op": "gte", "value": "trusted"},
                        {"field": "actor_trust_level", "op": "in", "value": ["limited", 3]},
                    ],
                    "then": [{"action": "approve"}],
                }
            ]
        )
        assert isinstance(result, Ok)
        guard = result.value.rules[0].guard
        assert guard[0].value == 2
        assert guard[1].value == (1, 3)

    def test_calendar_fields(self) -> None:
        result = load_policy(
            [
                {
                    "name": "weekend-freeze",
                    "when": [
                        {"field": "weekday", "op": "in", "value": ["saturday", "sunday"]},
                        {"field": "in_freeze_period", "op": "eq", "value": False},
                        {"field": "hour", "op": "gte", "value": 8},
                    ],
                    "then": [{"action": "require_approval", "role": "on-call"}],
                }
            ]
        )
        assert isinstance(result, Ok)
        rule = result.value.rules[0]
        assert rule.matches({"weekday": "sunday", "in_freeze_period": False, "hour": 10})
        assert not rule.matches({"weekday": "monday", "in_freeze_period": False, "hour": 10})
        assert not rule.matches({})

    def test_rejections(self) -> None:
        assert "must be an array" in _load_error({"name": "x"})
        assert "no name" in _load_error([{"then": [{"action": "approve"}]}])
        assert "duplicate" in _load_error([_rule("a"), _rule("a")])
        assert "at least one action" in _load_error([{"name": "a", "then": []}])
        assert "unknown action" in _load_error([{"name": "a", "then": [{"action": "ship"}]}])
        assert "priority" in _load_error([{"name": "a", "priority": "high", "then": [{"action": "approve"}]}])
        assert "enabled" in _load_error([{"name": "a", "enabled": "yes", "then": [{"action": "approve"}]}])

    def test_predicate_rejections(self) -> None:
        def when(*predicates: dict[str, object]) -> list[object]:
            return [{"name": "r", "when": list(predicates), "then": [{"action": "approve"}]}]

        assert "unknown field" in _load_error(when({"field": "mood", "op": "eq", "value": 1}))
        assert "unknown operator" in _load_error(when({"field": "risk_score", "op": "~", "value": 1}))
        assert "does not apply" in _load_error(when({"field": "risk_score", "op": "matches", "value": "x"}))
        assert "does not apply" in _load_error(
            when({"field": "has_breaking_changes", "op": "gt", "value": True})
        )
        assert "no value" in _load_error(when({"field": "risk_score", "op": "gt"}))
        assert "invalid value" in _load_error(when({"field": "commit_count", "op": "gt", "value": "ten"}))
        assert "invalid value" in _load_error(when({"field": "risk_score", "op": "gt", "value": True}))
        assert "non-empty list" in _load_error(when({"field": "bump", "op": "in", "value": []}))
        assert "invalid regex" in _load_error(when({"field": "scope", "op": "matches", "value": "(["}))


class TestEvaluation:
    def test_operators(self) -> None:
        ctx: dict[str, object] = {
            "risk_score": 0.5,
            "commit_count": 12,
            "scope": "api-v2",
            "has_breaking_changes": False,
            "bump": "minor",
        }
        cases: list[tuple[Predicate, bool]] = [
            (Predicate("risk_score", "gt", 0.4), True),
            (Predicate("risk_score", "lt", 0.5), False),
            (Predicate("risk_score", "lte", 0.5), True),
            (Predicate("commit_count", "eq", 12.0), True),
            (Predicate("commit_count", "ne", 12), False),
            (Predicate("commit_count", "in", (10, 12)), True),
            (Predicate("scope", "contains", "api"), True),
            (Predicate("scope", "matches", r"^api-v\d+$"), True),
            (Predicate("scope", "matches", r"^web"), False),
            (Predicate("has_breaking_changes", "eq", False), True),
            (Predicate("has_breaking_changes", "eq", 0), False),
            (Predicate("bump", "in", ("major", "minor")), True),
            (Predicate("security_changes", "eq", 0), False),
        ]
        for predicate, expected in cases:
            assert predicate.matches(ctx) is expected, predicate

    def test_ordering_skips_disabled_rules(self) -> None:
        def rule(name: str, priority: int, enabled: bool = True) -> Rule:
            return Rule(name, priority, enabled, "", (), (Approve(),))

        policy = PolicySet(rules=(rule("b", 10), rule("a", 10), rule("z", 99), rule("off", 500, False)))
        assert [r.name for r in policy.ordered()] == ["z", "a", "b"]

    def test_empty_guard_always_matches(self) -> None:
        assert Rule("always", 0, True, "", (), (Approve(),)).matches({})
