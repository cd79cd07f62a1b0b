"""Governance rules: guards over the evaluation context plus actions.

Rules are loaded from ``[[governance.rules]]`` tables and validated up front,
so evaluation never meets an unknown field, operator or malformed regex.

Example:
    [[governance.rules]]
    name = "block-risky-ci"
    priority = 100
    when = [
        { field = "risk_score", op = "gte", value = 0.7 },
        { field = "actor_kind", op = "eq", value = "ci" },
    ]
    then = [{ action = "block", reason = "high-risk releases need a human" }]
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal, TypeAlias, Union

from shipgate.core.result import Err, Ok, Result
from shipgate.core.structured import as_obj_list, as_str_dict, get_bool, get_int, get_str
from shipgate.services.governance.actor import parse_trust_level, trust_ordinal
from shipgate.services.release.errors import ReleaseError


Operator = Literal["eq", "ne", "gt", "gte", "lt", "lte", "in", "contains", "matches"]
FieldType = Literal["number", "bool", "str"]

OPERATORS: tuple[Operator, ...] = ("eq", "ne", "gt", "gte", "lt", "lte", "in", "contains", "matches")

CONTEXT_FIELDS: dict[str, FieldType] = {
    "risk_score": "number",
    "has_breaking_changes": "bool",
    "commit_count": "number",
    "scope": "str",
    "actor_trust_level": "number",
    "files_changed": "number",
    "breaking_changes": "number",
    "security_changes": "number",
    "actor_kind": "str",
    "bump": "str",
    "is_business_hours": "bool",
    "is_weekend": "bool",
    "in_freeze_period": "bool",
    "freeze_severity": "str",
    "hour": "number",
    "weekday": "str",
}

_OPS_BY_TYPE: dict[FieldType, frozenset[str]] = {
    "number": frozenset({"eq", "ne", "gt", "gte", "lt", "lte", "in"}),
    "bool": frozenset({"eq", "ne"}),
    "str": frozenset({"eq", "ne", "in", "contains", "matches"}),
}


@dataclass(frozen=True, slots=True)
class Predicate:
    field: str
    op: Operator
    value: object

    def matches(self, context: Mapping[str, object]) -> bool:
        actual = context.get(self.field)
        if actual is None:
            return False
        return _compare(self.op, actual, self.value)


@dataclass(frozen=True, slots=True)
class Block:
    reason: str


@dataclass(frozen=True, slots=True)
class RequireApproval:
    role: str


@dataclass(frozen=True, slots=True)
class Approve:
    pass


Action: TypeAlias = Union[Block, RequireApproval, Approve]


@dataclass(frozen=True, slots=True)
class Rule:
    name: str
    priority: int
    enabled: bool
    description: str
    guard: tuple[Predicate, ...]
    actions: tuple[Action, ...]

    def matches(self, context: Mapping[str, object]) -> bool:
        """All predicates must hold; an empty guard always matches."""
        return all(p.matches(context) for p in self.guard)


@dataclass(frozen=True, slots=True)
class PolicySet:
    rules: tuple[Rule, ...] = ()

    def ordered(self) -> tuple[Rule, ...]:
        """Enabled rules by descending priority, ties broken by name."""
        return tuple(sorted((r for r in self.rules if r.enabled), key=lambda r: (-r.priority, r.name)))

    def __len__(self) -> int:
        return len(self.rules)


EMPTY_POLICY = PolicySet()


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _compare(op: Operator, actual: object, expected: object) -> bool:
    match op:
        case "eq":
            return _equal(actual, expected)
        case "ne":
            return not _equal(actual, expected)
        case "gt" | "gte" | "lt" | "lte":
            if not (_is_number(actual) and _is_number(expected)):
                return False
            a = float(actual)  # type: ignore[arg-type]
            b = float(expected)  # type: ignore[arg-type]
            if op == "gt":
                return a > b
            if op == "gte":
                return a >= b
            if op == "lt":
                return a < b
            return a <= b
        case "in":
            if not isinstance(expected, tuple):
                return False
            return any(_equal(actual, item) for item in expected)
        case "contains":
            return isinstance(actual, str) and isinstance(expected, str) and expected in actual
        case "matches":
            return (
                isinstance(actual, str)
                and isinstance(expected, str)
                and re.search(expected, actual) is not None
            )


def _equal(actual: object, expected: object) -> bool:
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    if _is_number(actual) and _is_number(expected):
        return float(actual) == float(expected)  # type: ignore[arg-type]
    return actual == expected


# -- loading ------------------------------------------------------------------


def _invalid(message: str, *, rule: str | None = None) -> Err[ReleaseError]:
    return Err(
        ReleaseError(
            kind="invalid_policy",
            message=(f"rule {rule!r}: {message}" if rule else message),
            hint="Check [[governance.rules]] in shipgate.toml.",
        )
    )


def _normalize_scalar(field: str, ftype: FieldType, raw: object) -> object | None:
    if field == "actor_trust_level" and isinstance(raw, str):
        level = parse_trust_level(raw)
        return trust_ordinal(level) if level is not None else None
    match ftype:
        case "number":
            return raw if _is_number(raw) else None
        case "bool":
            return raw if isinstance(raw, bool) else None
        case "str":
            return raw if isinstance(raw, str) else None


def parse_predicate(raw: object, *, rule: str) -> Result[Predicate, ReleaseError]:
    table = as_str_dict(raw)
    if table is None:
        return _invalid("each 'when' entry must be a table", rule=rule)

    field = get_str(table, "field")
    if field is None or field not in CONTEXT_FIELDS:
        return _invalid(
            f"unknown field {table.get('field')!r} (known: {', '.join(sorted(CONTEXT_FIELDS))})",
            rule=rule,
        )
    ftype = CONTEXT_FIELDS[field]

    op = get_str(table, "op")
    if op not in OPERATORS:
        return _invalid(f"unknown operator {table.get('op')!r}", rule=rule)
    if op not in _OPS_BY_TYPE[ftype]:
        return _invalid(f"operator {op!r} does not apply to {ftype} field {field!r}", rule=rule)

    if "value" not in table:
        return _invalid(f"predicate on {field!r} has no value", rule=rule)
    raw_value = table["value"]

    value: object
    if op == "in":
        items = as_obj_list(raw_value)
        if items is None or not items:
            return _invalid(f"'in' on {field!r} needs a non-empty list", rule=rule)
        normalized: list[object] = []
        for item in items:
            n = _normalize_scalar(field, ftype, item)
            if n is None:
                return _invalid(f"invalid list item {item!r} for {field!r}", rule=rule)
            normalized.append(n)
        value = tuple(normalized)
    else:
        value = _normalize_scalar(field, ftype, raw_value)
        if value is None:
            return _invalid(f"invalid value {raw_value!r} for {ftype} field {field!r}", rule=rule)
        if op == "matches":
            try:
                re.compile(str(value))
            except re.error as e:
                return _invalid(f"invalid regex {value!r}: {e}", rule=rule)

    return Ok(Predicate(field=field, op=op, value=value))


def parse_action(raw: object, *, rule: str) -> Result[Action, ReleaseError]:
    table = as_str_dict(raw)
    if table is None:
        return _invalid("each 'then' entry must be a table", rule=rule)

    match get_str(table, "action"):
        case "block":
            reason = get_str(table, "reason") or f"blocked by rule {rule}"
            return Ok(Block(reason=reason))
        case "require_approval":
            return Ok(RequireApproval(role=get_str(table, "role") or "maintainer"))
        case "approve":
            return Ok(Approve())
        case other:
            return _invalid(f"unknown action {other!r}", rule=rule)


def parse_rule(raw: object, *, index: int) -> Result[Rule, ReleaseError]:
    table = as_str_dict(raw)
    if table is None:
        return _invalid(f"rule #{index + 1} must be a table")

    name = get_str(table, "name")
    if name is None:
        return _invalid(f"rule #{index + 1} has no name")

    priority = get_int(table, "priority") if "priority" in table else 0
    if priority is None:
        return _invalid(f"priority must be an integer, got {table.get('priority')!r}", rule=name)

    enabled_obj = get_bool(table, "enabled")
    if "enabled" in table and enabled_obj is None:
        return _invalid("enabled must be a boolean", rule=name)

    when_obj = table.get("when", [])
    when = as_obj_list(when_obj)
    if when is None:
        return _invalid("'when' must be a list of predicates", rule=name)

    guard: list[Predicate] = []
    for item in when:
        parsed = parse_predicate(item, rule=name)
        if isinstance(parsed, Err):
            return parsed
        guard.append(parsed.value)

    then = as_obj_list(table.get("then"))
    if not then:
        return _invalid("'then' must list at least one action", rule=name)

    actions: list[Action] = []
    for item in then:
        parsed_action = parse_action(item, rule=name)
        if isinstance(parsed_action, Err):
            return parsed_action
        actions.append(parsed_action.value)

    return Ok(
        Rule(
            name=name,
            priority=priority,
            enabled=(enabled_obj if enabled_obj is not None else True),
            description=get_str(table, "description") or "",
            guard=tuple(guard),
            actions=tuple(actions),
        )
    )


def load_policy(raw: object) -> Result[PolicySet, ReleaseError]:
    """Validate a list of rule tables into a PolicySet."""
    if raw is None:
        return Ok(EMPTY_POLICY)

    items = as_obj_list(raw)
    if items is None:
        return _invalid("governance.rules must be an array of tables")

    rules: list[Rule] = []
    seen: set[str] = set()
    for index, item in enumerate(items):
        parsed = parse_rule(item, index=index)
        if isinstance(parsed, Err):
            return parsed
        rule = parsed.value
        if rule.name in seen:
            return _invalid(f"duplicate rule name {rule.name!r}")
        seen.add(rule.name)
        rules.append(rule)

    return Ok(PolicySet(rules=tuple(rules)))
