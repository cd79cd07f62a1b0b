"""Release run states and the transition table."""

from __future__ import annotations

from typing import Literal

RunState = Literal[
    "draft",
    "planned",
    "versioned",
    "notes_ready",
    "approved",
    "publishing",
    "published",
    "failed",
    "canceled",
]

ALL_STATES: tuple[RunState, ...] = (
    "draft",
    "planned",
    "versioned",
    "notes_ready",
    "approved",
    "publishing",
    "published",
    "failed",
    "canceled",
)

TERMINAL_STATES: frozenset[RunState] = frozenset({"published", "failed", "canceled"})

CANCELABLE_STATES: frozenset[RunState] = frozenset(
    {"draft", "planned", "versioned", "notes_ready", "approved"}
)

# failed and canceled have no way out: the operator discards the run and plans a new one.
TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    "draft": frozenset({"planned", "canceled"}),
    "planned": frozenset({"versioned", "canceled"}),
    "versioned": frozenset({"notes_ready", "canceled"}),
    "notes_ready": frozenset({"approved", "canceled"}),
    "approved": frozenset({"publishing", "canceled"}),
    "publishing": frozenset({"published", "failed"}),
    "published": frozenset(),
    "failed": frozenset(),
    "canceled": frozenset(),
}

_NEXT_STEP_HINTS: dict[RunState, str] = {
    "draft": "run 'shipgate release plan' first",
    "planned": "run 'shipgate release version' first",
    "versioned": "run 'shipgate release notes' first",
    "notes_ready": "run 'shipgate release approve' first",
    "approved": "run 'shipgate release publish'",
    "publishing": "publishing is in progress",
    "published": "release is already published; plan a new release",
    "failed": "release failed; plan a new release",
    "canceled": "release was canceled; plan a new release",
}


def is_terminal(state: RunState) -> bool:
    return state in TERMINAL_STATES


def can_transition(source: RunState, target: RunState) -> bool:
    return target in TRANSITIONS[source]


def parse_state(raw: str | None) -> RunState | None:
    for state in ALL_STATES:
        if state == raw:
            return state
    return None


def next_step_hint(state: RunState) -> str:
    return _NEXT_STEP_HINTS[state]
