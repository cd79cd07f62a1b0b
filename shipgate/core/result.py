"""Result type for explicit error handling.

Operations that can fail for business reasons (a guard that does not hold,
a governance rejection, a stale revision) return ``Ok`` or ``Err`` instead of
raising. Callers narrow with ``isinstance`` or ``match``:

    loaded = store.load(run_id)
    if isinstance(loaded, Err):
        return loaded
    run = loaded.value
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeAlias, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    error: E

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result: TypeAlias = Union[Ok[T], Err[E]]
