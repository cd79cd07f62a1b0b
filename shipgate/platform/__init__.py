"""Platform abstraction layer."""

from .files import (
    append_line,
    atomic_write_text,
)

__all__ = [
    "append_line",
    "atomic_write_text",
]
