"""Exit codes for CLI commands.

The numeric values are process exit codes and must stay stable:
- 0: Success
- 1: User error (bad input, a guard that does not hold yet)
- 2: Environment error (missing or invalid configuration)
- 3: Governance rejection (a normal business outcome, not a fault)
- 4: Conflict (active run exists, concurrent modification)
- 5: I/O error (state or memory files unreadable/unwritable)
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands."""

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    GOVERNANCE_REJECTED = 3
    CONFLICT = 4
    IO_ERROR = 5

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK

    @property
    def is_error(self) -> bool:
        return self != ErrorCode.OK
