"""Exit codes for CLI commands.

The numeric values are process exit codes and should remain stable:
- 0: Success (every component installed or already up to date)
- 1: User error (bad arguments)
- 2: Config error (unreadable or invalid rx.toml)
- 3: Partial failure (some components failed, others installed)
- 4: Every component failed
- 5: I/O error (output directory unusable)
- 130: Cancelled by the user
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands."""

    OK = 0
    USER_ERROR = 1
    CONFIG_ERROR = 2
    PARTIAL_FAILURE = 3
    ALL_FAILED = 4
    IO_ERROR = 5
    CANCELLED = 130

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK
