from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .exec import CmdResult


class SafeApplyError(RuntimeError):
    pass


class PathRejected(SafeApplyError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{reason}: {path!r}")
        self.path = path
        self.reason = reason


class CommandRejected(SafeApplyError):
    def __init__(self, command: str, reason: str) -> None:
        super().__init__(f"{reason}: {command!r}")
        self.command = command
        self.reason = reason


class LimitExceeded(SafeApplyError):
    pass


class MalformedStep(SafeApplyError):
    pass


class IoFailure(SafeApplyError):
    """Read/write/rename failure for a single step. Chained from the OSError."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{message}: {path}")
        self.path = path


class TimedOut(SafeApplyError):
    def __init__(self, command: str, timeout: float) -> None:
        super().__init__(f"Command timed out after {timeout:g}s: {command}")
        self.command = command
        self.timeout = timeout


class CommandFailed(SafeApplyError):
    def __init__(self, result: "CmdResult") -> None:
        super().__init__(
            f"Command exited with non-zero status {result.status_code}: {result.command}\n"
            f"stdout:\n{result.stdout}\nstderr:\n{result.stderr}"
        )
        self.result = result


class ConfigError(SafeApplyError, ValueError):
    pass


def describe(err: Optional[BaseException]) -> str:
    if err is None:
        return ""
    return f"{type(err).__name__}: {err}"
