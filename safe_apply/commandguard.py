from __future__ import annotations

from typing import Iterable

from .config import SafetyConfig

SEPARATOR = " "


def is_exact_allowed(command: str, allowlist: Iterable[str]) -> bool:
    return any(command == c for c in allowlist)


def is_allowed(command: str, allowlist: Iterable[str]) -> bool:
    """Exact match, or an allowlisted base followed by one space and arguments.

    ``"npm install"`` allows ``"npm install left-pad"`` but not ``"npm installx"``.
    """

    for base in allowlist:
        if not base:
            continue
        if command == base:
            return True
        if command.startswith(base + SEPARATOR) and len(command) > len(base) + 1:
            return True
    return False


def command_permitted(command: str, config: SafetyConfig) -> bool:
    """The one policy consulted before validating or spawning a command."""

    if config.command_policy == "prefix":
        return is_allowed(command, config.command_allowlist)
    return is_exact_allowed(command, config.command_allowlist)
