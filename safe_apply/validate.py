from __future__ import annotations

import logging

from .commandguard import command_permitted
from .config import SafetyConfig
from .errors import CommandRejected, LimitExceeded, PathRejected
from .pathguard import is_path_allowed, normalize_relative
from .plan import CreateStep, FileStep, Plan, ProcessStep, UpdateStep

logger = logging.getLogger(__name__)


def _payload_bytes(step: object) -> int:
    total = 0
    if isinstance(step, (CreateStep, UpdateStep)) and step.content is not None:
        total += len(step.content.encode("utf-8"))
    if isinstance(step, UpdateStep) and step.patch is not None:
        total += len(step.patch.encode("utf-8"))
    return total


def validate(plan: Plan, config: SafetyConfig) -> None:
    """Hard gate before any I/O. Raises on the first violation; never mutates.

    Order: step count, then per-step path/command membership, then the total
    payload byte budget.
    """

    if len(plan.steps) > config.max_actions:
        raise LimitExceeded(f"too many steps: {len(plan.steps)} > max_actions {config.max_actions}")

    total_bytes = 0
    for step in plan.steps:
        if isinstance(step, FileStep):
            if ".." in step.path.replace("\\", "/").split("/"):
                raise PathRejected(step.path, f"Parent traversal not allowed for {step.action.upper()}")
            rel = normalize_relative(step.path)
            if not rel or not is_path_allowed(rel, config.path_allowlist):
                raise PathRejected(
                    step.path,
                    f"Path not allowed for {step.action.upper()} "
                    f"(allowlist: {list(config.path_allowlist)})",
                )
        elif isinstance(step, ProcessStep):
            if not command_permitted(step.command, config):
                raise CommandRejected(
                    step.command,
                    f"Command not allowed (policy: {config.command_policy}, "
                    f"allowlist: {list(config.command_allowlist)})",
                )
        total_bytes += _payload_bytes(step)

    if total_bytes > config.max_patch_bytes:
        raise LimitExceeded(
            f"total planned payload {total_bytes} bytes exceeds limit {config.max_patch_bytes} bytes"
        )

    logger.info("Validated %d steps (%d payload bytes)", len(plan.steps), total_bytes)
