from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .audit import AuditLogger, audit_event
from .commandguard import command_permitted
from .config import SafetyConfig
from .errors import CommandFailed, CommandRejected, IoFailure, MalformedStep, SafeApplyError, describe
from .exec import CmdResult, placeholder_result, run_command
from .fsutil import read_text_if_exists, remove_file, write_atomic
from .merge import ensure_trailing_newline, plan_file_content
from .pathguard import resolve
from .plan import CommandStep, CreateStep, DeleteStep, Plan, Step, TestStep, UpdateStep, step_target

logger = logging.getLogger(__name__)

ON_ERROR_POLICIES = ("halt", "continue")
SKIPPED_TEST_PREFIX = "(skipped-not-allowlisted) "


@dataclass(frozen=True)
class StepFailure:
    step_id: str
    action: str
    target: str
    error: str


@dataclass
class ApplySummary:
    created: int = 0
    updated: int = 0
    deleted: int = 0
    commands: int = 0
    tests: int = 0
    skipped: int = 0
    command_outputs: List[CmdResult] = field(default_factory=list)
    errors: List[StepFailure] = field(default_factory=list)
    # Final bytes per written path; a rewrite replaces the earlier count.
    written: Dict[str, int] = field(default_factory=dict)

    @property
    def bytes_written(self) -> int:
        return sum(self.written.values())

    def record_write(self, path: Path, nbytes: int) -> None:
        self.written[str(path)] = nbytes


@dataclass
class _ApplyCtx:
    root: Path
    config: SafetyConfig
    task: str
    dry_run: bool
    summary: ApplySummary
    # Dry run only: content each step would have left on disk; None means deleted.
    staged: Dict[Path, Optional[str]] = field(default_factory=dict)


def _read(ctx: _ApplyCtx, abs_path: Path) -> Optional[str]:
    if ctx.dry_run and abs_path in ctx.staged:
        return ctx.staged[abs_path]
    return read_text_if_exists(abs_path)


def _write(ctx: _ApplyCtx, abs_path: Path, content: str) -> int:
    if ctx.dry_run:
        final = ensure_trailing_newline(content)
        ctx.staged[abs_path] = final
        return len(final.encode("utf-8"))
    return write_atomic(abs_path, content)


def _apply_create(ctx: _ApplyCtx, step: CreateStep) -> Dict[str, object]:
    abs_path = resolve(ctx.root, step.path, ctx.config.path_allowlist)
    if step.content is None:
        raise MalformedStep(f"create step {step.id} missing content for {step.path}")

    old = _read(ctx, abs_path)
    if old is None:
        nbytes = _write(ctx, abs_path, step.content)
        ctx.summary.created += 1
        verb = "create"
    else:
        # Existing target: content replaces, no additive merge.
        final = plan_file_content(old, step.content, path=step.path, task=ctx.task, merge=False)
        nbytes = _write(ctx, abs_path, final)
        ctx.summary.updated += 1
        verb = "overwrite"

    ctx.summary.record_write(abs_path, nbytes)
    logger.info("%s %s %s (%d bytes)", "Would" if ctx.dry_run else "Did", verb, step.path, nbytes)
    return {"path": step.path, "bytes": nbytes, "result": verb}


def _apply_update(ctx: _ApplyCtx, step: UpdateStep) -> Dict[str, object]:
    abs_path = resolve(ctx.root, step.path, ctx.config.path_allowlist)
    if step.content is None:
        # Patch-only updates are never guessed at.
        ctx.summary.skipped += 1
        logger.info("Skipping update of %s: no full content (patch-only)", step.path)
        return {"path": step.path, "result": "skipped"}

    old = _read(ctx, abs_path)
    if old is None:
        nbytes = _write(ctx, abs_path, step.content)
        ctx.summary.created += 1
        verb = "create"
    else:
        final = plan_file_content(
            old,
            step.content,
            path=step.path,
            task=ctx.task,
            extensions=ctx.config.additive_extensions,
        )
        nbytes = _write(ctx, abs_path, final)
        ctx.summary.updated += 1
        verb = "update"

    ctx.summary.record_write(abs_path, nbytes)
    logger.info("%s %s %s (%d bytes)", "Would" if ctx.dry_run else "Did", verb, step.path, nbytes)
    return {"path": step.path, "bytes": nbytes, "result": verb}


def _present(ctx: _ApplyCtx, abs_path: Path) -> bool:
    if ctx.dry_run and abs_path in ctx.staged:
        return ctx.staged[abs_path] is not None
    if not abs_path.exists():
        return False
    if not abs_path.is_file():
        raise IoFailure(str(abs_path), "Refusing to delete a non-file")
    return True


def _apply_delete(ctx: _ApplyCtx, step: DeleteStep) -> Dict[str, object]:
    abs_path = resolve(ctx.root, step.path, ctx.config.path_allowlist)
    if not _present(ctx, abs_path):
        ctx.summary.skipped += 1
        logger.info("Delete of %s skipped: already absent", step.path)
        return {"path": step.path, "result": "absent"}

    if ctx.dry_run:
        ctx.staged[abs_path] = None
    else:
        remove_file(abs_path)
    ctx.summary.deleted += 1
    logger.info("%s delete %s", "Would" if ctx.dry_run else "Did", step.path)
    return {"path": step.path, "result": "deleted"}


def _apply_command(ctx: _ApplyCtx, step: CommandStep) -> Dict[str, object]:
    if not command_permitted(step.command, ctx.config):
        raise CommandRejected(step.command, "Command not in allowlist")
    ctx.summary.commands += 1

    if ctx.dry_run:
        res = placeholder_result(step.command, step.cwd)
    else:
        res = run_command(step.command, ctx.config, step.cwd, ctx.config.timeout_secs)
    ctx.summary.command_outputs.append(res)
    return {"command": step.command, "status": res.status_code, "via_shell": res.via_shell_fallback}


def _apply_test(ctx: _ApplyCtx, step: TestStep) -> Dict[str, object]:
    ctx.summary.tests += 1
    if not command_permitted(step.command, ctx.config):
        logger.warning("Test command not allowlisted, skipping: %s", step.command)
        ctx.summary.command_outputs.append(placeholder_result(SKIPPED_TEST_PREFIX + step.command))
        ctx.summary.skipped += 1
        return {"command": step.command, "result": "skipped"}

    if ctx.dry_run:
        res = placeholder_result(step.command)
    else:
        res = run_command(step.command, ctx.config, None, ctx.config.timeout_secs)
    ctx.summary.command_outputs.append(res)
    return {"command": step.command, "status": res.status_code}


_HANDLERS = {
    CreateStep: _apply_create,
    UpdateStep: _apply_update,
    DeleteStep: _apply_delete,
    CommandStep: _apply_command,
    TestStep: _apply_test,
}


def apply_plan(
    root: str | Path,
    plan: Plan,
    config: SafetyConfig,
    *,
    task: str = "",
    dry_run: bool = False,
    on_error: str = "halt",
    audit: Optional[AuditLogger] = None,
) -> ApplySummary:
    """Apply a sanitized, validated plan in order, one step at a time.

    ``on_error="halt"`` re-raises the first step failure; ``"continue"``
    records it in ``summary.errors`` and moves on. Nothing is retried.
    """

    if on_error not in ON_ERROR_POLICIES:
        raise ValueError(f"on_error must be one of {ON_ERROR_POLICIES}, got {on_error!r}")

    root_path = Path(root).expanduser()
    cfg = config if Path(config.root).expanduser() == root_path else config.with_root(root_path)
    ctx = _ApplyCtx(root=root_path, config=cfg, task=task, dry_run=dry_run, summary=ApplySummary())

    for step in plan.steps:
        handler = _HANDLERS[type(step)]
        logger.info("Step %s [%s] %s", step.id, step.action, step_target(step))
        try:
            details = handler(ctx, step)  # type: ignore[operator]
        except SafeApplyError as e:
            if isinstance(e, CommandFailed):
                ctx.summary.command_outputs.append(e.result)
            _record_failure(ctx, step, e, audit)
            if on_error == "halt":
                raise
            continue
        if audit is not None:
            audit.log(audit_event(action=step.action, ok=True, step_id=step.id, details=dict(details, dry_run=dry_run)))

    s = ctx.summary
    logger.info(
        "Applied plan: created=%d updated=%d deleted=%d commands=%d tests=%d skipped=%d bytes=%d errors=%d",
        s.created, s.updated, s.deleted, s.commands, s.tests, s.skipped, s.bytes_written, len(s.errors),
    )
    return s


def _record_failure(ctx: _ApplyCtx, step: Step, err: SafeApplyError, audit: Optional[AuditLogger]) -> None:
    logger.error("Step %s [%s] failed: %s", step.id, step.action, err)
    ctx.summary.errors.append(
        StepFailure(step_id=step.id, action=step.action, target=step_target(step), error=describe(err))
    )
    if audit is not None:
        audit.log(
            audit_event(
                action=step.action,
                ok=False,
                step_id=step.id,
                details={"target": step_target(step)},
                error=describe(err),
            )
        )
