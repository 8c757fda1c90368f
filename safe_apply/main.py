from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from .apply import ApplySummary
from .audit import AuditLogger
from .config import SafetyConfig, load_config
from .errors import SafeApplyError
from .logging_utils import configure_logging, default_log_path
from .pipeline import run_plan
from .plan import Plan, load_plan
from .preview import Preview, format_preview, preview
from .sanitize import sanitize
from .validate import validate

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_APPLY_FAILED = 1
EXIT_INVALID = 2
EXIT_INTERRUPTED = 130


def _config_from_args(args: argparse.Namespace) -> SafetyConfig:
    cfg = load_config(args.config) if args.config else SafetyConfig()
    return cfg.with_root(Path(args.root).expanduser().resolve())


def _load_checked(args: argparse.Namespace, cfg: SafetyConfig) -> Plan:
    # Sanitizer warnings reach the console through logging.
    plan, _ = sanitize(load_plan(args.plan))
    validate(plan, cfg)
    return plan


def _show_plan(plan: Plan) -> None:
    print("\n=== PLAN ===")
    print(plan.summary)
    if not plan.steps:
        print("(no steps)")
        return
    for i, s in enumerate(plan.steps, start=1):
        target = getattr(s, "path", None) or getattr(s, "command", "")
        print(f"{i}. [{s.action.upper()}]  {target} - {s.title}")
    print()


def _show_previews(previews: Sequence[Preview]) -> None:
    for p in previews:
        print(format_preview(p))
        print()


def _show_summary(s: ApplySummary) -> None:
    print(
        f"Created: {s.created}   Updated: {s.updated}   Deleted: {s.deleted}   "
        f"Commands: {s.commands}   Tests: {s.tests}   Skipped: {s.skipped}   Bytes: {s.bytes_written}B"
    )
    for i, o in enumerate(s.command_outputs, start=1):
        cwd = f"  (cwd: {o.cwd})" if o.cwd else ""
        print(f"[{i}] {o.command}{cwd}")
        print(f"status: {o.status_code}  time: {o.duration:.2f}s{'  via-shell' if o.via_shell_fallback else ''}")
        if o.stdout.strip():
            print("stdout:\n" + "\n".join("  " + ln for ln in o.stdout.splitlines()))
        if o.stderr.strip():
            print("stderr:\n" + "\n".join("  " + ln for ln in o.stderr.splitlines()))
    for f in s.errors:
        print(f"FAILED {f.step_id} [{f.action}] {f.target}: {f.error}")


def _confirm(prompt: str) -> bool:
    try:
        ans = input(f"{prompt} [y/N]: ")
    except EOFError:
        return False
    return ans.strip().lower() in {"y", "yes"}


def cmd_validate(args: argparse.Namespace, cfg: SafetyConfig) -> int:
    plan = _load_checked(args, cfg)
    print(f"OK: {len(plan.steps)} steps")
    return EXIT_OK


def cmd_preview(args: argparse.Namespace, cfg: SafetyConfig) -> int:
    plan = _load_checked(args, cfg)
    _show_plan(plan)
    _show_previews(preview(cfg.root, plan, args.task, cfg))
    return EXIT_OK


def cmd_apply(args: argparse.Namespace, cfg: SafetyConfig) -> int:
    approved = False

    def confirm(plan: Plan, previews: Sequence[Preview]) -> bool:
        nonlocal approved
        _show_plan(plan)
        _show_previews(previews)
        approved = bool(args.yes) or _confirm("Apply these changes?")
        return approved

    try:
        result = run_plan(
            load_plan(args.plan),
            cfg,
            task=args.task,
            confirm=confirm,
            dry_run=bool(args.dry_run),
            on_error=args.on_error,
            audit=None if args.dry_run else AuditLogger.default_for_root(cfg.root),
        )
    except SafeApplyError as e:
        if not approved:
            raise
        logger.error("Apply halted: %s", e)
        return EXIT_APPLY_FAILED

    if result.summary is None:
        print("Aborted; nothing applied.")
        return EXIT_APPLY_FAILED
    _show_summary(result.summary)
    return EXIT_APPLY_FAILED if result.summary.errors else EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="safe-apply")
    p.add_argument("--root", default=".", help="Project root (default: .)")
    p.add_argument("--config", help="Safety config (yaml|json); defaults are built in")
    p.add_argument("--task", default="", help="Task description the plan was generated for")
    p.add_argument("--log", default=None, help="Log path (defaults to <root>/.safe-apply/safe-apply.log)")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = p.add_subparsers(dest="subcmd", required=True)

    sp = sub.add_parser("validate", help="Sanitize and validate a plan")
    sp.add_argument("plan", help="Plan file (json|yaml)")
    sp.set_defaults(func=cmd_validate)

    sp = sub.add_parser("preview", help="Show what a plan would change")
    sp.add_argument("plan", help="Plan file (json|yaml)")
    sp.set_defaults(func=cmd_preview)

    sp = sub.add_parser("apply", help="Apply a plan after confirmation")
    sp.add_argument("plan", help="Plan file (json|yaml)")
    sp.add_argument("--dry-run", action="store_true", help="Count changes without touching disk or running commands")
    sp.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    sp.add_argument(
        "--on-error",
        choices=["halt", "continue"],
        default="halt",
        help="Stop at the first failed step (default) or record it and continue",
    )
    sp.set_defaults(func=cmd_apply)

    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(
        log_path=args.log or default_log_path(args.root),
        level=logging.DEBUG if args.verbose else logging.INFO,
    )
    try:
        cfg = _config_from_args(args)
        return int(args.func(args, cfg))
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    except (SafeApplyError, OSError, ValueError) as e:
        logger.error("%s", e)
        return EXIT_INVALID


if __name__ == "__main__":
    raise SystemExit(main())
