from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .apply import ApplySummary, apply_plan
from .audit import AuditLogger
from .config import SafetyConfig
from .plan import Plan
from .preview import Preview, preview
from .sanitize import sanitize
from .validate import validate

logger = logging.getLogger(__name__)

Confirm = Callable[[Plan, Sequence[Preview]], bool]


@dataclass
class PipelineResult:
    plan: Plan
    warnings: List[str] = field(default_factory=list)
    previews: List[Preview] = field(default_factory=list)
    approved: bool = False
    summary: Optional[ApplySummary] = None


def run_plan(
    raw_plan: Plan,
    config: SafetyConfig,
    *,
    task: str = "",
    confirm: Optional[Confirm] = None,
    dry_run: bool = False,
    on_error: str = "halt",
    audit: Optional[AuditLogger] = None,
) -> PipelineResult:
    """raw plan -> sanitize -> validate -> preview -> confirm -> apply.

    Validation errors propagate before any file is touched. Without a
    ``confirm`` callback the plan is applied unattended.
    """

    root = Path(config.root).expanduser()

    plan, warnings = sanitize(raw_plan)
    logger.info("Sanitized plan: %d -> %d steps", len(raw_plan.steps), len(plan.steps))

    validate(plan, config)

    previews = preview(root, plan, task, config)
    result = PipelineResult(plan=plan, warnings=warnings, previews=previews)

    if confirm is not None and not confirm(plan, previews):
        logger.info("Plan declined; nothing applied")
        return result

    result.approved = True
    result.summary = apply_plan(
        root,
        plan,
        config,
        task=task,
        dry_run=dry_run,
        on_error=on_error,
        audit=audit,
    )
    return result
