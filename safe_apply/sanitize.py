from __future__ import annotations

import logging
from typing import Dict, List, Set, Tuple

from .errors import PathRejected
from .pathguard import normalize_relative
from .plan import CreateStep, DeleteStep, Plan, Step, UpdateStep

logger = logging.getLogger(__name__)


def _path_key(path: str) -> str:
    # Unsafe paths keep their raw spelling; validation rejects them later.
    try:
        return normalize_relative(path)
    except PathRejected:
        return path


def _prefer(current: UpdateStep, previous: UpdateStep) -> bool:
    # Later wins unless it would replace a content-bearing update with a patch-only one.
    return current.content is not None or previous.content is None


def sanitize(plan: Plan) -> Tuple[Plan, List[str]]:
    """Deduplicate and filter steps into a minimal consistent plan.

    - Updates with neither content nor patch are dropped.
    - One update per path survives: a content-bearing update beats one
      without content, otherwise the later one wins.
    - At most one create and one delete per path. Paths are compared after
      lexical normalization, so ``src/a.ts`` and ``./src/a.ts`` are the same path.
    - Command and test steps are always kept.

    Kept steps keep their relative order. Every dropped step yields exactly
    one warning; warnings never abort processing.
    """

    warnings: List[str] = []
    steps = plan.steps

    best_update: Dict[str, int] = {}
    for idx, s in enumerate(steps):
        if not isinstance(s, UpdateStep) or s.is_empty:
            continue
        key = _path_key(s.path)
        prev_idx = best_update.get(key)
        if prev_idx is None or _prefer(s, steps[prev_idx]):  # type: ignore[arg-type]
            best_update[key] = idx

    seen_create: Set[str] = set()
    seen_delete: Set[str] = set()
    out: List[Step] = []

    for idx, s in enumerate(steps):
        if isinstance(s, UpdateStep):
            if s.is_empty:
                warnings.append(f"dropped update for {s.path} (step {s.id}): no content or patch")
                continue
            kept_idx = best_update[_path_key(s.path)]
            if kept_idx != idx:
                warnings.append(
                    f"dropped duplicate update for {s.path} (step {s.id}): superseded by step {steps[kept_idx].id}"
                )
                continue
        elif isinstance(s, (CreateStep, DeleteStep)):
            seen = seen_create if isinstance(s, CreateStep) else seen_delete
            key = _path_key(s.path)
            if key in seen:
                warnings.append(f"dropped duplicate {s.action} for {s.path} (step {s.id})")
                continue
            seen.add(key)
        out.append(s)

    for w in warnings:
        logger.warning("Sanitizer %s", w)

    return Plan(summary=plan.summary, steps=tuple(out)), warnings
