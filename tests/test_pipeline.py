from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from safe_apply.config import SafetyConfig
from safe_apply.errors import LimitExceeded, PathRejected
from safe_apply.pipeline import run_plan
from safe_apply.plan import CreateStep, Plan, UpdateStep
from safe_apply.preview import ChangeKind


def _plan() -> Plan:
    return Plan(
        summary="two files",
        steps=(
            CreateStep(id="1", title="", path="src/a.ts", content="a"),
            UpdateStep(id="2", title="", path="src/b.ts"),
            UpdateStep(id="3", title="", path="src/b.ts", content="b"),
        ),
    )


def test_declined_plan_touches_nothing(root: Path, config: SafetyConfig):
    seen = []

    def confirm(plan, previews):
        seen.append([p.kind for p in previews])
        return False

    result = run_plan(_plan(), config, confirm=confirm)

    assert not result.approved
    assert result.summary is None
    assert seen == [[ChangeKind.CREATE, ChangeKind.UPDATE]]
    assert not (root / "src" / "a.ts").exists()


def test_approved_plan_is_applied(root: Path, config: SafetyConfig):
    result = run_plan(_plan(), config, confirm=lambda plan, previews: True)

    assert result.approved
    assert result.warnings == ["dropped update for src/b.ts (step 2): no content or patch"]
    assert [s.id for s in result.plan.steps] == ["1", "3"]
    assert (root / "src" / "a.ts").read_text(encoding="utf-8") == "a\n"
    assert (root / "src" / "b.ts").read_text(encoding="utf-8") == "b\n"
    assert result.summary.created == 2


def test_unsafe_plan_fails_before_any_write(root: Path, config: SafetyConfig):
    plan = Plan(
        steps=(
            CreateStep(id="1", title="", path="src/a.ts", content="a"),
            CreateStep(id="2", title="", path="src/../../x", content="x"),
        )
    )
    with pytest.raises(PathRejected):
        run_plan(plan, config)
    assert not (root / "src" / "a.ts").exists()


def test_limits_checked_before_confirmation(root: Path, config: SafetyConfig):
    asked = []
    with pytest.raises(LimitExceeded):
        run_plan(_plan(), replace(config, max_actions=1), confirm=lambda p, v: asked.append(1) or True)
    assert asked == []
