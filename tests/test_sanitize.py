from __future__ import annotations

from safe_apply.plan import CommandStep, CreateStep, DeleteStep, Plan, TestStep, UpdateStep
from safe_apply.sanitize import sanitize


def _ids(plan: Plan) -> list[str]:
    return [s.id for s in plan.steps]


def test_update_without_content_or_patch_is_dropped():
    plan = Plan(summary="s", steps=(UpdateStep(id="u1", title="", path="src/a.ts"),))
    cleaned, warnings = sanitize(plan)
    assert cleaned.steps == ()
    assert len(warnings) == 1
    assert "src/a.ts" in warnings[0]


def test_content_bearing_update_wins_over_earlier_patch_only():
    plan = Plan(
        steps=(
            UpdateStep(id="u1", title="", path="src/a.ts", patch="@@ -1 +1 @@"),
            UpdateStep(id="u2", title="", path="src/a.ts", content="x"),
        )
    )
    cleaned, warnings = sanitize(plan)
    assert _ids(cleaned) == ["u2"]
    assert len(warnings) == 1
    assert "u1" in warnings[0] and "src/a.ts" in warnings[0]


def test_content_bearing_update_is_not_displaced_by_later_patch_only():
    plan = Plan(
        steps=(
            UpdateStep(id="u1", title="", path="src/a.ts", content="x"),
            UpdateStep(id="u2", title="", path="src/a.ts", patch="p"),
        )
    )
    cleaned, warnings = sanitize(plan)
    assert _ids(cleaned) == ["u1"]
    assert len(warnings) == 1 and "u2" in warnings[0]


def test_later_update_wins_a_tie():
    plan = Plan(
        steps=(
            UpdateStep(id="u1", title="", path="src/a.ts", content="x"),
            UpdateStep(id="u2", title="", path="src/a.ts", content="y"),
            UpdateStep(id="u3", title="", path="src/b.ts", content="z"),
        )
    )
    cleaned, warnings = sanitize(plan)
    assert _ids(cleaned) == ["u2", "u3"]
    assert len(warnings) == 1


def test_duplicate_creates_and_deletes_are_dropped():
    plan = Plan(
        steps=(
            CreateStep(id="c1", title="", path="src/a.ts", content="1"),
            DeleteStep(id="d1", title="", path="src/b.ts"),
            CreateStep(id="c2", title="", path="src/a.ts", content="2"),
            DeleteStep(id="d2", title="", path="src/b.ts"),
        )
    )
    cleaned, warnings = sanitize(plan)
    assert _ids(cleaned) == ["c1", "d1"]
    assert len(warnings) == 2
    assert any("create" in w and "c2" in w for w in warnings)
    assert any("delete" in w and "d2" in w for w in warnings)


def test_commands_and_tests_always_kept_in_order():
    plan = Plan(
        summary="keep me",
        steps=(
            CommandStep(id="k1", title="", command="npm install"),
            UpdateStep(id="u1", title="", path="package.json", content="{}"),
            CommandStep(id="k2", title="", command="npm install"),
            TestStep(id="t1", title="", command="npm test"),
        ),
    )
    cleaned, warnings = sanitize(plan)
    assert _ids(cleaned) == ["k1", "u1", "k2", "t1"]
    assert cleaned.summary == "keep me"
    assert warnings == []


def test_create_and_update_of_same_path_both_survive():
    plan = Plan(
        steps=(
            CreateStep(id="1", title="", path="a.txt", content="hi"),
            UpdateStep(id="2", title="", path="a.txt", content="hello"),
        )
    )
    cleaned, warnings = sanitize(plan)
    assert _ids(cleaned) == ["1", "2"]
    assert warnings == []


def test_duplicates_are_found_across_path_spellings():
    plan = Plan(
        steps=(
            UpdateStep(id="1", title="", path="src/a.ts", content="one"),
            UpdateStep(id="2", title="", path="./src/a.ts", content="two"),
            CreateStep(id="3", title="", path="src/b.ts", content="b"),
            CreateStep(id="4", title="", path="src\\b.ts", content="b"),
            DeleteStep(id="5", title="", path="src/x/../c.ts"),
            DeleteStep(id="6", title="", path="src/c.ts"),
        )
    )
    out, warnings = sanitize(plan)
    assert [s.id for s in out.steps] == ["2", "3", "5"]
    assert warnings == [
        "dropped duplicate update for src/a.ts (step 1): superseded by step 2",
        "dropped duplicate create for src\\b.ts (step 4)",
        "dropped duplicate delete for src/c.ts (step 6)",
    ]


def test_unsafe_paths_are_left_for_validation():
    plan = Plan(
        steps=(
            DeleteStep(id="1", title="", path="../x"),
            DeleteStep(id="2", title="", path="x"),
        )
    )
    out, warnings = sanitize(plan)
    assert [s.id for s in out.steps] == ["1", "2"]
    assert warnings == []
