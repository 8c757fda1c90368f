"""Plan data model and its JSON/YAML wire format.

A plan is an ordered sequence of steps; order is execution order. On the
wire each step is an object with an ``action`` discriminator::

    {"summary": "...", "steps": [
        {"action": "create", "id": "1", "title": "...", "path": "src/a.ts", "content": "..."},
        {"action": "update", "id": "2", "title": "...", "path": "src/b.ts", "content": "..."},
        {"action": "delete", "id": "3", "title": "...", "path": "src/c.ts"},
        {"action": "command", "id": "4", "title": "...", "command": "npm install", "cwd": "."},
        {"action": "test", "id": "5", "title": "...", "command": "npm test"}
    ]}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

from .errors import MalformedStep


@dataclass(frozen=True)
class CreateStep:
    action: ClassVar[str] = "create"

    id: str
    title: str
    path: str
    content: Optional[str] = None
    language: Optional[str] = None


@dataclass(frozen=True)
class UpdateStep:
    action: ClassVar[str] = "update"

    id: str
    title: str
    path: str
    content: Optional[str] = None
    patch: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.content is None and self.patch is None


@dataclass(frozen=True)
class DeleteStep:
    action: ClassVar[str] = "delete"

    id: str
    title: str
    path: str


@dataclass(frozen=True)
class CommandStep:
    action: ClassVar[str] = "command"

    id: str
    title: str
    command: str
    cwd: Optional[str] = None


@dataclass(frozen=True)
class TestStep:
    action: ClassVar[str] = "test"
    __test__: ClassVar[bool] = False  # not a pytest class

    id: str
    title: str
    command: str


Step = Union[CreateStep, UpdateStep, DeleteStep, CommandStep, TestStep]
FileStep = (CreateStep, UpdateStep, DeleteStep)
ProcessStep = (CommandStep, TestStep)


@dataclass(frozen=True)
class Plan:
    summary: str = ""
    steps: Tuple[Step, ...] = ()


def step_target(step: Step) -> str:
    """Path for file steps, command string otherwise."""

    if isinstance(step, FileStep):
        return step.path
    return step.command


def _opt_str(raw: Mapping[str, Any], key: str, where: str) -> Optional[str]:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedStep(f"{where}: field '{key}' must be a string")
    return value


def _req_str(raw: Mapping[str, Any], key: str, where: str) -> str:
    value = _opt_str(raw, key, where)
    if value is None or not value.strip():
        raise MalformedStep(f"{where}: missing required field '{key}'")
    return value


def parse_step(raw: Mapping[str, Any], index: int = 0) -> Step:
    where = f"step {index + 1}"
    if not isinstance(raw, Mapping):
        raise MalformedStep(f"{where}: must be an object")

    action = raw.get("action")
    if not isinstance(action, str):
        raise MalformedStep(f"{where}: missing 'action'")
    action = action.lower()

    step_id = raw.get("id")
    step_id = str(step_id) if step_id not in (None, "") else f"step-{index + 1}"
    title = _opt_str(raw, "title", where) or ""

    if action == "create":
        return CreateStep(
            id=step_id,
            title=title,
            path=_req_str(raw, "path", where),
            content=_opt_str(raw, "content", where),
            language=_opt_str(raw, "language", where),
        )
    if action == "update":
        return UpdateStep(
            id=step_id,
            title=title,
            path=_req_str(raw, "path", where),
            content=_opt_str(raw, "content", where),
            patch=_opt_str(raw, "patch", where),
        )
    if action == "delete":
        return DeleteStep(id=step_id, title=title, path=_req_str(raw, "path", where))
    if action == "command":
        return CommandStep(
            id=step_id,
            title=title,
            command=_req_str(raw, "command", where),
            cwd=_opt_str(raw, "cwd", where),
        )
    if action == "test":
        return TestStep(id=step_id, title=title, command=_req_str(raw, "command", where))

    raise MalformedStep(f"{where}: unknown action {action!r}")


def parse_plan(raw: Mapping[str, Any]) -> Plan:
    if not isinstance(raw, Mapping):
        raise MalformedStep("plan must be an object")

    # Generator response envelope: {"kind": "plan", "plan": {...}}
    if "plan" in raw or "kind" in raw:
        inner = raw.get("plan")
        if not isinstance(inner, Mapping):
            raise MalformedStep("missing plan")
        raw = inner

    steps_raw = raw.get("steps") or []
    if not isinstance(steps_raw, list):
        raise MalformedStep("'steps' must be a list")

    summary = raw.get("summary") or ""
    if not isinstance(summary, str):
        raise MalformedStep("'summary' must be a string")

    return Plan(summary=summary, steps=tuple(parse_step(s, i) for i, s in enumerate(steps_raw)))


def step_to_dict(step: Step) -> Dict[str, Any]:
    out: Dict[str, Any] = {"action": step.action, "id": step.id, "title": step.title}
    for key, value in vars(step).items():
        if key in out or value is None:
            continue
        out[key] = value
    return out


def plan_to_dict(plan: Plan) -> Dict[str, Any]:
    steps: List[Dict[str, Any]] = [step_to_dict(s) for s in plan.steps]
    return {"summary": plan.summary, "steps": steps}


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def load_plan(path: str) -> Plan:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    text = p.read_text(encoding="utf-8")
    if _detect_format(p) in {"yaml", "yml"}:
        try:
            import yaml  # type: ignore
        except Exception as e:  # pragma: no cover
            raise RuntimeError("YAML plan requested but PyYAML is not available.") from e
        raw = yaml.safe_load(text) or {}
    else:
        raw = json.loads(text)

    return parse_plan(raw)
