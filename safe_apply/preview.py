from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .config import SafetyConfig
from .fsutil import read_text_if_exists
from .merge import ensure_trailing_newline, plan_file_content
from .pathguard import join_within, resolve
from .plan import CommandStep, CreateStep, DeleteStep, Plan, TestStep, UpdateStep

logger = logging.getLogger(__name__)

CREATE_DIFF_LINES = 80
TRUNCATION_MARKER = "... (diff truncated)"


class ChangeKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    COMMAND = "command"
    TEST = "test"


@dataclass(frozen=True)
class Preview:
    kind: ChangeKind
    path: Optional[Path] = None
    bytes_before: Optional[int] = None
    bytes_after: Optional[int] = None
    diff_snippet: Optional[str] = None
    command: Optional[str] = None


def short_diff(old: str, new: str, max_lines: int) -> str:
    """Illustrative line delta: two pointers, advance both on a match,
    otherwise emit a removed line then an added line."""

    a = old.splitlines()
    b = new.splitlines()
    out: List[str] = []
    i = j = 0

    while (i < len(a) or j < len(b)) and len(out) < max_lines:
        if i < len(a) and j < len(b) and a[i] == b[j]:
            i += 1
            j += 1
            continue
        if i < len(a):
            out.append(f"- {a[i]}")
            i += 1
        if j < len(b):
            out.append(f"+ {b[j]}")
            j += 1

    truncated = i < len(a) or j < len(b) or len(out) > max_lines
    out = out[:max_lines]
    if truncated:
        out.append(TRUNCATION_MARKER)
    return "\n".join(out)


def _size(path: Path) -> Optional[int]:
    return path.stat().st_size if path.is_file() else None


def _encoded_len(text: str) -> int:
    return len(ensure_trailing_newline(text).encode("utf-8"))


def preview(
    root: str | Path,
    plan: Plan,
    task_hint: str,
    config: Optional[SafetyConfig] = None,
) -> List[Preview]:
    """Render what each step would do. Opens files for reading only."""

    cfg = config or SafetyConfig(root=str(root))
    max_lines = cfg.preview_max_lines

    def locate(rel: str) -> Path:
        if config is None:
            return join_within(root, rel)
        return resolve(root, rel, cfg.path_allowlist)

    previews: List[Preview] = []
    for s in plan.steps:
        if isinstance(s, CreateStep):
            abs_path = locate(s.path)
            old = read_text_if_exists(abs_path)
            after = diff = None
            if s.content is not None:
                final = plan_file_content(old, s.content, path=s.path, task=task_hint, merge=False)
                after = _encoded_len(final)
                if old is not None:
                    diff = short_diff(old, final, min(max_lines, CREATE_DIFF_LINES))
            previews.append(
                Preview(
                    kind=ChangeKind.CREATE,
                    path=abs_path,
                    bytes_before=_size(abs_path),
                    bytes_after=after,
                    diff_snippet=diff,
                )
            )
        elif isinstance(s, UpdateStep):
            abs_path = locate(s.path)
            old = read_text_if_exists(abs_path)
            after = diff = None
            if s.content is not None:
                final = plan_file_content(
                    old,
                    s.content,
                    path=s.path,
                    task=task_hint,
                    extensions=cfg.additive_extensions,
                )
                after = _encoded_len(final)
                if old is not None:
                    diff = short_diff(old, final, max_lines)
            previews.append(
                Preview(
                    kind=ChangeKind.UPDATE,
                    path=abs_path,
                    bytes_before=_size(abs_path),
                    bytes_after=after,
                    diff_snippet=diff,
                )
            )
        elif isinstance(s, DeleteStep):
            abs_path = locate(s.path)
            before = _size(abs_path)
            previews.append(
                Preview(
                    kind=ChangeKind.DELETE,
                    path=abs_path,
                    bytes_before=before,
                    bytes_after=0 if before is not None else None,
                )
            )
        elif isinstance(s, CommandStep):
            previews.append(Preview(kind=ChangeKind.COMMAND, command=s.command))
        elif isinstance(s, TestStep):
            previews.append(Preview(kind=ChangeKind.TEST, command=s.command))

    logger.info("Previewed %d steps", len(previews))
    return previews


def _fmt_bytes(n: Optional[int]) -> str:
    return f"{n}B" if n is not None else "-"


def format_preview(p: Preview) -> str:
    label = f"[{p.kind.value.upper()}]"
    if p.kind in {ChangeKind.COMMAND, ChangeKind.TEST}:
        return f"{label} {p.command or ''}"
    head = f"{label} {p.path}  ({_fmt_bytes(p.bytes_before)} -> {_fmt_bytes(p.bytes_after)})"
    if p.diff_snippet:
        return f"{head}\n{p.diff_snippet}"
    return head
