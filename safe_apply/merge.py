"""Line-level additive merging of generated file content.

The merge never drops a line of the existing file: proposed insertions and
replacements are layered in, proposed deletions are ignored. Explicit delete
steps are the only way to remove a file's content.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

ADDITIVE_KEYWORDS = ("add", "append", "insert", "another", "extra", "include", "augment")
DESTRUCTIVE_KEYWORDS = ("remove", "delete", "replace", "overwrite", "rewrite", "refactor", "rework")

DIRECTIVE = "'use client'"
DIRECTIVE_LITERALS = frozenset(
    {
        "'use client'",
        '"use client"',
        "'use client';",
        '"use client";',
    }
)
DIRECTIVE_REMOVAL_PHRASES = (
    "remove 'use client'",
    'remove "use client"',
    "remove use client",
)
DIRECTIVE_SCAN_LINES = 10

BOM = "\ufeff"


def is_additive_task(task: str) -> bool:
    t = (task or "").lower()
    return any(k in t for k in ADDITIVE_KEYWORDS) and not any(k in t for k in DESTRUCTIVE_KEYWORDS)


def _lcs_table(a: Sequence[str], b: Sequence[str]) -> List[List[int]]:
    n, m = len(a), len(b)
    dp = [[0] * (m + 1) for _ in range(n + 1)]
    for i in range(n - 1, -1, -1):
        row, below = dp[i], dp[i + 1]
        for j in range(m - 1, -1, -1):
            if a[i] == b[j]:
                row[j] = below[j + 1] + 1
            else:
                row[j] = max(below[j], row[j + 1])
    return dp


def _collapse_adjacent(lines: Iterable[str]) -> List[str]:
    out: List[str] = []
    for line in lines:
        if out and out[-1] == line:
            continue
        out.append(line)
    return out


def additive_merge(old: str, proposed: str) -> str:
    """Merge ``proposed`` on top of ``old`` without losing any line of ``old``.

    Walks an LCS table over the two line sequences. On a mismatch the old
    line is kept when skipping it would lose at least as much downstream
    alignment as skipping the new one; otherwise the new line is inserted.
    Adjacent duplicate lines are collapsed at the end. The result keeps
    ``old``'s trailing newline.
    """

    a = old.splitlines()
    b = proposed.splitlines()
    dp = _lcs_table(a, b)

    out: List[str] = []
    i = j = 0
    while i < len(a) and j < len(b):
        if a[i] == b[j]:
            out.append(a[i])
            i += 1
            j += 1
        elif dp[i + 1][j] >= dp[i][j + 1]:
            out.append(a[i])
            i += 1
        else:
            out.append(b[j])
            j += 1
    out.extend(a[i:])
    out.extend(b[j:])

    merged = "\n".join(_collapse_adjacent(out))
    if merged and old.endswith("\n"):
        merged += "\n"
    return merged


def _first_significant_line(src: str) -> Optional[str]:
    for line in src.splitlines()[:DIRECTIVE_SCAN_LINES]:
        text = line.lstrip(BOM).strip()
        if not text or text.startswith("//") or text.startswith("/*"):
            continue
        return text
    return None


def has_leading_directive(src: str) -> bool:
    return _first_significant_line(src) in DIRECTIVE_LITERALS


def wants_directive_removed(task: str) -> bool:
    t = (task or "").lower()
    return any(p in t for p in DIRECTIVE_REMOVAL_PHRASES)


def preserve_leading_directive(old: Optional[str], new: str, task_hint: str) -> str:
    """Re-prepend the ``'use client'`` marker when the new content dropped it."""

    if wants_directive_removed(task_hint) or old is None:
        return new
    if has_leading_directive(old) and not has_leading_directive(new):
        return f"{DIRECTIVE}\n\n{new.lstrip(BOM)}"
    return new


def merge_applies_to(path: str, extensions: Sequence[str]) -> bool:
    if not extensions:
        return True
    return any(path.endswith(ext) for ext in extensions)


def plan_file_content(
    old: Optional[str],
    proposed: str,
    *,
    path: str,
    task: str,
    extensions: Sequence[str] = (),
    merge: bool = True,
) -> str:
    """Content an update would write: additive merge, then directive preservation.

    Shared by the applier and the previewer so a preview shows the real result.
    """

    content = proposed
    if merge and old is not None and is_additive_task(task) and merge_applies_to(path, extensions):
        content = additive_merge(old, content)
    return preserve_leading_directive(old, content, task)


def ensure_trailing_newline(text: str) -> str:
    return text if text.endswith("\n") else text + "\n"
