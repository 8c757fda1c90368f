"""Resolve untrusted relative paths under a project root.

Works for targets that do not exist yet. Symlinks are checked best-effort:
a path whose existing prefix resolves outside the real root is rejected, but
a link created between the check and the write is not detected.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, List

from .errors import PathRejected

_DRIVE_RE = re.compile(r"^[A-Za-z]:")


def resolve_root(root: str | Path) -> Path:
    p = Path(root).expanduser()
    try:
        return p.resolve()
    except OSError:
        # If resolve fails, normalize as absolute.
        return p.absolute()


def _is_anchored(part: str) -> bool:
    return part.startswith("/") or bool(_DRIVE_RE.match(part))


def normalize_relative(rel: str) -> str:
    """Lexically normalize ``rel`` to a ``/``-joined path under the root.

    Raises PathRejected for empty, absolute, drive-anchored or root-escaping
    input. ``..`` is allowed only while it stays inside the root.
    """

    if not rel or not rel.strip():
        raise PathRejected(rel, "Empty path")

    text = rel.replace("\\", "/")
    if _is_anchored(text):
        raise PathRejected(rel, "Absolute paths are not allowed")

    parts: List[str] = []
    for part in text.split("/"):
        if part in {"", "."}:
            continue
        if part == "..":
            if not parts:
                raise PathRejected(rel, "Path escapes project root")
            parts.pop()
            continue
        if _DRIVE_RE.match(part):
            raise PathRejected(rel, "Drive-anchored components are not allowed")
        parts.append(part)
    return "/".join(parts)


def _normalize_entry(entry: str) -> str:
    e = entry.replace("\\", "/").strip()
    while e.startswith("./"):
        e = e[2:]
    return e.rstrip("/")


def is_path_allowed(rel: str, allowlist: Iterable[str]) -> bool:
    """Component-aware prefix match: ``src`` allows ``src`` and ``src/x`` but not ``src-evil``."""

    for entry in allowlist:
        allow = _normalize_entry(entry)
        if not allow:
            continue
        if rel == allow or rel.startswith(allow + "/"):
            return True
    return False


def join_within(root: str | Path, rel: str) -> Path:
    """Join ``rel`` onto ``root`` without leaving it. No allowlist check."""

    root_abs = resolve_root(root)
    normalized = normalize_relative(rel)

    candidate = root_abs
    for part in normalized.split("/") if normalized else []:
        candidate = candidate / part

    try:
        candidate.relative_to(root_abs)
    except ValueError as e:
        raise PathRejected(rel, "Path escapes project root") from e

    # Non-strict resolve follows links in whatever prefix already exists.
    try:
        candidate.resolve().relative_to(root_abs)
    except ValueError as e:
        raise PathRejected(rel, "Path resolves outside project root") from e

    return candidate


def resolve(root: str | Path, rel: str, allowlist: Iterable[str]) -> Path:
    """Resolve an untrusted relative path to an absolute path under ``root``.

    The path must match the allowlist after normalization.
    """

    normalized = normalize_relative(rel)
    if not normalized:
        raise PathRejected(rel, "Path refers to the project root itself")
    if not is_path_allowed(normalized, allowlist):
        raise PathRejected(rel, "Path not allowed by allowlist")
    return join_within(root, normalized)
