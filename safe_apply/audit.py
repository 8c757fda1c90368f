from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .logging_utils import STATE_DIR_NAME


@dataclass(frozen=True)
class AuditLogger:
    """Append-only JSONL record of applied steps, one line per event."""

    path: Path
    tx: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def default_for_root(cls, root: str | Path) -> "AuditLogger":
        p = Path(root).expanduser().resolve() / STATE_DIR_NAME
        return cls(path=p / "audit.jsonl")

    def log(self, event: Dict[str, Any]) -> None:
        event = dict(event)
        event.setdefault("ts", time.time())
        event.setdefault("tx", self.tx)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event, sort_keys=True) + "\n")


def audit_event(
    *,
    action: str,
    ok: bool,
    step_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    e: Dict[str, Any] = {"action": action, "ok": ok}
    if step_id is not None:
        e["step"] = step_id
    if details:
        e["details"] = details
    if error:
        e["error"] = error
    return e
