from __future__ import annotations

import json
from pathlib import Path

from safe_apply.audit import AuditLogger, audit_event


def test_audit_appends_jsonl(tmp_path: Path):
    audit = AuditLogger.default_for_root(tmp_path)
    audit.log(audit_event(action="create", ok=True, step_id="1", details={"path": "src/a.ts"}))
    audit.log(audit_event(action="command", ok=False, error="CommandRejected: no"))

    assert audit.path == tmp_path.resolve() / ".safe-apply" / "audit.jsonl"
    first, second = [json.loads(line) for line in audit.path.read_text(encoding="utf-8").splitlines()]
    assert first["step"] == "1"
    assert first["details"] == {"path": "src/a.ts"}
    assert first["tx"] == second["tx"] == audit.tx
    assert "ts" in first
    assert "step" not in second
    assert second["error"] == "CommandRejected: no"


def test_each_logger_gets_its_own_tx(tmp_path: Path):
    assert AuditLogger(tmp_path / "a.jsonl").tx != AuditLogger(tmp_path / "a.jsonl").tx
