from __future__ import annotations

import logging
import shlex
import sys
from pathlib import Path

import pytest

from safe_apply import logging_utils
from safe_apply.config import SafetyConfig

PY = shlex.quote(sys.executable)


def py_cmd(code: str) -> str:
    return f"{PY} -c {shlex.quote(code)}"


@pytest.fixture
def root(tmp_path: Path) -> Path:
    r = tmp_path / "project"
    (r / "src").mkdir(parents=True)
    return r


@pytest.fixture
def config(root: Path) -> SafetyConfig:
    return SafetyConfig(
        root=str(root),
        path_allowlist=("src", "a.txt", "package.json"),
        command_allowlist=("npm install",),
    )


@pytest.fixture
def fresh_logging(monkeypatch):
    root_logger = logging.getLogger()
    before = list(root_logger.handlers)
    level = root_logger.level
    monkeypatch.setattr(logging_utils, "_active_log_path", None)
    yield
    for h in root_logger.handlers[:]:
        if h not in before:
            root_logger.removeHandler(h)
            h.close()
    root_logger.setLevel(level)
