from __future__ import annotations

import os
import time
from pathlib import Path

import pytest

from safe_apply.config import SafetyConfig
from safe_apply.errors import CommandFailed, CommandRejected, IoFailure, PathRejected, TimedOut
from safe_apply.exec import placeholder_result, run_command, split_command

from .conftest import py_cmd

posix_only = pytest.mark.skipif(os.name == "nt", reason="relies on a POSIX shell")


def _cfg(root: Path, *commands: str, policy: str = "exact") -> SafetyConfig:
    return SafetyConfig(root=str(root), command_allowlist=commands, command_policy=policy)


def test_split_command_groups_quotes():
    assert split_command('pnpm add "react-dom@^18"') == ["pnpm", "add", "react-dom@^18"]
    assert split_command("echo 'a b'  c") == ["echo", "a b", "c"]


def test_split_command_rejects_unbalanced_quotes():
    with pytest.raises(CommandRejected):
        split_command('echo "oops')


def test_runs_allowlisted_command(root: Path):
    cmd = py_cmd("print('hello')")
    res = run_command(cmd, _cfg(root, cmd))
    assert res.ok
    assert res.stdout.strip() == "hello"
    assert res.command == cmd
    assert res.cwd == str(root.resolve())
    assert res.duration >= 0
    assert not res.via_shell_fallback


def test_rejects_command_outside_allowlist(root: Path):
    with pytest.raises(CommandRejected):
        run_command(py_cmd("print(1)"), _cfg(root, "npm install"))


def test_runs_in_requested_cwd(root: Path):
    cmd = py_cmd("import os; print(os.path.basename(os.getcwd()))")
    res = run_command(cmd, _cfg(root, cmd), cwd="src")
    assert res.stdout.strip() == "src"


def test_cwd_cannot_escape_root(root: Path):
    cmd = py_cmd("print(1)")
    with pytest.raises(PathRejected):
        run_command(cmd, _cfg(root, cmd), cwd="../")


def test_missing_cwd(root: Path):
    cmd = py_cmd("print(1)")
    with pytest.raises(IoFailure):
        run_command(cmd, _cfg(root, cmd), cwd="nope")


def test_non_zero_exit_embeds_output(root: Path):
    cmd = py_cmd("import sys; print('out'); print('err', file=sys.stderr); sys.exit(3)")
    with pytest.raises(CommandFailed) as exc:
        run_command(cmd, _cfg(root, cmd))
    assert exc.value.result.status_code == 3
    assert "out" in str(exc.value) and "err" in str(exc.value)


def test_timeout_kills_child(root: Path):
    cmd = py_cmd("import time; time.sleep(30)")
    with pytest.raises(TimedOut) as exc:
        run_command(cmd, _cfg(root, cmd), timeout=0.5)
    assert exc.value.timeout == 0.5


@posix_only
def test_timeout_kills_whole_process_tree(root: Path):
    cmd = "sh -c 'sleep 6 | cat'"
    started = time.monotonic()
    with pytest.raises(TimedOut):
        run_command(cmd, _cfg(root, cmd), timeout=0.5)
    assert time.monotonic() - started < 3.0


def test_split_command_keeps_backslashes_and_hashes():
    assert split_command(r"node scripts\build.js #1") == ["node", r"scripts\build.js", "#1"]


@posix_only
def test_missing_program_falls_back_to_shell(root: Path):
    cmd = "safe-apply-no-such-program-xyz"
    with pytest.raises(CommandFailed) as exc:
        run_command(cmd, _cfg(root, cmd))
    assert exc.value.result.via_shell_fallback
    assert exc.value.result.status_code == 127


@posix_only
def test_shell_fallback_refused_for_prefix_matched_metacharacters(root: Path):
    cfg = _cfg(root, "safe-apply-no-such-program-xyz", policy="prefix")
    with pytest.raises(CommandRejected):
        run_command("safe-apply-no-such-program-xyz arg;touch pwned", cfg)
    assert not (root / "pwned").exists()


def test_placeholder_result():
    res = placeholder_result("npm ci")
    assert (res.command, res.cwd, res.status_code, res.duration) == ("npm ci", ".", 0, 0.0)
