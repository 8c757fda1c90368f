from __future__ import annotations

import logging
import os
import re
import shlex
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .commandguard import command_permitted, is_exact_allowed
from .config import SafetyConfig
from .errors import CommandFailed, CommandRejected, IoFailure, TimedOut
from .pathguard import join_within

logger = logging.getLogger(__name__)

# Characters a platform shell would interpret.
_SHELL_META_RE = re.compile(r"[;&|<>`$()\\\n*?{}\[\]!~]")

# Seconds to wait for a killed process tree to release its pipes.
KILL_GRACE_SECS = 2.0


@dataclass(frozen=True)
class CmdResult:
    command: str
    cwd: Optional[str]
    status_code: int
    stdout: str
    stderr: str
    duration: float
    via_shell_fallback: bool = False

    @property
    def ok(self) -> bool:
        return self.status_code == 0


def placeholder_result(command: str, cwd: Optional[str] = None) -> CmdResult:
    """Zero-cost result for dry runs and skipped steps."""

    return CmdResult(
        command=command,
        cwd=cwd or ".",
        status_code=0,
        stdout="",
        stderr="",
        duration=0.0,
        via_shell_fallback=False,
    )


def split_command(command: str) -> List[str]:
    """Shell-like split: quotes group tokens, unquoted whitespace separates them.

    Backslashes are literal and ``#`` starts no comment. An unterminated quote
    is rejected rather than guessed at.
    """

    lex = shlex.shlex(command, posix=True)
    lex.whitespace_split = True
    lex.commenters = ""
    lex.escape = ""
    try:
        return list(lex)
    except ValueError as e:
        raise CommandRejected(command, f"Cannot parse command ({e})") from e


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def _shell_argv(command: str) -> List[str]:
    if os.name == "nt":
        return ["cmd", "/C", command]
    return ["sh", "-lc", command]


def _shell_fallback_permitted(command: str, config: SafetyConfig) -> bool:
    # Trailing arguments matched by prefix must not gain shell meaning.
    return is_exact_allowed(command, config.command_allowlist) or not _SHELL_META_RE.search(command)


def _kill_tree(proc: subprocess.Popen) -> None:
    # Children run in their own session on POSIX; the group id is the child's pid.
    if os.name == "nt":
        proc.kill()
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        proc.kill()


def _communicate(proc: subprocess.Popen, command: str, timeout: float) -> tuple[str, str]:
    try:
        return proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired as e:
        logger.warning("Timeout after %ss, killing process group %s: %s", timeout, proc.pid, command)
        _kill_tree(proc)
        try:
            proc.communicate(timeout=KILL_GRACE_SECS)
        except subprocess.TimeoutExpired:
            # A descendant that left the group still holds the pipes.
            for stream in (proc.stdout, proc.stderr):
                if stream is not None:
                    stream.close()
            proc.wait(timeout=KILL_GRACE_SECS)
        raise TimedOut(command, timeout) from e


def run_command(
    command: str,
    config: SafetyConfig,
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
) -> CmdResult:
    """Run an allowlisted command string under the project root.

    - Spawns the program directly (no shell); if the program is not found,
      retries once through the platform shell and records the fallback.
    - Kills the child's whole process group when ``timeout`` elapses and
      raises TimedOut.
    - A non-zero exit raises CommandFailed carrying the captured output.
    """

    if not command_permitted(command, config):
        raise CommandRejected(command, f"Command not in allowlist (policy: {config.command_policy})")

    argv = split_command(command)
    if not argv:
        raise CommandRejected(command, "Empty command")

    timeout_s = float(timeout if timeout is not None else config.timeout_secs)
    workdir: Path = join_within(config.root, (cwd or "").strip() or ".")
    if not workdir.is_dir():
        raise IoFailure(str(workdir), "Working directory does not exist")

    logger.info("CMD %s (cwd=%s)", _fmt_argv(argv), workdir)
    started = time.monotonic()
    via_shell = False

    popen_kwargs = dict(
        cwd=str(workdir),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        errors="replace",
        start_new_session=os.name != "nt",
    )
    try:
        proc = subprocess.Popen(argv, **popen_kwargs)
    except FileNotFoundError:
        if not _shell_fallback_permitted(command, config):
            raise CommandRejected(command, "Program not found and shell fallback refused")
        logger.info("Program %s not found; falling back to shell", argv[0])
        via_shell = True
        try:
            proc = subprocess.Popen(_shell_argv(command), **popen_kwargs)
        except OSError as e:
            raise IoFailure(command, "Shell fallback failed") from e
    except OSError as e:
        raise IoFailure(command, "Failed to spawn command") from e

    stdout, stderr = _communicate(proc, command, timeout_s)

    if stdout:
        logger.debug("STDOUT %s", stdout.strip())
    if stderr:
        logger.debug("STDERR %s", stderr.strip())

    res = CmdResult(
        command=command,
        cwd=str(workdir),
        status_code=proc.returncode,
        stdout=stdout,
        stderr=stderr,
        duration=time.monotonic() - started,
        via_shell_fallback=via_shell,
    )

    if res.status_code != 0:
        raise CommandFailed(res)

    return res
