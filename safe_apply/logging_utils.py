from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

STATE_DIR_NAME = ".safe-apply"
DEFAULT_LOG_NAME = "safe-apply.log"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

# Path of the file handler installed by configure_logging, once it ran.
_active_log_path: Optional[str] = None


def default_log_path(root: str | Path) -> str:
    return str(Path(root).expanduser() / STATE_DIR_NAME / DEFAULT_LOG_NAME)


def _open_file_handler(log_path: str) -> Tuple[logging.Handler, str]:
    try:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path, encoding="utf-8"), log_path
    except OSError:
        # Read-only project trees still get a log next to the caller.
        fallback = str(Path.cwd() / DEFAULT_LOG_NAME)
        return logging.FileHandler(fallback, encoding="utf-8"), fallback


def configure_logging(
    log_path: Optional[str] = None,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Send every ``safe_apply`` record to one log file per process.

    ``log_path`` defaults to ``.safe-apply/safe-apply.log`` in the working
    directory. The console only shows warnings and errors; the step-by-step
    INFO trail goes to the file. Later calls are no-ops and return the file
    chosen by the first one.
    """

    global _active_log_path
    if _active_log_path is not None:
        return _active_log_path

    requested = log_path or default_log_path(".")
    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    root = logging.getLogger()
    root.setLevel(level)

    file_handler, chosen = _open_file_handler(requested)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        console.setLevel(max(level, logging.WARNING))
        root.addHandler(console)

    _active_log_path = chosen
    logging.getLogger(__name__).info("Logging to %s (requested %s)", chosen, requested)
    return chosen
