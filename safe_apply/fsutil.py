from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from pathlib import Path
from typing import IO, Iterator, Optional

from .errors import IoFailure
from .merge import ensure_trailing_newline

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def scoped_temp_file(dest: Path) -> Iterator[tuple[IO[bytes], Path]]:
    """Temp file next to ``dest``; removed on every exit unless renamed away."""

    fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".tmp", dir=str(dest.parent))
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            yield f, tmp
    finally:
        if tmp.exists():
            tmp.unlink()


def write_atomic(path: Path, contents: str) -> int:
    """Write ``contents`` (newline-terminated) via temp file + rename.

    The destination is either the old content or the complete new content.
    Returns the number of bytes written.
    """

    data = ensure_trailing_newline(contents).encode("utf-8")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with scoped_temp_file(path) as (f, tmp):
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
            f.close()
            os.replace(tmp, path)
    except OSError as e:
        raise IoFailure(str(path), "Atomic write failed") from e

    logger.debug("Wrote %d bytes to %s", len(data), path)
    return len(data)


def read_text_if_exists(path: Path) -> Optional[str]:
    if not path.exists():
        return None
    if not path.is_file():
        raise IoFailure(str(path), "Not a regular file")
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise IoFailure(str(path), "Failed to read") from e


def remove_file(path: Path) -> None:
    try:
        path.unlink()
    except OSError as e:
        raise IoFailure(str(path), "Failed to delete") from e
