"""Atomic file writes for configuration and data files.

Content is written to a temp file in the target's directory and renamed into
place, so readers (including the config hot-reload poller) never observe a
partially written file.
"""

import contextlib
import os
import tempfile
from pathlib import Path

import structlog

logger = structlog.get_logger()

# Owner read/write, group/other read: config files are not secret.
DEFAULT_FILE_MODE = 0o644


def atomic_write_text(target: str | Path, content: str, *, file_mode: int = DEFAULT_FILE_MODE) -> Path:
    """Write text to target atomically and return the resolved path.

    Creates the parent directory when missing. The temp file is removed if
    anything fails before the rename.
    """
    path = Path(target).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp", prefix=f".{path.name}_")
    fd_owned = True
    try:
        with os.fdopen(fd, "wb") as f:
            fd_owned = False  # os.fdopen took ownership; it will close fd
            f.write(content.encode("utf-8"))
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, file_mode)  # noqa: PTH101
        Path(tmp_path).replace(path)
    except BaseException:
        if fd_owned:
            with contextlib.suppress(OSError):
                os.close(fd)
        with contextlib.suppress(OSError):
            Path(tmp_path).unlink()
        raise
    logger.debug("wrote file atomically", path=str(path))
    return path
