"""Low-level file writes shared by the stores.

Whole-file replacement goes through a temp file in the same directory and
os.replace(), so readers see either the old or the new content.
"""

import os
import threading
from pathlib import Path

_append_locks: dict[Path, threading.Lock] = {}
_append_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    with _append_locks_guard:
        lock = _append_locks.get(path)
        if lock is None:
            lock = threading.Lock()
            _append_locks[path] = lock
        return lock


def atomic_write(path: Path, data: bytes) -> None:
    """Replace path with data. Never leaves a partial file at path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
    try:
        with open(tmp, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def append_record(path: Path, data: bytes) -> None:
    """Append one record with O_APPEND.

    Writers in this process are serialized per file. Across processes the
    single write() of an O_APPEND descriptor keeps records whole.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with _lock_for(path):
        fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
        try:
            size = os.fstat(fd).st_size
            view = memoryview(data)
            try:
                while view:
                    written = os.write(fd, view)
                    view = view[written:]
            except OSError:
                # drop the partial record
                os.ftruncate(fd, size)
                raise
        finally:
            os.close(fd)
