"""JSON record files for the stores: atomic writes, tolerant reads and a file lock."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterable, Iterator, TypeVar

from pydantic import BaseModel

try:  # pragma: no cover - platform-dependent import
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX fallback
    fcntl = None

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` to a temp file beside ``path`` and swap it in."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


def write_model(path: Path, model: BaseModel) -> None:
    """Persist a record as indented camelCase JSON."""
    atomic_write_text(path, model.model_dump_json(indent=2, by_alias=True))


def read_model(path: Path, model_type: type[M]) -> M:
    """Load one record. Raises OSError or ValueError (incl. ValidationError) on a bad file."""
    return model_type.model_validate(json.loads(path.read_text(encoding="utf-8")))


def read_models(paths: Iterable[Path], model_type: type[M]) -> Iterator[tuple[Path, M]]:
    """Yield ``(path, record)`` for each readable file, logging and skipping the rest."""
    for path in paths:
        try:
            record = read_model(path, model_type)
        except (OSError, ValueError) as e:
            logger.warning("Skipping unreadable %s record %s: %s", model_type.__name__, path.name, e)
            continue
        yield path, record


class FileLock:
    """Exclusive lock on ``path``, shared by threads (RLock) and processes (flock where available).

    Re-entering from the thread that holds the lock only bumps a depth counter;
    the lock file is opened and flocked once, by the outermost ``locked()``.
    """

    def __init__(self, path: Path):
        self.path = path
        self._thread_lock = threading.RLock()
        self._depth = 0
        self._handle: IO[str] | None = None

    @contextmanager
    def locked(self) -> Iterator[None]:
        with self._thread_lock:
            if self._depth == 0:
                self._acquire()
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._release()

    def _acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = self.path.open("a+", encoding="utf-8")
        if fcntl is not None:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_EX)

    def _release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            if fcntl is not None:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()
