# docrag/infrastructure/index_repository.py

import os
import stat
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from docrag.domain.errors import IndexNotFoundError, ValidationError
from docrag.infrastructure.read_write_lock import ReadWriteLock
from docrag.infrastructure.vector_index import VectorIndex


def _default_file_mode() -> int:
    # os.umask can only be read by setting it
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


class IndexRepository:
    """
    Handle on a single persisted index location.

    ┌──────────────────────────────────────────────────────────────┐
    │  indexing()  →  mutex: one indexing operation at a time      │
    │  load()      →  read lock: many concurrent readers           │
    │  save()      →  write lock: temp file + os.replace swap      │
    └──────────────────────────────────────────────────────────────┘

    Readers see either the previous collection or the new one, never a
    partially written file. Pass the same handle to every service that
    touches the location; locks are per handle.
    """

    def __init__(self, index_path: str | Path):
        self._path = Path(index_path)
        if self._path.is_dir():
            raise ValidationError(f"Index path '{self._path}' is a directory, expected a file.")

        self._rw_lock = ReadWriteLock()
        self._indexing_mutex = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    @contextmanager
    def indexing(self) -> Iterator[None]:
        """Serialize indexing operations against this location."""
        with self._indexing_mutex:
            yield

    def load(self) -> VectorIndex:
        with self._rw_lock.read_lock():
            try:
                data = self._path.read_bytes()
            except FileNotFoundError as error:
                raise IndexNotFoundError(
                    f"No index found at '{self._path}'. Index a document first."
                ) from error

        index = VectorIndex.deserialize(data)
        print(f"[IndexRepository] Loaded {index.count} records from '{self._path}'")
        return index

    def save(self, index: VectorIndex) -> None:
        """Replace whatever collection is stored at this location."""
        # Serialize before taking the lock so a bad index never touches disk
        payload = index.serialize()
        self._path.parent.mkdir(parents=True, exist_ok=True)

        with self._rw_lock.write_lock():
            self._atomic_write(payload)

        print(f"[IndexRepository] ✓ Saved {index.count} records to '{self._path}' "
              f"({len(payload) / 1024:.1f} KiB)")

    def _target_mode(self) -> int:
        """Keep the current file's permissions, or use the umask default for a new one."""
        try:
            return stat.S_IMODE(self._path.stat().st_mode)
        except FileNotFoundError:
            return _default_file_mode()

    def _atomic_write(self, payload: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_name, self._target_mode())
            os.replace(tmp_name, self._path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
