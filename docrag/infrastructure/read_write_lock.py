# docrag/infrastructure/read_write_lock.py

import threading
from contextlib import contextmanager
from typing import Iterator


class ReadWriteLock:
    """
    Guards one index file: loads share it, a save owns it.

    Once a save is queued, new loads hold back until it has swapped the
    file in. Loads already running finish first.
    """

    def __init__(self) -> None:
        self._state = threading.Condition()
        self._reading = 0
        self._writing = False
        self._queued_writes = 0

    @property
    def active_readers(self) -> int:
        with self._state:
            return self._reading

    def _read_allowed(self) -> bool:
        return not self._writing and self._queued_writes == 0

    def _write_allowed(self) -> bool:
        return not self._writing and self._reading == 0

    @contextmanager
    def read_lock(self) -> Iterator[None]:
        with self._state:
            self._state.wait_for(self._read_allowed)
            self._reading += 1
        try:
            yield
        finally:
            with self._state:
                self._reading -= 1
                if not self._reading:
                    self._state.notify_all()

    @contextmanager
    def write_lock(self) -> Iterator[None]:
        with self._state:
            self._queued_writes += 1
            try:
                self._state.wait_for(self._write_allowed)
            finally:
                # Also runs when the wait is interrupted
                self._queued_writes -= 1
            self._writing = True
        try:
            yield
        finally:
            with self._state:
                self._writing = False
                self._state.notify_all()
