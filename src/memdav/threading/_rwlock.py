# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Reader/writer lock guarding shared in-memory state."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field


@dataclass
class ReadWriteLock:
    """Writer-preferring reader/writer lock.

    Any number of readers may hold the lock together; a writer holds it
    alone. Once a writer is waiting, new readers queue behind it so a steady
    stream of lookups cannot starve structural updates.

    The lock is not reentrant: a thread holding shared access must not
    request exclusive access (or vice versa).

    Example::

        lock = ReadWriteLock()

        with lock.read():
            entry = table.get(path)

        with lock.write():
            table[path] = entry
    """

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _condition: threading.Condition = field(init=False, repr=False)
    _readers: int = field(default=0, init=False)
    _writer: bool = field(default=False, init=False)
    _writers_waiting: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        self._condition = threading.Condition(self._lock)

    def acquire_read(self) -> None:
        """Block until shared access is granted."""
        with self._condition:
            _ = self._condition.wait_for(
                lambda: not self._writer and self._writers_waiting == 0
            )
            self._readers += 1

    def release_read(self) -> None:
        """Release shared access."""
        with self._condition:
            if self._readers <= 0:
                msg = "release_read() called without a matching acquire_read()"
                raise RuntimeError(msg)
            self._readers -= 1
            if self._readers == 0:
                self._condition.notify_all()

    def acquire_write(self) -> None:
        """Block until exclusive access is granted."""
        with self._condition:
            self._writers_waiting += 1
            try:
                _ = self._condition.wait_for(
                    lambda: not self._writer and self._readers == 0
                )
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        """Release exclusive access."""
        with self._condition:
            if not self._writer:
                msg = "release_write() called without a matching acquire_write()"
                raise RuntimeError(msg)
            self._writer = False
            self._condition.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        """Hold shared access for the duration of the ``with`` block."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        """Hold exclusive access for the duration of the ``with`` block."""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    @property
    def readers(self) -> int:
        """Number of threads currently holding shared access."""
        with self._lock:
            return self._readers

    @property
    def write_locked(self) -> bool:
        """True while a writer holds the lock."""
        with self._lock:
            return self._writer


__all__ = ["ReadWriteLock"]
