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

"""Tests for :class:`memdav.threading.ReadWriteLock`."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from memdav.threading import ReadWriteLock


def test_readers_share_access() -> None:
    lock = ReadWriteLock()
    barrier = threading.Barrier(3, timeout=5)

    def reader() -> int:
        with lock.read():
            _ = barrier.wait()
            return lock.readers

    with ThreadPoolExecutor(max_workers=3) as pool:
        counts = list(pool.map(lambda _: reader(), range(3)))

    assert max(counts) == 3
    assert lock.readers == 0


def test_writer_excludes_readers() -> None:
    lock = ReadWriteLock()
    observed: list[bool] = []
    lock.acquire_write()

    def reader() -> None:
        with lock.read():
            observed.append(lock.write_locked)

    thread = threading.Thread(target=reader)
    thread.start()
    time.sleep(0.05)

    assert observed == []

    lock.release_write()
    thread.join(timeout=5)

    assert observed == [False]


def test_waiting_writer_blocks_new_readers() -> None:
    lock = ReadWriteLock()
    order: list[str] = []
    lock.acquire_read()

    def writer() -> None:
        with lock.write():
            order.append("writer")

    def late_reader() -> None:
        with lock.read():
            order.append("reader")

    writer_thread = threading.Thread(target=writer)
    writer_thread.start()
    time.sleep(0.05)
    reader_thread = threading.Thread(target=late_reader)
    reader_thread.start()
    time.sleep(0.05)

    assert order == []

    lock.release_read()
    writer_thread.join(timeout=5)
    reader_thread.join(timeout=5)

    assert order == ["writer", "reader"]


def test_context_managers_release_on_error() -> None:
    lock = ReadWriteLock()

    with pytest.raises(RuntimeError, match="inside"), lock.write():
        raise RuntimeError("inside")

    assert not lock.write_locked
    with lock.read():
        assert lock.readers == 1


def test_unbalanced_release_raises() -> None:
    lock = ReadWriteLock()

    with pytest.raises(RuntimeError, match="acquire_read"):
        lock.release_read()
    with pytest.raises(RuntimeError, match="acquire_write"):
        lock.release_write()
