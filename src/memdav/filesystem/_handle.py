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

"""Session handles: per-open cursors over one entry's content.

A handle keeps a live reference to the ``Entry`` object it was opened on.
Renames move that same object to its new key, so the handle keeps reading the
same content and reports the new path. A removed entry is detached from the
store; the handle still reads its last content, and writes through it never
bring the entry back.

Handles are private to the caller that opened them. Content access goes
through the owning filesystem so reads share, and writes exclude, the
structural lock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import TracebackType
from typing import TYPE_CHECKING, Self

from ..errors import (
    HandleClosedError,
    InvalidArgumentError,
    InvalidOperationError,
    PermissionDeniedError,
)
from ._types import Entry, EntryStat, OpenFlags, SeekWhence

if TYPE_CHECKING:
    from ._filesystem import VirtualFilesystem


@dataclass(slots=True)
class SessionHandle:
    """Read/seek/write cursor bound to one entry.

    Example::

        with fs.open("/docs/readme.txt") as handle:
            header = handle.read(16)
            handle.seek(0, SeekWhence.END)
            assert handle.read() == b""
    """

    filesystem: VirtualFilesystem
    entry: Entry
    flags: OpenFlags = OpenFlags.READ
    created: bool = False
    _offset: int = field(default=0, init=False)
    _closed: bool = field(default=False, init=False)

    @property
    def path(self) -> str:
        return self.entry.path

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_closed(self) -> None:
        if self._closed:
            msg = f"I/O operation on closed handle: {self.entry.path}"
            raise HandleClosedError(msg)

    def _check_file(self, operation: str) -> None:
        if self.entry.is_directory:
            msg = f"Cannot {operation} a directory: {self.entry.path}"
            raise InvalidOperationError(msg)

    def tell(self) -> int:
        self._check_closed()
        return self._offset

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes; ``b""`` signals the end of the content."""
        self._check_closed()
        self._check_file("read")
        if not self.flags & OpenFlags.READ:
            msg = f"Handle not opened for reading: {self.entry.path}"
            raise PermissionDeniedError(msg)
        data = self.filesystem.read_content(self.entry, self._offset, size)
        self._offset += len(data)
        return data

    def seek(self, offset: int, whence: int = SeekWhence.SET) -> int:
        """Move the cursor; seeking past the end is allowed."""
        self._check_closed()
        try:
            reference = SeekWhence(whence)
        except ValueError:
            msg = f"Invalid whence: {whence!r}"
            raise InvalidArgumentError(msg) from None

        if reference is SeekWhence.SET:
            position = offset
        elif reference is SeekWhence.CUR:
            position = self._offset + offset
        else:
            position = self.filesystem.content_length(self.entry) + offset

        if position < 0:
            msg = f"Negative seek position {position}"
            raise InvalidArgumentError(msg)
        self._offset = position
        return position

    def write(self, data: bytes) -> int:
        """Overwrite from the current offset and return the bytes written."""
        self._check_closed()
        self._check_file("write")
        if not self.flags & OpenFlags.WRITE:
            msg = f"Handle not opened for writing: {self.entry.path}"
            raise PermissionDeniedError(msg)
        written = self.filesystem.write_content(self.entry, self._offset, bytes(data))
        self._offset += written
        return written

    def list_children(self) -> list[EntryStat]:
        self._check_closed()
        if not self.entry.is_directory:
            msg = f"Not a directory: {self.entry.path}"
            raise InvalidOperationError(msg)
        return self.filesystem.list_children(self.entry.path)

    def stat(self) -> EntryStat:
        self._check_closed()
        return self.filesystem.stat_entry(self.entry)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.filesystem.logger.debug(
            "Closed handle",
            event="filesystem.handle.close",
            context={"path": self.entry.path, "offset": self._offset},
        )

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


__all__ = ["SessionHandle"]
