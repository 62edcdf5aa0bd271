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

"""Capability protocols a protocol engine drives.

A protocol engine (the HTTP gateway in :mod:`memdav.server`, or any other
document-management front end) depends only on these protocols, never on the
entry store. ``VirtualFilesystem`` is the in-memory implementation.

All paths are absolute strings; implementations normalize them (a missing
leading slash is supplied, ``.`` and ``..`` are resolved).
"""

from __future__ import annotations

from collections.abc import Sequence
from types import TracebackType
from typing import Protocol, Self, runtime_checkable

from ._properties import PropertyPatch, PropStat
from ._types import EntryStat, OpenFlags, Property, SeekWhence


@runtime_checkable
class FileHandle(Protocol):
    """Cursor over one entry's content for the duration of one open.

    States: open -> {read, seek, write}* -> closed. Every operation after
    ``close()`` raises ``HandleClosedError``.
    """

    @property
    def path(self) -> str:
        """Current path of the bound entry."""
        ...

    @property
    def closed(self) -> bool:
        """True once ``close()`` has been called."""
        ...

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes (all remaining when negative).

        Returns ``b""`` at or past the end of the content.

        Raises:
            InvalidOperationError: The handle is bound to a directory.
            PermissionDeniedError: The handle was not opened for reading.
        """
        ...

    def seek(self, offset: int, whence: int = SeekWhence.SET) -> int:
        """Move the cursor and return the new absolute offset.

        Raises:
            InvalidArgumentError: Unknown ``whence`` or negative result.
        """
        ...

    def tell(self) -> int:
        """Return the current offset."""
        ...

    def write(self, data: bytes) -> int:
        """Overwrite content from the current offset, growing the size.

        Raises:
            InvalidOperationError: The handle is bound to a directory.
            PermissionDeniedError: The handle was not opened for writing.
        """
        ...

    def list_children(self) -> list[EntryStat]:
        """List the bound directory.

        Raises:
            InvalidOperationError: The handle is bound to a file.
        """
        ...

    def stat(self) -> EntryStat:
        """Return metadata of the bound entry."""
        ...

    def close(self) -> None:
        """Close the handle (idempotent)."""
        ...

    def __enter__(self) -> Self: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None: ...


@runtime_checkable
class Filesystem(Protocol):
    """Capability surface of the virtual filesystem.

    Example::

        def describe(fs: Filesystem, path: str) -> str:
            stat = fs.stat(path)
            kind = "dir" if stat.is_directory else f"{stat.size} bytes"
            return f"{stat.display_name} ({kind})"
    """

    @property
    def root(self) -> str:
        """Root path of the hierarchy ("/")."""
        ...

    @property
    def read_only(self) -> bool:
        """Whether mutating verbs are disabled.

        When True, ``mkdir``, ``remove_subtree``, ``rename``,
        ``patch_properties`` and any ``open`` with WRITE, CREATE or TRUNCATE
        raise ``PermissionDeniedError`` before touching state.
        """
        ...

    def stat(self, path: str) -> EntryStat:
        """Return metadata for ``path``.

        A path with no entry of its own but with stored descendants is
        reported as a directory of size 0.

        Raises:
            NotFoundError: Nothing is stored at or beneath ``path``.
        """
        ...

    def exists(self, path: str) -> bool:
        """True if ``stat(path)`` would succeed."""
        ...

    def open(self, path: str, flags: OpenFlags = OpenFlags.READ) -> FileHandle:
        """Open a session handle bound to the (possibly new) entry.

        Raises:
            NotFoundError: Path missing and CREATE not requested.
            AlreadyExistsError: CREATE|EXCLUSIVE over an existing entry.
            InvalidOperationError: WRITE or TRUNCATE on a directory.
            PermissionDeniedError: Mutating flags on a read-only filesystem.
        """
        ...

    def mkdir(self, path: str, *, parents: bool = True) -> EntryStat:
        """Create a directory.

        Raises:
            AlreadyExistsError: Something already exists at ``path``.
            NotFoundError: ``parents=False`` and the parent is missing.
            PermissionDeniedError: The filesystem is read-only.
        """
        ...

    def remove_subtree(self, path: str) -> int:
        """Remove ``path`` and every descendant; return the number removed.

        Raises:
            NotFoundError: Nothing matches ``path``.
            PermissionDeniedError: The filesystem is read-only, or ``path``
                is the root.
        """
        ...

    def rename(self, old: str, new: str, *, overwrite: bool = False) -> EntryStat:
        """Move ``old`` (and its subtree) to ``new`` atomically.

        Raises:
            NotFoundError: ``old`` does not exist.
            AlreadyExistsError: ``new`` exists and ``overwrite`` is False.
            InvalidArgumentError: ``new`` lies inside ``old`` or either is root.
            PermissionDeniedError: The filesystem is read-only.
        """
        ...

    def list_children(self, path: str) -> list[EntryStat]:
        """Return direct children of ``path`` sorted by path.

        Raises:
            NotFoundError: ``path`` does not resolve.
            InvalidOperationError: ``path`` is a file.
        """
        ...

    def read_properties(self, path: str) -> tuple[Property, ...]:
        """Return every property of ``path``, ``DAV:displayname`` first.

        Raises:
            NotFoundError: ``path`` does not resolve.
        """
        ...

    def patch_properties(
        self, path: str, patches: Sequence[PropertyPatch]
    ) -> tuple[PropStat, ...]:
        """Apply a property patch batch and report per-property status.

        Raises:
            NotFoundError: ``path`` does not resolve.
            PermissionDeniedError: The filesystem is read-only.
        """
        ...


__all__ = ["FileHandle", "Filesystem"]
