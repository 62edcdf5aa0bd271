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

"""Core filesystem types and value dataclasses.

Types are organized into:

- **Entries**: ``Entry`` - the mutable node owned by the entry store
- **Metadata types**: ``EntryStat`` - immutable snapshots handed to callers
- **Property types**: ``PropertyName``, ``Property``, ``PropertyPatch``,
  ``PropStat`` and ``PatchStatus`` - the namespaced property bag protocol
- **Load types**: ``ManifestRecord`` - one declared leaf of a bulk load
- **Handle flags**: ``OpenFlags`` and ``SeekWhence``

Constants:

- ``DAV_NAMESPACE``: The WebDAV property namespace ("DAV:")
- ``DISPLAYNAME``: Property name mirrored by ``Entry.display_name``
"""

from __future__ import annotations

import os
import stat as stat_module
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum, IntFlag

from ..errors import InvalidArgumentError
from ._path import base_name
from ._properties import DAV_NAMESPACE, DISPLAYNAME, PropertyName, PropertyStore


class OpenFlags(IntFlag):
    """Flags accepted by ``Filesystem.open``."""

    READ = 1
    WRITE = 2
    CREATE = 4
    EXCLUSIVE = 8
    TRUNCATE = 16

    @property
    def mutating(self) -> bool:
        """True if the flags request any form of mutation."""
        return bool(self & (OpenFlags.WRITE | OpenFlags.CREATE | OpenFlags.TRUNCATE))


class SeekWhence(IntEnum):
    """Reference points for ``SessionHandle.seek`` (values match ``os.SEEK_*``)."""

    SET = os.SEEK_SET
    CUR = os.SEEK_CUR
    END = os.SEEK_END


def synthesize_content(path: str, size: int) -> bytes:
    """Return the placeholder content of a declared file.

    The banner line names the path and declared size and repeats until the
    content is exactly ``size`` bytes long.

    Example::

        synthesize_content("/a.txt", 10)  # b"Synthetic "
    """
    return _synthetic_range(_banner_line(path, size), 0, size)


def _banner_line(path: str, size: int) -> bytes:
    return f"Synthetic content of {path}. Size: {size} bytes.\n".encode()


def _synthetic_range(banner: bytes, start: int, stop: int) -> bytes:
    if stop <= start:
        return b""
    length = stop - start
    offset = start % len(banner)
    repeated = banner * ((offset + length) // len(banner) + 1)
    return repeated[offset : offset + length]


@dataclass(slots=True)
class Entry:
    """A node of the virtual hierarchy, file or directory.

    Entries are owned by the ``EntryStore`` and mutated in place. File
    content stays synthetic (derived from the declaring path and size) until
    the first write turns it into a real growable buffer.

    ``display_name`` is the single source for the ``DAV:displayname``
    property: ``PropertyStore`` never holds that name, and
    ``Entry.properties_view`` synthesizes it on read.
    """

    path: str
    is_directory: bool
    created_at: datetime
    modified_at: datetime
    display_name: str = ""
    size: int = 0
    properties: PropertyStore = field(default_factory=PropertyStore)
    _banner: bytes = field(default=b"", init=False, repr=False)
    _buffer: bytearray | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.is_directory:
            self._banner = _banner_line(self.path, self.size)

    @classmethod
    def directory(
        cls, path: str, *, timestamp: datetime, display_name: str | None = None
    ) -> Entry:
        """Build a directory entry named after its final segment by default."""
        return cls(
            path=path,
            is_directory=True,
            created_at=timestamp,
            modified_at=timestamp,
            display_name=base_name(path) if display_name is None else display_name,
        )

    @classmethod
    def file(
        cls,
        path: str,
        *,
        size: int,
        timestamp: datetime,
        display_name: str | None = None,
    ) -> Entry:
        """Build a file entry with synthetic content of ``size`` bytes."""
        if size < 0:
            msg = f"File size must be non-negative, got {size}"
            raise InvalidArgumentError(msg)
        return cls(
            path=path,
            is_directory=False,
            created_at=timestamp,
            modified_at=timestamp,
            display_name=display_name or base_name(path),
            size=size,
        )

    def read(self, start: int, stop: int) -> bytes:
        """Return content bytes in ``[start, stop)`` clamped to the size."""
        stop = min(stop, self.size)
        if self._buffer is not None:
            return bytes(self._buffer[start:stop])
        return _synthetic_range(self._banner, start, stop)

    def write(self, offset: int, data: bytes, *, timestamp: datetime) -> int:
        """Overwrite content from ``offset``, zero-filling any gap past the end."""
        buffer = self._materialize()
        end = offset + len(data)
        if offset > len(buffer):
            buffer.extend(b"\x00" * (offset - len(buffer)))
        buffer[offset:end] = data
        self.size = len(buffer)
        self.modified_at = timestamp
        return len(data)

    def truncate(self, *, timestamp: datetime) -> None:
        """Drop all content, leaving an empty real buffer."""
        self._buffer = bytearray()
        self.size = 0
        self.modified_at = timestamp

    def _materialize(self) -> bytearray:
        if self._buffer is None:
            self._buffer = bytearray(_synthetic_range(self._banner, 0, self.size))
        return self._buffer

    @property
    def materialized(self) -> bool:
        """True once the content has been backed by a real buffer."""
        return self._buffer is not None

    def properties_view(self) -> tuple[Property, ...]:
        """Return all properties, the mirrored ``DAV:displayname`` first."""
        return (
            Property(DISPLAYNAME, self.display_name),
            *(Property(name, value) for name, value in self.properties.items()),
        )


@dataclass(slots=True, frozen=True)
class EntryStat:
    """Immutable metadata snapshot for a file or directory.

    Attributes:
        path: Absolute normalized path.
        name: Final path segment ("" for the root).
        display_name: Human-facing label; the field property patches update.
        size: Byte length (0 for directories).
        is_directory: True for directories.
        modified_at: Last modification time (UTC).
        created_at: Creation time (UTC), None for implied directories.
        mode: POSIX mode bits including the file type.
    """

    path: str
    name: str
    display_name: str
    size: int
    is_directory: bool
    modified_at: datetime
    created_at: datetime | None = None
    mode: int = 0

    @property
    def is_file(self) -> bool:
        """True for regular files."""
        return not self.is_directory

    @classmethod
    def of(cls, entry: Entry, *, read_only: bool) -> EntryStat:
        """Snapshot an entry."""
        return cls(
            path=entry.path,
            name=base_name(entry.path),
            display_name=entry.display_name,
            size=0 if entry.is_directory else entry.size,
            is_directory=entry.is_directory,
            modified_at=entry.modified_at,
            created_at=entry.created_at,
            mode=file_mode(is_directory=entry.is_directory, read_only=read_only),
        )

    @classmethod
    def implied_directory(
        cls, path: str, *, timestamp: datetime, read_only: bool
    ) -> EntryStat:
        """Snapshot a directory implied only by its descendants."""
        return cls(
            path=path,
            name=base_name(path),
            display_name=base_name(path),
            size=0,
            is_directory=True,
            modified_at=timestamp,
            mode=file_mode(is_directory=True, read_only=read_only),
        )


def file_mode(*, is_directory: bool, read_only: bool) -> int:
    """Return POSIX mode bits for an entry kind and deployment mode."""
    if is_directory:
        return stat_module.S_IFDIR | (0o555 if read_only else 0o755)
    return stat_module.S_IFREG | (0o444 if read_only else 0o644)


@dataclass(slots=True, frozen=True)
class Property:
    """A namespaced property and its opaque value."""

    name: PropertyName
    value: str | bytes


@dataclass(slots=True, frozen=True)
class ManifestRecord:
    """One declared leaf from a bulk-load manifest.

    Attributes:
        path: Normalized absolute path of the file.
        size: Declared size in bytes.
        display_name: Optional label (falls back to the final segment).
        line_number: 1-based source line, 0 for programmatic records.
    """

    path: str
    size: int
    display_name: str | None = None
    line_number: int = 0


__all__ = [
    "DAV_NAMESPACE",
    "DISPLAYNAME",
    "Entry",
    "EntryStat",
    "ManifestRecord",
    "OpenFlags",
    "Property",
    "SeekWhence",
    "file_mode",
    "synthesize_content",
]
