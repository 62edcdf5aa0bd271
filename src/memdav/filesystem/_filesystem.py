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

"""In-memory virtual filesystem implementing the capability surface.

Example usage::

    from memdav.filesystem import VirtualFilesystem

    fs = VirtualFilesystem()
    fs.load_manifest("/docs/readme.txt#128#Notes")

    assert fs.stat("/docs").is_directory
    assert fs.stat("/docs/readme.txt").display_name == "Notes"
    assert [child.path for child in fs.list_children("/docs")] == [
        "/docs/readme.txt"
    ]
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from ..clock import SYSTEM_CLOCK, WallClock
from ..errors import (
    AlreadyExistsError,
    InvalidArgumentError,
    InvalidOperationError,
    MemdavError,
    NotFoundError,
    PermissionDeniedError,
)
from ..logging import StructuredLogger, get_logger
from ..threading import ReadWriteLock
from ._handle import SessionHandle
from ._manifest import parse_manifest
from ._path import (
    ROOT,
    ancestors,
    base_name,
    is_path_under,
    normalize_path,
    parent_path,
    replace_prefix,
    validate_path,
)
from ._properties import DISPLAYNAME, PropertyPatch, PropStat, apply_patches
from ._store import EntryStore
from ._synthesizer import DirectorySynthesizer
from ._types import Entry, EntryStat, ManifestRecord, OpenFlags, Property

__all__ = ["VirtualFilesystem"]


def _default_logger() -> StructuredLogger:
    return get_logger(__name__)


@dataclass(slots=True)
class VirtualFilesystem:
    """Concurrent in-memory filesystem over an injected ``EntryStore``.

    Lookups (stat, listing, property reads, handle reads) run under shared
    access; structural operations (create, mkdir, remove, rename, property
    patch, load, handle writes) run under exclusive access held for the whole
    operation, so a cascading remove or subtree rename is never observed
    half-done.

    Attributes:
        store: The entry table. Owned by this filesystem once injected.
        read_only: Reject every mutating verb with ``PermissionDeniedError``.
        clock: Source of creation/modification timestamps.
        logger: Structured logger for structural operations.
    """

    store: EntryStore = field(default_factory=EntryStore)
    read_only: bool = False
    clock: WallClock = SYSTEM_CLOCK
    logger: StructuredLogger = field(default_factory=_default_logger)
    _lock: ReadWriteLock = field(default_factory=ReadWriteLock, repr=False)
    _synthesizer: DirectorySynthesizer = field(
        default_factory=DirectorySynthesizer, repr=False
    )

    def __post_init__(self) -> None:
        _ = self._synthesizer.ensure_root(self.store, timestamp=self._now())

    @property
    def root(self) -> str:
        return ROOT

    def _now(self) -> datetime:
        return self.clock.utcnow()

    def _check_writable(self, operation: str, path: str) -> None:
        if self.read_only:
            self.logger.warning(
                "Rejected mutation on read-only filesystem",
                event="filesystem.read_only",
                context={"operation": operation, "path": path},
            )
            msg = f"Filesystem is read-only: cannot {operation} {path}"
            raise PermissionDeniedError(msg)

    @staticmethod
    def _normalize(path: str) -> str:
        normalized = normalize_path(path)
        validate_path(normalized)
        return normalized

    def _resolves(self, path: str) -> bool:
        return self.store.exists_under_or_equal(path)

    def _stat_locked(self, path: str) -> EntryStat:
        entry = self.store.find(path)
        if entry is not None:
            return EntryStat.of(entry, read_only=self.read_only)
        if self._resolves(path):
            return EntryStat.implied_directory(
                path, timestamp=self._now(), read_only=self.read_only
            )
        raise NotFoundError(path)

    def _materialize_directory(self, path: str) -> Entry:
        """Store a directory for an implied path (exclusive lock held)."""
        timestamp = self._now()
        _ = self._synthesizer.ensure_ancestors(self.store, path, timestamp=timestamp)
        entry = Entry.directory(path, timestamp=timestamp)
        self.store.put(path, entry)
        return entry

    # --- Lookups ---

    def stat(self, path: str) -> EntryStat:
        normalized = self._normalize(path)
        with self._lock.read():
            return self._stat_locked(normalized)

    def exists(self, path: str) -> bool:
        normalized = self._normalize(path)
        with self._lock.read():
            return self._resolves(normalized)

    def list_children(self, path: str) -> list[EntryStat]:
        normalized = self._normalize(path)
        with self._lock.read():
            entry = self.store.find(normalized)
            if entry is None and not self._resolves(normalized):
                raise NotFoundError(path)
            if entry is not None and not entry.is_directory:
                msg = f"Not a directory: {normalized}"
                raise InvalidOperationError(msg)
            return self._synthesizer.list_children(
                self.store,
                normalized,
                timestamp=self._now(),
                read_only=self.read_only,
            )

    def read_properties(self, path: str) -> tuple[Property, ...]:
        normalized = self._normalize(path)
        with self._lock.read():
            entry = self.store.find(normalized)
            if entry is not None:
                return entry.properties_view()
            if self._resolves(normalized):
                return (Property(DISPLAYNAME, base_name(normalized)),)
        raise NotFoundError(path)

    # --- Handles ---

    def open(self, path: str, flags: OpenFlags = OpenFlags.READ) -> SessionHandle:
        flags = OpenFlags(flags)
        normalized = self._normalize(path)
        if flags.mutating:
            self._check_writable("open for writing", normalized)

        structural = bool(flags & (OpenFlags.CREATE | OpenFlags.TRUNCATE))
        lock = self._lock.write() if structural else self._lock.read()
        with lock:
            entry, created = self._resolve_for_open(normalized, flags)

        self.logger.debug(
            "Opened handle",
            event="filesystem.handle.open",
            context={"path": normalized, "flags": int(flags), "created": created},
        )
        return SessionHandle(filesystem=self, entry=entry, flags=flags, created=created)

    def _resolve_for_open(self, path: str, flags: OpenFlags) -> tuple[Entry, bool]:
        entry = self.store.find(path)
        if entry is None:
            if flags & OpenFlags.CREATE:
                if self._resolves(path):
                    msg = f"Cannot create file {path}: a directory exists there"
                    raise InvalidOperationError(msg)
                timestamp = self._now()
                _ = self._synthesizer.ensure_ancestors(
                    self.store, path, timestamp=timestamp
                )
                entry = Entry.file(path, size=0, timestamp=timestamp)
                self.store.put(path, entry)
                return entry, True
            if self._resolves(path) and not flags & OpenFlags.WRITE:
                # Implied directory: a detached entry is enough to list it.
                return Entry.directory(path, timestamp=self._now()), False
            raise NotFoundError(path)

        if flags & OpenFlags.CREATE and flags & OpenFlags.EXCLUSIVE:
            raise AlreadyExistsError(path)
        if entry.is_directory and flags & (OpenFlags.WRITE | OpenFlags.TRUNCATE):
            msg = f"Cannot open a directory for writing: {path}"
            raise InvalidOperationError(msg)
        if flags & OpenFlags.TRUNCATE:
            entry.truncate(timestamp=self._now())
        return entry, False

    def read_content(self, entry: Entry, offset: int, size: int) -> bytes:
        """Read ``size`` bytes (all when negative) of ``entry`` from ``offset``."""
        with self._lock.read():
            stop = entry.size if size < 0 else offset + size
            return entry.read(offset, stop)

    def write_content(self, entry: Entry, offset: int, data: bytes) -> int:
        """Write ``data`` into ``entry`` at ``offset``."""
        with self._lock.write():
            return entry.write(offset, data, timestamp=self._now())

    def content_length(self, entry: Entry) -> int:
        with self._lock.read():
            return entry.size

    def stat_entry(self, entry: Entry) -> EntryStat:
        with self._lock.read():
            return EntryStat.of(entry, read_only=self.read_only)

    # --- Structural operations ---

    def mkdir(self, path: str, *, parents: bool = True) -> EntryStat:
        normalized = self._normalize(path)
        self._check_writable("mkdir", normalized)

        with self._lock.write():
            if self._resolves(normalized):
                raise AlreadyExistsError(normalized)
            parent = parent_path(normalized)
            parent_entry = self.store.find(parent)
            if parent_entry is not None and not parent_entry.is_directory:
                msg = f"Parent is not a directory: {parent}"
                raise InvalidOperationError(msg)
            if not parents and not self._resolves(parent):
                msg = f"Parent directory does not exist: {parent}"
                raise NotFoundError(msg)
            entry = self._materialize_directory(normalized)

        self.logger.info(
            "Created directory",
            event="filesystem.mkdir",
            context={"path": normalized},
        )
        return EntryStat.of(entry, read_only=self.read_only)

    def remove_subtree(self, path: str) -> int:
        normalized = self._normalize(path)
        self._check_writable("remove", normalized)
        if normalized == ROOT:
            msg = "Cannot remove the root directory"
            raise PermissionDeniedError(msg)

        with self._lock.write():
            if not self._resolves(normalized):
                raise NotFoundError(path)
            doomed = [
                key for key in self.store if is_path_under(key, normalized)
            ]
            for key in doomed:
                _ = self.store.remove(key)

        self.logger.info(
            "Removed subtree",
            event="filesystem.remove",
            context={"path": normalized, "entries": len(doomed)},
        )
        return len(doomed)

    def rename(self, old: str, new: str, *, overwrite: bool = False) -> EntryStat:
        source_path = self._normalize(old)
        target_path = self._normalize(new)
        self._check_writable("rename", source_path)
        if ROOT in (source_path, target_path):
            msg = "Cannot rename to or from the root directory"
            raise InvalidArgumentError(msg)
        if is_path_under(target_path, source_path):
            msg = f"Cannot move {source_path} into itself ({target_path})"
            raise InvalidArgumentError(msg)
        if is_path_under(source_path, target_path):
            msg = f"Cannot move {source_path} over its ancestor {target_path}"
            raise InvalidArgumentError(msg)

        with self._lock.write():
            moved, replaced = self._rename_locked(source_path, target_path, overwrite)
            result = EntryStat.of(self.store.get(target_path), read_only=self.read_only)

        self.logger.info(
            "Renamed subtree",
            event="filesystem.rename",
            context={
                "source": source_path,
                "destination": target_path,
                "entries": moved,
                "replaced": replaced,
            },
        )
        return result

    def _rename_locked(
        self, source_path: str, target_path: str, overwrite: bool
    ) -> tuple[int, int]:
        if not self._resolves(source_path):
            raise NotFoundError(source_path)
        target_exists = self._resolves(target_path)
        if target_exists and not overwrite:
            raise AlreadyExistsError(target_path)
        for ancestor in ancestors(target_path):
            existing = self.store.find(ancestor)
            if existing is not None and not existing.is_directory:
                msg = f"Cannot move to {target_path}: {ancestor} is a file"
                raise InvalidOperationError(msg)

        # Validation is complete; nothing below can fail half-way.
        replaced = 0
        if target_exists:
            doomed = [key for key in self.store if is_path_under(key, target_path)]
            for key in doomed:
                _ = self.store.remove(key)
            replaced = len(doomed)

        source = self.store.find(source_path)
        moving = [
            self.store.get(key)
            for key in self.store
            if is_path_under(key, source_path)
        ]
        for entry in moving:
            _ = self.store.remove(entry.path)

        timestamp = self._now()
        _ = self._synthesizer.ensure_ancestors(
            self.store, target_path, timestamp=timestamp
        )
        for entry in moving:
            self.store.put(replace_prefix(entry.path, source_path, target_path), entry)
        if source is None:
            source = Entry.directory(target_path, timestamp=timestamp)
            self.store.put(target_path, source)
        source.modified_at = timestamp
        return len(moving), replaced

    def patch_properties(
        self, path: str, patches: Sequence[PropertyPatch]
    ) -> tuple[PropStat, ...]:
        normalized = self._normalize(path)
        self._check_writable("patch properties of", normalized)

        with self._lock.write():
            entry = self.store.find(normalized)
            if entry is None:
                if not self._resolves(normalized):
                    raise NotFoundError(path)
                entry = self._materialize_directory(normalized)
            statuses = apply_patches(entry, patches, timestamp=self._now())

        self.logger.info(
            "Patched properties",
            event="filesystem.properties.patch",
            context={
                "path": normalized,
                "statuses": {str(stat.name): int(stat.status) for stat in statuses},
            },
        )
        return statuses

    # --- Bulk load ---

    def load(self, records: Iterable[ManifestRecord]) -> int:
        """Declare ``records`` all-or-nothing and return how many were applied.

        Records are applied to a scratch copy of the table, which replaces the
        live table only when every record succeeded. Loading is an operator
        action and is allowed on read-only filesystems.

        Raises:
            InvalidOperationError: A record conflicts with an existing
                file/directory; the filesystem is left unchanged. Records
                parsed from a manifest raise ``ManifestConflictError``,
                which names the offending line.
        """
        pending = tuple(records)
        with self._lock.write():
            scratch = self.store.copy()
            try:
                count = self._synthesizer.load(scratch, pending, timestamp=self._now())
            except MemdavError as error:
                self.logger.error(
                    "Bulk load failed; filesystem left unchanged",
                    event="filesystem.load.failed",
                    context={"records": len(pending), "error": str(error)},
                )
                raise
            self.store.replace_contents(scratch)
            total = len(self.store)

        self.logger.info(
            "Loaded manifest records",
            event="filesystem.load",
            context={"records": count, "entries": total},
        )
        return count

    def load_manifest(self, text: str) -> int:
        """Parse manifest ``text`` and load it atomically.

        Raises:
            ManifestError: A line is malformed; nothing is loaded.
        """
        return self.load(parse_manifest(text))
