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

"""Directory synthesis for flat path declarations.

Manifests only name leaves. The synthesizer fills in every missing ancestor
directory so each stored entry (other than the root) has a stored parent, and
builds listings that also surface directories implied by deeper entries of
stores populated without synthesis.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from ..errors import InvalidOperationError, ManifestConflictError
from ._path import ROOT, ancestors, is_path_under, parent_path, validate_path
from ._store import EntryStore
from ._types import Entry, EntryStat, ManifestRecord


@dataclass(slots=True, frozen=True)
class DirectorySynthesizer:
    """Stateless helper maintaining the hierarchy invariant of a store."""

    def ensure_ancestors(
        self, store: EntryStore, path: str, *, timestamp: datetime
    ) -> list[Entry]:
        """Create missing ancestor directories of ``path``, shallowest first.

        Returns:
            The directory entries that were created.

        Raises:
            InvalidOperationError: An ancestor exists as a file.
        """
        created: list[Entry] = []
        for ancestor in ancestors(path):
            existing = store.find(ancestor)
            if existing is None:
                directory = Entry.directory(ancestor, timestamp=timestamp)
                store.put(ancestor, directory)
                created.append(directory)
            elif not existing.is_directory:
                msg = f"Cannot create {path}: {ancestor} is a file"
                raise InvalidOperationError(msg)
        return created

    def declare_file(
        self, store: EntryStore, record: ManifestRecord, *, timestamp: datetime
    ) -> Entry:
        """Insert or overwrite a declared leaf, synthesizing its ancestors.

        Raises:
            InvalidOperationError: The path, or one of its ancestors, is a
                stored directory/file conflicting with the declaration.
        """
        validate_path(record.path)
        existing = store.find(record.path)
        if existing is not None and existing.is_directory:
            msg = f"Cannot declare file {record.path}: a directory exists there"
            raise InvalidOperationError(msg)
        _ = self.ensure_ancestors(store, record.path, timestamp=timestamp)
        entry = Entry.file(
            record.path,
            size=record.size,
            timestamp=timestamp,
            display_name=record.display_name,
        )
        store.put(record.path, entry)
        return entry

    def ensure_root(self, store: EntryStore, *, timestamp: datetime) -> Entry:
        """Return the root directory, creating it with an empty display name."""
        root = store.find(ROOT)
        if root is None:
            root = Entry.directory(ROOT, timestamp=timestamp, display_name="")
            store.put(ROOT, root)
        return root

    def load(
        self,
        store: EntryStore,
        records: Iterable[ManifestRecord],
        *,
        timestamp: datetime,
    ) -> int:
        """Declare every record, then make sure the root exists.

        The store is mutated as records are applied; callers wanting
        all-or-nothing semantics load into a copy and commit it on success.

        Raises:
            ManifestConflictError: A record read from a manifest line
                conflicts with an existing file or directory.
            InvalidOperationError: The same, for records built in code
                (``line_number`` 0).

        Returns:
            Number of records applied.
        """
        count = 0
        for record in records:
            try:
                _ = self.declare_file(store, record, timestamp=timestamp)
            except InvalidOperationError as error:
                if not record.line_number:
                    raise
                raise ManifestConflictError(
                    str(error), line_number=record.line_number
                ) from error
            count += 1
        _ = self.ensure_root(store, timestamp=timestamp)
        return count

    def list_children(
        self, store: EntryStore, path: str, *, timestamp: datetime, read_only: bool
    ) -> list[EntryStat]:
        """Return direct children of ``path`` sorted by path.

        Stored children are listed as-is. Entries more than one level down
        whose intermediate directory was never stored contribute an implied
        directory child.
        """
        children: dict[str, EntryStat] = {
            entry.path: EntryStat.of(entry, read_only=read_only)
            for entry in store.list_children(path)
        }
        for key in store:
            if key == path or not is_path_under(key, path):
                continue
            if parent_path(key) == path:
                continue
            child = _direct_child(key, path)
            if child not in children and child not in store:
                children[child] = EntryStat.implied_directory(
                    child, timestamp=timestamp, read_only=read_only
                )
        return [children[key] for key in sorted(children)]


def _direct_child(path: str, base: str) -> str:
    """Return the child of ``base`` on the way down to ``path``."""
    relative = path[len(base) :].lstrip("/") if base != ROOT else path[1:]
    head = relative.split("/", 1)[0]
    return f"{base}/{head}" if base != ROOT else f"{ROOT}{head}"


__all__ = ["DirectorySynthesizer"]
