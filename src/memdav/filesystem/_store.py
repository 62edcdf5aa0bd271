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

"""Authoritative path-to-entry table.

The store is deliberately unsynchronized: ``VirtualFilesystem`` serializes
access with a reader/writer lock so multi-entry operations (cascading
removes, subtree renames) happen under a single exclusive hold.

Lookups that look at whole subtrees scan every key. A sorted-path index would
make them logarithmic; at the sizes a manifest describes the scan is cheap.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from ..errors import NotFoundError
from ._path import ROOT, is_path_under, parent_path
from ._types import Entry


def _empty_entries() -> dict[str, Entry]:
    return {}


@dataclass(slots=True)
class EntryStore:
    """Mapping from absolute path to ``Entry``.

    The store enforces nothing about the hierarchy; callers validate
    invariants before ``put``.

    Example::

        store = EntryStore()
        store.put("/docs", Entry.directory("/docs", timestamp=now))
        assert "/docs" in store
    """

    _entries: dict[str, Entry] = field(default_factory=_empty_entries)

    @classmethod
    def from_entries(cls, entries: Iterable[Entry]) -> EntryStore:
        """Build a store keyed by each entry's own path."""
        return cls({entry.path: entry for entry in entries})

    def get(self, path: str) -> Entry:
        """Return the entry at ``path``.

        Raises:
            NotFoundError: No entry is stored at ``path``.
        """
        entry = self._entries.get(path)
        if entry is None:
            raise NotFoundError(path)
        return entry

    def find(self, path: str) -> Entry | None:
        """Return the entry at ``path`` or None."""
        return self._entries.get(path)

    def put(self, path: str, entry: Entry) -> None:
        """Insert or replace the entry stored at ``path``."""
        entry.path = path
        self._entries[path] = entry

    def remove(self, path: str) -> Entry:
        """Remove exactly the entry at ``path`` (no cascade) and return it.

        Raises:
            NotFoundError: No entry is stored at ``path``.
        """
        try:
            return self._entries.pop(path)
        except KeyError:
            raise NotFoundError(path) from None

    def list_children(self, path: str) -> list[Entry]:
        """Return entries whose parent is ``path``, in no particular order."""
        return [
            entry
            for key, entry in self._entries.items()
            if key != path and parent_path(key) == path
        ]

    def exists_under_or_equal(self, path: str) -> bool:
        """True if ``path`` itself or any entry beneath it is stored."""
        if path in self._entries:
            return True
        prefix = path if path == ROOT else f"{path}/"
        return any(key.startswith(prefix) for key in self._entries)

    def descendants(self, path: str) -> list[Entry]:
        """Return entries strictly beneath ``path``, shallowest first."""
        found = [
            entry
            for key, entry in self._entries.items()
            if key != path and is_path_under(key, path)
        ]
        found.sort(key=lambda entry: (entry.path.count("/"), entry.path))
        return found

    def paths(self) -> list[str]:
        """Return every stored path, sorted."""
        return sorted(self._entries)

    def copy(self) -> EntryStore:
        """Return a shallow copy sharing entry objects."""
        return EntryStore(dict(self._entries))

    def replace_contents(self, other: EntryStore) -> None:
        """Swap in the table of ``other`` (used to commit atomic loads)."""
        self._entries = dict(other._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._entries))


__all__ = ["EntryStore"]
