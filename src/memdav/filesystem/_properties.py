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

"""Namespaced property bag attached to every entry, plus its patch protocol.

Properties are opaque ``str | bytes`` values keyed by a ``(namespace, local)``
pair, kept apart from core attributes such as size or modification time.

Patches follow WebDAV PROPPATCH semantics: a batch either applies completely
or not at all. Live properties computed from core attributes are protected,
as is removal of ``DAV:displayname``; a batch containing any of those reports
``FORBIDDEN`` for the offending names and ``FAILED_DEPENDENCY`` for the rest.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from ._types import Entry

DAV_NAMESPACE: Final[str] = "DAV:"


@dataclass(slots=True, frozen=True, order=True)
class PropertyName:
    """Namespaced property key, e.g. ``PropertyName("DAV:", "displayname")``."""

    namespace: str
    local: str

    def __str__(self) -> str:
        return f"{{{self.namespace}}}{self.local}"


DISPLAYNAME: Final[PropertyName] = PropertyName(DAV_NAMESPACE, "displayname")

PROTECTED_PROPERTIES: Final[frozenset[PropertyName]] = frozenset(
    PropertyName(DAV_NAMESPACE, local)
    for local in (
        "creationdate",
        "getcontentlength",
        "getcontenttype",
        "getetag",
        "getlastmodified",
        "lockdiscovery",
        "resourcetype",
        "supportedlock",
    )
)


class PatchStatus(IntEnum):
    """Per-property outcome of a patch batch (HTTP status semantics)."""

    OK = 200
    FORBIDDEN = 403
    FAILED_DEPENDENCY = 424


@dataclass(slots=True, frozen=True)
class PropertyPatch:
    """Set ``name`` to ``value``, or remove it when ``value`` is None."""

    name: PropertyName
    value: str | bytes | None = None

    @property
    def is_removal(self) -> bool:
        return self.value is None


@dataclass(slots=True, frozen=True)
class PropStat:
    """Outcome of one patch within a batch."""

    name: PropertyName
    status: PatchStatus


def _empty_values() -> dict[PropertyName, str | bytes]:
    return {}


@dataclass(slots=True)
class PropertyStore:
    """Dead-property storage for one entry.

    Insertion order is preserved so listings are stable. The mirrored
    ``DAV:displayname`` never lives here; see ``Entry.display_name``.
    """

    _values: dict[PropertyName, str | bytes] = field(default_factory=_empty_values)

    def get(self, name: PropertyName) -> str | bytes | None:
        return self._values.get(name)

    def set(self, name: PropertyName, value: str | bytes) -> None:
        if name == DISPLAYNAME:
            msg = "DAV:displayname is mirrored by Entry.display_name"
            raise ValueError(msg)
        self._values[name] = value

    def remove(self, name: PropertyName) -> None:
        _ = self._values.pop(name, None)

    def items(self) -> Iterator[tuple[PropertyName, str | bytes]]:
        return iter(tuple(self._values.items()))

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __len__(self) -> int:
        return len(self._values)


def _is_forbidden(patch: PropertyPatch) -> bool:
    if patch.name in PROTECTED_PROPERTIES:
        return True
    return patch.name == DISPLAYNAME and patch.is_removal


def _as_text(value: str | bytes) -> str:
    return value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value


def apply_patches(
    entry: Entry, patches: Sequence[PropertyPatch], *, timestamp: datetime
) -> tuple[PropStat, ...]:
    """Apply a patch batch to ``entry`` atomically.

    A ``DAV:displayname`` set writes ``entry.display_name``, the one place
    that value lives. Any applied batch bumps ``modified_at``.
    """
    forbidden = {patch.name for patch in patches if _is_forbidden(patch)}
    if forbidden:
        return tuple(
            PropStat(
                patch.name,
                PatchStatus.FORBIDDEN
                if patch.name in forbidden
                else PatchStatus.FAILED_DEPENDENCY,
            )
            for patch in patches
        )

    for patch in patches:
        if patch.name == DISPLAYNAME:
            entry.display_name = _as_text(patch.value or "")
        elif patch.value is None:
            entry.properties.remove(patch.name)
        else:
            entry.properties.set(patch.name, patch.value)
    if patches:
        entry.modified_at = timestamp
    return tuple(PropStat(patch.name, PatchStatus.OK) for patch in patches)


__all__ = [
    "DAV_NAMESPACE",
    "DISPLAYNAME",
    "PROTECTED_PROPERTIES",
    "PatchStatus",
    "PropStat",
    "PropertyName",
    "PropertyPatch",
    "PropertyStore",
    "apply_patches",
]
