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

"""In-memory virtual filesystem synthesized from flat path declarations.

This module provides the `Filesystem` capability protocol a protocol engine
drives, the in-memory `VirtualFilesystem` implementing it, and the value
types exchanged across that boundary.

Example usage::

    from memdav.filesystem import OpenFlags, VirtualFilesystem

    fs = VirtualFilesystem()
    fs.load_manifest("/docs/readme.txt#128#Notes")

    with fs.open("/docs/readme.txt", OpenFlags.READ) as handle:
        content = handle.read()
    assert len(content) == 128

Lower level building blocks (`EntryStore`, `DirectorySynthesizer`) are
exported for callers assembling a filesystem from a pre-populated table.
"""

from __future__ import annotations

from ._filesystem import VirtualFilesystem
from ._handle import SessionHandle
from ._manifest import load_manifest_file, parse_manifest, parse_manifest_line
from ._path import (
    MAX_PATH_DEPTH,
    MAX_SEGMENT_LENGTH,
    ROOT,
    ancestors,
    base_name,
    is_path_under,
    normalize_path,
    parent_path,
    validate_path,
)
from ._properties import (
    DAV_NAMESPACE,
    DISPLAYNAME,
    PROTECTED_PROPERTIES,
    PatchStatus,
    PropertyName,
    PropertyPatch,
    PropertyStore,
    PropStat,
)
from ._protocol import FileHandle, Filesystem
from ._store import EntryStore
from ._synthesizer import DirectorySynthesizer
from ._types import (
    Entry,
    EntryStat,
    ManifestRecord,
    OpenFlags,
    Property,
    SeekWhence,
    file_mode,
    synthesize_content,
)

__all__ = [
    "DAV_NAMESPACE",
    "DISPLAYNAME",
    "MAX_PATH_DEPTH",
    "MAX_SEGMENT_LENGTH",
    "PROTECTED_PROPERTIES",
    "ROOT",
    "DirectorySynthesizer",
    "Entry",
    "EntryStat",
    "EntryStore",
    "FileHandle",
    "Filesystem",
    "ManifestRecord",
    "OpenFlags",
    "PatchStatus",
    "PropStat",
    "Property",
    "PropertyName",
    "PropertyPatch",
    "PropertyStore",
    "SeekWhence",
    "SessionHandle",
    "VirtualFilesystem",
    "ancestors",
    "base_name",
    "file_mode",
    "is_path_under",
    "load_manifest_file",
    "normalize_path",
    "parent_path",
    "parse_manifest",
    "parse_manifest_line",
    "synthesize_content",
    "validate_path",
]
