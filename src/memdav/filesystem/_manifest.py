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

"""Parser for the line-oriented bulk-load manifest.

Each non-blank line that does not start with ``#`` declares one file::

    # path#size[#displayName]
    /1.mkv#1024#Movie (2025)
    docs/3.txt#128

Paths without a leading slash are rooted. The display name is optional; when
the separator is present the name must not be blank. Any ``#`` after the
third field belongs to the display name.
"""

from __future__ import annotations

from pathlib import Path

from ..errors import InvalidArgumentError, ManifestError
from ._path import ROOT, normalize_path, validate_path
from ._types import ManifestRecord

COMMENT_PREFIX = "#"
FIELD_SEPARATOR = "#"


def parse_manifest_line(line: str, *, line_number: int) -> ManifestRecord | None:
    """Parse one manifest line; blank and comment lines return None.

    Raises:
        ManifestError: The line is malformed.
    """
    stripped = line.strip()
    if not stripped or stripped.startswith(COMMENT_PREFIX):
        return None

    parts = stripped.split(FIELD_SEPARATOR, 2)
    if len(parts) < 2:
        msg = "expected path#size[#displayName]"
        raise ManifestError(msg, line_number=line_number)

    path = normalize_path(parts[0])
    if path == ROOT:
        raise ManifestError("path must name a file", line_number=line_number)
    try:
        validate_path(path)
    except InvalidArgumentError as error:
        raise ManifestError(str(error), line_number=line_number) from error

    raw_size = parts[1].strip()
    if not raw_size.isdigit() or not raw_size.isascii():
        msg = f"size must be a non-negative integer, got {raw_size!r}"
        raise ManifestError(msg, line_number=line_number)

    display_name: str | None = None
    if len(parts) == 3:
        display_name = parts[2].strip()
        if not display_name:
            msg = "display name must not be empty when given"
            raise ManifestError(msg, line_number=line_number)

    return ManifestRecord(
        path=path,
        size=int(raw_size),
        display_name=display_name,
        line_number=line_number,
    )


def parse_manifest(text: str) -> tuple[ManifestRecord, ...]:
    """Parse a whole manifest; the first malformed line aborts the parse.

    Raises:
        ManifestError: A line is malformed (carries its 1-based number).
    """
    records: list[ManifestRecord] = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        record = parse_manifest_line(line, line_number=line_number)
        if record is not None:
            records.append(record)
    return tuple(records)


def load_manifest_file(path: Path) -> tuple[ManifestRecord, ...]:
    """Read and parse a UTF-8 manifest file from disk.

    Raises:
        ManifestError: The file is not valid UTF-8 or a line is malformed.
        OSError: The file cannot be read.
    """
    raw = path.read_bytes()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as error:
        line_number = raw.count(b"\n", 0, error.start) + 1
        msg = f"not valid UTF-8 ({error.reason})"
        raise ManifestError(msg, line_number=line_number) from error
    return parse_manifest(text)


__all__ = [
    "load_manifest_file",
    "parse_manifest",
    "parse_manifest_line",
]
