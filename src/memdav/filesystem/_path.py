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

"""Pure path helpers for the virtual hierarchy.

Paths in the entry store are absolute, slash-separated strings. The root is
``"/"``; every other path starts with ``"/"`` and never ends with one.

Constants:
    ROOT: The root path ("/")
    MAX_PATH_DEPTH: Maximum allowed path depth (64 segments)
    MAX_SEGMENT_LENGTH: Maximum allowed segment length (255 characters)
"""

from __future__ import annotations

from typing import Final

from ..errors import InvalidArgumentError

ROOT: Final[str] = "/"
MAX_PATH_DEPTH: Final[int] = 64
MAX_SEGMENT_LENGTH: Final[int] = 255


def normalize_path(path: str) -> str:
    """Normalize a path into the absolute form used as an entry store key.

    This function:
    - Converts "", "." and "/" to the root "/"
    - Strips surrounding whitespace and supplies a leading slash
    - Removes empty segments and "." entries
    - Processes ".." segments by popping from the result stack (never above root)

    Examples:
        >>> normalize_path("docs/readme.txt")
        '/docs/readme.txt'
        >>> normalize_path("/a//b/../c/")
        '/a/c'
        >>> normalize_path("")
        '/'
    """
    segments: list[str] = []
    for segment in path.strip().split("/"):
        if not segment or segment == ".":
            continue
        if segment == "..":
            if segments:
                _ = segments.pop()
            continue
        segments.append(segment)
    return ROOT + "/".join(segments)


def parent_path(path: str) -> str:
    """Return the parent of a normalized path; the root is its own parent.

    Examples:
        >>> parent_path("/docs/readme.txt")
        '/docs'
        >>> parent_path("/docs")
        '/'
    """
    if path == ROOT:
        return ROOT
    head, _, _ = path.rpartition("/")
    return head or ROOT


def base_name(path: str) -> str:
    """Return the final segment of a normalized path ("" for the root)."""
    return path.rpartition("/")[2]


def is_path_under(path: str, base: str) -> bool:
    """Check if ``path`` equals ``base`` or lies beneath it.

    Examples:
        >>> is_path_under("/docs/readme.txt", "/docs")
        True
        >>> is_path_under("/docsets", "/docs")
        False
        >>> is_path_under("/anything", "/")
        True
    """
    if base == ROOT:
        return True
    return path == base or path.startswith(f"{base}/")


def ancestors(path: str) -> tuple[str, ...]:
    """Return the ancestor chain of ``path``, shallowest first, root excluded.

    Examples:
        >>> ancestors("/a/b/c.txt")
        ('/a', '/a/b')
    """
    segments = path.strip("/").split("/")[:-1]
    return tuple(
        ROOT + "/".join(segments[: index + 1]) for index in range(len(segments))
    )


def replace_prefix(path: str, old: str, new: str) -> str:
    """Re-root ``path`` from beneath ``old`` to beneath ``new``.

    Examples:
        >>> replace_prefix("/a/x/y", "/a", "/b")
        '/b/x/y'
        >>> replace_prefix("/a", "/a", "/b")
        '/b'
    """
    if path == old:
        return new
    suffix = path[len(old) :] if old != ROOT else path
    return new.rstrip("/") + suffix


def validate_path(path: str) -> None:
    """Validate depth and segment length of a normalized path.

    Raises:
        InvalidArgumentError: If path depth exceeds MAX_PATH_DEPTH or any
            segment exceeds MAX_SEGMENT_LENGTH.
    """
    if path == ROOT:
        return
    segments = path[1:].split("/")
    if len(segments) > MAX_PATH_DEPTH:
        msg = f"Path depth exceeds limit of {MAX_PATH_DEPTH} segments."
        raise InvalidArgumentError(msg)
    for segment in segments:
        if len(segment) > MAX_SEGMENT_LENGTH:
            msg = f"Path segment exceeds limit of {MAX_SEGMENT_LENGTH} characters."
            raise InvalidArgumentError(msg)


__all__ = [
    "MAX_PATH_DEPTH",
    "MAX_SEGMENT_LENGTH",
    "ROOT",
    "ancestors",
    "base_name",
    "is_path_under",
    "normalize_path",
    "parent_path",
    "replace_prefix",
    "validate_path",
]
