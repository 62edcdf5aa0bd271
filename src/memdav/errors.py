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

"""Base exception hierarchy for :mod:`memdav`."""

from __future__ import annotations


class MemdavError(Exception):
    """Base class for all memdav exceptions.

    Every error raised by the virtual filesystem derives from this class so a
    protocol engine can catch library failures with a single handler while
    letting unrelated exceptions propagate.

    Example:
        Translate library failures into protocol responses::

            try:
                stat = fs.stat(path)
            except MemdavError as e:
                return error_response(e)

    Note:
        Subclasses also inherit from the closest builtin exception type
        (``FileNotFoundError``, ``PermissionError``, ``ValueError``...) so
        code written against the standard library keeps working.
    """


class NotFoundError(MemdavError, FileNotFoundError):
    """Raised when a path is absent and not implied by any descendant.

    Example::

        try:
            fs.stat("/missing")
        except NotFoundError:
            return 404
    """


class AlreadyExistsError(MemdavError, FileExistsError):
    """Raised on create collisions.

    Covers exclusive creates over an existing entry, ``mkdir`` over an
    existing path and renames onto an occupied destination without overwrite.
    """


class PermissionDeniedError(MemdavError, PermissionError):
    """Raised when a mutation is attempted against a read-only filesystem.

    Also raised when a handle is used for an operation its open flags do not
    allow (for example writing through a handle opened for reading).
    """


class InvalidOperationError(MemdavError, ValueError):
    """Raised when an operation does not apply to the target entry kind.

    Examples include reading or writing through a directory handle, listing
    children of a file, or declaring a file underneath another file.
    """


class InvalidArgumentError(MemdavError, ValueError):
    """Raised when an argument is malformed.

    Covers unknown seek whence values, negative seek results, paths that
    exceed length limits and renames into the source subtree.
    """


class ManifestError(InvalidArgumentError):
    """Raised when a manifest line cannot be parsed.

    The ``line_number`` attribute carries the 1-based position of the
    offending line so operators can fix the declaration quickly.

    Example::

        try:
            fs.load_manifest(text)
        except ManifestError as e:
            logger.error("Bad manifest line %d", e.line_number)
    """

    def __init__(self, message: str, *, line_number: int) -> None:
        super().__init__(f"line {line_number}: {message}")
        self.line_number = line_number


class ManifestConflictError(ManifestError, InvalidOperationError):
    """Raised when a manifest line conflicts with an entry of the other kind.

    For example ``/a#1`` followed by ``/a/b#1`` declares ``/a`` as a file
    and then needs it as a directory.
    """


class HandleClosedError(MemdavError, ValueError):
    """Raised when a session handle is used after ``close()``."""


__all__ = [
    "AlreadyExistsError",
    "HandleClosedError",
    "InvalidArgumentError",
    "InvalidOperationError",
    "ManifestConflictError",
    "ManifestError",
    "MemdavError",
    "NotFoundError",
    "PermissionDeniedError",
]
