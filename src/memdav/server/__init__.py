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

"""HTTP gateway serving a virtual filesystem to WebDAV clients.

Example usage::

    from memdav.filesystem import VirtualFilesystem
    from memdav.server import build_app, run_server

    fs = VirtualFilesystem(read_only=True)
    fs.load_manifest("/docs/readme.txt#128#Notes")
    app = build_app(fs, users={"alice": "secret"})
    run_server(app, host="127.0.0.1", port=39124, logger=logger)
"""

from __future__ import annotations

from ._app import (
    CHUNK_SIZE,
    READ_METHODS,
    UNSUPPORTED_METHODS,
    WRITE_METHODS,
    build_app,
    run_server,
    stream_content,
)
from ._xml import PropfindRequest, parse_propfind, parse_proppatch

__all__ = [
    "CHUNK_SIZE",
    "READ_METHODS",
    "UNSUPPORTED_METHODS",
    "WRITE_METHODS",
    "PropfindRequest",
    "build_app",
    "parse_propfind",
    "parse_proppatch",
    "run_server",
    "stream_content",
]
