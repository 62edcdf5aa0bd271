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

"""FastAPI gateway exposing a ``Filesystem`` over WebDAV-style verbs."""

from __future__ import annotations

import mimetypes
import secrets
from collections.abc import Callable, Iterator, Mapping
from email.utils import format_datetime
from typing import Final
from urllib.parse import quote, unquote, urlsplit

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response, StreamingResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from ..errors import (
    AlreadyExistsError,
    InvalidOperationError,
    MemdavError,
    NotFoundError,
    PermissionDeniedError,
)
from ..filesystem import EntryStat, FileHandle, Filesystem, OpenFlags, normalize_path
from ..logging import StructuredLogger, get_logger
from ._xml import (
    entity_tag,
    multistatus,
    parse_propfind,
    parse_proppatch,
    propfind_response,
    proppatch_response,
)

READ_METHODS: Final = ("OPTIONS", "GET", "HEAD", "PROPFIND")
WRITE_METHODS: Final = ("PUT", "DELETE", "MKCOL", "MOVE", "PROPPATCH")
UNSUPPORTED_METHODS: Final = ("COPY", "LOCK", "UNLOCK")
CHUNK_SIZE: Final = 64 * 1024
XML_MEDIA_TYPE: Final = "application/xml; charset=utf-8"

_SECURITY = HTTPBasic(auto_error=False)
_CONFLICT_METHODS: Final = frozenset({"PUT", "MKCOL"})

type _Handler = Callable[[str, Request, bytes], Response]


def _translate_error(method: str, error: MemdavError) -> HTTPException:
    """Map a filesystem failure onto the HTTP status for ``method``."""
    status = 400
    if isinstance(error, NotFoundError):
        status = 409 if method == "MKCOL" else 404
    elif isinstance(error, AlreadyExistsError):
        status = {"MKCOL": 405, "MOVE": 412}.get(method, 409)
    elif isinstance(error, PermissionDeniedError):
        status = 403
    elif isinstance(error, InvalidOperationError) and method in _CONFLICT_METHODS:
        status = 409
    return HTTPException(status_code=status, detail=str(error))


def _content_type(stat: EntryStat) -> str:
    guessed, _ = mimetypes.guess_type(stat.name)
    return guessed or "application/octet-stream"


def _href(stat: EntryStat) -> str:
    href = quote(stat.path)
    if stat.is_directory and stat.path != "/":
        href += "/"
    return href


def _entity_headers(stat: EntryStat, length: int) -> dict[str, str]:
    headers = {
        "Content-Length": str(length),
        "Last-Modified": format_datetime(stat.modified_at, usegmt=True),
    }
    if stat.is_file:
        headers["ETag"] = entity_tag(stat)
    return headers


def stream_content(
    handle: FileHandle, length: int, *, chunk_size: int = CHUNK_SIZE
) -> Iterator[bytes]:
    """Yield at most ``length`` bytes of ``handle`` in bounded chunks.

    The handle is closed when the iterator finishes or is closed early.
    """
    remaining = length
    try:
        while remaining > 0:
            chunk = handle.read(min(chunk_size, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk
    finally:
        handle.close()


class _GatewayHandlers:
    def __init__(
        self,
        *,
        filesystem: Filesystem,
        users: Mapping[str, str],
        realm: str,
        logger: StructuredLogger,
    ) -> None:
        super().__init__()
        self._fs = filesystem
        self._users = dict(users)
        self._realm = realm
        self._logger = logger
        self._methods: dict[str, _Handler] = {
            "OPTIONS": self.options,
            "GET": self.get,
            "HEAD": self.get,
            "PUT": self.put,
            "DELETE": self.delete,
            "MKCOL": self.mkcol,
            "MOVE": self.move,
            "PROPFIND": self.propfind,
            "PROPPATCH": self.proppatch,
            "COPY": self.copy,
        }

    @property
    def allowed_methods(self) -> tuple[str, ...]:
        if self._fs.read_only:
            return READ_METHODS
        return (*READ_METHODS, *WRITE_METHODS)

    def authenticate(self, credentials: HTTPBasicCredentials | None) -> str | None:
        """Return the authenticated user name, or None when auth is disabled."""
        if not self._users:
            return None
        if credentials is not None:
            expected = self._users.get(credentials.username, "")
            matches = secrets.compare_digest(
                credentials.password.encode("utf-8"), expected.encode("utf-8")
            )
            if matches and credentials.username in self._users:
                return credentials.username

        self._logger.warning(
            "Rejected request credentials",
            event="gateway.auth.failed",
            context={
                "username": credentials.username if credentials is not None else None
            },
        )
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": f'Basic realm="{self._realm}"'},
        )

    async def dispatch(
        self,
        request: Request,
        path: str = "",
        credentials: HTTPBasicCredentials | None = Depends(_SECURITY),
    ) -> Response:
        user = self.authenticate(credentials)
        method = request.method.upper()
        resource = normalize_path(path)

        handler = self._methods.get(method)
        if handler is None:
            raise HTTPException(
                status_code=405,
                detail=f"Method {method} not allowed",
                headers={"Allow": ", ".join(self.allowed_methods)},
            )

        body = await request.body()
        try:
            response = await run_in_threadpool(handler, resource, request, body)
        except MemdavError as error:
            translated = _translate_error(method, error)
            self._logger.info(
                "Request failed",
                event="gateway.request.error",
                context={
                    "method": method,
                    "path": resource,
                    "status": translated.status_code,
                    "error": type(error).__name__,
                },
            )
            raise translated from error

        self._logger.debug(
            "Handled request",
            event="gateway.request",
            context={
                "method": method,
                "path": resource,
                "status": response.status_code,
                "user": user,
            },
        )
        return response

    def options(self, resource: str, request: Request, body: bytes) -> Response:
        return Response(
            status_code=200,
            headers={"Allow": ", ".join(self.allowed_methods), "DAV": "1"},
        )

    def get(self, resource: str, request: Request, body: bytes) -> Response:
        head = request.method.upper() == "HEAD"
        stat = self._fs.stat(resource)
        if stat.is_directory:
            names = [child.name for child in self._fs.list_children(resource)]
            content = "".join(f"{name}\n" for name in names).encode("utf-8")
            headers = _entity_headers(stat, len(content))
            return Response(
                content=b"" if head else content,
                media_type="text/plain; charset=utf-8",
                headers=headers,
            )

        handle = self._fs.open(resource, OpenFlags.READ)
        try:
            stat = handle.stat()
        except BaseException:
            handle.close()
            raise
        headers = _entity_headers(stat, stat.size)
        if head:
            handle.close()
            return Response(media_type=_content_type(stat), headers=headers)
        return StreamingResponse(
            stream_content(handle, stat.size),
            media_type=_content_type(stat),
            headers=headers,
        )

    def copy(self, resource: str, request: Request, body: bytes) -> Response:
        msg = f"Copying is not supported: {resource}"
        raise PermissionDeniedError(msg)

    def put(self, resource: str, request: Request, body: bytes) -> Response:
        existed = self._fs.exists(resource)
        flags = OpenFlags.CREATE | OpenFlags.WRITE | OpenFlags.TRUNCATE
        with self._fs.open(resource, flags) as handle:
            _ = handle.write(body)
        return Response(status_code=204 if existed else 201)

    def delete(self, resource: str, request: Request, body: bytes) -> Response:
        _ = self._fs.remove_subtree(resource)
        return Response(status_code=204)

    def mkcol(self, resource: str, request: Request, body: bytes) -> Response:
        if body.strip():
            raise HTTPException(status_code=415, detail="MKCOL bodies are unsupported")
        _ = self._fs.mkdir(resource, parents=False)
        return Response(status_code=201)

    def move(self, resource: str, request: Request, body: bytes) -> Response:
        destination = request.headers.get("Destination")
        if not destination:
            raise HTTPException(status_code=400, detail="Destination header required")
        target = normalize_path(unquote(urlsplit(destination).path))

        overwrite_header = request.headers.get("Overwrite", "T").strip().upper()
        if overwrite_header not in {"T", "F"}:
            raise HTTPException(status_code=400, detail="Overwrite must be T or F")
        overwrite = overwrite_header == "T"

        existed = self._fs.exists(target)
        _ = self._fs.rename(resource, target, overwrite=overwrite)
        return Response(status_code=204 if existed else 201)

    def propfind(self, resource: str, request: Request, body: bytes) -> Response:
        query = parse_propfind(body)
        depth = request.headers.get("Depth", "1").strip().lower()
        if depth not in {"0", "1", "infinity"}:
            raise HTTPException(status_code=400, detail=f"Invalid Depth: {depth}")

        stat = self._fs.stat(resource)
        targets = [stat]
        if stat.is_directory and depth != "0":
            targets.extend(self._fs.list_children(resource))

        responses = []
        for target in targets:
            try:
                properties = self._fs.read_properties(target.path)
            except NotFoundError:
                # Removed after the listing was taken.
                continue
            responses.append(
                propfind_response(
                    _href(target),
                    target,
                    properties,
                    query,
                    content_type=_content_type(target),
                )
            )
        return Response(
            content=multistatus(responses), status_code=207, media_type=XML_MEDIA_TYPE
        )

    def proppatch(self, resource: str, request: Request, body: bytes) -> Response:
        patches = parse_proppatch(body)
        statuses = self._fs.patch_properties(resource, patches)
        stat = self._fs.stat(resource)
        document = multistatus([proppatch_response(_href(stat), statuses)])
        return Response(content=document, status_code=207, media_type=XML_MEDIA_TYPE)


def build_app(
    filesystem: Filesystem,
    *,
    users: Mapping[str, str] | None = None,
    realm: str = "memdav",
    logger: StructuredLogger | None = None,
) -> FastAPI:
    """Construct the FastAPI application serving ``filesystem``.

    An empty ``users`` mapping disables authentication.
    """

    logger = logger or get_logger(__name__)
    handlers = _GatewayHandlers(
        filesystem=filesystem, users=users or {}, realm=realm, logger=logger
    )

    app = FastAPI(
        title="memdav gateway", docs_url=None, redoc_url=None, openapi_url=None
    )
    app.state.filesystem = filesystem
    app.state.logger = logger

    _ = app.api_route(
        "/{path:path}",
        methods=[*READ_METHODS, *WRITE_METHODS, *UNSUPPORTED_METHODS],
        include_in_schema=False,
    )(handlers.dispatch)

    return app


def run_server(
    app: FastAPI,
    *,
    host: str,
    port: int,
    logger: StructuredLogger,
) -> int:
    """Run the uvicorn server for the supplied FastAPI app."""

    url = f"http://{host}:{port}/"
    logger.info(
        "Starting memdav gateway",
        event="gateway.server.start",
        context={"url": url},
    )

    try:
        config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_config=None,
        )
        server = uvicorn.Server(config)
        server.run()
    except Exception as error:  # pragma: no cover - exercised in CLI tests
        logger.exception(
            "Failed to start memdav gateway",
            event="gateway.server.error",
            context={"url": url, "error": repr(error)},
        )
        return 3
    return 0


__all__ = [
    "CHUNK_SIZE",
    "READ_METHODS",
    "UNSUPPORTED_METHODS",
    "WRITE_METHODS",
    "build_app",
    "run_server",
    "stream_content",
]
