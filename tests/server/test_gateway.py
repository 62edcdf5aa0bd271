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

"""Tests for the FastAPI WebDAV gateway."""

from __future__ import annotations

import time
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

from memdav.filesystem import OpenFlags, VirtualFilesystem, synthesize_content
from memdav.logging import get_logger
from memdav.server import (
    CHUNK_SIZE,
    READ_METHODS,
    WRITE_METHODS,
    build_app,
    stream_content,
)
from memdav.server._xml import entity_tag

_D = "{DAV:}"
_PROPFIND_NAMES = (
    b'<?xml version="1.0"?>'
    b'<D:propfind xmlns:D="DAV:" xmlns:X="urn:example">'
    b"<D:prop><D:displayname/><D:getcontentlength/><X:missing/></D:prop>"
    b"</D:propfind>"
)


def _client(fs: VirtualFilesystem, **kwargs: object) -> TestClient:
    app = build_app(fs, logger=get_logger("test.gateway"), **kwargs)  # type: ignore[arg-type]
    return TestClient(app)


def _responses(body: bytes) -> dict[str, ET.Element]:
    root = ET.fromstring(body)
    assert root.tag == f"{_D}multistatus"
    return {
        response.findtext(f"{_D}href", ""): response
        for response in root.findall(f"{_D}response")
    }


def _propstats(response: ET.Element) -> dict[str, list[str]]:
    found: dict[str, list[str]] = {}
    for propstat in response.findall(f"{_D}propstat"):
        status = propstat.findtext(f"{_D}status", "")
        prop = propstat.find(f"{_D}prop")
        assert prop is not None
        found[status] = [child.tag for child in prop]
    return found


@pytest.fixture
def client(loaded_fs: VirtualFilesystem) -> TestClient:
    return _client(loaded_fs)


class TestAuthentication:
    def test_missing_credentials_are_challenged(
        self, loaded_fs: VirtualFilesystem
    ) -> None:
        client = _client(loaded_fs, users={"ada": "secret"}, realm="library")

        response = client.get("/1.mkv")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == 'Basic realm="library"'

    @pytest.mark.parametrize(
        "auth", [("ada", "wrong"), ("eve", "secret"), ("eve", "")]
    )
    def test_wrong_credentials(
        self, loaded_fs: VirtualFilesystem, auth: tuple[str, str]
    ) -> None:
        client = _client(loaded_fs, users={"ada": "secret"})

        assert client.get("/1.mkv", auth=auth).status_code == 401

    def test_valid_credentials(self, loaded_fs: VirtualFilesystem) -> None:
        client = _client(loaded_fs, users={"ada": "secret"})

        assert client.get("/1.mkv", auth=("ada", "secret")).status_code == 200

    def test_open_access_without_users(self, client: TestClient) -> None:
        assert client.get("/1.mkv").status_code == 200


class TestOptions:
    def test_writable_allows_every_verb(self, client: TestClient) -> None:
        response = client.options("/")

        assert response.status_code == 200
        assert response.headers["DAV"] == "1"
        allowed = response.headers["Allow"].split(", ")
        assert allowed == [*READ_METHODS, *WRITE_METHODS]

    def test_read_only_allows_read_verbs(
        self, read_only_fs: VirtualFilesystem
    ) -> None:
        response = _client(read_only_fs).options("/docs")

        assert response.headers["Allow"].split(", ") == list(READ_METHODS)


class TestGet:
    def test_file_content_and_headers(
        self, client: TestClient, loaded_fs: VirtualFilesystem
    ) -> None:
        response = client.get("/docs/readme.txt")

        assert response.status_code == 200
        assert response.content == synthesize_content("/docs/readme.txt", 128)
        assert response.headers["Content-Length"] == "128"
        assert response.headers["Content-Type"].startswith("text/plain")
        assert response.headers["Last-Modified"] == "Mon, 01 Jan 2024 00:00:00 GMT"
        assert response.headers["ETag"] == entity_tag(
            loaded_fs.stat("/docs/readme.txt")
        )

    def test_collection_lists_child_names(self, client: TestClient) -> None:
        response = client.get("/docs/")

        assert response.status_code == 200
        assert response.text.splitlines() == ["guides", "readme.txt"]
        assert "ETag" not in response.headers

    def test_head_has_headers_without_body(self, client: TestClient) -> None:
        response = client.head("/1.mkv")

        assert response.status_code == 200
        assert response.headers["Content-Length"] == "1024"
        assert response.content == b""

    def test_missing(self, client: TestClient) -> None:
        assert client.get("/nope").status_code == 404

    def test_file_larger_than_one_chunk(
        self, client: TestClient, loaded_fs: VirtualFilesystem
    ) -> None:
        size = 3 * CHUNK_SIZE + 17
        _ = loaded_fs.load_manifest(f"/big.bin#{size}")

        response = client.get("/big.bin")

        assert response.status_code == 200
        assert response.headers["Content-Length"] == str(size)
        assert response.content == synthesize_content("/big.bin", size)


class TestPut:
    def test_create_then_replace(
        self, client: TestClient, loaded_fs: VirtualFilesystem
    ) -> None:
        created = client.put("/notes/today.txt", content=b"hello")
        replaced = client.put("/notes/today.txt", content=b"hi")

        assert created.status_code == 201
        assert replaced.status_code == 204
        assert client.get("/notes/today.txt").content == b"hi"
        assert loaded_fs.stat("/notes").is_directory

    def test_put_over_collection(self, client: TestClient) -> None:
        assert client.put("/docs", content=b"x").status_code == 409

    def test_put_below_a_file(self, client: TestClient) -> None:
        assert client.put("/1.mkv/extra.txt", content=b"x").status_code == 409


class TestMkcol:
    def test_creates_collection(
        self, client: TestClient, loaded_fs: VirtualFilesystem
    ) -> None:
        assert client.request("MKCOL", "/photos").status_code == 201
        assert loaded_fs.stat("/photos").is_directory

    def test_existing(self, client: TestClient) -> None:
        assert client.request("MKCOL", "/docs").status_code == 405

    def test_missing_parent(self, client: TestClient) -> None:
        assert client.request("MKCOL", "/a/b").status_code == 409

    def test_body_is_unsupported(self, client: TestClient) -> None:
        response = client.request("MKCOL", "/photos", content=b"<x/>")

        assert response.status_code == 415


class TestDelete:
    def test_removes_subtree(
        self, client: TestClient, loaded_fs: VirtualFilesystem
    ) -> None:
        assert client.delete("/docs").status_code == 204
        assert not loaded_fs.exists("/docs/guides/setup.md")

    def test_missing(self, client: TestClient) -> None:
        assert client.delete("/nope").status_code == 404

    def test_root(self, client: TestClient) -> None:
        assert client.delete("/").status_code == 403


class TestMove:
    def test_to_new_location(
        self, client: TestClient, loaded_fs: VirtualFilesystem
    ) -> None:
        response = client.request(
            "MOVE", "/docs", headers={"Destination": "http://testserver/archive/docs"}
        )

        assert response.status_code == 201
        assert loaded_fs.stat("/archive/docs/readme.txt").display_name == "Notes"
        assert not loaded_fs.exists("/docs")

    def test_destination_may_be_a_path(
        self, client: TestClient, loaded_fs: VirtualFilesystem
    ) -> None:
        response = client.request(
            "MOVE", "/1.mkv", headers={"Destination": "/Movie%20(2025).mkv"}
        )

        assert response.status_code == 201
        assert loaded_fs.exists("/Movie (2025).mkv")

    def test_overwrite_existing(self, client: TestClient) -> None:
        response = client.request(
            "MOVE", "/1.mkv", headers={"Destination": "/docs/readme.txt"}
        )

        assert response.status_code == 204

    def test_overwrite_false_rejects_existing(self, client: TestClient) -> None:
        response = client.request(
            "MOVE",
            "/1.mkv",
            headers={"Destination": "/docs/readme.txt", "Overwrite": "F"},
        )

        assert response.status_code == 412

    def test_missing_destination(self, client: TestClient) -> None:
        assert client.request("MOVE", "/1.mkv").status_code == 400

    def test_invalid_overwrite(self, client: TestClient) -> None:
        response = client.request(
            "MOVE", "/1.mkv", headers={"Destination": "/2.mkv", "Overwrite": "maybe"}
        )

        assert response.status_code == 400

    def test_into_itself(self, client: TestClient) -> None:
        response = client.request(
            "MOVE", "/docs", headers={"Destination": "/docs/guides/docs"}
        )

        assert response.status_code == 400


class TestPropfind:
    def test_depth_one_lists_children(self, client: TestClient) -> None:
        response = client.request("PROPFIND", "/docs", headers={"Depth": "1"})

        assert response.status_code == 207
        assert response.headers["Content-Type"].startswith("application/xml")
        responses = _responses(response.content)
        assert list(responses) == ["/docs/", "/docs/guides/", "/docs/readme.txt"]

    def test_depth_zero(self, client: TestClient) -> None:
        response = client.request("PROPFIND", "/docs", headers={"Depth": "0"})

        assert list(_responses(response.content)) == ["/docs/"]

    def test_depth_infinity_is_one_level(self, client: TestClient) -> None:
        response = client.request("PROPFIND", "/", headers={"Depth": "infinity"})

        assert list(_responses(response.content)) == [
            "/",
            "/1.mkv",
            "/docs/",
            "/music/",
        ]

    def test_invalid_depth(self, client: TestClient) -> None:
        response = client.request("PROPFIND", "/", headers={"Depth": "2"})

        assert response.status_code == 400

    def test_allprop_for_file(self, client: TestClient) -> None:
        response = client.request("PROPFIND", "/1.mkv", headers={"Depth": "0"})

        file_response = _responses(response.content)["/1.mkv"]
        assert file_response.findtext(f".//{_D}displayname") == "Movie (2025)"
        assert file_response.findtext(f".//{_D}getcontentlength") == "1024"
        assert file_response.findtext(f".//{_D}creationdate") == "2024-01-01T00:00:00Z"
        resourcetype = file_response.find(f".//{_D}resourcetype")
        assert resourcetype is not None
        assert list(resourcetype) == []

    def test_collection_resourcetype(self, client: TestClient) -> None:
        response = client.request("PROPFIND", "/docs", headers={"Depth": "0"})

        docs = _responses(response.content)["/docs/"]
        assert docs.find(f".//{_D}resourcetype/{_D}collection") is not None
        assert docs.find(f".//{_D}getcontentlength") is None

    def test_requested_names_with_unknown(self, client: TestClient) -> None:
        response = client.request(
            "PROPFIND", "/1.mkv", headers={"Depth": "0"}, content=_PROPFIND_NAMES
        )

        statuses = _propstats(_responses(response.content)["/1.mkv"])
        assert statuses["HTTP/1.1 200 OK"] == [
            f"{_D}displayname",
            f"{_D}getcontentlength",
        ]
        assert statuses["HTTP/1.1 404 Not Found"] == ["{urn:example}missing"]

    def test_propname(self, client: TestClient) -> None:
        body = b'<D:propfind xmlns:D="DAV:"><D:propname/></D:propfind>'

        response = client.request(
            "PROPFIND", "/docs", headers={"Depth": "0"}, content=body
        )

        docs = _responses(response.content)["/docs/"]
        names = _propstats(docs)["HTTP/1.1 200 OK"]
        assert f"{_D}resourcetype" in names
        assert docs.findtext(f".//{_D}displayname") == ""

    def test_malformed_body(self, client: TestClient) -> None:
        response = client.request("PROPFIND", "/", content=b"<propfind")

        assert response.status_code == 400

    def test_missing_resource(self, client: TestClient) -> None:
        assert client.request("PROPFIND", "/nope").status_code == 404


class TestProppatch:
    def test_set_and_remove(self, client: TestClient) -> None:
        body = (
            b'<D:propertyupdate xmlns:D="DAV:" xmlns:X="urn:example">'
            b"<D:set><D:prop><D:displayname>Film</D:displayname>"
            b"<X:rating>5</X:rating></D:prop></D:set>"
            b"<D:remove><D:prop><X:absent/></D:prop></D:remove>"
            b"</D:propertyupdate>"
        )

        response = client.request("PROPPATCH", "/1.mkv", content=body)

        assert response.status_code == 207
        statuses = _propstats(_responses(response.content)["/1.mkv"])
        assert statuses == {
            "HTTP/1.1 200 OK": [
                f"{_D}displayname",
                "{urn:example}rating",
                "{urn:example}absent",
            ]
        }
        found = client.request("PROPFIND", "/1.mkv", headers={"Depth": "0"})
        file_response = _responses(found.content)["/1.mkv"]
        assert file_response.findtext(f".//{_D}displayname") == "Film"
        assert file_response.findtext(".//{urn:example}rating") == "5"

    def test_protected_property_fails_batch(
        self, client: TestClient, loaded_fs: VirtualFilesystem
    ) -> None:
        body = (
            b'<D:propertyupdate xmlns:D="DAV:">'
            b"<D:set><D:prop><D:displayname>Film</D:displayname>"
            b"<D:getetag>x</D:getetag></D:prop></D:set>"
            b"</D:propertyupdate>"
        )

        response = client.request("PROPPATCH", "/1.mkv", content=body)

        statuses = _propstats(_responses(response.content)["/1.mkv"])
        assert statuses == {
            "HTTP/1.1 403 Forbidden": [f"{_D}getetag"],
            "HTTP/1.1 424 Failed Dependency": [f"{_D}displayname"],
        }
        assert loaded_fs.stat("/1.mkv").display_name == "Movie (2025)"


class TestReadOnly:
    @pytest.mark.parametrize(
        ("method", "path", "headers", "body"),
        [
            ("PUT", "/new.txt", {}, b"x"),
            ("DELETE", "/docs", {}, b""),
            ("MKCOL", "/photos", {}, b""),
            ("MOVE", "/1.mkv", {"Destination": "/2.mkv"}, b""),
            (
                "PROPPATCH",
                "/1.mkv",
                {},
                b'<D:propertyupdate xmlns:D="DAV:"><D:set><D:prop>'
                b"<D:displayname>x</D:displayname></D:prop></D:set>"
                b"</D:propertyupdate>",
            ),
        ],
    )
    def test_mutations_are_forbidden(
        self,
        read_only_fs: VirtualFilesystem,
        method: str,
        path: str,
        headers: dict[str, str],
        body: bytes,
    ) -> None:
        before = read_only_fs.store.paths()

        response = _client(read_only_fs).request(
            method, path, headers=headers, content=body
        )

        assert response.status_code == 403
        assert read_only_fs.store.paths() == before

    def test_reads_are_served(self, read_only_fs: VirtualFilesystem) -> None:
        client = _client(read_only_fs)

        assert client.get("/1.mkv").status_code == 200
        assert client.request("PROPFIND", "/").status_code == 207


class TestStreamContent:
    def test_huge_file_is_read_one_chunk_at_a_time(
        self, fs: VirtualFilesystem
    ) -> None:
        size = 4_000_000_000
        _ = fs.load_manifest(f"/huge.iso#{size}")
        banner = f"Synthetic content of /huge.iso. Size: {size} bytes.\n".encode()
        handle = fs.open("/huge.iso", OpenFlags.READ)

        chunks = stream_content(handle, size)
        first = next(chunks)
        second = next(chunks)
        chunks.close()

        expected = (banner * (2 * CHUNK_SIZE // len(banner) + 1))[: 2 * CHUNK_SIZE]
        assert len(first) == CHUNK_SIZE
        assert first + second == expected
        assert handle.closed
        assert not fs.store.get("/huge.iso").materialized

    def test_stops_at_length_and_closes_handle(
        self, loaded_fs: VirtualFilesystem
    ) -> None:
        handle = loaded_fs.open("/docs/readme.txt", OpenFlags.READ)

        chunks = list(stream_content(handle, 25, chunk_size=10))

        assert [len(chunk) for chunk in chunks] == [10, 10, 5]
        assert b"".join(chunks) == synthesize_content("/docs/readme.txt", 128)[:25]
        assert handle.closed


class TestUnsupportedMethods:
    def test_copy_is_forbidden(
        self, client: TestClient, loaded_fs: VirtualFilesystem
    ) -> None:
        before = loaded_fs.store.paths()

        response = client.request(
            "COPY", "/1.mkv", headers={"Destination": "/2.mkv"}
        )

        assert response.status_code == 403
        assert loaded_fs.store.paths() == before

    @pytest.mark.parametrize("method", ["LOCK", "UNLOCK"])
    def test_locking_is_not_allowed(self, client: TestClient, method: str) -> None:
        response = client.request(method, "/1.mkv")

        assert response.status_code == 405
        assert response.headers["Allow"].split(", ") == [
            *READ_METHODS,
            *WRITE_METHODS,
        ]

    def test_locking_requires_credentials_first(
        self, loaded_fs: VirtualFilesystem
    ) -> None:
        client = _client(loaded_fs, users={"ada": "secret"})

        assert client.request("LOCK", "/1.mkv").status_code == 401
        assert (
            client.request("LOCK", "/1.mkv", auth=("ada", "secret")).status_code
            == 405
        )


class TestBlockingHandlers:
    def test_blocked_request_does_not_stall_others(
        self, loaded_fs: VirtualFilesystem
    ) -> None:
        app = build_app(loaded_fs, logger=get_logger("test.gateway"))

        with TestClient(app) as client, ThreadPoolExecutor(max_workers=2) as pool:
            with loaded_fs._lock.write():
                blocked = pool.submit(client.get, "/docs/readme.txt")
                time.sleep(0.2)
                options = pool.submit(client.options, "/")

                assert options.result(timeout=5).status_code == 200
                assert not blocked.done()

            assert blocked.result(timeout=5).status_code == 200
