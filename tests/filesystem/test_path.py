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

"""Tests for path normalization utilities."""

from __future__ import annotations

import pytest

from memdav.errors import InvalidArgumentError
from memdav.filesystem._path import (
    MAX_PATH_DEPTH,
    MAX_SEGMENT_LENGTH,
    ROOT,
    ancestors,
    base_name,
    is_path_under,
    normalize_path,
    parent_path,
    replace_prefix,
    validate_path,
)


class TestNormalizePath:
    """Test normalize_path function."""

    @pytest.mark.parametrize("raw", ["", ".", "/", "//", "/./"])
    def test_root_spellings(self, raw: str) -> None:
        assert normalize_path(raw) == ROOT

    def test_supplies_leading_slash(self) -> None:
        assert normalize_path("docs/readme.txt") == "/docs/readme.txt"

    def test_strips_trailing_slash(self) -> None:
        assert normalize_path("/docs/") == "/docs"

    def test_collapses_empty_segments(self) -> None:
        assert normalize_path("/a//b///c") == "/a/b/c"

    def test_resolves_parent_segments(self) -> None:
        assert normalize_path("/a/b/../c/./d") == "/a/c/d"

    def test_parent_segments_never_escape_root(self) -> None:
        assert normalize_path("/../../etc") == "/etc"

    def test_strips_surrounding_whitespace(self) -> None:
        assert normalize_path("  /docs  ") == "/docs"


class TestHierarchyHelpers:
    def test_parent_path(self) -> None:
        assert parent_path("/docs/readme.txt") == "/docs"
        assert parent_path("/docs") == ROOT
        assert parent_path(ROOT) == ROOT

    def test_base_name(self) -> None:
        assert base_name("/docs/readme.txt") == "readme.txt"
        assert base_name(ROOT) == ""

    def test_is_path_under(self) -> None:
        assert is_path_under("/docs/readme.txt", "/docs")
        assert is_path_under("/docs", "/docs")
        assert not is_path_under("/docsets", "/docs")
        assert is_path_under("/anything", ROOT)

    def test_ancestors_shallowest_first(self) -> None:
        assert ancestors("/a/b/c.txt") == ("/a", "/a/b")
        assert ancestors("/top.txt") == ()

    def test_replace_prefix(self) -> None:
        assert replace_prefix("/a/x/y", "/a", "/b") == "/b/x/y"
        assert replace_prefix("/a", "/a", "/b/c") == "/b/c"


class TestValidatePath:
    def test_root_is_valid(self) -> None:
        validate_path(ROOT)

    def test_depth_limit(self) -> None:
        deepest = "/" + "/".join(["d"] * MAX_PATH_DEPTH)
        validate_path(deepest)

        with pytest.raises(InvalidArgumentError, match="depth"):
            validate_path(deepest + "/extra")

    def test_segment_length_limit(self) -> None:
        validate_path("/" + "x" * MAX_SEGMENT_LENGTH)

        with pytest.raises(InvalidArgumentError, match="segment"):
            validate_path("/" + "x" * (MAX_SEGMENT_LENGTH + 1))
