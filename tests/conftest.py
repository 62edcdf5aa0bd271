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

from __future__ import annotations

import pytest

from memdav.clock import FakeClock
from memdav.filesystem import VirtualFilesystem

SAMPLE_MANIFEST = """\
# sample library
/1.mkv#1024#Movie (2025)
/docs/readme.txt#128#Notes
docs/guides/setup.md#64
/music/album/track01.mp3#4096
"""


@pytest.fixture
def clock() -> FakeClock:
    """Return a deterministic clock starting at 2024-01-01 UTC."""

    return FakeClock()


@pytest.fixture
def fs(clock: FakeClock) -> VirtualFilesystem:
    """Return an empty writable filesystem driven by the fake clock."""

    return VirtualFilesystem(clock=clock)


@pytest.fixture
def loaded_fs(fs: VirtualFilesystem) -> VirtualFilesystem:
    """Return a writable filesystem populated from the sample manifest."""

    _ = fs.load_manifest(SAMPLE_MANIFEST)
    return fs


@pytest.fixture
def read_only_fs(clock: FakeClock) -> VirtualFilesystem:
    """Return a read-only filesystem populated from the sample manifest."""

    filesystem = VirtualFilesystem(read_only=True, clock=clock)
    _ = filesystem.load_manifest(SAMPLE_MANIFEST)
    return filesystem
