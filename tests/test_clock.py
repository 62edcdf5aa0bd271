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

"""Tests for :mod:`memdav.clock`."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from memdav.clock import SYSTEM_CLOCK, FakeClock, SystemClock, WallClock


class TestWallClockProtocol:
    """Both clock implementations satisfy the protocol."""

    def test_system_clock_satisfies_wall_clock(self) -> None:
        assert isinstance(SYSTEM_CLOCK, WallClock)

    def test_fake_clock_satisfies_wall_clock(self) -> None:
        assert isinstance(FakeClock(), WallClock)


class TestSystemClock:
    def test_returns_timezone_aware_utc(self) -> None:
        value = SystemClock().utcnow()

        assert value.tzinfo is UTC

    def test_truncates_to_milliseconds(self) -> None:
        value = SystemClock().utcnow()

        assert value.microsecond % 1000 == 0


class TestFakeClock:
    def test_starts_at_fixed_epoch(self) -> None:
        assert FakeClock().utcnow() == datetime(2024, 1, 1, tzinfo=UTC)

    def test_time_only_moves_on_advance(self) -> None:
        clock = FakeClock()
        first = clock.utcnow()

        assert clock.utcnow() == first

        clock.advance(10)

        assert (clock.utcnow() - first).total_seconds() == 10

    def test_advance_rejects_negative(self) -> None:
        clock = FakeClock()

        with pytest.raises(ValueError, match="negative"):
            clock.advance(-1)

    def test_set_wall(self) -> None:
        clock = FakeClock()
        target = datetime(2030, 6, 1, 12, 0, tzinfo=UTC)

        clock.set_wall(target)

        assert clock.utcnow() == target

    def test_set_wall_requires_timezone(self) -> None:
        clock = FakeClock()

        with pytest.raises(ValueError, match="timezone-aware"):
            clock.set_wall(datetime(2030, 6, 1))  # noqa: DTZ001
