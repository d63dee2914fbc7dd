"""Shared fixtures for avdusage tests."""

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

import pytest

from avdusage.config import Settings
from avdusage.models import RawProcessEntry

QUSER_OUTPUT = """\
 USERNAME              SESSIONNAME        ID  STATE   IDLE TIME  LOGON TIME
>jdoe                  rdp-tcp#3           5  Active          .  11/8/2025 9:00 AM
 asmith                                    4  Disc         1:05  11/8/2025 8:15 AM
 bwayne                console             1  Active       none  11/7/2025 11:30 PM
"""


class FakeSessionSource:
    """Session source returning canned listing lines."""

    def __init__(self, text: str = QUSER_OUTPUT) -> None:
        self.lines = text.splitlines()
        self.calls = 0

    def list_sessions(self) -> Sequence[str]:
        self.calls += 1
        return self.lines


class FailingSessionSource:
    """Session source whose listing command cannot be run."""

    def list_sessions(self) -> Sequence[str]:
        raise FileNotFoundError("quser not found")


class FakeProcessSource:
    """Process source returning canned entries."""

    def __init__(self, entries: Iterable[RawProcessEntry]) -> None:
        self.entries = list(entries)

    def list_processes(self) -> Iterable[RawProcessEntry]:
        return list(self.entries)


def make_entry(
    name="notepad",
    pid=1234,
    session_id=5,
    memory_bytes=20_000_000,
    cpu_seconds=12.4,
    username="jdoe",
) -> RawProcessEntry:
    return RawProcessEntry(
        name=name,
        pid=pid,
        session_id=session_id,
        memory_bytes=memory_bytes,
        cpu_seconds=cpu_seconds,
        username=username,
    )


class FixedClock:
    """Callable clock that always returns the same moment."""

    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("avdusage.tests")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(output_root=tmp_path / "AVDUsage", host_name="avdhost01")


@pytest.fixture
def utc_clock() -> FixedClock:
    return FixedClock(datetime(2025, 11, 8, 9, 30, 15, tzinfo=timezone.utc))


@pytest.fixture
def local_clock() -> FixedClock:
    return FixedClock(datetime(2025, 11, 8, 10, 30, 42))
