"""Process table enumeration for avdusage."""

import ctypes
import logging
import sys
from collections.abc import Callable, Iterable
from typing import Protocol

import psutil

from avdusage.models import RawProcessEntry


class ProcessSource(Protocol):
    """Anything that can produce raw process entries."""

    def list_processes(self) -> Iterable[RawProcessEntry]: ...


def windows_session_id(pid: int) -> int:
    """Resolve the terminal-services session of a process."""
    session = ctypes.c_ulong()
    if not ctypes.windll.kernel32.ProcessIdToSessionId(pid, ctypes.byref(session)):
        raise ctypes.WinError()
    return session.value


def no_session_id(pid: int) -> int:
    """Session resolver for hosts without terminal-services sessions."""
    return 0


def default_session_resolver() -> Callable[[int], int]:
    return windows_session_id if sys.platform == "win32" else no_session_id


class PsutilProcessSource:
    """
    Process source backed by psutil.

    Processes that exit mid-walk, deny access or are zombies are skipped.
    A missing owner is reported as None and left to the correlator.
    """

    ATTRS = ["pid", "name", "username", "memory_info", "cpu_times"]

    def __init__(self, session_resolver: Callable[[int], int] | None = None) -> None:
        """
        Initialize the source.

        Args:
            session_resolver: Maps a pid to its session id. Defaults to
                ProcessIdToSessionId on Windows and 0 elsewhere.
        """
        self._session_of = session_resolver or default_session_resolver()

    def list_processes(self) -> Iterable[RawProcessEntry]:
        """Yield one entry per live process."""
        for proc in psutil.process_iter(attrs=self.ATTRS):
            try:
                with proc.oneshot():
                    info = proc.info
                    session_id = self._session_of(info["pid"])

                    mem_info = info.get("memory_info")
                    cpu_times = info.get("cpu_times")
                    cpu_seconds = cpu_times.user + cpu_times.system if cpu_times else None

                    yield RawProcessEntry(
                        name=info.get("name"),
                        pid=info.get("pid"),
                        session_id=session_id,
                        memory_bytes=mem_info.rss if mem_info else None,
                        cpu_seconds=cpu_seconds,
                        username=info.get("username"),
                    )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess, OSError):
                # Process died mid-walk or its session is not readable
                continue


class ProcessEnumerator:
    """Collects the process snapshot for one run."""

    def __init__(self, source: ProcessSource, logger: logging.Logger) -> None:
        self._source = source
        self._logger = logger

    def enumerate(self) -> list[RawProcessEntry]:
        """
        Return the raw process entries in enumeration order.

        A failure of the whole walk is logged and yields whatever was
        collected before it happened.
        """
        entries: list[RawProcessEntry] = []
        try:
            for entry in self._source.list_processes():
                entries.append(entry)
        except (psutil.Error, OSError) as exc:
            self._logger.error(
                "Process enumeration failed after %d entries: %s", len(entries), exc
            )
        return entries
