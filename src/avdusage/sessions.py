"""Session table enumeration for avdusage."""

import logging
import re
import subprocess
import sys
from collections.abc import Sequence
from datetime import datetime, timezone, tzinfo
from typing import Protocol

from avdusage.models import SessionDescriptor, format_utc

# quser omits the session name column for disconnected sessions, so a line
# either has six leading tokens or five.
SESSION_WITH_NAME_RE = re.compile(
    r"^\s*>?(?P<username>\S+)\s+(?P<session_name>\S+)\s+(?P<session_id>\d+)\s+"
    r"(?P<state>\S+)\s+(?P<idle_time>\S+)\s+(?P<logon_time>\S.*?)\s*$"
)
SESSION_WITHOUT_NAME_RE = re.compile(
    r"^\s*>?(?P<username>\S+)\s+(?P<session_id>\d+)\s+"
    r"(?P<state>\S+)\s+(?P<idle_time>\S+)\s+(?P<logon_time>\S.*?)\s*$"
)
SESSION_LINE_PATTERNS = (SESSION_WITH_NAME_RE, SESSION_WITHOUT_NAME_RE)

IDLE_PLACEHOLDERS = {"", ".", "none"}

LOGON_TIME_FORMATS = (
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %H:%M",
    "%d.%m.%Y %H:%M",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
)


class SessionQueryError(RuntimeError):
    """The session listing command failed."""


class SessionSource(Protocol):
    """Anything that can produce the raw session listing lines."""

    def list_sessions(self) -> Sequence[str]: ...


class QuserSessionSource:
    """Reads the session table by running ``quser``."""

    NO_USERS_MARKER = "No User exists"

    def __init__(
        self,
        timeout: float = 30.0,
        command: Sequence[str] = ("quser",),
        encoding: str | None = None,
    ) -> None:
        self._timeout = timeout
        self._command = list(command)
        # Console tools print in the OEM code page on Windows
        self._encoding = encoding or ("oem" if sys.platform == "win32" else "utf-8")

    def list_sessions(self) -> Sequence[str]:
        """Run the listing command and return its output lines."""
        result = subprocess.run(
            self._command,
            capture_output=True,
            encoding=self._encoding,
            errors="replace",
            timeout=self._timeout,
            check=False,
        )
        # quser exits non-zero when nobody is logged on
        if result.returncode != 0 and not result.stdout.strip():
            if self.NO_USERS_MARKER in result.stderr:
                return []
            raise SessionQueryError(
                f"{' '.join(self._command)} exited with {result.returncode}: "
                f"{result.stderr.strip()}"
            )
        return result.stdout.splitlines()


def normalize_session_name(raw: str) -> str:
    """Lowercase a session name and replace '#' with a space."""
    return raw.replace("#", " ").lower()


def normalize_idle_time(raw: str) -> str:
    """Map the OS placeholders for 'not idle' to '0'."""
    return "0" if raw.strip().lower() in IDLE_PLACEHOLDERS else raw


def parse_logon_time(raw: str, local_tz: tzinfo | None = None) -> str:
    """
    Convert a local logon time to ISO-8601 UTC.

    Args:
        raw: Logon time as printed by the session listing.
        local_tz: Zone the listing is expressed in. Defaults to the host zone.

    Returns:
        The UTC timestamp, or ``raw`` unchanged when no known format matches.
    """
    text = " ".join(raw.split())
    for fmt in LOGON_TIME_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        try:
            if local_tz is not None:
                parsed = parsed.replace(tzinfo=local_tz)
            else:
                parsed = parsed.astimezone()
            return format_utc(parsed.astimezone(timezone.utc))
        except (OverflowError, OSError):
            # Outside the platform time range
            return raw
    return raw


def parse_session_line(line: str, local_tz: tzinfo | None = None) -> SessionDescriptor | None:
    """
    Parse one line of the session listing.

    Returns None for headers, blank lines and anything else that matches
    neither line shape.
    """
    for pattern in SESSION_LINE_PATTERNS:
        match = pattern.match(line)
        if match is None:
            continue
        fields = match.groupdict()
        return SessionDescriptor(
            session_id=int(fields["session_id"]),
            session_name=normalize_session_name(fields.get("session_name") or ""),
            username=fields["username"].lstrip(">"),
            state=fields["state"],
            idle_time=normalize_idle_time(fields["idle_time"]),
            logon_time_utc=parse_logon_time(fields["logon_time"], local_tz),
        )
    return None


def parse_session_listing(
    lines: Sequence[str], local_tz: tzinfo | None = None
) -> dict[int, SessionDescriptor]:
    """Parse listing lines into a session id keyed mapping, skipping unmatched lines."""
    sessions: dict[int, SessionDescriptor] = {}
    for line in lines:
        descriptor = parse_session_line(line, local_tz)
        if descriptor is not None:
            sessions[descriptor.session_id] = descriptor
    return sessions


class SessionEnumerator:
    """
    Builds the session snapshot for one run.

    A failing source never fails the run: the error is logged and an empty
    mapping is returned so callers can fall back to synthesized names.
    """

    def __init__(
        self,
        source: SessionSource,
        logger: logging.Logger,
        local_tz: tzinfo | None = None,
    ) -> None:
        self._source = source
        self._logger = logger
        self._local_tz = local_tz

    def enumerate(self) -> dict[int, SessionDescriptor]:
        """Return the current ``session_id -> SessionDescriptor`` mapping."""
        try:
            lines = self._source.list_sessions()
        except (OSError, ValueError, subprocess.SubprocessError, SessionQueryError) as exc:
            self._logger.error("Session enumeration failed: %s", exc)
            return {}

        sessions = parse_session_listing(lines, self._local_tz)
        self._logger.debug(
            "Parsed %d sessions from %d listing lines", len(sessions), len(lines)
        )
        return sessions
