"""Status and debug event sink.

Every component reports human-readable events here.  The sink keeps a
bounded debug log (oldest entries evicted first) and a separate current
status line, and mirrors each entry to :mod:`logging`.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from datetime import datetime

from geoflow._constants import DEFAULT_MAX_DEBUG_LOGS
from geoflow.models._base import utcnow
from geoflow.models.status import DebugEntry, Severity, StatusLine

_logger = logging.getLogger(__name__)

_LOG_LEVELS: dict[Severity, int] = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.SYSTEM: logging.DEBUG,
}


class StatusSink:
    """Append-only, bounded sink for status/debug events."""

    def __init__(
        self,
        *,
        max_entries: int = DEFAULT_MAX_DEBUG_LOGS,
        clock: Callable[[], datetime] = utcnow,
        on_entry: Callable[[DebugEntry], None] | None = None,
        on_status: Callable[[StatusLine], None] | None = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._entries: deque[DebugEntry] = deque(maxlen=max_entries)
        self._status: StatusLine | None = None
        self._clock = clock
        self._on_entry = on_entry
        self._on_status = on_status

    @property
    def max_entries(self) -> int:
        return self._entries.maxlen or 0

    @property
    def entries(self) -> list[DebugEntry]:
        return list(self._entries)

    @property
    def status(self) -> StatusLine | None:
        return self._status

    def debug(self, message: str, severity: Severity = Severity.INFO) -> DebugEntry:
        entry = DebugEntry(message=message, severity=severity, timestamp=self._clock())
        self._entries.append(entry)
        _logger.log(_LOG_LEVELS.get(severity, logging.INFO), "[%s] %s", severity.value, message)
        if self._on_entry is not None:
            self._on_entry(entry)
        return entry

    def set_status(self, message: str, severity: Severity = Severity.INFO) -> StatusLine:
        line = StatusLine(message=message, severity=severity, updated_at=self._clock())
        self._status = line
        if self._on_status is not None:
            self._on_status(line)
        return line

    def report(self, message: str, severity: Severity = Severity.INFO) -> None:
        """Record *message* in the debug log and make it the current status."""
        self.debug(message, severity)
        self.set_status(message, severity)

    def clear(self) -> None:
        self._entries.clear()
