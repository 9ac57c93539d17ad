"""Logging setup for the tracking service.

Every record is tagged with a source derived from its logger name: ``access``
for uvicorn, ``sql`` for SQLAlchemy and the SQLite driver, ``app`` for
everything else. Recent records are kept in an in-memory ring buffer served
by ``/api/dev/logs``; each source also gets its own file in a per-run
directory.
"""

from __future__ import annotations

import logging
import pathlib
import threading
from collections import deque
from datetime import datetime
from typing import Any

DEFAULT_SOURCE = "app"

# source -> logger-name prefixes routed to it
SOURCE_PREFIXES: dict[str, tuple[str, ...]] = {
    "access": ("uvicorn",),
    "sql": ("sqlalchemy", "aiosqlite"),
}

_LOG_FMT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def source_of(logger_name: str) -> str:
    for source, prefixes in SOURCE_PREFIXES.items():
        if logger_name.startswith(prefixes):
            return source
    return DEFAULT_SOURCE


class LogBuffer:
    """Bounded, thread-safe store of recent log entries with a running sequence."""

    def __init__(self, max_entries: int = 2000) -> None:
        self._entries: deque[dict[str, Any]] = deque(maxlen=max_entries)
        self._lock = threading.Lock()
        self._seq = 0

    def append(self, entry: dict[str, Any]) -> int:
        with self._lock:
            self._seq += 1
            entry["seq"] = self._seq
            self._entries.append(entry)
            return self._seq

    def get_entries(
        self,
        *,
        source: str | None = None,
        since_seq: int = 0,
        min_level: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Newest *limit* entries after *since_seq*, oldest first.

        *min_level* drops entries below that level name (``"WARNING"`` keeps
        warnings and errors).
        """
        threshold = logging.getLevelName(min_level.upper()) if min_level else 0
        if not isinstance(threshold, int):
            threshold = 0
        with self._lock:
            snapshot = list(self._entries)
        selected = [
            e
            for e in snapshot
            if e["seq"] > since_seq
            and (source is None or e["source"] == source)
            and e["levelno"] >= threshold
        ]
        return selected[-limit:]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @property
    def latest_seq(self) -> int:
        with self._lock:
            return self._seq


class LogBufferHandler(logging.Handler):
    """Copies formatted records into a :class:`LogBuffer`."""

    def __init__(self, buffer: LogBuffer) -> None:
        super().__init__()
        self.buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.buffer.append(
                {
                    "timestamp": record.created,
                    "level": record.levelname,
                    "levelno": record.levelno,
                    "source": source_of(record.name),
                    "logger": record.name,
                    "message": self.format(record),
                }
            )
        except Exception:
            self.handleError(record)


class _SourceFilter(logging.Filter):
    """Pass only records belonging to one source."""

    def __init__(self, source: str) -> None:
        super().__init__()
        self.source = source

    def filter(self, record: logging.LogRecord) -> bool:
        return source_of(record.name) == self.source


# Shared by the dev routes and configure_logging().
log_buffer = LogBuffer()

_installed: list[logging.Handler] = []


def configure_logging(level: str, log_base: pathlib.Path) -> pathlib.Path:
    """Install console, buffer and per-source file handlers on the root logger.

    Calling it again (e.g. a second app startup in one process) replaces the
    handlers installed by the previous call. Returns the run directory.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(_LOG_FMT)
    logging.basicConfig(level=log_level, format=_LOG_FMT)

    root = logging.getLogger()
    root.setLevel(log_level)
    while _installed:
        handler = _installed.pop()
        root.removeHandler(handler)
        handler.close()

    log_dir = log_base / datetime.now().strftime("%Y%m%d_%H%M%S")
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers: list[logging.Handler] = [LogBufferHandler(log_buffer)]
    for source in (DEFAULT_SOURCE, *SOURCE_PREFIXES):
        file_handler = logging.FileHandler(log_dir / f"{source}.log")
        file_handler.setLevel(log_level)
        file_handler.addFilter(_SourceFilter(source))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
        _installed.append(handler)
    return log_dir
