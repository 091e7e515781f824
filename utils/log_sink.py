"""
log_sink.py

In-memory sink for analysis log records.

Analysis code logs through the standard logging module and attaches
structured data with log_extra():

    logger.info("Match found #%d", n, extra=log_extra(["analysis-match"], url=url))

AnalysisLogSink is a logging.Handler that keeps the most recent records as
LogEntry objects so they can be queried (by level, module, tag, text or
time window) and summarized without touching any external storage.
"""

import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Iterable, List, Optional


def log_extra(tags: Iterable[str] = (), **context: Any) -> Dict[str, Any]:
    """Build the `extra` mapping understood by AnalysisLogSink."""
    return {"tags": list(tags), "context": context}


@dataclass
class LogEntry:
    id: int
    timestamp: datetime
    level: str
    levelno: int
    module: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "module": self.module,
            "message": self.message,
            "context": self.context,
            "error": self.error,
            "tags": self.tags,
        }


class AnalysisLogSink(logging.Handler):
    def __init__(self, max_entries: int = 1000, level: int = logging.NOTSET):
        super().__init__(level)
        self.max_entries = max_entries
        self._entries: Deque[LogEntry] = deque(maxlen=max_entries)
        self._ids = itertools.count(1)
        self._entries_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            error = None
            if record.exc_info and record.exc_info[1] is not None:
                exc = record.exc_info[1]
                error = f"{type(exc).__name__}: {exc}"
            entry = LogEntry(
                id=next(self._ids),
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc),
                level=record.levelname,
                levelno=record.levelno,
                module=record.name,
                message=record.getMessage(),
                context=dict(getattr(record, "context", None) or {}),
                error=error,
                tags=list(getattr(record, "tags", None) or []),
            )
        except Exception:
            self.handleError(record)
            return
        with self._entries_lock:
            self._entries.append(entry)

    @property
    def entries(self) -> List[LogEntry]:
        with self._entries_lock:
            return list(self._entries)

    def query(
        self,
        level: Optional[str] = None,
        module: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        search: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[LogEntry]:
        """
        Return entries matching every given filter, oldest first.

        level is a minimum level name ("WARNING" keeps WARNING and above),
        module matches the logger name or any of its ancestors, tags keeps
        entries carrying at least one of the given tags, search is a
        case-insensitive substring of the message. limit keeps the newest N.
        """
        min_level = logging.getLevelName(level.upper()) if level else None
        if min_level is not None and not isinstance(min_level, int):
            raise ValueError(f"Unknown log level: {level}")
        wanted_tags = set(tags or [])
        needle = search.lower() if search else None

        selected = []
        for entry in self.entries:
            if min_level is not None and entry.levelno < min_level:
                continue
            if module and entry.module != module and not entry.module.startswith(module + "."):
                continue
            if wanted_tags and not wanted_tags.intersection(entry.tags):
                continue
            if needle and needle not in entry.message.lower():
                continue
            if start and entry.timestamp < start:
                continue
            if end and entry.timestamp > end:
                continue
            selected.append(entry)

        if limit is not None and limit >= 0:
            selected = selected[-limit:] if limit else []
        return selected

    def stats(self) -> Dict[str, Any]:
        entries = self.entries
        by_level: Dict[str, int] = {}
        by_module: Dict[str, int] = {}
        for entry in entries:
            by_level[entry.level] = by_level.get(entry.level, 0) + 1
            by_module[entry.module] = by_module.get(entry.module, 0) + 1

        errors = sum(1 for e in entries if e.levelno >= logging.ERROR)
        return {
            "total": len(entries),
            "by_level": by_level,
            "by_module": by_module,
            "error_rate": round(errors / len(entries), 4) if entries else 0.0,
        }

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()
