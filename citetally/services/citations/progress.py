from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Protocol

from citetally.logging_utils import structured_log
from citetally.services.citations.types import RunMode, RunSummary

logger = logging.getLogger(__name__)


class ProgressSink(Protocol):
    def notice(self, message: str) -> None: ...

    def start(self, mode: RunMode, total: int) -> None: ...

    def tick(self, current: int, total: int, percent: int) -> None: ...

    def retry(self, attempt: int, max_attempts: int, reason: str) -> None: ...

    def finish(self, summary: RunSummary) -> None: ...

    def close(self) -> None: ...


class LoggingProgressSink:
    def __init__(self, *, silent: bool = False) -> None:
        self._level = "debug" if silent else "info"

    def notice(self, message: str) -> None:
        structured_log(logger, self._level, "progress.notice", notice=message)

    def start(self, mode: RunMode, total: int) -> None:
        structured_log(logger, self._level, "progress.started", mode=mode.value, total=total)

    def tick(self, current: int, total: int, percent: int) -> None:
        structured_log(logger, "debug", "progress.tick", current=current, total=total, percent=percent)

    def retry(self, attempt: int, max_attempts: int, reason: str) -> None:
        structured_log(
            logger,
            "warning",
            "progress.retrying",
            attempt=attempt,
            max_attempts=max_attempts,
            reason=reason,
        )

    def finish(self, summary: RunSummary) -> None:
        structured_log(
            logger,
            "warning" if summary.aborted else self._level,
            "progress.finished",
            mode=summary.mode.value,
            updated=summary.updated,
            processed=summary.processed,
            total=summary.total,
            stop_reason=summary.stop_reason,
        )

    def close(self) -> None:
        return None


@dataclass
class RecordingProgressSink:
    """Keeps every progress event in memory, for status queries and tests."""

    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    summary: RunSummary | None = None
    notices: list[str] = field(default_factory=list)
    closed: bool = False

    def notice(self, message: str) -> None:
        self.notices.append(message)
        self.events.append(("notice", {"message": message}))

    def start(self, mode: RunMode, total: int) -> None:
        self.events.append(("start", {"mode": mode.value, "total": total}))

    def tick(self, current: int, total: int, percent: int) -> None:
        self.events.append(("tick", {"current": current, "total": total, "percent": percent}))

    def retry(self, attempt: int, max_attempts: int, reason: str) -> None:
        self.events.append(("retry", {"attempt": attempt, "max_attempts": max_attempts, "reason": reason}))

    def finish(self, summary: RunSummary) -> None:
        self.summary = summary
        self.events.append(("finish", {"updated": summary.updated, "total": summary.total}))

    def close(self) -> None:
        self.closed = True


class FanOutProgressSink:
    def __init__(self, *sinks: ProgressSink) -> None:
        self._sinks = sinks

    def notice(self, message: str) -> None:
        for sink in self._sinks:
            sink.notice(message)

    def start(self, mode: RunMode, total: int) -> None:
        for sink in self._sinks:
            sink.start(mode, total)

    def tick(self, current: int, total: int, percent: int) -> None:
        for sink in self._sinks:
            sink.tick(current, total, percent)

    def retry(self, attempt: int, max_attempts: int, reason: str) -> None:
        for sink in self._sinks:
            sink.retry(attempt, max_attempts, reason)

    def finish(self, summary: RunSummary) -> None:
        for sink in self._sinks:
            sink.finish(summary)

    def close(self) -> None:
        for sink in self._sinks:
            sink.close()
