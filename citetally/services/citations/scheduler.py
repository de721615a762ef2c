from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import logging
from secrets import token_urlsafe

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_fixed

from citetally.logging_context import set_run_id
from citetally.logging_utils import structured_log
from citetally.services.citations.errors import ConnectivityLostError, RateLimitedRunError, TransientRunError
from citetally.services.citations.pipeline import UpdatePipeline
from citetally.services.citations.progress import ProgressSink
from citetally.services.citations.staleness import StalenessClassifier
from citetally.services.citations.types import RunMode, RunSummary
from citetally.services.host import HostEnvironment, RecordHandle, RecordStore
from citetally.services.preferences import AUTO_UPDATE_STARTUP, Preferences

NO_VALID_ITEMS_MESSAGE = "No valid items selected for citation count update."
MAX_RETRIES_CONNECTIVITY_MESSAGE = "Max retries reached. Please check your connection."
MAX_RETRIES_RATE_LIMIT_MESSAGE = "Max retries reached while rate limited."

SinkFactory = Callable[[bool], ProgressSink]

logger = logging.getLogger(__name__)


@dataclass
class _UpdateQueue:
    records: list[RecordHandle]
    cursor: int = 0
    updated: int = 0

    @property
    def total(self) -> int:
        return len(self.records)

    @property
    def current(self) -> RecordHandle:
        return self.records[self.cursor]

    @property
    def percent(self) -> int:
        if not self.records:
            return 100
        return round(self.cursor / self.total * 100)

    def has_next(self) -> bool:
        return self.cursor < self.total

    def advance(self) -> None:
        self.cursor += 1


class UpdateScheduler:
    """Drives batches of records through the update pipeline one at a time.

    Manual runs act on the caller's records unconditionally. Automatic runs
    build their queue from the staleness classifier, honor the ignore ledger,
    and stop after repeated rate limiting or lost connectivity.
    """

    def __init__(
        self,
        *,
        pipeline: UpdatePipeline,
        classifier: StalenessClassifier,
        preferences: Preferences,
        record_store: RecordStore,
        environment: HostEnvironment,
        sink_factory: SinkFactory,
        library_id: int,
        start_delay_seconds: float = 3.0,
        retry_delay_seconds: float = 5.0,
        max_retries: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._pipeline = pipeline
        self._classifier = classifier
        self._preferences = preferences
        self._record_store = record_store
        self._environment = environment
        self._sink_factory = sink_factory
        self._library_id = library_id
        self._start_delay_seconds = max(0.0, float(start_delay_seconds))
        self._retry_delay_seconds = max(0.0, float(retry_delay_seconds))
        self._max_retries = max(1, int(max_retries))
        self._sleep = sleep
        self._auto_update_in_progress = False
        self._manual_lock = asyncio.Lock()

    @property
    def auto_update_in_progress(self) -> bool:
        return self._auto_update_in_progress

    async def run_manual(
        self,
        records: list[RecordHandle],
        *,
        databases: list[str] | None = None,
        silent: bool = False,
    ) -> RunSummary | None:
        regular = [record for record in records if record.is_regular()]
        async with self._manual_lock:
            sink = self._sink_factory(silent)
            try:
                if not regular:
                    if not silent:
                        sink.notice(NO_VALID_ITEMS_MESSAGE)
                    return None
                names = databases or await self._preferences.database_order()
                if not names:
                    structured_log(logger, "warning", "scheduler.no_databases_configured")
                    return None

                set_run_id(f"manual-{token_urlsafe(6)}")
                queue = _UpdateQueue(records=regular)
                sink.start(RunMode.MANUAL, queue.total)
                structured_log(logger, "info", "scheduler.manual_started", total=queue.total, databases=names)
                while queue.has_next():
                    record = queue.current
                    sink.tick(queue.cursor + 1, queue.total, queue.percent)
                    try:
                        outcome = await self._pipeline.update_record(record, databases=names, auto_update=False)
                    except Exception:
                        logger.exception(
                            "scheduler.record_failed",
                            extra={"event": "scheduler.record_failed", "record_id": record.id},
                        )
                    else:
                        if outcome.saved:
                            queue.updated += 1
                    queue.advance()

                summary = RunSummary(
                    mode=RunMode.MANUAL,
                    total=queue.total,
                    processed=queue.cursor,
                    updated=queue.updated,
                )
                sink.finish(summary)
                _log_summary(summary)
                return summary
            finally:
                sink.close()
                set_run_id(None)

    async def run_automatic(self, *, force: bool = False, silent: bool = False) -> RunSummary | None:
        if not force and await self._preferences.auto_update_mode() != AUTO_UPDATE_STARTUP:
            return None
        if self._auto_update_in_progress:
            structured_log(logger, "info", "scheduler.auto_skipped_in_flight")
            return None

        self._auto_update_in_progress = True
        sink: ProgressSink | None = None
        set_run_id(f"auto-{token_urlsafe(6)}")
        try:
            databases = await self._preferences.database_order()
            records = await self._classifier.find_records_needing_update(
                self._record_store,
                library_id=self._library_id,
                databases=databases,
                cutoff_months=await self._preferences.cutoff_months(),
            )
            if not records:
                structured_log(logger, "info", "scheduler.auto_nothing_to_update")
                return RunSummary(mode=RunMode.AUTO, total=0, processed=0, updated=0)
            if not await self._is_runnable():
                return None

            structured_log(logger, "info", "scheduler.auto_started", total=len(records), databases=databases)
            await self._sleep(self._start_delay_seconds)

            sink = self._sink_factory(silent)
            queue = _UpdateQueue(records=records)
            sink.start(RunMode.AUTO, queue.total)
            stop_reason: str | None = None
            while queue.has_next():
                if not self._environment.is_available():
                    structured_log(logger, "warning", "scheduler.host_unavailable")
                    break
                record = queue.current
                sink.tick(queue.cursor + 1, queue.total, queue.percent)
                try:
                    saved = await self._update_with_retry(record, databases=databases, sink=sink)
                except ConnectivityLostError:
                    stop_reason = MAX_RETRIES_CONNECTIVITY_MESSAGE
                    break
                except RateLimitedRunError:
                    stop_reason = MAX_RETRIES_RATE_LIMIT_MESSAGE
                    break
                if saved:
                    queue.updated += 1
                queue.advance()

            summary = RunSummary(
                mode=RunMode.AUTO,
                total=queue.total,
                processed=queue.cursor,
                updated=queue.updated,
                stop_reason=stop_reason,
            )
            sink.finish(summary)
            _log_summary(summary)
            return summary
        finally:
            self._auto_update_in_progress = False
            if sink is not None:
                sink.close()
            set_run_id(None)

    async def _is_runnable(self) -> bool:
        if not self._environment.is_available():
            structured_log(logger, "info", "scheduler.auto_not_runnable", reason="host_unavailable")
            return False
        if not await self._environment.is_online():
            structured_log(logger, "info", "scheduler.auto_not_runnable", reason="offline")
            return False
        return True

    async def _update_with_retry(
        self,
        record: RecordHandle,
        *,
        databases: list[str],
        sink: ProgressSink,
    ) -> bool:
        pending = list(databases)
        saved = False

        def _before_sleep(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome is not None else None
            sink.retry(state.attempt_number, self._max_retries, str(error))
            structured_log(
                logger,
                "warning",
                "scheduler.record_retry_scheduled",
                record_id=record.id,
                attempt=state.attempt_number,
                max_attempts=self._max_retries,
                error=type(error).__name__ if error else None,
            )

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransientRunError),
            stop=stop_after_attempt(self._max_retries),
            wait=wait_fixed(self._retry_delay_seconds),
            sleep=self._sleep,
            before_sleep=_before_sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if not await self._environment.is_online():
                    raise ConnectivityLostError("network unreachable")
                try:
                    outcome = await self._pipeline.update_record(record, databases=pending, auto_update=True)
                except Exception:
                    logger.exception(
                        "scheduler.record_failed",
                        extra={"event": "scheduler.record_failed", "record_id": record.id},
                    )
                    return saved
                saved = saved or outcome.saved
                if outcome.rate_limited:
                    pending = outcome.rate_limited
                    raise RateLimitedRunError(pending)
        return saved


def _log_summary(summary: RunSummary) -> None:
    structured_log(
        logger,
        "info",
        "scheduler.run_completed",
        mode=summary.mode.value,
        updated=summary.updated,
        processed=summary.processed,
        total=summary.total,
        stop_reason=summary.stop_reason,
    )
