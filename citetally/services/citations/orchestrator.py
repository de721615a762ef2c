from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import logging

import httpx

from citetally.logging_utils import structured_log
from citetally.services.citations.errors import AutoUpdateAlreadyRunningError
from citetally.services.citations.ledger import DurableBlockStore, IgnoreLedger, InMemoryBlockStore
from citetally.services.citations.maintenance import LedgerMaintenance
from citetally.services.citations.notifier import RecordAddedNotifier
from citetally.services.citations.pipeline import UpdatePipeline
from citetally.services.citations.progress import (
    FanOutProgressSink,
    LoggingProgressSink,
    ProgressSink,
    RecordingProgressSink,
)
from citetally.services.citations.rate_limit import RateLimitManager
from citetally.services.citations.scheduler import UpdateScheduler
from citetally.services.citations.staleness import StalenessClassifier
from citetally.services.citations.types import RunSummary
from citetally.services.host import HostEnvironment, PreferenceStore, RecordStore
from citetally.services.lookup.registry import build_lookup_clients
from citetally.services.preferences import Preferences
from citetally.settings import Settings

logger = logging.getLogger(__name__)


class CitationOrchestrator:
    """Owns the one rate limiter, ledger and scheduler for the process.

    Everything that touches citation counts goes through this object, so
    manual triggers, the startup sweep and added-record notifications all share
    request spacing and negative-result state.
    """

    def __init__(
        self,
        *,
        record_store: RecordStore,
        preference_store: PreferenceStore,
        environment: HostEnvironment,
        app_settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._record_store = record_store
        self._environment = environment
        self._settings = app_settings
        self.preferences = Preferences(preference_store)
        self.rate_limiter = RateLimitManager(preferences=self.preferences, sleep=sleep)
        self.ledger = IgnoreLedger(
            quarantine=InMemoryBlockStore(),
            durable=DurableBlockStore(preference_store),
        )
        self.clients = build_lookup_clients(
            rate_limiter=self.rate_limiter,
            app_settings=app_settings,
            transport=transport,
        )
        self.classifier = StalenessClassifier(ledger=self.ledger)
        self.pipeline = UpdatePipeline(clients=self.clients, ledger=self.ledger)
        self.scheduler = UpdateScheduler(
            pipeline=self.pipeline,
            classifier=self.classifier,
            preferences=self.preferences,
            record_store=record_store,
            environment=environment,
            sink_factory=self._build_sink,
            library_id=app_settings.user_library_id,
            start_delay_seconds=app_settings.auto_update_start_delay_seconds,
            retry_delay_seconds=app_settings.auto_update_retry_delay_seconds,
            max_retries=app_settings.auto_update_max_retries,
            sleep=sleep,
        )
        self.maintenance = LedgerMaintenance(
            ledger=self.ledger,
            record_store=record_store,
            initial_delay_seconds=app_settings.ledger_sweep_initial_delay_seconds,
            interval_seconds=app_settings.ledger_sweep_interval_seconds,
            sleep=sleep,
        )
        self.notifier = RecordAddedNotifier(self.handle_records_added)
        self._auto_task: asyncio.Task[RunSummary | None] | None = None
        self._latest_summary: RunSummary | None = None
        self._latest_progress: RecordingProgressSink | None = None

    @property
    def record_store(self) -> RecordStore:
        return self._record_store

    @property
    def latest_summary(self) -> RunSummary | None:
        return self._latest_summary

    @property
    def latest_progress(self) -> RecordingProgressSink | None:
        return self._latest_progress

    @property
    def auto_update_in_progress(self) -> bool:
        if self.scheduler.auto_update_in_progress:
            return True
        return self._auto_task is not None and not self._auto_task.done()

    async def start(self) -> None:
        await self.maintenance.start()
        self._auto_task = asyncio.create_task(self._run_automatic(force=False), name="citetally-startup-update")
        structured_log(logger, "info", "orchestrator.started")

    async def stop(self) -> None:
        self._environment.mark_unavailable()
        await self.maintenance.stop()
        if self._auto_task is not None:
            self._auto_task.cancel()
            try:
                await self._auto_task
            except asyncio.CancelledError:
                pass
            finally:
                self._auto_task = None
        structured_log(logger, "info", "orchestrator.stopped")

    async def trigger_manual(
        self,
        record_ids: list[int],
        *,
        databases: list[str] | None = None,
        silent: bool = False,
    ) -> RunSummary | None:
        records = await self._record_store.get_records(record_ids)
        summary = await self.scheduler.run_manual(records, databases=databases, silent=silent)
        if summary is not None:
            self._latest_summary = summary
        return summary

    def trigger_retally(self) -> asyncio.Task[RunSummary | None]:
        if self.auto_update_in_progress:
            raise AutoUpdateAlreadyRunningError("An automatic citation update is already running.")
        self._auto_task = asyncio.create_task(self._run_automatic(force=True), name="citetally-retally")
        return self._auto_task

    async def handle_records_added(self, record_ids: list[int]) -> RunSummary | None:
        return await self.trigger_manual(record_ids, silent=True)

    async def _run_automatic(self, *, force: bool) -> RunSummary | None:
        try:
            summary = await self.scheduler.run_automatic(force=force)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("orchestrator.auto_update_failed", extra={"event": "orchestrator.auto_update_failed"})
            return None
        if summary is not None:
            self._latest_summary = summary
        return summary

    def _build_sink(self, silent: bool) -> ProgressSink:
        recording = RecordingProgressSink()
        self._latest_progress = recording
        return FanOutProgressSink(LoggingProgressSink(silent=silent), recording)
