from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import logging

from citetally.logging_utils import structured_log
from citetally.services.citations.ledger import IgnoreLedger
from citetally.services.host import RecordStore

logger = logging.getLogger(__name__)


class LedgerMaintenance:
    """Periodically drops ledger entries whose records were deleted."""

    def __init__(
        self,
        *,
        ledger: IgnoreLedger,
        record_store: RecordStore,
        initial_delay_seconds: float,
        interval_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._ledger = ledger
        self._record_store = record_store
        self._initial_delay_seconds = max(0.0, float(initial_delay_seconds))
        self._interval_seconds = max(60.0, float(interval_seconds))
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run_loop(), name="citetally-ledger-maintenance")
        structured_log(
            logger,
            "info",
            "maintenance.started",
            initial_delay_seconds=self._initial_delay_seconds,
            interval_seconds=self._interval_seconds,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
        structured_log(logger, "info", "maintenance.stopped")

    async def sweep_once(self) -> int:
        return await self._ledger.sweep(self._record_store)

    async def _run_loop(self) -> None:
        await self._sleep(self._initial_delay_seconds)
        while True:
            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("maintenance.sweep_failed", extra={"event": "maintenance.sweep_failed"})
            await self._sleep(self._interval_seconds)
