from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import logging
import time

from citetally.logging_utils import structured_log
from citetally.services.citations.databases import FALLBACK_INTERVAL_SECONDS, get_database
from citetally.services.preferences import Preferences

MIN_MULTIPLIER = 1.0
MAX_MULTIPLIER = 10.0
RATE_LIMITED_FACTOR = 1.5
SUCCESS_FACTOR = 0.9

logger = logging.getLogger(__name__)


class RateLimitManager:
    """Per-database request spacing that widens on 429s and relaxes on success.

    ``await_slot`` is the only way a lookup client may reach the network. The
    multiplier moves only on feedback from a completed HTTP exchange and stays
    within ``[1, 10]``.
    """

    def __init__(
        self,
        *,
        preferences: Preferences | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._preferences = preferences
        self._clock = clock
        self._sleep = sleep
        self._multipliers: dict[str, float] = {}
        self._last_request_at: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def multiplier(self, database: str) -> float:
        return self._multipliers.get(database, MIN_MULTIPLIER)

    async def base_interval_seconds(self, database: str) -> float:
        if self._preferences is not None:
            overrides = await self._preferences.rate_limit_overrides()
            if database in overrides:
                return overrides[database]
        known = get_database(database)
        if known is None:
            return FALLBACK_INTERVAL_SECONDS
        return known.default_interval_seconds

    async def delay_seconds(self, database: str) -> float:
        return await self.base_interval_seconds(database) * self.multiplier(database)

    async def await_slot(self, database: str) -> float:
        lock = self._locks.setdefault(database, asyncio.Lock())
        async with lock:
            delay = await self.delay_seconds(database)
            last = self._last_request_at.get(database)
            wait_seconds = 0.0
            if last is not None:
                wait_seconds = max(delay - (self._clock() - last), 0.0)
            if wait_seconds > 0:
                structured_log(
                    logger,
                    "debug",
                    "rate_limit.waiting",
                    database=database,
                    wait_seconds=round(wait_seconds, 3),
                    multiplier=round(self.multiplier(database), 2),
                )
                await self._sleep(wait_seconds)
            self._last_request_at[database] = self._clock()
            return wait_seconds

    def on_rate_limited(self, database: str) -> float:
        updated = min(self.multiplier(database) * RATE_LIMITED_FACTOR, MAX_MULTIPLIER)
        self._multipliers[database] = updated
        structured_log(
            logger,
            "warning",
            "rate_limit.multiplier_increased",
            database=database,
            multiplier=round(updated, 2),
        )
        return updated

    def on_success(self, database: str) -> float:
        current = self.multiplier(database)
        if current <= MIN_MULTIPLIER:
            return current
        updated = max(current * SUCCESS_FACTOR, MIN_MULTIPLIER)
        self._multipliers[database] = updated
        structured_log(
            logger,
            "debug",
            "rate_limit.multiplier_decreased",
            database=database,
            multiplier=round(updated, 2),
        )
        return updated

    def reset(self) -> None:
        self._multipliers.clear()
        self._last_request_at.clear()
