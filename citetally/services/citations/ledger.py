"""Negative-result bookkeeping for citation lookups.

Two stores share the ``RecordBlockStore`` interface:

* ``InMemoryBlockStore`` is the session quarantine for records that have no
  identifier a database can use. It is never persisted because editing the
  record can add one.
* ``DurableBlockStore`` keeps confirmed "not found" answers in the preference
  store, as JSON shaped ``{database: {record_id: {count, lastChecked}}}``, and
  lets a pair be retried after an escalating cool-off.

``IgnoreLedger`` combines both for the update pipeline.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
import json
import logging
from typing import Any, Protocol

from citetally.logging_utils import structured_log
from citetally.services.host import PreferenceStore, RecordStore
from citetally.services.preferences import PREF_IGNORED_ITEMS

logger = logging.getLogger(__name__)

# Confirmed not-found count -> days before the pair may be queried again.
RETRY_AFTER_DAYS = {1: 7, 2: 30, 3: 90}
RETRY_AFTER_DAYS_MAX = 180
_SECONDS_PER_DAY = 24 * 60 * 60

KeepRecord = Callable[[int], Awaitable[bool]]


@dataclass(frozen=True)
class BlockEntry:
    count: int
    last_checked: datetime | None


def required_days(count: int) -> int | None:
    if count in RETRY_AFTER_DAYS:
        return RETRY_AFTER_DAYS[count]
    if count > max(RETRY_AFTER_DAYS):
        return RETRY_AFTER_DAYS_MAX
    return None


def retry_eligible(count: int, last_checked: datetime | None, now: datetime) -> bool:
    days = required_days(count)
    if days is None or last_checked is None:
        return True
    elapsed_days = (now - _as_utc(last_checked)).total_seconds() / _SECONDS_PER_DAY
    return elapsed_days > days


class RecordBlockStore(Protocol):
    async def record(self, record_id: int, database: str, now: datetime) -> None: ...

    async def is_blocked(self, record_id: int, database: str, now: datetime) -> bool: ...

    async def entry(self, record_id: int, database: str) -> BlockEntry | None: ...

    async def clear(self, record_id: int, database: str | None = None) -> None: ...

    async def prune(self, keep: KeepRecord) -> int: ...


class InMemoryBlockStore:
    def __init__(self) -> None:
        self._entries: dict[int, dict[str, datetime]] = {}

    async def record(self, record_id: int, database: str, now: datetime) -> None:
        self._entries.setdefault(record_id, {})[database] = now

    async def is_blocked(self, record_id: int, database: str, now: datetime) -> bool:
        return database in self._entries.get(record_id, {})

    async def entry(self, record_id: int, database: str) -> BlockEntry | None:
        recorded_at = self._entries.get(record_id, {}).get(database)
        if recorded_at is None:
            return None
        return BlockEntry(count=1, last_checked=recorded_at)

    async def clear(self, record_id: int, database: str | None = None) -> None:
        if database is None:
            self._entries.pop(record_id, None)
            return
        databases = self._entries.get(record_id)
        if databases is None:
            return
        databases.pop(database, None)
        if not databases:
            self._entries.pop(record_id, None)

    async def prune(self, keep: KeepRecord) -> int:
        removed = 0
        for record_id in list(self._entries):
            if not await keep(record_id):
                removed += len(self._entries.pop(record_id))
        return removed


class DurableBlockStore:
    def __init__(self, store: PreferenceStore, *, key: str = PREF_IGNORED_ITEMS) -> None:
        self._store = store
        self._key = key

    async def record(self, record_id: int, database: str, now: datetime) -> None:
        data = await self._load()
        item = data.setdefault(database, {}).get(str(record_id))
        count = _entry_count(item) + 1 if item is not None else 1
        data[database][str(record_id)] = {
            "count": count,
            "lastChecked": _as_utc(now).isoformat().replace("+00:00", "Z"),
        }
        await self._save(data)

    async def is_blocked(self, record_id: int, database: str, now: datetime) -> bool:
        entry = await self.entry(record_id, database)
        if entry is None:
            return False
        return not retry_eligible(entry.count, entry.last_checked, now)

    async def entry(self, record_id: int, database: str) -> BlockEntry | None:
        data = await self._load()
        item = data.get(database, {}).get(str(record_id))
        if item is None:
            return None
        return BlockEntry(count=_entry_count(item), last_checked=_parse_timestamp(item.get("lastChecked")))

    async def clear(self, record_id: int, database: str | None = None) -> None:
        data = await self._load()
        item_key = str(record_id)
        databases = [database] if database is not None else list(data)
        modified = False
        for name in databases:
            items = data.get(name)
            if not items or item_key not in items:
                continue
            del items[item_key]
            if not items:
                del data[name]
            modified = True
        if modified:
            await self._save(data)

    async def prune(self, keep: KeepRecord) -> int:
        data = await self._load()
        decisions: dict[str, bool] = {}
        removed = 0
        for name in list(data):
            items = data[name]
            for item_key in list(items):
                if item_key not in decisions:
                    decisions[item_key] = await _keep_key(item_key, keep)
                if not decisions[item_key]:
                    del items[item_key]
                    removed += 1
            if not items:
                del data[name]
        if removed:
            await self._save(data)
        return removed

    async def _load(self) -> dict[str, dict[str, dict[str, Any]]]:
        raw = await self._store.get(self._key)
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            structured_log(logger, "warning", "ledger.unreadable", key=self._key)
            return {}
        if not isinstance(parsed, dict):
            return {}
        return {
            str(name): {str(key): value for key, value in items.items() if isinstance(value, dict)}
            for name, items in parsed.items()
            if isinstance(items, dict)
        }

    async def _save(self, data: dict[str, dict[str, dict[str, Any]]]) -> None:
        await self._store.set(self._key, json.dumps(data, sort_keys=True))


class IgnoreLedger:
    def __init__(
        self,
        *,
        quarantine: RecordBlockStore,
        durable: RecordBlockStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._quarantine = quarantine
        self._durable = durable
        self._clock = clock or (lambda: datetime.now(UTC))

    async def mark_not_found(self, record_id: int, database: str) -> None:
        await self._durable.record(record_id, database, self._clock())
        structured_log(logger, "info", "ledger.not_found_recorded", record_id=record_id, database=database)

    async def mark_no_identifier(self, record_id: int, database: str) -> None:
        await self._quarantine.record(record_id, database, self._clock())

    async def is_ignored(self, record_id: int, database: str, *, auto_update_only: bool) -> bool:
        if not auto_update_only:
            return False
        now = self._clock()
        if await self._quarantine.is_blocked(record_id, database, now):
            return True
        return await self._durable.is_blocked(record_id, database, now)

    async def is_ledger_blocked(self, record_id: int, database: str) -> bool:
        return await self._durable.is_blocked(record_id, database, self._clock())

    async def entry(self, record_id: int, database: str) -> BlockEntry | None:
        return await self._durable.entry(record_id, database)

    async def blocks_all(self, record_id: int, databases: Iterable[str]) -> bool:
        names = list(databases)
        if not names:
            return False
        for database in names:
            if not await self.is_ignored(record_id, database, auto_update_only=True):
                return False
        return True

    async def clear(self, record_id: int, database: str | None = None) -> None:
        await self._quarantine.clear(record_id, database)
        await self._durable.clear(record_id, database)

    async def sweep(self, record_store: RecordStore) -> int:
        async def _exists(record_id: int) -> bool:
            record = await record_store.get_record(record_id)
            return record is not None and not record.deleted

        removed = await self._durable.prune(_exists)
        removed += await self._quarantine.prune(_exists)
        structured_log(logger, "info", "ledger.sweep_completed", removed_count=removed)
        return removed


async def _keep_key(item_key: str, keep: KeepRecord) -> bool:
    try:
        record_id = int(item_key)
    except ValueError:
        return False
    return await keep(record_id)


def _entry_count(item: dict[str, Any]) -> int:
    value = item.get("count")
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return value


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return _as_utc(datetime.fromisoformat(value))
    except ValueError:
        return None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
