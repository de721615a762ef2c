from __future__ import annotations

from datetime import UTC, datetime, timedelta
import json

import pytest

from citetally.services.citations.ledger import (
    DurableBlockStore,
    IgnoreLedger,
    InMemoryBlockStore,
    required_days,
    retry_eligible,
)
from citetally.services.preferences import PREF_IGNORED_ITEMS
from tests.unit.fakes import FakePreferenceStore, FakeRecord, FakeRecordStore, ManualClock

START = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def _ledger(store: FakePreferenceStore, clock: ManualClock) -> IgnoreLedger:
    return IgnoreLedger(
        quarantine=InMemoryBlockStore(),
        durable=DurableBlockStore(store),
        clock=clock,
    )


def test_retry_schedule_escalates() -> None:
    assert [required_days(count) for count in (1, 2, 3, 4, 10)] == [7, 30, 90, 180, 180]
    assert required_days(0) is None


def test_retry_eligible_is_strictly_after_the_window() -> None:
    assert retry_eligible(1, START, START + timedelta(days=7)) is False
    assert retry_eligible(1, START, START + timedelta(days=7, seconds=1)) is True
    assert retry_eligible(1, None, START) is True
    assert retry_eligible(0, START, START) is True


@pytest.mark.asyncio
async def test_not_found_is_persisted_with_count_and_timestamp() -> None:
    store = FakePreferenceStore()
    ledger = _ledger(store, ManualClock(START))

    await ledger.mark_not_found(42, "crossref")
    await ledger.mark_not_found(42, "crossref")

    data = json.loads(store.values[PREF_IGNORED_ITEMS])
    assert data == {"crossref": {"42": {"count": 2, "lastChecked": "2026-01-01T12:00:00Z"}}}


@pytest.mark.asyncio
async def test_second_not_found_blocks_for_thirty_days() -> None:
    store = FakePreferenceStore()
    clock = ManualClock(START)
    ledger = _ledger(store, clock)
    await ledger.mark_not_found(7, "crossref")
    await ledger.mark_not_found(7, "crossref")

    clock.now = START + timedelta(days=29)
    assert await ledger.is_ignored(7, "crossref", auto_update_only=True) is True

    clock.now = START + timedelta(days=31)
    assert await ledger.is_ignored(7, "crossref", auto_update_only=True) is False


@pytest.mark.asyncio
async def test_manual_runs_are_never_ignored() -> None:
    ledger = _ledger(FakePreferenceStore(), ManualClock(START))
    await ledger.mark_not_found(1, "crossref")
    await ledger.mark_no_identifier(1, "inspire")

    assert await ledger.is_ignored(1, "crossref", auto_update_only=False) is False
    assert await ledger.is_ignored(1, "inspire", auto_update_only=False) is False


@pytest.mark.asyncio
async def test_quarantine_takes_precedence_and_is_not_persisted() -> None:
    store = FakePreferenceStore()
    clock = ManualClock(START)
    ledger = _ledger(store, clock)
    await ledger.mark_no_identifier(3, "semanticscholar")

    clock.now = START + timedelta(days=365)

    assert await ledger.is_ignored(3, "semanticscholar", auto_update_only=True) is True
    assert await ledger.is_ledger_blocked(3, "semanticscholar") is False
    assert PREF_IGNORED_ITEMS not in store.values


@pytest.mark.asyncio
async def test_clear_removes_pair_from_both_stores() -> None:
    store = FakePreferenceStore()
    ledger = _ledger(store, ManualClock(START))
    await ledger.mark_not_found(5, "crossref")
    await ledger.mark_not_found(6, "crossref")
    await ledger.mark_no_identifier(5, "crossref")

    await ledger.clear(5, "crossref")

    assert await ledger.entry(5, "crossref") is None
    assert await ledger.is_ignored(5, "crossref", auto_update_only=True) is False
    assert json.loads(store.values[PREF_IGNORED_ITEMS]) == {
        "crossref": {"6": {"count": 1, "lastChecked": "2026-01-01T12:00:00Z"}}
    }


@pytest.mark.asyncio
async def test_blocks_all_requires_every_database() -> None:
    ledger = _ledger(FakePreferenceStore(), ManualClock(START))
    await ledger.mark_not_found(9, "crossref")

    assert await ledger.blocks_all(9, ["crossref"]) is True
    assert await ledger.blocks_all(9, ["crossref", "inspire"]) is False
    assert await ledger.blocks_all(9, []) is False


@pytest.mark.asyncio
async def test_sweep_drops_deleted_and_missing_records() -> None:
    store = FakePreferenceStore()
    ledger = _ledger(store, ManualClock(START))
    records = FakeRecordStore([FakeRecord(1), FakeRecord(2, deleted=True)])
    for record_id in (1, 2, 3):
        await ledger.mark_not_found(record_id, "crossref")
    await ledger.mark_no_identifier(3, "inspire")

    removed = await ledger.sweep(records)

    assert removed == 3
    assert set(json.loads(store.values[PREF_IGNORED_ITEMS])["crossref"]) == {"1"}
    assert await ledger.is_ignored(3, "inspire", auto_update_only=True) is False


@pytest.mark.asyncio
async def test_unreadable_ledger_is_treated_as_empty() -> None:
    store = FakePreferenceStore({PREF_IGNORED_ITEMS: "not json"})
    ledger = _ledger(store, ManualClock(START))

    assert await ledger.entry(1, "crossref") is None
    await ledger.mark_not_found(1, "crossref")
    assert (await ledger.entry(1, "crossref")).count == 1
