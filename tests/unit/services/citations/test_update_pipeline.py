from __future__ import annotations

from datetime import UTC, date, datetime
import json

import pytest

from citetally.services.citations.ledger import DurableBlockStore, IgnoreLedger, InMemoryBlockStore
from citetally.services.citations.pipeline import UpdatePipeline
from citetally.services.citations.types import LookupResult, LookupStatus
from citetally.services.host import FIELD_EXTRA
from citetally.services.preferences import PREF_IGNORED_ITEMS
from tests.unit.fakes import FakePreferenceStore, FakeRecord, ManualClock, ScriptedClient

TODAY = date(2026, 3, 1)
NOW = datetime(2026, 3, 1, 10, 0, tzinfo=UTC)


def _pipeline(*clients: ScriptedClient) -> tuple[UpdatePipeline, IgnoreLedger, FakePreferenceStore]:
    store = FakePreferenceStore()
    ledger = IgnoreLedger(
        quarantine=InMemoryBlockStore(),
        durable=DurableBlockStore(store),
        clock=ManualClock(NOW),
    )
    pipeline = UpdatePipeline(
        clients={client.database: client for client in clients},
        ledger=ledger,
        today=lambda: TODAY,
    )
    return pipeline, ledger, store


@pytest.mark.asyncio
async def test_success_writes_single_annotation_and_leaves_ledger_alone() -> None:
    crossref = ScriptedClient("crossref", "Crossref", [LookupResult.success(42)])
    pipeline, _, store = _pipeline(crossref)
    record = FakeRecord(1, doi="10.1/abc")

    outcome = await pipeline.update_record(record, databases=["crossref"], auto_update=True)

    assert outcome.saved is True
    assert record.get_field(FIELD_EXTRA) == "Citations: 42 (Crossref) [2026-03-01]"
    assert record.save_count == 1
    assert PREF_IGNORED_ITEMS not in store.values


@pytest.mark.asyncio
async def test_not_found_records_ledger_entry_and_leaves_record_unchanged() -> None:
    crossref = ScriptedClient("crossref", "Crossref", [LookupResult.not_found("gone")])
    pipeline, _, store = _pipeline(crossref)
    record = FakeRecord(1, doi="10.1/abc", extra="keep")

    outcome = await pipeline.update_record(record, databases=["crossref"], auto_update=True)

    assert outcome.saved is False
    assert record.get_field(FIELD_EXTRA) == "keep"
    assert record.save_count == 0
    assert json.loads(store.values[PREF_IGNORED_ITEMS]) == {
        "crossref": {"1": {"count": 1, "lastChecked": "2026-03-01T10:00:00Z"}}
    }


@pytest.mark.asyncio
async def test_success_clears_previous_ledger_entry() -> None:
    crossref = ScriptedClient("crossref", "Crossref", [LookupResult.success(1)])
    pipeline, ledger, _ = _pipeline(crossref)
    await ledger.mark_not_found(1, "crossref")

    await pipeline.update_record(FakeRecord(1, doi="10.1/abc"), databases=["crossref"], auto_update=False)

    assert await ledger.entry(1, "crossref") is None


@pytest.mark.asyncio
async def test_auto_update_skips_ignored_databases_but_manual_does_not() -> None:
    crossref = ScriptedClient("crossref", "Crossref", [LookupResult.success(2)])
    inspire = ScriptedClient("inspire", "INSPIRE", [LookupResult.success(3)])
    pipeline, ledger, _ = _pipeline(crossref, inspire)
    await ledger.mark_not_found(1, "crossref")
    record = FakeRecord(1, doi="10.1/abc")

    auto = await pipeline.update_record(record, databases=["crossref", "inspire"], auto_update=True)

    assert crossref.calls == []
    assert list(auto.statuses) == ["inspire"]

    manual = await pipeline.update_record(record, databases=["crossref"], auto_update=False)

    assert len(crossref.calls) == 1
    assert manual.saved is True


@pytest.mark.asyncio
async def test_no_identifier_quarantines_pair() -> None:
    crossref = ScriptedClient("crossref", "Crossref", [LookupResult.no_identifier("arXiv only")])
    pipeline, ledger, store = _pipeline(crossref)

    await pipeline.update_record(FakeRecord(1, extra="arXiv: 2101.00001"), databases=["crossref"], auto_update=True)

    assert await ledger.is_ignored(1, "crossref", auto_update_only=True) is True
    assert PREF_IGNORED_ITEMS not in store.values


@pytest.mark.asyncio
async def test_entries_follow_configured_order_and_failures_are_contained() -> None:
    crossref = ScriptedClient("crossref", "Crossref", [RuntimeError("boom")])
    inspire = ScriptedClient("inspire", "INSPIRE", [LookupResult.success(4)])
    semantic = ScriptedClient("semanticscholar", "Semantic Scholar", [LookupResult.success(5)])
    pipeline, _, _ = _pipeline(crossref, inspire, semantic)
    record = FakeRecord(1, doi="10.1/abc")

    outcome = await pipeline.update_record(
        record,
        databases=["semanticscholar", "crossref", "inspire"],
        auto_update=False,
    )

    assert outcome.statuses["crossref"] == LookupStatus.API_ERROR
    assert [entry.title for entry in outcome.entries] == ["Semantic Scholar", "INSPIRE"]
    assert record.get_field(FIELD_EXTRA).split("\n") == [
        "Citations: 5 (Semantic Scholar) [2026-03-01]",
        "Citations: 4 (INSPIRE) [2026-03-01]",
    ]


@pytest.mark.asyncio
async def test_rate_limited_database_is_reported() -> None:
    crossref = ScriptedClient("crossref", "Crossref", [LookupResult.rate_limited()])
    inspire = ScriptedClient("inspire", "INSPIRE", [LookupResult.success(1)])
    pipeline, _, _ = _pipeline(crossref, inspire)

    outcome = await pipeline.update_record(
        FakeRecord(1, doi="10.1/abc"),
        databases=["crossref", "inspire"],
        auto_update=True,
    )

    assert outcome.rate_limited == ["crossref"]
    assert outcome.saved is True
