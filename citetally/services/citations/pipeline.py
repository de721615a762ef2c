from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import date
import logging

from citetally.logging_utils import structured_log
from citetally.services.citations.codec import merge_entries
from citetally.services.citations.identifiers import identifier_for_record
from citetally.services.citations.ledger import IgnoreLedger
from citetally.services.citations.types import CountEntry, LookupResult, LookupStatus, RecordOutcome
from citetally.services.host import FIELD_EXTRA, RecordHandle
from citetally.services.lookup.base import CitationLookupClient

logger = logging.getLogger(__name__)


class UpdatePipeline:
    """Runs one record through each configured database, in order, and saves the merge."""

    def __init__(
        self,
        *,
        clients: Mapping[str, CitationLookupClient],
        ledger: IgnoreLedger,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._clients = clients
        self._ledger = ledger
        self._today = today

    async def update_record(
        self,
        record: RecordHandle,
        *,
        databases: list[str],
        auto_update: bool,
    ) -> RecordOutcome:
        identifier = identifier_for_record(record)
        outcome = RecordOutcome(record_id=record.id)

        for database in databases:
            client = self._clients.get(database)
            if client is None:
                structured_log(logger, "warning", "pipeline.unknown_database", database=database)
                continue
            if auto_update and await self._ledger.is_ignored(record.id, database, auto_update_only=True):
                structured_log(logger, "debug", "pipeline.database_skipped_ignored", record_id=record.id, database=database)
                continue

            try:
                result = await client.lookup(identifier)
            except Exception:
                logger.exception(
                    "pipeline.lookup_failed",
                    extra={"event": "pipeline.lookup_failed", "record_id": record.id, "database": database},
                )
                result = LookupResult.api_error("Unexpected lookup failure")

            outcome.statuses[database] = result.status
            await self._apply_result(record.id, database, client.display_name, result, outcome)

        if outcome.entries:
            merged = merge_entries(record.get_field(FIELD_EXTRA), outcome.entries, today=self._today())
            record.set_field(FIELD_EXTRA, merged)
            await record.save()
            outcome.saved = True
            structured_log(
                logger,
                "info",
                "pipeline.record_updated",
                record_id=record.id,
                counts={entry.title: entry.count for entry in outcome.entries},
            )
        else:
            structured_log(logger, "debug", "pipeline.record_unchanged", record_id=record.id)
        return outcome

    async def _apply_result(
        self,
        record_id: int,
        database: str,
        title: str,
        result: LookupResult,
        outcome: RecordOutcome,
    ) -> None:
        if result.status == LookupStatus.NOT_FOUND:
            await self._ledger.mark_not_found(record_id, database)
        elif result.status == LookupStatus.NO_IDENTIFIER:
            await self._ledger.mark_no_identifier(record_id, database)
        elif result.has_count:
            await self._ledger.clear(record_id, database)
            outcome.entries.append(CountEntry(title=title, count=result.count))
        else:
            structured_log(
                logger,
                "warning",
                "pipeline.lookup_unusable",
                record_id=record_id,
                database=database,
                status=result.status.value,
                detail=result.message,
            )
