from __future__ import annotations

import calendar
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
import logging

from citetally.logging_utils import structured_log
from citetally.services.citations.codec import decode_entry_date
from citetally.services.citations.databases import display_name, get_database
from citetally.services.citations.identifiers import identifier_for_record
from citetally.services.citations.ledger import IgnoreLedger
from citetally.services.citations.types import Identifier
from citetally.services.host import FIELD_EXTRA, FIELD_TITLE, RecordHandle, RecordQuery, RecordStore

REASON_NO_IDENTIFIER = "no_identifier"
REASON_NO_APPLICABLE_DATABASES = "no_applicable_databases"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StalenessVerdict:
    outdated: bool
    reasons: tuple[str, ...]

    @property
    def reason(self) -> str:
        return "|".join(self.reasons)


def is_applicable(database: str, identifier: Identifier) -> bool:
    known = get_database(database)
    if known is None or not known.supports(identifier.type):
        return False
    if identifier.is_arxiv_doi and not known.accepts_arxiv_doi:
        return False
    return True


def applicable_databases(identifier: Identifier, databases: Iterable[str]) -> list[str]:
    return [database for database in databases if is_applicable(database, identifier)]


def subtract_months(value: date, months: int) -> date:
    month_index = value.year * 12 + (value.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class StalenessClassifier:
    """Decides which records an automatic sweep should look up again.

    A record is outdated when any applicable database that is not currently
    blocked has no annotation, or one older than the cutoff. One stale source
    re-queues the whole record.
    """

    def __init__(self, *, ledger: IgnoreLedger) -> None:
        self._ledger = ledger

    async def classify(
        self,
        record: RecordHandle,
        *,
        databases: list[str],
        cutoff_months: int,
        today: date | None = None,
    ) -> StalenessVerdict:
        identifier = identifier_for_record(record)
        if identifier is None:
            return StalenessVerdict(outdated=False, reasons=(REASON_NO_IDENTIFIER,))

        current_day = today or date.today()
        cutoff = subtract_months(current_day, cutoff_months)
        extra = record.get_field(FIELD_EXTRA)
        reasons: list[str] = []
        checkable = 0
        outdated = False

        for database in databases:
            if not is_applicable(database, identifier):
                suffix = "arxiv_doi" if identifier.is_arxiv_doi else identifier.type
                reasons.append(f"{database}_not_applicable_for_{suffix}")
                continue

            if await self._ledger.is_ignored(record.id, database, auto_update_only=True):
                reasons.append(f"{database}_blocked_until_retry")
                continue
            if await self._ledger.entry(record.id, database) is not None:
                reasons.append(f"{database}_retry_eligible")

            checkable += 1
            entry_date = decode_entry_date(extra, display_name(database))
            if entry_date is None:
                reasons.append(f"{database}_no_data")
                outdated = True
                continue
            age_days = (current_day - entry_date).days
            if entry_date < cutoff:
                reasons.append(f"{database}_outdated_{entry_date.isoformat()}_{age_days}days")
                outdated = True
            else:
                reasons.append(f"{database}_recent_{entry_date.isoformat()}_{age_days}days")

        if checkable == 0:
            return StalenessVerdict(outdated=False, reasons=(*reasons, REASON_NO_APPLICABLE_DATABASES))
        return StalenessVerdict(outdated=outdated, reasons=tuple(reasons))

    async def find_records_needing_update(
        self,
        record_store: RecordStore,
        *,
        library_id: int,
        databases: list[str],
        cutoff_months: int,
        today: date | None = None,
    ) -> list[RecordHandle]:
        record_ids = await record_store.search(RecordQuery(library_id=library_id))
        records = await record_store.get_records(record_ids)

        regular_count = 0
        with_identifier_count = 0
        ignored_count = 0
        selected: list[RecordHandle] = []
        reason_trail: list[dict[str, object]] = []

        for record in records:
            if not record.is_regular():
                continue
            regular_count += 1
            if identifier_for_record(record) is None:
                continue
            with_identifier_count += 1
            if await self._ledger.blocks_all(record.id, databases):
                ignored_count += 1
                continue
            verdict = await self.classify(
                record,
                databases=databases,
                cutoff_months=cutoff_months,
                today=today,
            )
            if not verdict.outdated:
                continue
            selected.append(record)
            reason_trail.append(
                {
                    "record_id": record.id,
                    "title": (record.get_field(FIELD_TITLE) or "No title")[:60],
                    "reason": verdict.reason,
                }
            )

        selected.sort(key=lambda record: record.date_added, reverse=True)
        structured_log(
            logger,
            "info",
            "staleness.sweep_filtered",
            total_count=len(records),
            regular_count=regular_count,
            with_identifier_count=with_identifier_count,
            ignored_count=ignored_count,
            outdated_count=len(selected),
        )
        structured_log(logger, "debug", "staleness.sweep_reasons", reasons=reason_trail)
        return selected
