"""SQLAlchemy-backed host: records and preferences living in the app database."""

from __future__ import annotations

from datetime import datetime
import logging

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from citetally.db.models import Preference, Record
from citetally.services.host import (
    FIELD_DOI,
    FIELD_EXTRA,
    FIELD_TITLE,
    NON_REGULAR_ITEM_TYPES,
    RecordHandle,
    RecordQuery,
)

logger = logging.getLogger(__name__)

_FIELD_COLUMNS = {
    FIELD_EXTRA: "extra",
    FIELD_DOI: "doi",
    FIELD_TITLE: "title",
}


class SqlRecord:
    def __init__(self, row: Record, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._id = int(row.id)
        self._item_type = row.item_type
        self._date_added = row.date_added
        self._deleted = bool(row.deleted)
        self._fields = {name: getattr(row, column) or "" for name, column in _FIELD_COLUMNS.items()}
        self._dirty: set[str] = set()

    @property
    def id(self) -> int:
        return self._id

    @property
    def item_type(self) -> str:
        return self._item_type

    @property
    def date_added(self) -> datetime:
        return self._date_added

    @property
    def deleted(self) -> bool:
        return self._deleted

    def get_field(self, name: str) -> str:
        return self._fields.get(name, "")

    def set_field(self, name: str, value: str) -> None:
        if name not in _FIELD_COLUMNS:
            raise KeyError(f"Unsupported record field: {name}")
        self._fields[name] = value
        self._dirty.add(name)

    def is_regular(self) -> bool:
        return self._item_type not in NON_REGULAR_ITEM_TYPES

    async def save(self) -> None:
        if not self._dirty:
            return
        values = {_FIELD_COLUMNS[name]: self._fields[name] for name in self._dirty}
        async with self._session_factory() as session:
            await session.execute(
                update(Record).where(Record.id == self._id).values(**values, date_modified=func.now())
            )
            await session.commit()
        logger.debug(
            "store.record_saved",
            extra={
                "event": "store.record_saved",
                "record_id": self._id,
                "fields": sorted(values),
            },
        )
        self._dirty.clear()


class SqlRecordStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def search(self, query: RecordQuery) -> list[int]:
        stmt = select(Record.id).where(Record.library_id == query.library_id)
        if not query.include_deleted:
            stmt = stmt.where(Record.deleted.is_(False))
        if query.exclude_item_types:
            stmt = stmt.where(Record.item_type.not_in(sorted(query.exclude_item_types)))
        async with self._session_factory() as session:
            result = await session.execute(stmt.order_by(Record.id))
            return [int(value) for value in result.scalars().all()]

    async def get_records(self, record_ids: list[int]) -> list[RecordHandle]:
        if not record_ids:
            return []
        async with self._session_factory() as session:
            result = await session.execute(select(Record).where(Record.id.in_(record_ids)))
            rows = {row.id: row for row in result.scalars().all()}
        return [SqlRecord(rows[record_id], self._session_factory) for record_id in record_ids if record_id in rows]

    async def get_record(self, record_id: int) -> RecordHandle | None:
        async with self._session_factory() as session:
            row = await session.get(Record, record_id)
        if row is None:
            return None
        return SqlRecord(row, self._session_factory)


class SqlPreferenceStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> str | None:
        async with self._session_factory() as session:
            row = await session.get(Preference, key)
            return None if row is None else row.value

    async def set(self, key: str, value: str) -> None:
        async with self._session_factory() as session:
            row = await session.get(Preference, key)
            if row is None:
                session.add(Preference(key=key, value=value))
            else:
                row.value = value
            await session.commit()
