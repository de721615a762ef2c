from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

FIELD_EXTRA = "extra"
FIELD_DOI = "DOI"
FIELD_TITLE = "title"

ITEM_TYPE_ATTACHMENT = "attachment"
ITEM_TYPE_NOTE = "note"
NON_REGULAR_ITEM_TYPES = frozenset({ITEM_TYPE_ATTACHMENT, ITEM_TYPE_NOTE})


@dataclass(frozen=True)
class RecordQuery:
    library_id: int
    include_deleted: bool = False
    exclude_item_types: frozenset[str] = NON_REGULAR_ITEM_TYPES


class RecordHandle(Protocol):
    @property
    def id(self) -> int: ...

    @property
    def date_added(self) -> datetime: ...

    @property
    def deleted(self) -> bool: ...

    def get_field(self, name: str) -> str: ...

    def set_field(self, name: str, value: str) -> None: ...

    def is_regular(self) -> bool: ...

    async def save(self) -> None: ...


class RecordStore(Protocol):
    async def search(self, query: RecordQuery) -> list[int]: ...

    async def get_records(self, record_ids: list[int]) -> list[RecordHandle]: ...

    async def get_record(self, record_id: int) -> RecordHandle | None: ...


class PreferenceStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


class HostEnvironment(Protocol):
    def is_available(self) -> bool: ...

    def mark_unavailable(self) -> None: ...

    async def is_online(self) -> bool: ...
