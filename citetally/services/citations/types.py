from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

IDENTIFIER_TYPE_DOI = "doi"
IDENTIFIER_TYPE_ARXIV = "arxiv"

NO_COUNT = -1


class LookupStatus(StrEnum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    API_ERROR = "api_error"
    NO_IDENTIFIER = "no_identifier"
    RATE_LIMITED = "rate_limited"


class RunMode(StrEnum):
    MANUAL = "manual"
    AUTO = "auto"


@dataclass(frozen=True)
class Identifier:
    type: str
    id: str

    @property
    def is_arxiv_doi(self) -> bool:
        return self.type == IDENTIFIER_TYPE_DOI and "arxiv" in self.id.lower()


@dataclass(frozen=True)
class LookupResult:
    count: int
    status: LookupStatus
    message: str | None = None

    @classmethod
    def success(cls, count: int) -> LookupResult:
        return cls(count=count, status=LookupStatus.SUCCESS)

    @classmethod
    def not_found(cls, message: str) -> LookupResult:
        return cls(count=0, status=LookupStatus.NOT_FOUND, message=message)

    @classmethod
    def api_error(cls, message: str) -> LookupResult:
        return cls(count=NO_COUNT, status=LookupStatus.API_ERROR, message=message)

    @classmethod
    def no_identifier(cls, message: str) -> LookupResult:
        return cls(count=NO_COUNT, status=LookupStatus.NO_IDENTIFIER, message=message)

    @classmethod
    def rate_limited(cls, message: str = "API rate limit exceeded") -> LookupResult:
        return cls(count=NO_COUNT, status=LookupStatus.RATE_LIMITED, message=message)

    @property
    def has_count(self) -> bool:
        return self.status == LookupStatus.SUCCESS and self.count >= 0


@dataclass(frozen=True)
class CountEntry:
    title: str
    count: int


@dataclass(frozen=True)
class ColumnView:
    counts: list[str]
    databases: list[str]


@dataclass
class RecordOutcome:
    record_id: int
    entries: list[CountEntry] = field(default_factory=list)
    statuses: dict[str, LookupStatus] = field(default_factory=dict)
    saved: bool = False

    @property
    def rate_limited(self) -> list[str]:
        return [database for database, status in self.statuses.items() if status == LookupStatus.RATE_LIMITED]


@dataclass(frozen=True)
class RunSummary:
    mode: RunMode
    total: int
    processed: int
    updated: int
    stop_reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self.stop_reason is not None
