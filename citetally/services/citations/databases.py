from __future__ import annotations

from dataclasses import dataclass

from citetally.services.citations.types import IDENTIFIER_TYPE_ARXIV, IDENTIFIER_TYPE_DOI

DATABASE_CROSSREF = "crossref"
DATABASE_INSPIRE = "inspire"
DATABASE_SEMANTICSCHOLAR = "semanticscholar"

DEFAULT_DATABASE_ORDER = DATABASE_CROSSREF
MAX_CONFIGURED_DATABASES = 3
FALLBACK_INTERVAL_SECONDS = 1.0

MESSAGE_VALID = "Valid database configuration"
MESSAGE_DUPLICATE = "Duplicate databases found"
MESSAGE_INVALID = "Invalid database(s): {names}"
MESSAGE_COUNT = "Please enter 1-3 databases"


@dataclass(frozen=True)
class CitationDatabase:
    name: str
    display_name: str
    identifier_types: frozenset[str]
    default_interval_seconds: float
    color: str
    # Registered-publisher DOIs only; arXiv-minted DOIs have no record there.
    accepts_arxiv_doi: bool = True

    def supports(self, identifier_type: str) -> bool:
        return identifier_type in self.identifier_types


DATABASES: dict[str, CitationDatabase] = {
    DATABASE_CROSSREF: CitationDatabase(
        name=DATABASE_CROSSREF,
        display_name="Crossref",
        identifier_types=frozenset({IDENTIFIER_TYPE_DOI}),
        default_interval_seconds=1.0,
        color="#1a73e8",
        accepts_arxiv_doi=False,
    ),
    DATABASE_INSPIRE: CitationDatabase(
        name=DATABASE_INSPIRE,
        display_name="INSPIRE",
        identifier_types=frozenset({IDENTIFIER_TYPE_DOI, IDENTIFIER_TYPE_ARXIV}),
        default_interval_seconds=1.0,
        color="#0f9d58",
    ),
    DATABASE_SEMANTICSCHOLAR: CitationDatabase(
        name=DATABASE_SEMANTICSCHOLAR,
        display_name="Semantic Scholar",
        identifier_types=frozenset({IDENTIFIER_TYPE_DOI, IDENTIFIER_TYPE_ARXIV}),
        default_interval_seconds=3.0,
        color="#ea4335",
    ),
}


@dataclass(frozen=True)
class DatabaseOrderValidation:
    valid: bool
    message: str
    databases: tuple[str, ...] = ()


def get_database(name: str) -> CitationDatabase | None:
    return DATABASES.get(name)


def display_name(name: str) -> str:
    database = DATABASES.get(name)
    if database is None:
        return name
    return database.display_name


def split_database_order(raw: str | None) -> list[str]:
    return [value.strip() for value in (raw or "").split(",") if value.strip()]


def validate_database_order(value: str) -> DatabaseOrderValidation:
    names = split_database_order(value.strip().lower())
    if len(set(names)) != len(names):
        return DatabaseOrderValidation(valid=False, message=MESSAGE_DUPLICATE)
    unknown = [name for name in names if name not in DATABASES]
    if unknown:
        return DatabaseOrderValidation(
            valid=False,
            message=MESSAGE_INVALID.format(names=", ".join(unknown)),
        )
    if not names or len(names) > MAX_CONFIGURED_DATABASES:
        return DatabaseOrderValidation(valid=False, message=MESSAGE_COUNT)
    return DatabaseOrderValidation(valid=True, message=MESSAGE_VALID, databases=tuple(names))
