from __future__ import annotations

import re
from urllib.parse import unquote

from citetally.services.citations.types import IDENTIFIER_TYPE_ARXIV, IDENTIFIER_TYPE_DOI, Identifier
from citetally.services.host import FIELD_DOI, FIELD_EXTRA, RecordHandle

DOI_RE = re.compile(r"10\.\d{1,9}/\S+", re.I)
ARXIV_EXTRA_RE = re.compile(r"arXiv:\s*([\w.-]+/\d+|\d+\.\d+)", re.I)


def normalize_doi(value: str | None) -> str | None:
    if not value:
        return None
    match = DOI_RE.search(unquote(value))
    if not match:
        return None
    return match.group(0).rstrip(" .;,)").lower()


def arxiv_id_from_extra(extra: str | None) -> str | None:
    if not extra:
        return None
    match = ARXIV_EXTRA_RE.search(extra)
    if not match:
        return None
    return match.group(1)


def identifier_from_values(*, doi: str | None, extra: str | None) -> Identifier | None:
    normalized_doi = normalize_doi(doi)
    if normalized_doi:
        return Identifier(type=IDENTIFIER_TYPE_DOI, id=normalized_doi)
    arxiv_id = arxiv_id_from_extra(extra)
    if arxiv_id:
        return Identifier(type=IDENTIFIER_TYPE_ARXIV, id=arxiv_id)
    return None


def identifier_for_record(record: RecordHandle) -> Identifier | None:
    return identifier_from_values(
        doi=record.get_field(FIELD_DOI),
        extra=record.get_field(FIELD_EXTRA),
    )
