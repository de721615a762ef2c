from __future__ import annotations

from urllib.parse import quote

from citetally.services.citations.databases import DATABASE_INSPIRE
from citetally.services.citations.types import IDENTIFIER_TYPE_ARXIV, IDENTIFIER_TYPE_DOI, Identifier, LookupResult
from citetally.services.lookup.base import CitationLookupClient, decode_json

INSPIRE_API_URL = "https://inspirehep.net/api"
_PATH_BY_IDENTIFIER_TYPE = {
    IDENTIFIER_TYPE_DOI: "dois",
    IDENTIFIER_TYPE_ARXIV: "arxiv",
}


class InspireClient(CitationLookupClient):
    database = DATABASE_INSPIRE
    identifier_types = frozenset(_PATH_BY_IDENTIFIER_TYPE)

    async def _lookup(self, identifier: Identifier) -> LookupResult:
        path = _PATH_BY_IDENTIFIER_TYPE[identifier.type]
        url = f"{INSPIRE_API_URL}/{path}/{quote(identifier.id, safe='/')}"
        async with self._client(headers={"Accept": "application/json"}) as client:
            response = await client.get(url)
        classified = self._classify_status(response)
        if classified is not None:
            return classified
        payload = decode_json(response)
        if payload is None:
            return LookupResult.api_error(f"API request failed ({response.status_code})")
        if not isinstance(payload, dict):
            return LookupResult.api_error("Invalid response format")
        metadata = payload.get("metadata")
        if not isinstance(metadata, dict):
            return LookupResult.not_found("No citation count field")
        return self._count_result(metadata.get("citation_count"))
