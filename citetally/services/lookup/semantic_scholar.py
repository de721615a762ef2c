from __future__ import annotations

from urllib.parse import quote

import httpx

from citetally.services.citations.databases import DATABASE_SEMANTICSCHOLAR
from citetally.services.citations.rate_limit import RateLimitManager
from citetally.services.citations.types import IDENTIFIER_TYPE_ARXIV, IDENTIFIER_TYPE_DOI, Identifier, LookupResult
from citetally.services.lookup.base import DEFAULT_TIMEOUT_SECONDS, CitationLookupClient, decode_json

SEMANTIC_SCHOLAR_API_URL = "https://api.semanticscholar.org/graph/v1/paper"
_PREFIX_BY_IDENTIFIER_TYPE = {
    IDENTIFIER_TYPE_DOI: "DOI:",
    IDENTIFIER_TYPE_ARXIV: "arXiv:",
}


class SemanticScholarClient(CitationLookupClient):
    database = DATABASE_SEMANTICSCHOLAR
    identifier_types = frozenset(_PREFIX_BY_IDENTIFIER_TYPE)

    def __init__(
        self,
        *,
        rate_limiter: RateLimitManager,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        mailto: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            rate_limiter=rate_limiter,
            timeout_seconds=timeout_seconds,
            mailto=mailto,
            transport=transport,
        )
        self._api_key = api_key

    async def _lookup(self, identifier: Identifier) -> LookupResult:
        paper_id = f"{_PREFIX_BY_IDENTIFIER_TYPE[identifier.type]}{quote(identifier.id, safe='/')}"
        headers = {"x-api-key": self._api_key} if self._api_key else None
        async with self._client(headers=headers) as client:
            response = await client.get(
                f"{SEMANTIC_SCHOLAR_API_URL}/{paper_id}",
                params={"fields": "citationCount"},
            )
        classified = self._classify_status(response)
        if classified is not None:
            return classified
        payload = decode_json(response)
        if payload is None:
            return LookupResult.api_error(f"API request failed ({response.status_code})")
        if not isinstance(payload, dict):
            return LookupResult.api_error("Invalid response format")
        return self._count_result(payload.get("citationCount"))
