from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from citetally.logging_utils import structured_log
from citetally.services.citations.databases import DATABASE_CROSSREF
from citetally.services.citations.types import IDENTIFIER_TYPE_DOI, Identifier, LookupResult
from citetally.services.lookup.base import CitationLookupClient, decode_json

CROSSREF_API_URL = "https://api.crossref.org/works"
DOI_RESOLVER_URL = "https://doi.org"
CSL_JSON_STYLE = "vnd.citationstyles.csl+json"
COUNT_FIELD = "is-referenced-by-count"

logger = logging.getLogger(__name__)


class CrossrefClient(CitationLookupClient):
    """Crossref ``is-referenced-by-count``, with doi.org content negotiation as fallback.

    The fallback runs only when the Crossref API gave nothing parseable (a
    transport failure, a 5xx, or a non-JSON body).
    """

    database = DATABASE_CROSSREF
    identifier_types = frozenset({IDENTIFIER_TYPE_DOI})

    async def _lookup(self, identifier: Identifier) -> LookupResult:
        encoded = quote(identifier.id, safe="")
        async with self._client() as client:
            primary = await self._fetch_primary(client, encoded)
            if primary is not None:
                classified = self._classify_status(primary)
                if classified is not None:
                    return classified
                payload = decode_json(primary)
                if payload is not None:
                    return self._from_payload(payload)

            structured_log(logger, "info", "crossref.fallback_to_doi_resolver", identifier=identifier.id)
            fallback = await client.get(
                f"{DOI_RESOLVER_URL}/{encoded}",
                headers={"Accept": f"application/{CSL_JSON_STYLE}"},
            )
            classified = self._classify_status(fallback)
            if classified is not None:
                return classified
            payload = decode_json(fallback)
            if payload is None:
                return LookupResult.api_error("API requests failed")
            return self._from_payload(payload)

    async def _fetch_primary(self, client: httpx.AsyncClient, encoded_doi: str) -> httpx.Response | None:
        url = f"{CROSSREF_API_URL}/{encoded_doi}/transform/application/{CSL_JSON_STYLE}"
        try:
            return await client.get(url)
        except httpx.HTTPError as exc:
            structured_log(logger, "warning", "crossref.primary_failed", error=type(exc).__name__)
            return None

    def _from_payload(self, payload: object) -> LookupResult:
        if not isinstance(payload, dict):
            return LookupResult.api_error("Invalid response format")
        return self._count_result(payload.get(COUNT_FIELD))
