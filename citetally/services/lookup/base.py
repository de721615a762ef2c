from __future__ import annotations

import logging
import math

import httpx

from citetally.logging_utils import structured_log
from citetally.services.citations.databases import display_name
from citetally.services.citations.rate_limit import RateLimitManager
from citetally.services.citations.types import Identifier, LookupResult

DEFAULT_TIMEOUT_SECONDS = 10.0
_FALLBACK_CONTACT_EMAIL = "unknown@example.com"

logger = logging.getLogger(__name__)


class CitationLookupClient:
    """Resolve one identifier against one citation database.

    Subclasses implement ``_lookup`` and use the shared classification helpers
    so every source reports 404, 429, missing counts and transport failures the
    same way.
    """

    database: str = ""
    identifier_types: frozenset[str] = frozenset()

    def __init__(
        self,
        *,
        rate_limiter: RateLimitManager,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        mailto: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._timeout_seconds = max(float(timeout_seconds), 0.5)
        self._mailto = mailto or _FALLBACK_CONTACT_EMAIL
        self._transport = transport

    @property
    def display_name(self) -> str:
        return display_name(self.database)

    async def lookup(self, identifier: Identifier | None) -> LookupResult:
        if identifier is None or identifier.type not in self.identifier_types:
            return LookupResult.no_identifier(f"No identifier usable by {self.display_name}")

        await self._rate_limiter.await_slot(self.database)
        try:
            result = await self._lookup(identifier)
        except httpx.HTTPError as exc:
            structured_log(
                logger,
                "warning",
                "lookup.transport_failed",
                database=self.database,
                identifier=identifier.id,
                error=type(exc).__name__,
            )
            return LookupResult.api_error(str(exc) or type(exc).__name__)

        structured_log(
            logger,
            "debug",
            "lookup.completed",
            database=self.database,
            identifier=identifier.id,
            status=result.status.value,
            count=result.count,
        )
        return result

    async def _lookup(self, identifier: Identifier) -> LookupResult:
        raise NotImplementedError

    def _client(self, headers: dict[str, str] | None = None) -> httpx.AsyncClient:
        merged = {"User-Agent": f"citetally/1.0 (mailto:{self._mailto})"}
        merged.update(headers or {})
        return httpx.AsyncClient(
            timeout=self._timeout_seconds,
            follow_redirects=True,
            headers=merged,
            transport=self._transport,
        )

    def _classify_status(self, response: httpx.Response) -> LookupResult | None:
        if response.status_code == 404:
            return LookupResult.not_found(f"Not found in {self.display_name}")
        if response.status_code == 429:
            self._rate_limiter.on_rate_limited(self.database)
            return LookupResult.rate_limited()
        return None

    def _count_result(self, value: object) -> LookupResult:
        if value is None:
            return LookupResult.not_found("No citation count field in response")
        count = parse_count(value)
        if count is None:
            return LookupResult.api_error("Invalid response format")
        self._rate_limiter.on_success(self.database)
        return LookupResult.success(count)


def decode_json(response: httpx.Response) -> object | None:
    if response.status_code >= 400:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def parse_count(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer() and value >= 0:
            return int(value)
        return None
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit():
            return int(stripped)
    return None
