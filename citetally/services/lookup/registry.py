from __future__ import annotations

import httpx

from citetally.services.citations.rate_limit import RateLimitManager
from citetally.services.lookup.base import CitationLookupClient
from citetally.services.lookup.crossref import CrossrefClient
from citetally.services.lookup.inspire import InspireClient
from citetally.services.lookup.semantic_scholar import SemanticScholarClient
from citetally.settings import Settings


def build_lookup_clients(
    *,
    rate_limiter: RateLimitManager,
    app_settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, CitationLookupClient]:
    common = {
        "rate_limiter": rate_limiter,
        "timeout_seconds": app_settings.lookup_timeout_seconds,
        "mailto": app_settings.lookup_mailto or None,
        "transport": transport,
    }
    clients: list[CitationLookupClient] = [
        CrossrefClient(**common),
        InspireClient(**common),
        SemanticScholarClient(api_key=app_settings.semanticscholar_api_key, **common),
    ]
    return {client.database: client for client in clients}
