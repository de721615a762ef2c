from __future__ import annotations

import httpx
import pytest

from citetally.services.citations.rate_limit import RateLimitManager
from citetally.services.citations.types import Identifier, LookupStatus
from citetally.services.lookup.base import parse_count
from citetally.services.lookup.crossref import CrossrefClient
from citetally.services.lookup.inspire import InspireClient
from citetally.services.lookup.registry import build_lookup_clients
from citetally.services.lookup.semantic_scholar import SemanticScholarClient
from citetally.settings import Settings
from tests.unit.fakes import RecordedSleep

DOI = Identifier(type="doi", id="10.1000/xyz")
ARXIV = Identifier(type="arxiv", id="2101.00001")


def _limiter() -> RateLimitManager:
    return RateLimitManager(sleep=RecordedSleep())


def _transport(handler) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_crossref_reads_referenced_by_count() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"is-referenced-by-count": 42})

    client = CrossrefClient(rate_limiter=_limiter(), mailto="ops@example.org", transport=_transport(handler))
    result = await client.lookup(DOI)

    assert result.status == LookupStatus.SUCCESS
    assert result.count == 42
    assert len(seen) == 1
    assert seen[0].url.host == "api.crossref.org"
    assert "10.1000%2Fxyz" in str(seen[0].url)
    assert "mailto:ops@example.org" in seen[0].headers["User-Agent"]


@pytest.mark.asyncio
async def test_crossref_404_is_not_found_without_fallback() -> None:
    hosts: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        return httpx.Response(404)

    result = await CrossrefClient(rate_limiter=_limiter(), transport=_transport(handler)).lookup(DOI)

    assert result.status == LookupStatus.NOT_FOUND
    assert result.count == 0
    assert hosts == ["api.crossref.org"]


@pytest.mark.asyncio
async def test_crossref_falls_back_to_doi_resolver_on_server_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.crossref.org":
            return httpx.Response(503)
        assert request.headers["Accept"] == "application/vnd.citationstyles.csl+json"
        return httpx.Response(200, json={"is-referenced-by-count": 7})

    result = await CrossrefClient(rate_limiter=_limiter(), transport=_transport(handler)).lookup(DOI)

    assert result.status == LookupStatus.SUCCESS
    assert result.count == 7


@pytest.mark.asyncio
async def test_crossref_falls_back_after_transport_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.crossref.org":
            raise httpx.ConnectError("boom", request=request)
        return httpx.Response(404)

    result = await CrossrefClient(rate_limiter=_limiter(), transport=_transport(handler)).lookup(DOI)

    assert result.status == LookupStatus.NOT_FOUND


@pytest.mark.asyncio
async def test_crossref_fallback_without_json_is_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.crossref.org":
            return httpx.Response(500)
        return httpx.Response(200, text="<html></html>")

    result = await CrossrefClient(rate_limiter=_limiter(), transport=_transport(handler)).lookup(DOI)

    assert result.status == LookupStatus.API_ERROR
    assert result.count == -1


@pytest.mark.asyncio
async def test_crossref_rejects_arxiv_identifier_without_network() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    result = await CrossrefClient(rate_limiter=_limiter(), transport=_transport(handler)).lookup(ARXIV)

    assert result.status == LookupStatus.NO_IDENTIFIER


@pytest.mark.asyncio
async def test_rate_limited_response_raises_multiplier() -> None:
    limiter = _limiter()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429)

    result = await InspireClient(rate_limiter=limiter, transport=_transport(handler)).lookup(DOI)

    assert result.status == LookupStatus.RATE_LIMITED
    assert limiter.multiplier("inspire") == pytest.approx(1.5)


@pytest.mark.asyncio
async def test_inspire_uses_arxiv_endpoint_and_metadata_count() -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={"metadata": {"citation_count": 13}})

    result = await InspireClient(rate_limiter=_limiter(), transport=_transport(handler)).lookup(ARXIV)

    assert result.count == 13
    assert paths == ["/api/arxiv/2101.00001"]


@pytest.mark.asyncio
async def test_sici_doi_is_percent_encoded_in_request_path() -> None:
    sici = Identifier(type="doi", id="10.1002/(sici)1097-0258;2-#")
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.host == "inspirehep.net":
            return httpx.Response(200, json={"metadata": {"citation_count": 4}})
        return httpx.Response(200, json={"citationCount": 5})

    inspire = await InspireClient(rate_limiter=_limiter(), transport=_transport(handler)).lookup(sici)
    semantic = await SemanticScholarClient(rate_limiter=_limiter(), transport=_transport(handler)).lookup(sici)

    assert inspire.count == 4
    assert semantic.count == 5
    assert seen[0].url.path == "/api/dois/10.1002/(sici)1097-0258;2-#"
    assert seen[1].url.path.endswith("/paper/DOI:10.1002/(sici)1097-0258;2-#")
    assert b"%23" in seen[0].url.raw_path
    assert b"%23" in seen[1].url.raw_path
    assert all(request.url.fragment == "" for request in seen)


@pytest.mark.asyncio
async def test_inspire_without_metadata_is_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"hits": {}})

    result = await InspireClient(rate_limiter=_limiter(), transport=_transport(handler)).lookup(DOI)

    assert result.status == LookupStatus.NOT_FOUND


@pytest.mark.asyncio
async def test_semantic_scholar_sends_prefixed_id_and_api_key() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"citationCount": 99})

    client = SemanticScholarClient(rate_limiter=_limiter(), api_key="secret", transport=_transport(handler))
    result = await client.lookup(ARXIV)

    assert result.count == 99
    assert seen[0].url.path.endswith("/paper/arXiv:2101.00001")
    assert seen[0].url.params["fields"] == "citationCount"
    assert seen[0].headers["x-api-key"] == "secret"


@pytest.mark.asyncio
async def test_invalid_count_is_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"citationCount": "lots"})

    result = await SemanticScholarClient(rate_limiter=_limiter(), transport=_transport(handler)).lookup(DOI)

    assert result.status == LookupStatus.API_ERROR


@pytest.mark.asyncio
async def test_success_relaxes_multiplier() -> None:
    limiter = _limiter()
    limiter.on_rate_limited("semanticscholar")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"citationCount": 1})

    await SemanticScholarClient(rate_limiter=limiter, transport=_transport(handler)).lookup(DOI)

    assert limiter.multiplier("semanticscholar") == pytest.approx(1.35)


@pytest.mark.asyncio
async def test_transport_failure_is_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    result = await InspireClient(rate_limiter=_limiter(), transport=_transport(handler)).lookup(DOI)

    assert result.status == LookupStatus.API_ERROR


def test_parse_count_accepts_only_non_negative_integers() -> None:
    assert parse_count(5) == 5
    assert parse_count(5.0) == 5
    assert parse_count(" 12 ") == 12
    assert parse_count(-1) is None
    assert parse_count(True) is None
    assert parse_count(1.5) is None
    assert parse_count("abc") is None


def test_registry_builds_one_client_per_database() -> None:
    clients = build_lookup_clients(rate_limiter=_limiter(), app_settings=Settings())

    assert sorted(clients) == ["crossref", "inspire", "semanticscholar"]
    assert clients["inspire"].display_name == "INSPIRE"
