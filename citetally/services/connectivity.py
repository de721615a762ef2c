from __future__ import annotations

import logging

import httpx

from citetally.logging_utils import structured_log

logger = logging.getLogger(__name__)


class HttpHostEnvironment:
    """Host liveness plus a network probe against a well-known endpoint.

    Any HTTP response counts as online; only transport failures count as offline.
    """

    def __init__(
        self,
        *,
        check_url: str,
        timeout_seconds: float = 3.0,
        enabled: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._check_url = check_url
        self._timeout_seconds = timeout_seconds
        self._enabled = enabled
        self._transport = transport
        self._available = True

    def is_available(self) -> bool:
        return self._available

    def mark_unavailable(self) -> None:
        self._available = False

    async def is_online(self) -> bool:
        if not self._enabled:
            return True
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=self._transport,
            ) as client:
                await client.head(self._check_url)
        except httpx.HTTPError as exc:
            structured_log(
                logger,
                "warning",
                "connectivity.probe_failed",
                url=self._check_url,
                error=type(exc).__name__,
            )
            return False
        return True
