from __future__ import annotations

from fastapi import Request

from citetally.api.errors import ApiException
from citetally.services.citations.orchestrator import CitationOrchestrator


def get_orchestrator(request: Request) -> CitationOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise ApiException(
            status_code=503,
            code="orchestrator_unavailable",
            message="Citation updates are disabled.",
        )
    return orchestrator
