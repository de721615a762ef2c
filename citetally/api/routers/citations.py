from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from citetally.api.deps import get_orchestrator
from citetally.api.errors import ApiException
from citetally.api.responses import success_payload
from citetally.api.schemas.citations import (
    LatestRunEnvelope,
    RetallyEnvelope,
    UpdateRequest,
    UpdateResultEnvelope,
)
from citetally.services.citations.databases import validate_database_order
from citetally.services.citations.orchestrator import CitationOrchestrator
from citetally.services.citations.types import RunSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/citations", tags=["api-citations"])


def serialize_summary(summary: RunSummary | None) -> dict[str, object] | None:
    if summary is None:
        return None
    return {
        "mode": summary.mode.value,
        "total": summary.total,
        "processed": summary.processed,
        "updated": summary.updated,
        "stop_reason": summary.stop_reason,
        "aborted": summary.aborted,
    }


@router.post(
    "/update",
    response_model=UpdateResultEnvelope,
)
async def update_citations(
    payload: UpdateRequest,
    request: Request,
    orchestrator: CitationOrchestrator = Depends(get_orchestrator),
):
    databases: list[str] | None = None
    if payload.databases is not None:
        validation = validate_database_order(",".join(payload.databases))
        if not validation.valid:
            raise ApiException(
                status_code=422,
                code="invalid_databases",
                message=validation.message,
            )
        databases = list(validation.databases)
    summary = await orchestrator.trigger_manual(
        payload.record_ids,
        databases=databases,
        silent=payload.silent,
    )
    progress = orchestrator.latest_progress
    logger.info(
        "api.citations.update_completed",
        extra={
            "event": "api.citations.update_completed",
            "record_count": len(payload.record_ids),
            "updated": summary.updated if summary else 0,
        },
    )
    return success_payload(
        request,
        data={
            "summary": serialize_summary(summary),
            "notices": list(progress.notices) if progress is not None else [],
        },
    )


@router.post(
    "/retally",
    response_model=RetallyEnvelope,
    status_code=202,
)
async def retally_outdated(
    request: Request,
    orchestrator: CitationOrchestrator = Depends(get_orchestrator),
):
    orchestrator.trigger_retally()
    logger.info("api.citations.retally_started", extra={"event": "api.citations.retally_started"})
    return success_payload(request, data={"accepted": True})


@router.get(
    "/runs/latest",
    response_model=LatestRunEnvelope,
)
async def latest_run(
    request: Request,
    orchestrator: CitationOrchestrator = Depends(get_orchestrator),
):
    progress = orchestrator.latest_progress
    return success_payload(
        request,
        data={
            "auto_update_in_progress": orchestrator.auto_update_in_progress,
            "summary": serialize_summary(orchestrator.latest_summary),
            "notices": list(progress.notices) if progress is not None else [],
        },
    )
