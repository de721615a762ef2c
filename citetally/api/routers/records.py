from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from citetally.api.deps import get_orchestrator
from citetally.api.errors import ApiException
from citetally.api.responses import success_payload
from citetally.api.routers.citations import serialize_summary
from citetally.api.schemas.citations import (
    RecordCitationsEnvelope,
    RecordEventEnvelope,
    RecordEventRequest,
)
from citetally.services.citations.codec import MISSING_COUNT, decode_column_view
from citetally.services.citations.databases import display_name, get_database
from citetally.services.citations.identifiers import identifier_for_record
from citetally.services.citations.orchestrator import CitationOrchestrator
from citetally.services.host import FIELD_EXTRA

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/records", tags=["api-records"])


@router.get(
    "/{record_id}/citations",
    response_model=RecordCitationsEnvelope,
)
async def record_citations(
    record_id: int,
    request: Request,
    orchestrator: CitationOrchestrator = Depends(get_orchestrator),
):
    record = await orchestrator.record_store.get_record(record_id)
    if record is None or record.deleted:
        raise ApiException(
            status_code=404,
            code="record_not_found",
            message="Record not found.",
        )
    databases = await orchestrator.preferences.database_order()
    use_colors = await orchestrator.preferences.use_colors()
    view = decode_column_view(record.get_field(FIELD_EXTRA), databases)
    counts = view.counts if view is not None else [MISSING_COUNT] * len(databases)
    columns = []
    for database, count in zip(databases, counts):
        known = get_database(database)
        columns.append(
            {
                "database": database,
                "display_name": display_name(database),
                "count": count,
                "color": known.color if known is not None and use_colors else "",
            }
        )
    identifier = identifier_for_record(record)
    return success_payload(
        request,
        data={
            "record_id": record.id,
            "identifier": f"{identifier.type}:{identifier.id}" if identifier else None,
            "columns": columns,
        },
    )


@router.post(
    "/events",
    response_model=RecordEventEnvelope,
)
async def record_events(
    payload: RecordEventRequest,
    request: Request,
    orchestrator: CitationOrchestrator = Depends(get_orchestrator),
):
    handled = await orchestrator.notifier.notify(payload.event, payload.type, payload.ids)
    summary = orchestrator.latest_summary if handled else None
    logger.info(
        "api.records.event_received",
        extra={
            "event": "api.records.event_received",
            "change": payload.event,
            "item_type": payload.type,
            "handled": handled,
        },
    )
    return success_payload(
        request,
        data={
            "handled": handled,
            "summary": serialize_summary(summary),
        },
    )
