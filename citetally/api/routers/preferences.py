from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from citetally.api.deps import get_orchestrator
from citetally.api.errors import ApiException
from citetally.api.responses import success_payload
from citetally.api.schemas.preferences import (
    DatabaseOrderEnvelope,
    DatabaseOrderRequest,
    PreferencesEnvelope,
    PreferencesUpdateRequest,
)
from citetally.services.citations.orchestrator import CitationOrchestrator
from citetally.services.preferences import Preferences

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/preferences", tags=["api-preferences"])


async def _serialize_preferences(preferences: Preferences) -> dict[str, object]:
    overrides = await preferences.rate_limit_overrides()
    return {
        "database_order": await preferences.database_order(),
        "rate_limits_ms": {name: round(seconds * 1000) for name, seconds in sorted(overrides.items())},
        "auto_update": await preferences.auto_update_mode(),
        "auto_update_cutoff": await preferences.cutoff_months(),
        "use_colors": await preferences.use_colors(),
    }


@router.get(
    "",
    response_model=PreferencesEnvelope,
)
async def get_preferences(
    request: Request,
    orchestrator: CitationOrchestrator = Depends(get_orchestrator),
):
    return success_payload(
        request,
        data=await _serialize_preferences(orchestrator.preferences),
    )


@router.put(
    "/database-order",
    response_model=DatabaseOrderEnvelope,
)
async def update_database_order(
    payload: DatabaseOrderRequest,
    request: Request,
    orchestrator: CitationOrchestrator = Depends(get_orchestrator),
):
    validation = await orchestrator.preferences.set_database_order(payload.value)
    if not validation.valid:
        raise ApiException(
            status_code=422,
            code="invalid_database_order",
            message=validation.message,
        )
    logger.info(
        "api.preferences.database_order_updated",
        extra={
            "event": "api.preferences.database_order_updated",
            "databases": list(validation.databases),
        },
    )
    return success_payload(
        request,
        data={
            "valid": validation.valid,
            "message": validation.message,
            "databases": list(validation.databases),
        },
    )


@router.put(
    "",
    response_model=PreferencesEnvelope,
)
async def update_preferences(
    payload: PreferencesUpdateRequest,
    request: Request,
    orchestrator: CitationOrchestrator = Depends(get_orchestrator),
):
    preferences = orchestrator.preferences
    await preferences.update(
        rate_limits_ms=payload.rate_limits_ms,
        auto_update=payload.auto_update,
        cutoff_months=payload.auto_update_cutoff,
        use_colors=payload.use_colors,
    )

    updated = await _serialize_preferences(preferences)
    logger.info(
        "api.preferences.updated",
        extra={
            "event": "api.preferences.updated",
            "auto_update": updated["auto_update"],
            "auto_update_cutoff": updated["auto_update_cutoff"],
            "rate_limits_ms": updated["rate_limits_ms"],
        },
    )
    return success_payload(request, data=updated)
