from __future__ import annotations

from fastapi import APIRouter

from citetally.api.routers import citations, preferences, records

router = APIRouter(prefix="/api/v1")
router.include_router(citations.router)
router.include_router(records.router)
router.include_router(preferences.router)
