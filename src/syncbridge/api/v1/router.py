"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.syncbridge.api.v1 import crm, health, sync

router = APIRouter()

router.include_router(health.router)
router.include_router(sync.router)
router.include_router(crm.router)
