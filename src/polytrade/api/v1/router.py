"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.polytrade.api.v1 import deals, health, sync

router = APIRouter()

router.include_router(health.router)

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(deals.router)
api_router.include_router(sync.router)

router.include_router(api_router)
