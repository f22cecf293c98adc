from fastapi import APIRouter

from autotrack.api.v1 import analytics, health, tracking

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(tracking.router, prefix="/track", tags=["tracking"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["analytics"])
