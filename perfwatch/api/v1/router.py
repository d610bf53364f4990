"""API v1 router - includes all v1 endpoints."""

from fastapi import APIRouter

from perfwatch.api.v1.endpoints import admin_perf, admin_perf_settings, health

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(health.router, prefix="", tags=["Health"])
api_router.include_router(admin_perf_settings.router)
api_router.include_router(admin_perf.router)
