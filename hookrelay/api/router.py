"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter

from hookrelay.api.admin import router as admin_router
from hookrelay.api.health import router as health_router
from hookrelay.api.webhooks import router as webhooks_router

api_router = APIRouter()
api_router.include_router(webhooks_router)
api_router.include_router(admin_router)
api_router.include_router(health_router)
