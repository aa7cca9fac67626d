"""
API v1 router that includes all endpoint routers.
"""

from fastapi import APIRouter

from authbridge.api.v1.endpoints import auth, webhooks

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
