from fastapi import APIRouter

from app.api.v1.routers import health, opportunities_admin, opportunities_referrer

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(opportunities_admin.router)
api_router.include_router(opportunities_referrer.router)

__all__ = ["api_router"]
