from fastapi import APIRouter

from app.core.limiter import limiter
from app.core.health import live_payload, ready_payload

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live", summary="Service liveness check")
@limiter.exempt
async def health_live() -> dict:
    return await live_payload()


@router.get("/ready", summary="Database and Redis readiness check")
@limiter.exempt
async def health_ready() -> dict:
    return await ready_payload()
