from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text

from app.core.settings import settings
from app.db.session import engine
from app.utils.redis_client import get_redis_client

APP_VERSION = "0.1.0"

# Tables every opportunity write and history read depends on.
REQUIRED_TABLES = ("users", "opportunities", "opportunity_details", "audit_logs")


async def _check_db() -> dict[str, Any]:
    try:
        async with engine.connect() as conn:
            rows = await conn.execute(
                text("SELECT name FROM unnest(CAST(:names AS text[])) AS name WHERE to_regclass(name) IS NULL"),
                {"names": list(REQUIRED_TABLES)},
            )
            missing = sorted(row[0] for row in rows)
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc)}
    if missing:
        return {"status": "error", "error": "schema not migrated", "missing_tables": missing}
    return {"status": "ok"}


async def _check_redis() -> dict[str, str]:
    # Redis only backs the rate limiter; an outage degrades readiness but not writes.
    try:
        await get_redis_client().ping()
        return {"status": "ok"}
    except Exception as exc:
        return {"status": "error", "error": str(exc)}


async def live_payload() -> dict[str, str]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def ready_payload() -> dict[str, Any]:
    checks = {
        "database": await _check_db(),
        "redis": await _check_redis(),
    }
    ready = all(check.get("status") == "ok" for check in checks.values())
    return {
        "status": "ok" if ready else "degraded",
        "ready": ready,
        "environment": settings.environment,
        "version": APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
