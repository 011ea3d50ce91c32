import os
from datetime import datetime, timezone

from fastapi import APIRouter, Response
from sqlalchemy import text

from content_approval.core.config import get_settings
from content_approval.core.locks import item_locks
from content_approval.db.session import engine

router = APIRouter(tags=["health"])

SERVICE = "content-approval-backend"


def _release() -> str | None:
    return os.getenv("GIT_SHA") or None


@router.get("/health")
@router.get("/healthz")
def health() -> dict:
    settings = get_settings()
    return {
        "status": "ok",
        "service": SERVICE,
        "environment": settings.environment,
        "release": _release(),
        "time": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/readyz")
def readyz(response: Response) -> dict:
    """
    Readiness check: verifies DB connectivity and that the Alembic version table exists.
    Returns 503 when not ready.
    """
    settings = get_settings()
    checks: dict[str, object] = {}
    ok = True

    try:
        with engine.connect() as conn:
            conn.execute(text("select 1"))
        checks["db"] = "ok"
    except Exception as e:
        ok = False
        checks["db"] = "error"
        checks["db_error"] = str(e)[:250]

    try:
        with engine.connect() as conn:
            v = conn.execute(text("select version_num from alembic_version limit 1")).scalar()
        checks["alembic_version"] = v or None
        if settings.environment == "production" and not v:
            ok = False
    except Exception as e:
        checks["alembic_version"] = None
        checks["alembic_error"] = str(e)[:250]
        if settings.environment == "production":
            ok = False

    # Items currently being mutated by this process
    checks["locked_items"] = item_locks.active_keys()

    if not ok:
        response.status_code = 503
    return {
        "status": "ok" if ok else "not_ready",
        "service": SERVICE,
        "environment": settings.environment,
        "release": _release(),
        "checks": checks,
        "time": datetime.now(timezone.utc).isoformat(),
    }
