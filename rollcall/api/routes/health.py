from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

from rollcall.core.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict:
    settings = get_settings()
    return {
        "ok": True,
        "service": "rollcall",
        "threshold": settings.match_threshold,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
