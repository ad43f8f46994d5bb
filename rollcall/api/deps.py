from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from rollcall.core.config import get_settings
from rollcall.db.base import Base
from rollcall.db.session import build_engine, build_sessionmaker
from rollcall.services.attendance import AttendanceService
from rollcall.services.store import AttendanceStore, SqlAttendanceStore
from rollcall.ws.manager import EventFeed, event_feed


@lru_cache(maxsize=1)
def get_store() -> AttendanceStore:
    settings = get_settings()
    engine = build_engine(settings.database_url)
    Base.metadata.create_all(bind=engine)
    return SqlAttendanceStore(
        build_sessionmaker(engine),
        normalize_unauthorized=settings.normalize_unauthorized_status,
    )


def get_feed() -> EventFeed:
    return event_feed


def get_service(
    store: AttendanceStore = Depends(get_store),
    feed: EventFeed = Depends(get_feed),
) -> AttendanceService:
    return AttendanceService.from_settings(store, feed)
