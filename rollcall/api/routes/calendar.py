from __future__ import annotations

import asyncio
import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status

from rollcall.api.deps import get_feed, get_store
from rollcall.core.exceptions import FetchFailure, StoreError
from rollcall.schemas.calendar import CalendarResponse
from rollcall.services.reconciler import AttendanceReconciler, ThreadedHistory
from rollcall.services.store import AttendanceStore
from rollcall.ws.manager import EventFeed

router = APIRouter(prefix="/calendar", tags=["calendar"])


@router.get("/{identity_id}", response_model=CalendarResponse)
async def attendance_calendar(
    identity_id: uuid.UUID,
    year: int | None = Query(default=None, ge=1970, le=9999),
    month: int | None = Query(default=None, ge=1, le=12),
    selected_date: date | None = None,
    store: AttendanceStore = Depends(get_store),
    feed: EventFeed = Depends(get_feed),
):
    try:
        identity = await asyncio.to_thread(store.get_identity, identity_id)
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if identity is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown identity '{identity_id}'.")

    async with AttendanceReconciler.from_settings(ThreadedHistory(store), feed) as reconciler:
        try:
            await reconciler.select_identity(identity_id, year=year, month=month)
            if selected_date is not None:
                await reconciler.select_date(selected_date)
        except FetchFailure as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
        return CalendarResponse.from_state(reconciler.calendar)
