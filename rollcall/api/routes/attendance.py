from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status

from rollcall.api.deps import get_service, get_store
from rollcall.core.config import get_settings
from rollcall.core.exceptions import StoreError, ValidationError
from rollcall.schemas.attendance import ActivityResponse, AttendanceCreate, AttendanceResponse
from rollcall.services.attendance import AttendanceService
from rollcall.services.store import AttendanceStore

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.get("", response_model=list[AttendanceResponse])
def list_attendance(
    identity_id: uuid.UUID,
    start: datetime | None = None,
    end: datetime | None = None,
    descending: bool = False,
    limit: int | None = None,
    store: AttendanceStore = Depends(get_store),
):
    try:
        rows = store.query_records(identity_id, start=start, end=end, descending=descending, limit=limit)
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [AttendanceResponse.from_record(row) for row in rows]


@router.get("/recent", response_model=list[ActivityResponse])
async def recent_activity(limit: int | None = None, service: AttendanceService = Depends(get_service)):
    try:
        entries = await service.recent_activity(limit or get_settings().recent_activity_limit)
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [ActivityResponse.from_entry(entry) for entry in entries]


@router.post("", response_model=AttendanceResponse, status_code=status.HTTP_201_CREATED)
async def record_attendance(payload: AttendanceCreate, service: AttendanceService = Depends(get_service)):
    try:
        record = await service.record_attendance(
            payload.identity_id,
            payload.status,
            payload.confidence,
            payload.device_info,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return AttendanceResponse.from_record(record)
