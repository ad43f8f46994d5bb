from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from rollcall.api.deps import get_service, get_store
from rollcall.core.exceptions import StoreError, ValidationError
from rollcall.schemas.identity import IdentityCreate, IdentityResponse
from rollcall.services.attendance import AttendanceService
from rollcall.services.store import AttendanceStore

router = APIRouter(prefix="/identities", tags=["identities"])


@router.get("", response_model=list[IdentityResponse])
def list_identities(store: AttendanceStore = Depends(get_store)):
    try:
        rows = store.list_enrolled()
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [IdentityResponse.from_identity(row) for row in rows]


@router.get("/{identity_id}", response_model=IdentityResponse)
def get_identity(identity_id: uuid.UUID, store: AttendanceStore = Depends(get_store)):
    try:
        row = store.get_identity(identity_id)
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown identity '{identity_id}'.")
    return IdentityResponse.from_identity(row)


@router.post("", response_model=IdentityResponse, status_code=status.HTTP_201_CREATED)
async def register_identity(payload: IdentityCreate, service: AttendanceService = Depends(get_service)):
    try:
        identity, _record = await service.register_face(
            name=payload.name,
            employee_id=payload.employee_id,
            department=payload.department,
            position=payload.position,
            image_reference=payload.image_reference,
            descriptor=payload.descriptor,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return IdentityResponse.from_identity(identity)
