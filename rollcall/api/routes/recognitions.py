from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from rollcall.api.deps import get_service
from rollcall.core.exceptions import StoreError, ValidationError
from rollcall.schemas.recognition import RecognitionRequest, RecognitionResponse
from rollcall.services.attendance import AttendanceService

router = APIRouter(prefix="/recognitions", tags=["recognitions"])


@router.post("", response_model=RecognitionResponse)
async def recognize(payload: RecognitionRequest, service: AttendanceService = Depends(get_service)):
    try:
        outcome = await service.recognize_and_record(
            payload.descriptor,
            image_reference=payload.image_reference,
            at=payload.timestamp,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return RecognitionResponse.from_outcome(outcome)
