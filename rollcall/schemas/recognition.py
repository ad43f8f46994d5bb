from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from rollcall.core.types import RecognitionOutcome
from rollcall.schemas.attendance import AttendanceResponse
from rollcall.schemas.identity import IdentityResponse


class RecognitionRequest(BaseModel):
    descriptor: list[float] = Field(min_length=1)
    image_reference: str | None = None
    timestamp: datetime | None = None


class RecognitionResponse(BaseModel):
    recognized: bool
    confidence: float | None = None
    distance: float | None = None
    identity: IdentityResponse | None = None
    record: AttendanceResponse

    @classmethod
    def from_outcome(cls, outcome: RecognitionOutcome) -> RecognitionResponse:
        match = outcome.match
        return cls(
            recognized=match.recognized,
            confidence=match.confidence,
            distance=match.distance,
            identity=IdentityResponse.from_identity(match.identity) if match.identity else None,
            record=AttendanceResponse.from_record(outcome.record),
        )
