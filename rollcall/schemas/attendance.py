from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from rollcall.core.types import (
    ActivityEntry,
    AttendanceRecord,
    AttendanceStatus,
    DeviceInfo,
    as_aware,
    normalize_status,
)


class AttendanceResponse(BaseModel):
    id: uuid.UUID
    identity_id: uuid.UUID | None
    timestamp: datetime
    status: AttendanceStatus | None
    stored_status: str
    confidence: float | None = None
    device_info: DeviceInfo | None = None

    @field_validator("device_info", mode="before")
    @classmethod
    def _lenient_device_info(cls, value):
        if isinstance(value, dict):
            return DeviceInfo.from_json(value)
        return value

    @classmethod
    def from_record(cls, record: AttendanceRecord) -> AttendanceResponse:
        return cls(
            id=record.id,
            identity_id=record.identity_id,
            timestamp=record.timestamp,
            status=record.status,
            stored_status=record.stored_status,
            confidence=record.confidence,
            device_info=record.device_info,
        )

    def to_record(self) -> AttendanceRecord:
        status = self.status or normalize_status(self.stored_status)
        return AttendanceRecord(
            id=self.id,
            identity_id=self.identity_id,
            timestamp=as_aware(self.timestamp),
            status=status,
            stored_status=self.stored_status,
            confidence=self.confidence,
            device_info=self.device_info,
        )


class AttendanceCreate(BaseModel):
    identity_id: uuid.UUID | None = None
    status: AttendanceStatus
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    device_info: DeviceInfo | None = None


class ActivityResponse(BaseModel):
    record: AttendanceResponse
    display_name: str

    @classmethod
    def from_entry(cls, entry: ActivityEntry) -> ActivityResponse:
        return cls(record=AttendanceResponse.from_record(entry.record), display_name=entry.display_name)


def record_event(record: AttendanceRecord) -> dict:
    return {"type": "attendance_record", "payload": AttendanceResponse.from_record(record).model_dump(mode="json")}


def record_from_event(message: dict) -> AttendanceRecord:
    payload = message.get("payload", message) if isinstance(message, dict) else None
    if not isinstance(payload, dict):
        raise TypeError("Attendance event payload must be an object.")
    payload = dict(payload)
    raw = payload.get("status")
    # Publishers spell statuses freely ("Present", "LATE", "Late arrival").
    if isinstance(raw, str):
        payload.setdefault("stored_status", raw)
        payload["status"] = normalize_status(raw)
    return AttendanceResponse.model_validate(payload).to_record()
