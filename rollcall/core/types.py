from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

import numpy as np
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger("rollcall.types")


class AttendanceStatus(str, Enum):
    REGISTERED = "registered"
    PRESENT = "present"
    LATE = "late"
    UNAUTHORIZED = "unauthorized"


def normalize_status(raw: Any) -> AttendanceStatus | None:
    """Map a stored status string onto the closed status set.

    Historical rows carry inconsistent spellings ("Present", "present ",
    "Late arrival"), so matching is case-insensitive and by substring.
    Order matters: "unauthorized" and "registered" are checked before the
    calendar statuses. Returns None for anything unclassifiable.
    """
    if isinstance(raw, AttendanceStatus):
        return raw
    if not isinstance(raw, str):
        return None
    value = raw.strip().lower()
    if "unauthorized" in value:
        return AttendanceStatus.UNAUTHORIZED
    if "registered" in value:
        return AttendanceStatus.REGISTERED
    if "late" in value:
        return AttendanceStatus.LATE
    if "present" in value:
        return AttendanceStatus.PRESENT
    return None


class DeviceMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str | None = None
    employee_id: str | None = None
    department: str | None = None
    position: str | None = None
    image_reference: str | None = None
    face_descriptor: str | None = None


class DeviceInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str = "webcam"
    timestamp: datetime | None = None
    registration: bool = False
    confidence: float | None = None
    image_reference: str | None = None
    reported_status: AttendanceStatus | None = None
    metadata: DeviceMetadata | None = None

    @classmethod
    def from_json(cls, payload: Any) -> DeviceInfo | None:
        if not isinstance(payload, dict):
            return None
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as exc:
            logger.warning("Ignoring malformed device_info fields: %s", exc.errors(include_url=False))
        # Keep the top-level fields (reported_status included) when only metadata is bad.
        salvage = {key: value for key, value in payload.items() if key != "metadata"}
        try:
            return cls.model_validate(salvage)
        except PydanticValidationError:
            return None

    def display_name(self) -> str | None:
        if self.metadata is not None and self.metadata.name:
            return self.metadata.name
        return None


@dataclass(frozen=True)
class EnrolledIdentity:
    identity_id: uuid.UUID
    display_name: str
    employee_id: str
    department: str
    position: str
    descriptor: np.ndarray | str
    image_reference: str
    created_at: datetime | None = None


@dataclass(frozen=True)
class AttendanceRecord:
    id: uuid.UUID
    identity_id: uuid.UUID | None
    timestamp: datetime
    status: AttendanceStatus | None
    stored_status: str
    confidence: float | None = None
    device_info: DeviceInfo | None = None

    @property
    def is_unattributed(self) -> bool:
        return self.identity_id is None

    def local_date(self, tz=timezone.utc) -> date:
        return as_aware(self.timestamp).astimezone(tz).date()


def as_aware(value: datetime) -> datetime:
    # SQLite drops tzinfo; stored instants are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class MatchResult:
    recognized: bool
    identity: EnrolledIdentity | None
    confidence: float | None
    distance: float | None
    compared: int = 0
    skipped: int = 0


@dataclass
class RecognitionOutcome:
    match: MatchResult
    record: AttendanceRecord


@dataclass
class ActivityEntry:
    record: AttendanceRecord
    display_name: str
