from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, time, timezone, tzinfo
from typing import Sequence

import numpy as np

from rollcall.core.config import Settings, get_settings
from rollcall.core.exceptions import ValidationError
from rollcall.core.types import (
    ActivityEntry,
    AttendanceRecord,
    AttendanceStatus,
    DeviceInfo,
    DeviceMetadata,
    EnrolledIdentity,
    MatchResult,
    RecognitionOutcome,
)
from rollcall.schemas.attendance import record_event
from rollcall.services.calendar_view import is_late
from rollcall.services.codec import encode
from rollcall.services.matcher import DescriptorMatcher, as_probe
from rollcall.services.store import AttendanceStore
from rollcall.ws.manager import GLOBAL_TOPIC, EventFeed, identity_topic

logger = logging.getLogger("rollcall.attendance")


def _require(value: str | None, label: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{label} is required.")
    return cleaned


class AttendanceService:
    def __init__(
        self,
        store: AttendanceStore,
        feed: EventFeed,
        matcher: DescriptorMatcher,
        late_after: time = time(9, 0),
        tz: tzinfo = timezone.utc,
    ) -> None:
        self.store = store
        self.feed = feed
        self.matcher = matcher
        self.late_after = late_after
        self.tz = tz

    @classmethod
    def from_settings(
        cls,
        store: AttendanceStore,
        feed: EventFeed,
        settings: Settings | None = None,
    ) -> AttendanceService:
        settings = settings or get_settings()
        return cls(
            store,
            feed,
            DescriptorMatcher(threshold=settings.match_threshold),
            late_after=settings.late_after,
            tz=settings.tz,
        )

    async def publish(self, record: AttendanceRecord) -> None:
        message = record_event(record)
        await self.feed.publish(GLOBAL_TOPIC, message)
        if record.identity_id is not None:
            await self.feed.publish(identity_topic(record.identity_id), message)

    async def register_face(
        self,
        name: str,
        employee_id: str,
        department: str,
        position: str,
        image_reference: str,
        descriptor: Sequence[float] | np.ndarray | None,
    ) -> tuple[EnrolledIdentity, AttendanceRecord]:
        name = _require(name, "Name")
        employee_id = _require(employee_id, "Employee ID")
        department = _require(department, "Department")
        position = _require(position, "Position")
        image_reference = _require(image_reference, "Image")
        if descriptor is None:
            raise ValidationError("A face descriptor is required for registration.")
        serialized = encode(as_probe(descriptor))

        logger.info("Starting face registration for %s (%s)", name, employee_id)
        device_info = DeviceInfo(
            registration=True,
            timestamp=datetime.now(timezone.utc),
            image_reference=image_reference,
            metadata=DeviceMetadata(
                name=name,
                employee_id=employee_id,
                department=department,
                position=position,
                image_reference=image_reference,
                face_descriptor=serialized,
            ),
        )
        identity, record = await asyncio.to_thread(
            self.store.enroll,
            name,
            employee_id,
            department,
            position,
            serialized,
            image_reference,
            device_info,
        )
        logger.info("Registration completed for %s as %s", name, identity.identity_id)
        await self.publish(record)
        return identity, record

    async def match(self, probe: Sequence[float] | np.ndarray) -> MatchResult:
        query = as_probe(probe)
        enrolled = await asyncio.to_thread(self.store.list_enrolled)
        if not enrolled:
            logger.info("No registered faces found to compare against")
            return MatchResult(False, None, None, None)
        logger.info("Comparing probe against %d registered face(s)", len(enrolled))
        candidates = [(identity, identity.descriptor) for identity in enrolled]
        return await asyncio.to_thread(self.matcher.match, query, candidates)

    async def recognize_and_record(
        self,
        probe: Sequence[float] | np.ndarray,
        image_reference: str | None = None,
        at: datetime | None = None,
    ) -> RecognitionOutcome:
        result = await self.match(probe)
        when = at or datetime.now(timezone.utc)

        if result.recognized and result.identity is not None:
            identity = result.identity
            status = AttendanceStatus.LATE if is_late(when, self.late_after, self.tz) else AttendanceStatus.PRESENT
            info = DeviceInfo(
                image_reference=image_reference,
                metadata=DeviceMetadata(
                    name=identity.display_name,
                    employee_id=identity.employee_id,
                    department=identity.department,
                    position=identity.position,
                    image_reference=identity.image_reference,
                ),
            )
            record = await self.record_attendance(identity.identity_id, status, result.confidence, info, when)
        else:
            info = DeviceInfo(image_reference=image_reference)
            record = await self.record_attendance(None, AttendanceStatus.UNAUTHORIZED, None, info, when)
        return RecognitionOutcome(match=result, record=record)

    async def record_attendance(
        self,
        identity_id: uuid.UUID | None,
        status: AttendanceStatus,
        confidence: float | None = None,
        device_info: DeviceInfo | None = None,
        at: datetime | None = None,
    ) -> AttendanceRecord:
        if status is AttendanceStatus.REGISTERED:
            raise ValidationError("Registration records are written by register_face.")
        if status in (AttendanceStatus.PRESENT, AttendanceStatus.LATE) and identity_id is None:
            raise ValidationError(f"A {status.value} record needs an identity.")
        if confidence is not None and not 0.0 <= confidence <= 1.0:
            raise ValidationError("Confidence must be within [0, 1].")

        if identity_id is not None:
            identity = await asyncio.to_thread(self.store.get_identity, identity_id)
            if identity is None:
                raise ValidationError(f"Unknown identity {identity_id}.")
            info = device_info.model_copy(deep=True) if device_info is not None else DeviceInfo()
            metadata = info.metadata or DeviceMetadata()
            metadata.name = metadata.name or identity.display_name
            info.metadata = metadata
            device_info = info

        record = await asyncio.to_thread(
            self.store.record_attendance, identity_id, status, confidence, device_info, at
        )
        await self.publish(record)
        return record

    async def recent_activity(self, limit: int = 10) -> list[ActivityEntry]:
        records = await asyncio.to_thread(self.store.recent_records, limit)
        names: dict[uuid.UUID, str] = {}
        entries: list[ActivityEntry] = []
        for record in records:
            name = record.device_info.display_name() if record.device_info else None
            if name is None and record.identity_id is not None:
                if record.identity_id not in names:
                    identity = await asyncio.to_thread(self.store.get_identity, record.identity_id)
                    names[record.identity_id] = identity.display_name if identity else "Unknown"
                name = names[record.identity_id]
            entries.append(ActivityEntry(record=record, display_name=name or "Unknown"))
        return entries
