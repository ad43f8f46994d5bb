from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, Protocol

from sqlalchemy import asc, desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from rollcall.core.exceptions import StoreError
from rollcall.core.types import (
    AttendanceRecord,
    AttendanceStatus,
    DeviceInfo,
    EnrolledIdentity,
    as_aware,
    normalize_status,
)
from rollcall.db.models import AttendanceRow, Identity
from rollcall.services.calendar_view import owned_by

logger = logging.getLogger("rollcall.store")


class AttendanceStore(Protocol):
    def list_enrolled(self) -> list[EnrolledIdentity]: ...

    def get_identity(self, identity_id: uuid.UUID) -> EnrolledIdentity | None: ...

    def enroll(
        self,
        display_name: str,
        employee_id: str,
        department: str,
        position: str,
        descriptor: str,
        image_reference: str,
        device_info: DeviceInfo,
    ) -> tuple[EnrolledIdentity, AttendanceRecord]: ...

    def record_attendance(
        self,
        identity_id: uuid.UUID | None,
        status: AttendanceStatus,
        confidence: float | None = None,
        device_info: DeviceInfo | None = None,
        timestamp: datetime | None = None,
    ) -> AttendanceRecord: ...

    def query_records(
        self,
        identity_id: uuid.UUID,
        start: datetime | None = None,
        end: datetime | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[AttendanceRecord]: ...

    def recent_records(self, limit: int = 10) -> list[AttendanceRecord]: ...


def to_record(row: AttendanceRow) -> AttendanceRecord:
    device_info = DeviceInfo.from_json(row.device_info)
    status = normalize_status(row.status)
    # Unauthorized attempts may be stored as "present" with no identity.
    if device_info is not None and device_info.reported_status is AttendanceStatus.UNAUTHORIZED:
        status = AttendanceStatus.UNAUTHORIZED
    return AttendanceRecord(
        id=row.id,
        identity_id=row.identity_id,
        timestamp=as_aware(row.timestamp),
        status=status,
        stored_status=row.status,
        confidence=row.confidence_score,
        device_info=device_info,
    )


def to_identity(row: Identity) -> EnrolledIdentity:
    return EnrolledIdentity(
        identity_id=row.id,
        display_name=row.display_name,
        employee_id=row.employee_id,
        department=row.department,
        position=row.position,
        descriptor=row.descriptor,
        image_reference=row.image_reference,
        created_at=row.created_at,
    )


def dedupe_records(records: Iterable[AttendanceRecord]) -> list[AttendanceRecord]:
    seen: set[uuid.UUID] = set()
    unique: list[AttendanceRecord] = []
    for record in records:
        if record.id in seen:
            continue
        seen.add(record.id)
        unique.append(record)
    return unique


class SqlAttendanceStore:
    def __init__(self, session_factory: sessionmaker[Session], normalize_unauthorized: bool = True) -> None:
        self.session_factory = session_factory
        self.normalize_unauthorized = normalize_unauthorized

    def list_enrolled(self) -> list[EnrolledIdentity]:
        try:
            with self.session_factory() as db:
                rows = db.scalars(select(Identity).order_by(asc(Identity.created_at), asc(Identity.id))).all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to list enrolled identities: {exc}") from exc

        enrolled: list[EnrolledIdentity] = []
        for row in rows:
            if not row.descriptor:
                logger.warning("Enrolled identity %s has no stored descriptor; skipping.", row.id)
                continue
            enrolled.append(to_identity(row))
        return enrolled

    def get_identity(self, identity_id: uuid.UUID) -> EnrolledIdentity | None:
        try:
            with self.session_factory() as db:
                row = db.get(Identity, identity_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to load identity {identity_id}: {exc}") from exc
        return to_identity(row) if row is not None else None

    def enroll(
        self,
        display_name: str,
        employee_id: str,
        department: str,
        position: str,
        descriptor: str,
        image_reference: str,
        device_info: DeviceInfo,
    ) -> tuple[EnrolledIdentity, AttendanceRecord]:
        now = datetime.now(timezone.utc)
        try:
            with self.session_factory() as db, db.begin():
                identity = Identity(
                    display_name=display_name,
                    employee_id=employee_id,
                    department=department,
                    position=position,
                    descriptor=descriptor,
                    image_reference=image_reference,
                    created_at=now,
                )
                db.add(identity)
                db.flush()
                row = AttendanceRow(
                    identity_id=identity.id,
                    timestamp=now,
                    status=AttendanceStatus.REGISTERED.value,
                    device_info=device_info.model_dump(mode="json", exclude_none=True),
                    image_reference=image_reference,
                )
                db.add(row)
                db.flush()
                enrolled, record = to_identity(identity), to_record(row)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to register {display_name}: {exc}") from exc
        return enrolled, record

    def record_attendance(
        self,
        identity_id: uuid.UUID | None,
        status: AttendanceStatus,
        confidence: float | None = None,
        device_info: DeviceInfo | None = None,
        timestamp: datetime | None = None,
    ) -> AttendanceRecord:
        info = device_info.model_copy(deep=True) if device_info is not None else DeviceInfo()
        stored_status = status
        if status is AttendanceStatus.UNAUTHORIZED:
            identity_id = None
            if self.normalize_unauthorized:
                stored_status = AttendanceStatus.PRESENT
                info.reported_status = AttendanceStatus.UNAUTHORIZED
                logger.info("Normalizing status from unauthorized to present for storage.")

        when = as_aware(timestamp).astimezone(timezone.utc) if timestamp else datetime.now(timezone.utc)
        info.timestamp = info.timestamp or when
        if confidence is not None:
            info.confidence = confidence

        try:
            with self.session_factory() as db, db.begin():
                row = AttendanceRow(
                    identity_id=identity_id,
                    timestamp=when,
                    status=stored_status.value,
                    confidence_score=confidence,
                    device_info=info.model_dump(mode="json", exclude_none=True),
                    image_reference=info.image_reference,
                )
                db.add(row)
                db.flush()
                record = to_record(row)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to record attendance: {exc}") from exc
        logger.info("Recorded %s for %s", status.value, identity_id)
        return record

    def query_records(
        self,
        identity_id: uuid.UUID,
        start: datetime | None = None,
        end: datetime | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[AttendanceRecord]:
        order = desc(AttendanceRow.timestamp) if descending else asc(AttendanceRow.timestamp)
        window = []
        if start is not None:
            window.append(AttendanceRow.timestamp >= as_aware(start).astimezone(timezone.utc))
        if end is not None:
            window.append(AttendanceRow.timestamp <= as_aware(end).astimezone(timezone.utc))
        by_identity = select(AttendanceRow).where(AttendanceRow.identity_id == identity_id, *window)
        by_id = select(AttendanceRow).where(
            AttendanceRow.id == identity_id, AttendanceRow.identity_id.is_(None), *window
        )

        try:
            with self.session_factory() as db:
                rows = list(db.scalars(by_identity.order_by(order, asc(AttendanceRow.id))).all())
                rows += list(db.scalars(by_id.order_by(order)).all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to query attendance for {identity_id}: {exc}") from exc

        records = [r for r in dedupe_records(to_record(row) for row in rows) if owned_by(r, identity_id)]
        records.sort(key=lambda r: (r.timestamp, str(r.id)), reverse=descending)
        if limit is not None:
            records = records[: max(0, limit)]
        return records

    def recent_records(self, limit: int = 10) -> list[AttendanceRecord]:
        try:
            with self.session_factory() as db:
                rows = db.scalars(
                    select(AttendanceRow).order_by(desc(AttendanceRow.timestamp)).limit(max(1, min(1000, limit)))
                ).all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to load recent activity: {exc}") from exc
        return [to_record(row) for row in rows]
