from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class Identity(Base):
    __tablename__ = "enrolled_identities"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    display_name: Mapped[str] = mapped_column(String(120), index=True)
    employee_id: Mapped[str] = mapped_column(String(64), index=True)
    department: Mapped[str] = mapped_column(String(120))
    position: Mapped[str] = mapped_column(String(120))
    # Serialized with rollcall.services.codec; decoded at match time.
    descriptor: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_reference: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    attendance: Mapped[list["AttendanceRow"]] = relationship(back_populates="identity")


class AttendanceRow(Base):
    __tablename__ = "attendance_records"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    identity_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("enrolled_identities.id"), nullable=True, index=True
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    status: Mapped[str] = mapped_column(String(32), index=True)
    confidence_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    device_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    image_reference: Mapped[str | None] = mapped_column(Text, nullable=True)

    identity: Mapped[Identity | None] = relationship(back_populates="attendance")
