import os
import tempfile
import uuid
from datetime import datetime, timezone

os.environ.setdefault("ROLLCALL_DATABASE_URL", "sqlite://")
os.environ.setdefault("ROLLCALL_LOG_DIR", os.path.join(tempfile.gettempdir(), "rollcall-test-logs"))
os.environ.setdefault("ROLLCALL_HISTORY_RETRY_BACKOFF_SECONDS", "0")

import pytest

from rollcall.core.types import AttendanceRecord, AttendanceStatus, EnrolledIdentity, normalize_status
from rollcall.db.base import Base
from rollcall.db.session import build_engine, build_sessionmaker
from rollcall.services.store import SqlAttendanceStore
from rollcall.ws.manager import EventFeed


@pytest.fixture
def store():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield SqlAttendanceStore(build_sessionmaker(engine))
    engine.dispose()


@pytest.fixture
def feed():
    return EventFeed()


def make_identity(name="Ada", descriptor=(0.0, 0.0, 0.0), identity_id=None):
    return EnrolledIdentity(
        identity_id=identity_id or uuid.uuid4(),
        display_name=name,
        employee_id=f"E-{name}",
        department="Engineering",
        position="Engineer",
        descriptor=descriptor,
        image_reference=f"https://img.example/{name}.jpg",
    )


def make_record(identity_id, when, status="present", record_id=None):
    if isinstance(when, str):
        when = datetime.fromisoformat(when)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    raw = status.value if isinstance(status, AttendanceStatus) else status
    return AttendanceRecord(
        id=record_id or uuid.uuid4(),
        identity_id=identity_id,
        timestamp=when,
        status=normalize_status(raw),
        stored_status=raw,
    )
