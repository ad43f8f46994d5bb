import asyncio
import uuid
from datetime import datetime, timezone

import pytest

from rollcall.core.exceptions import ValidationError
from rollcall.core.types import AttendanceStatus
from rollcall.services.attendance import AttendanceService
from rollcall.services.matcher import DescriptorMatcher
from rollcall.ws.manager import GLOBAL_TOPIC, identity_topic


@pytest.fixture
def service(store, feed):
    return AttendanceService(store, feed, DescriptorMatcher(threshold=0.6))


def register(service, name, descriptor):
    identity, _ = asyncio.run(
        service.register_face(name, f"E-{name}", "Engineering", "Engineer", f"https://img/{name}.jpg", descriptor)
    )
    return identity


def at(text):
    return datetime.fromisoformat(text).replace(tzinfo=timezone.utc)


def test_register_face_requires_every_field(service):
    with pytest.raises(ValidationError):
        asyncio.run(service.register_face(" ", "E-1", "Ops", "Lead", "img", [0.1, 0.2]))
    with pytest.raises(ValidationError):
        asyncio.run(service.register_face("Ada", "E-1", "Ops", "Lead", "img", None))
    with pytest.raises(ValidationError):
        asyncio.run(service.register_face("Ada", "E-1", "Ops", "Lead", "img", [float("nan")]))
    assert service.store.list_enrolled() == []


def test_register_face_publishes_registration(service, feed):
    events = []
    feed.subscribe(GLOBAL_TOPIC, events.append)

    identity = register(service, "Ada", [0.0, 0.0, 0.0])

    assert identity.display_name == "Ada"
    assert events[0]["payload"]["status"] == "registered"
    assert events[0]["payload"]["identity_id"] == str(identity.identity_id)


def test_recognize_and_record_present_then_late(service, feed):
    ada = register(service, "Ada", [0.0, 0.0, 0.0])
    register(service, "Bob", [1.0, 1.0, 1.0])
    personal = []
    feed.subscribe(identity_topic(ada.identity_id), personal.append)

    early = asyncio.run(service.recognize_and_record([0.1, 0.0, 0.0], at=at("2026-03-02T08:00:00")))
    late = asyncio.run(service.recognize_and_record([0.0, 0.1, 0.0], at=at("2026-03-03T09:15:00")))

    assert early.match.recognized
    assert early.match.identity.identity_id == ada.identity_id
    assert early.match.confidence == pytest.approx(0.9)
    assert early.match.compared == 2
    assert early.record.status is AttendanceStatus.PRESENT
    assert early.record.device_info.metadata.name == "Ada"
    assert late.record.status is AttendanceStatus.LATE
    assert [e["payload"]["status"] for e in personal] == ["present", "late"]


def test_unrecognized_probe_records_unauthorized_attempt(service, feed):
    ada = register(service, "Ada", [0.0, 0.0, 0.0])
    personal, everyone = [], []
    feed.subscribe(identity_topic(ada.identity_id), personal.append)
    feed.subscribe(GLOBAL_TOPIC, everyone.append)

    outcome = asyncio.run(service.recognize_and_record([3.0, 3.0, 3.0], image_reference="frame.jpg"))

    assert not outcome.match.recognized
    assert outcome.match.distance > 0.6
    assert outcome.record.identity_id is None
    assert outcome.record.status is AttendanceStatus.UNAUTHORIZED
    assert personal == []
    assert len(everyone) == 1


def test_recognize_with_nobody_enrolled_is_unauthorized(service):
    outcome = asyncio.run(service.recognize_and_record([0.0, 0.0]))

    assert outcome.match.recognized is False
    assert outcome.match.distance is None
    assert outcome.record.status is AttendanceStatus.UNAUTHORIZED


def test_record_attendance_validation(service):
    ada = register(service, "Ada", [0.0, 0.0])

    with pytest.raises(ValidationError):
        asyncio.run(service.record_attendance(ada.identity_id, AttendanceStatus.REGISTERED))
    with pytest.raises(ValidationError):
        asyncio.run(service.record_attendance(None, AttendanceStatus.PRESENT))
    with pytest.raises(ValidationError):
        asyncio.run(service.record_attendance(ada.identity_id, AttendanceStatus.PRESENT, confidence=1.5))
    with pytest.raises(ValidationError):
        asyncio.run(service.record_attendance(uuid.uuid4(), AttendanceStatus.PRESENT))


def test_recent_activity_resolves_display_names(service):
    ada = register(service, "Ada", [0.0, 0.0])
    asyncio.run(service.record_attendance(ada.identity_id, AttendanceStatus.PRESENT, 0.95))
    asyncio.run(service.recognize_and_record([4.0, 4.0]))

    entries = asyncio.run(service.recent_activity(limit=5))

    assert len(entries) == 3
    names = {entry.record.status: entry.display_name for entry in entries}
    assert names[AttendanceStatus.PRESENT] == "Ada"
    assert names[AttendanceStatus.UNAUTHORIZED] == "Unknown"
