import uuid
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from conftest import make_record
from rollcall.core.types import AttendanceStatus
from rollcall.services.calendar_view import (
    DayBadge,
    DayLedger,
    DetailSource,
    build_calendar,
    derive_absent_days,
    derive_daily_detail,
    generate_working_days,
    is_late,
)

ADA = uuid.uuid4()


def test_working_days_skip_weekends():
    days = generate_working_days(2026, 3)
    assert len(days) == 22
    assert days[0] == date(2026, 3, 2)
    assert days[-1] == date(2026, 3, 31)
    assert all(day.weekday() < 5 for day in days)


def test_working_days_custom_pattern():
    days = generate_working_days(2026, 2, non_working_weekdays=(4, 5))
    assert all(day.weekday() not in (4, 5) for day in days)
    assert date(2026, 2, 1) in days  # Sunday


def test_absent_days_only_up_to_today():
    working = generate_working_days(2026, 3)
    present = {date(2026, 3, 2)}
    late = {date(2026, 3, 3)}
    absent = derive_absent_days(working, present, late, today=date(2026, 3, 5))
    assert absent == {date(2026, 3, 4), date(2026, 3, 5)}


def test_ledger_merge_is_order_independent():
    records = [
        make_record(ADA, "2026-03-02T08:55:00", "Present"),
        make_record(ADA, "2026-03-02T09:30:00", "late"),
        make_record(ADA, "2026-03-03T09:45:00", "LATE"),
        make_record(ADA, "2026-03-04T08:00:00", "present "),
    ]
    forward = DayLedger(ADA)
    forward.extend(records)
    backward = DayLedger(ADA)
    backward.extend(reversed(records))

    assert forward.present_days == backward.present_days == {date(2026, 3, 2), date(2026, 3, 4)}
    assert forward.late_days == backward.late_days == {date(2026, 3, 3)}
    assert not forward.present_days & forward.late_days


def test_ledger_ignores_other_identities_and_unattributed_records():
    ledger = DayLedger(ADA)
    assert ledger.add(make_record(uuid.uuid4(), "2026-03-02T08:00:00")) is False
    assert ledger.add(make_record(None, "2026-03-02T08:00:00", "present")) is False
    assert ledger.add(make_record(None, "2026-03-02T08:00:00", "Unauthorized")) is False
    assert ledger.add(make_record(ADA, "2026-03-02T08:00:00", "registered")) is False
    assert ledger.add(make_record(ADA, "2026-03-02T08:00:00", "absent")) is False
    assert ledger.present_days == set()


def test_ledger_truncates_to_calendar_date_in_timezone():
    tokyo = ZoneInfo("Asia/Tokyo")
    ledger = DayLedger(ADA, tz=tokyo)
    ledger.add(make_record(ADA, "2026-03-02T23:30:00"))
    assert ledger.present_days == {date(2026, 3, 3)}


def test_daily_detail_prefers_live_then_history_then_membership():
    day = date(2026, 3, 2)
    today = date(2026, 3, 10)
    live = [make_record(ADA, "2026-03-02T08:00:00")]
    history = [make_record(ADA, "2026-03-02T08:00:00")]
    present = {day}

    detail = derive_daily_detail(day, today, live, history, present, set(), set())
    assert detail.source is DetailSource.LIVE
    assert detail.records == tuple(live)

    detail = derive_daily_detail(day, today, [], history, present, set(), set())
    assert detail.source is DetailSource.HISTORY

    detail = derive_daily_detail(day, today, [], [], present, set(), set())
    assert detail.source is DetailSource.DERIVED
    assert detail.badge is DayBadge.PRESENT

    detail = derive_daily_detail(day, today, [], None, set(), set(), {day})
    assert detail.badge is DayBadge.ABSENT

    detail = derive_daily_detail(day, today, [], None, set(), set(), set())
    assert detail.badge is DayBadge.UNKNOWN


def test_future_date_reports_no_data_instead_of_absent():
    detail = derive_daily_detail(date(2026, 3, 20), date(2026, 3, 13), [], [], set(), set(), {date(2026, 3, 20)})
    assert detail.source is DetailSource.FUTURE
    assert detail.badge is DayBadge.NO_DATA
    assert "No attendance data available" in detail.message


def test_build_calendar_classifies_every_past_working_day():
    records = [
        make_record(ADA, "2026-03-02T08:00:00"),
        make_record(ADA, "2026-03-03T08:00:00"),
        make_record(ADA, "2026-03-04T08:00:00"),
        make_record(ADA, "2026-03-05T09:40:00", "late"),
        make_record(None, "2026-03-06T08:00:00", "present"),
    ]
    today = date(2026, 3, 13)
    state = build_calendar(ADA, records, 2026, 3, today=today, selected_date=date(2026, 3, 6))

    assert state.present_days == {date(2026, 3, 2), date(2026, 3, 3), date(2026, 3, 4)}
    assert state.late_days == {date(2026, 3, 5)}
    assert date(2026, 3, 6) in state.absent_days
    for day in state.working_days:
        if day <= today:
            assert day in state.present_days | state.late_days | state.absent_days
    assert not state.present_days & state.absent_days
    assert not state.late_days & state.absent_days
    assert state.daily_detail.badge is DayBadge.ABSENT


def test_is_late_uses_local_time():
    cutoff = time(9, 0)
    assert is_late(datetime(2026, 3, 2, 9, 1, tzinfo=timezone.utc), cutoff) is True
    assert is_late(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc), cutoff) is False
    berlin = ZoneInfo("Europe/Berlin")
    assert is_late(datetime(2026, 3, 2, 7, 30, tzinfo=timezone.utc), cutoff, berlin) is False
    assert is_late(datetime(2026, 3, 2, 8, 30, tzinfo=timezone.utc), cutoff, berlin) is True


def test_normalized_status_values():
    assert make_record(ADA, "2026-03-02T08:00:00", "Unauthorized").status is AttendanceStatus.UNAUTHORIZED
    assert make_record(ADA, "2026-03-02T08:00:00", "Late arrival").status is AttendanceStatus.LATE
    assert make_record(ADA, "2026-03-02T08:00:00", "weird").status is None
