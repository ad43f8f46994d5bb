"""Calendar derivation shared by the reconciler, the HTTP layer and the CLI.

Everything here is pure: callers pass "today" and the timezone explicitly.
"""
from __future__ import annotations

import calendar
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import Iterable, Sequence

from rollcall.core.types import AttendanceRecord, AttendanceStatus, as_aware

CALENDAR_STATUSES = (AttendanceStatus.PRESENT, AttendanceStatus.LATE)


class DetailSource(str, Enum):
    LIVE = "live"
    HISTORY = "history"
    DERIVED = "derived"
    FUTURE = "future"


class DayBadge(str, Enum):
    PRESENT = "present"
    LATE = "late"
    ABSENT = "absent"
    UNKNOWN = "unknown"
    NO_DATA = "no_data"


@dataclass(frozen=True)
class DailyDetail:
    day: date
    source: DetailSource
    badge: DayBadge
    records: tuple[AttendanceRecord, ...] = ()

    @property
    def message(self) -> str:
        if self.source is DetailSource.FUTURE:
            return "Future date selected. No attendance data available yet."
        if self.records:
            return f"{len(self.records)} attendance record(s)."
        if self.badge is DayBadge.ABSENT:
            return "Absent."
        if self.badge in (DayBadge.PRESENT, DayBadge.LATE):
            return self.badge.value.capitalize() + "."
        return "No attendance recorded for this date."


@dataclass
class CalendarState:
    identity_id: uuid.UUID | None = None
    year: int | None = None
    month: int | None = None
    present_days: set[date] = field(default_factory=set)
    late_days: set[date] = field(default_factory=set)
    absent_days: set[date] = field(default_factory=set)
    working_days: set[date] = field(default_factory=set)
    selected_date: date | None = None
    daily_detail: DailyDetail | None = None


def generate_working_days(year: int, month: int, non_working_weekdays: Iterable[int] = (5, 6)) -> list[date]:
    skip = set(non_working_weekdays)
    _, days = calendar.monthrange(year, month)
    return [date(year, month, day) for day in range(1, days + 1) if date(year, month, day).weekday() not in skip]


def day_bounds(day: date, tz: tzinfo = timezone.utc) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = start + timedelta(days=1) - timedelta(microseconds=1)
    return start, end


def month_bounds(year: int, month: int, tz: tzinfo = timezone.utc) -> tuple[datetime, datetime]:
    _, days = calendar.monthrange(year, month)
    start, _ = day_bounds(date(year, month, 1), tz)
    _, end = day_bounds(date(year, month, days), tz)
    return start, end


def is_late(at: datetime, late_after: time, tz: tzinfo = timezone.utc) -> bool:
    return as_aware(at).astimezone(tz).time() > late_after


def owned_by(record: AttendanceRecord, identity_id: uuid.UUID) -> bool:
    """Owner resolution: the identity reference first, then the record id."""
    if record.identity_id is not None:
        return record.identity_id == identity_id
    if record.status is AttendanceStatus.UNAUTHORIZED:
        return False
    return record.id == identity_id


def calendar_status(record: AttendanceRecord, identity_id: uuid.UUID) -> AttendanceStatus | None:
    """Present/late classification of one record for one identity.

    Records without an identity reference (normalized unauthorized attempts
    included) never count for anybody.
    """
    if record.identity_id is None or record.identity_id != identity_id:
        return None
    if record.status not in CALENDAR_STATUSES:
        return None
    return record.status


def _sort_key(record: AttendanceRecord) -> tuple[datetime, str]:
    return (as_aware(record.timestamp), str(record.id))


class DayLedger:
    """Per-date attendance marks for one identity.

    Each date is decided by its earliest classifiable record, so the result
    does not depend on the order in which records are added, and a date is
    never both present and late.
    """

    def __init__(self, identity_id: uuid.UUID, tz: tzinfo = timezone.utc) -> None:
        self.identity_id = identity_id
        self.tz = tz
        self._marks: dict[date, AttendanceRecord] = {}

    def add(self, record: AttendanceRecord) -> bool:
        if calendar_status(record, self.identity_id) is None:
            return False
        day = record.local_date(self.tz)
        current = self._marks.get(day)
        if current is not None and _sort_key(current) <= _sort_key(record):
            return False
        self._marks[day] = record
        return True

    def extend(self, records: Iterable[AttendanceRecord]) -> bool:
        changed = False
        for record in records:
            changed = self.add(record) or changed
        return changed

    def days_with(self, status: AttendanceStatus) -> set[date]:
        return {day for day, record in self._marks.items() if record.status is status}

    @property
    def present_days(self) -> set[date]:
        return self.days_with(AttendanceStatus.PRESENT)

    @property
    def late_days(self) -> set[date]:
        return self.days_with(AttendanceStatus.LATE)


def derive_absent_days(working_days: Iterable[date], present: set[date], late: set[date], today: date) -> set[date]:
    return {day for day in working_days if day <= today and day not in present and day not in late}


def records_on(records: Iterable[AttendanceRecord], day: date, tz: tzinfo = timezone.utc) -> list[AttendanceRecord]:
    start, end = day_bounds(day, tz)
    selected = [r for r in records if start <= as_aware(r.timestamp) <= end]
    selected.sort(key=_sort_key)
    return selected


def membership_badge(day: date, present: set[date], late: set[date], absent: set[date]) -> DayBadge:
    if day in present:
        return DayBadge.PRESENT
    if day in late:
        return DayBadge.LATE
    if day in absent:
        return DayBadge.ABSENT
    return DayBadge.UNKNOWN


def derive_daily_detail(
    day: date,
    today: date,
    live_records: Sequence[AttendanceRecord],
    history_records: Sequence[AttendanceRecord] | None,
    present: set[date],
    late: set[date],
    absent: set[date],
) -> DailyDetail:
    if day > today:
        return DailyDetail(day, DetailSource.FUTURE, DayBadge.NO_DATA)

    badge = membership_badge(day, present, late, absent)
    if live_records:
        return DailyDetail(day, DetailSource.LIVE, badge, tuple(live_records))
    if history_records:
        return DailyDetail(day, DetailSource.HISTORY, badge, tuple(history_records))
    return DailyDetail(day, DetailSource.DERIVED, badge)


def build_calendar(
    identity_id: uuid.UUID,
    records: Iterable[AttendanceRecord],
    year: int,
    month: int,
    today: date,
    tz: tzinfo = timezone.utc,
    non_working_weekdays: Iterable[int] = (5, 6),
    selected_date: date | None = None,
) -> CalendarState:
    """One-shot calendar from a historical record set."""
    records = [record for record in records if owned_by(record, identity_id)]
    ledger = DayLedger(identity_id, tz)
    ledger.extend(records)

    working = set(generate_working_days(year, month, non_working_weekdays))
    present, late = ledger.present_days, ledger.late_days
    absent = derive_absent_days(working, present, late, today)

    state = CalendarState(
        identity_id=identity_id,
        year=year,
        month=month,
        present_days=present,
        late_days=late,
        absent_days=absent,
        working_days=working,
        selected_date=selected_date,
    )
    if selected_date is not None:
        state.daily_detail = derive_daily_detail(
            selected_date, today, (), records_on(records, selected_date, tz), present, late, absent
        )
    return state
