from __future__ import annotations

import uuid
from datetime import date

from pydantic import BaseModel

from rollcall.schemas.attendance import AttendanceResponse
from rollcall.services.calendar_view import CalendarState, DailyDetail, DayBadge, DetailSource


class DailyDetailResponse(BaseModel):
    day: date
    source: DetailSource
    badge: DayBadge
    message: str
    records: list[AttendanceResponse] = []

    @classmethod
    def from_detail(cls, detail: DailyDetail) -> DailyDetailResponse:
        return cls(
            day=detail.day,
            source=detail.source,
            badge=detail.badge,
            message=detail.message,
            records=[AttendanceResponse.from_record(r) for r in detail.records],
        )


class CalendarResponse(BaseModel):
    identity_id: uuid.UUID
    year: int
    month: int
    present_days: list[date]
    late_days: list[date]
    absent_days: list[date]
    working_days: list[date]
    selected_date: date | None = None
    daily_detail: DailyDetailResponse | None = None

    @classmethod
    def from_state(cls, state: CalendarState) -> CalendarResponse:
        return cls(
            identity_id=state.identity_id,
            year=state.year,
            month=state.month,
            present_days=sorted(state.present_days),
            late_days=sorted(state.late_days),
            absent_days=sorted(state.absent_days),
            working_days=sorted(state.working_days),
            selected_date=state.selected_date,
            daily_detail=DailyDetailResponse.from_detail(state.daily_detail) if state.daily_detail else None,
        )
