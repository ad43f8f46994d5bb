from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import date, datetime, timezone, tzinfo
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Protocol, TypeVar

from pydantic import ValidationError as PayloadError

from rollcall.core.config import Settings, get_settings
from rollcall.core.exceptions import FetchFailure
from rollcall.core.types import AttendanceRecord, EnrolledIdentity
from rollcall.schemas.attendance import record_from_event
from rollcall.services.calendar_view import (
    CalendarState,
    DayLedger,
    day_bounds,
    derive_absent_days,
    derive_daily_detail,
    generate_working_days,
    owned_by,
    records_on,
)
from rollcall.services.store import AttendanceStore
from rollcall.ws.manager import EventFeed, Subscription, identity_topic

logger = logging.getLogger("rollcall.reconciler")

T = TypeVar("T")


class ReconcilerState(str, Enum):
    UNSELECTED = "unselected"
    LOADING = "loading"
    READY = "ready"


class HistorySource(Protocol):
    async def query_records(
        self,
        identity_id: uuid.UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[AttendanceRecord]: ...

    async def get_identity(self, identity_id: uuid.UUID) -> EnrolledIdentity | None: ...


class ThreadedHistory:
    """Runs blocking store queries in a worker thread so the event loop keeps turning."""

    def __init__(self, store: AttendanceStore) -> None:
        self.store = store

    async def query_records(
        self,
        identity_id: uuid.UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[AttendanceRecord]:
        return await asyncio.to_thread(self.store.query_records, identity_id, start, end)

    async def get_identity(self, identity_id: uuid.UUID) -> EnrolledIdentity | None:
        return await asyncio.to_thread(self.store.get_identity, identity_id)


class AttendanceReconciler:
    """Calendar state for one selected identity.

    History and live events are kept in two id-keyed maps and folded into a
    ``DayLedger``; every derived field is recomputed from those, so the
    final state is the same whichever source arrives first. Results that
    come back after the selection moved on are dropped.
    """

    def __init__(
        self,
        history: HistorySource,
        feed: EventFeed,
        *,
        tz: tzinfo = timezone.utc,
        non_working_weekdays: Iterable[int] = (5, 6),
        today: Callable[[], date] | None = None,
        retries: int = 2,
        backoff_seconds: float = 0.5,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.history = history
        self.feed = feed
        self.tz = tz
        self.non_working_weekdays = tuple(non_working_weekdays)
        self._today = today or (lambda: datetime.now(self.tz).date())
        self.retries = max(0, retries)
        self.backoff_seconds = backoff_seconds
        self.timeout_seconds = timeout_seconds

        self.state = ReconcilerState.UNSELECTED
        self.identity_id: uuid.UUID | None = None
        self.profile: EnrolledIdentity | None = None
        self.last_error: FetchFailure | None = None

        self._generation = 0
        self._subscription: Subscription | None = None
        self._ledger: DayLedger | None = None
        self._history: dict[uuid.UUID, AttendanceRecord] = {}
        self._live: dict[uuid.UUID, AttendanceRecord] = {}
        self._day_history: list[AttendanceRecord] | None = None
        self._calendar = CalendarState()

    @classmethod
    def from_settings(
        cls,
        history: HistorySource,
        feed: EventFeed,
        settings: Settings | None = None,
        today: Callable[[], date] | None = None,
    ) -> AttendanceReconciler:
        settings = settings or get_settings()
        return cls(
            history,
            feed,
            tz=settings.tz,
            non_working_weekdays=settings.non_working_weekdays,
            today=today,
            retries=settings.history_fetch_retries,
            backoff_seconds=settings.history_retry_backoff_seconds,
            timeout_seconds=settings.history_fetch_timeout_seconds,
        )

    async def __aenter__(self) -> AttendanceReconciler:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.clear()

    @property
    def calendar(self) -> CalendarState:
        """Snapshot of the viewed month."""
        state = self._calendar
        if state.year is None or state.month is None:
            return replace(state)

        def in_month(days: set[date]) -> set[date]:
            return {d for d in days if d.year == state.year and d.month == state.month}

        return replace(
            state,
            present_days=in_month(state.present_days),
            late_days=in_month(state.late_days),
            absent_days=set(state.absent_days),
            working_days=set(state.working_days),
        )

    @property
    def subscription(self) -> Subscription | None:
        return self._subscription

    def today(self) -> date:
        return self._today()

    async def select_identity(self, identity_id: uuid.UUID, year: int | None = None, month: int | None = None) -> None:
        self.clear()
        self._generation += 1
        generation = self._generation

        today = self.today()
        self.identity_id = identity_id
        self.state = ReconcilerState.LOADING
        self._ledger = DayLedger(identity_id, self.tz)
        self._calendar = CalendarState(identity_id=identity_id, selected_date=today)
        self._set_month(year or today.year, month or today.month)
        self._subscription = self.feed.subscribe(identity_topic(identity_id), self.on_live_event)
        logger.info("Subscribed to live attendance for %s", identity_id)

        await self._load(generation)
        if generation == self._generation and self._calendar.selected_date is not None:
            await self._load_day(generation, self._calendar.selected_date)

    def clear(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            logger.info("Unsubscribed from live attendance for %s", self.identity_id)
        self._subscription = None
        self._generation += 1
        self.state = ReconcilerState.UNSELECTED
        self.identity_id = None
        self.profile = None
        self.last_error = None
        self._ledger = None
        self._history = {}
        self._live = {}
        self._day_history = None
        self._calendar = CalendarState()

    close = clear

    async def refresh(self) -> None:
        if self.identity_id is None:
            return
        await self._load(self._generation)

    def view_month(self, year: int, month: int) -> CalendarState:
        if self.identity_id is not None:
            self._set_month(year, month)
        return self.calendar

    async def select_date(self, day: date) -> CalendarState:
        if self.identity_id is None:
            return self.calendar
        self._calendar.selected_date = day
        self._day_history = None
        self._rederive()
        if day <= self.today():
            await self._load_day(self._generation, day)
        return self.calendar

    def on_live_event(self, message: dict[str, Any]) -> None:
        try:
            record = record_from_event(message)
        except (PayloadError, TypeError) as exc:
            logger.warning("Dropping malformed live payload: %s", exc)
            return
        self.merge_live([record])

    def merge_live(self, records: Iterable[AttendanceRecord]) -> bool:
        if self.identity_id is None or self._ledger is None:
            return False
        changed = False
        for record in records:
            if record.id in self._live or not owned_by(record, self.identity_id):
                continue
            self._live[record.id] = record
            self._ledger.add(record)
            changed = True
        if changed:
            self._rederive()
        return changed

    def merge_history(self, records: Iterable[AttendanceRecord]) -> None:
        if self.identity_id is None or self._ledger is None:
            return
        for record in records:
            if not owned_by(record, self.identity_id):
                continue
            self._history.setdefault(record.id, record)
            self._ledger.add(record)
        self._rederive()

    async def _fetch(self, operation: Callable[..., Awaitable[T]], *args: Any) -> T:
        delay = self.backoff_seconds
        last_exc: Exception | None = None
        for attempt in range(self.retries + 1):
            try:
                return await asyncio.wait_for(operation(*args), timeout=self.timeout_seconds)
            except Exception as exc:
                last_exc = exc
                if attempt < self.retries:
                    logger.warning("History fetch failed (attempt %d), retrying in %.2fs: %s", attempt + 1, delay, exc)
                    await asyncio.sleep(delay)
                    delay *= 2
        raise FetchFailure(f"History fetch failed after {self.retries + 1} attempt(s): {last_exc}") from last_exc

    async def _load(self, generation: int) -> None:
        identity_id = self.identity_id
        try:
            profile = await self._fetch(self.history.get_identity, identity_id)
            records = await self._fetch(self.history.query_records, identity_id)
        except FetchFailure as exc:
            if generation != self._generation:
                logger.debug("Ignoring failed history fetch for a previous selection: %s", exc)
                return
            self.last_error = exc
            logger.error("Failed to load attendance records for %s: %s", identity_id, exc)
            raise

        if generation != self._generation:
            logger.debug("Discarding stale history for %s", identity_id)
            return
        self.profile = profile
        self.last_error = None
        self.merge_history(records)
        self.state = ReconcilerState.READY
        logger.info("Loaded %d attendance record(s) for %s", len(records), identity_id)

    async def _load_day(self, generation: int, day: date) -> None:
        start, end = day_bounds(day, self.tz)
        try:
            records = await self._fetch(self.history.query_records, self.identity_id, start, end)
        except FetchFailure as exc:
            if generation != self._generation or self._calendar.selected_date != day:
                return
            self.last_error = exc
            logger.error("Failed to load daily attendance for %s: %s", day, exc)
            raise

        if generation != self._generation or self._calendar.selected_date != day:
            logger.debug("Discarding stale daily detail for %s", day)
            return
        self._day_history = [r for r in records if owned_by(r, self.identity_id)]
        self._rederive()

    def _set_month(self, year: int, month: int) -> None:
        self._calendar.year = year
        self._calendar.month = month
        self._calendar.working_days = set(generate_working_days(year, month, self.non_working_weekdays))
        self._rederive()

    def _rederive(self) -> None:
        if self._ledger is None:
            return
        today = self.today()
        state = self._calendar
        state.present_days = self._ledger.present_days
        state.late_days = self._ledger.late_days
        state.absent_days = derive_absent_days(state.working_days, state.present_days, state.late_days, today)

        day = state.selected_date
        if day is None:
            state.daily_detail = None
            return
        history = self._day_history
        if history is None:
            history = records_on(self._history.values(), day, self.tz)
        state.daily_detail = derive_daily_detail(
            day,
            today,
            records_on(self._live.values(), day, self.tz),
            history,
            state.present_days,
            state.late_days,
            state.absent_days,
        )
