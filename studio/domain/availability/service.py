"""Availability service - free start times for a day"""

import logging
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...clock import Clock
from ...config import DEFAULT_SESSION_MINUTES
from ...database import end_read_transaction
from ...models import Booking
from ...services.google_calendar_service import CalendarUnavailableError, GoogleCalendarService
from ...shared.timeslots import Interval, generate_day_slots, overlaps_any, slot_interval
from ..bookings.repository import BookingRepository
from ..packages.repository import PackageRepository

logger = logging.getLogger(__name__)


def booking_interval(booking: Booking) -> Interval:
    duration = (booking.package.duration_minutes if booking.package else None) or DEFAULT_SESSION_MINUTES
    return slot_interval(booking.date, booking.time, duration)


def compute_available_slots(
    day: date,
    duration_minutes: int,
    busy: Iterable[Interval],
    now: Optional[datetime] = None,
) -> list[str]:
    """
    Candidate start times whose [start, start + duration) overlaps nothing in busy.

    When now is given and falls on day, start times at or before now are dropped.
    """
    busy = list(busy)
    available = []
    for slot in generate_day_slots():
        candidate = slot_interval(day, slot, duration_minutes)
        if now is not None and candidate.start <= now:
            continue
        if overlaps_any(candidate, busy):
            continue
        available.append(slot)
    return available


class AvailabilityService:
    """Combines confirmed bookings and calendar events into free start times"""

    def __init__(self, db: Session, clock: Clock, calendar: Optional[GoogleCalendarService] = None):
        self.db = db
        self.clock = clock
        self.calendar = calendar

    def _session_minutes(self, package_id: Optional[str]) -> int:
        if package_id:
            package = PackageRepository.get_package(self.db, package_id)
            if package and package.duration_minutes:
                return package.duration_minutes
        return DEFAULT_SESSION_MINUTES

    def _past_cutoff(self, day: date, is_admin: bool) -> Optional[datetime]:
        if is_admin:
            return None
        now = self.clock.now()
        if day == now.date():
            return now
        return None

    async def _calendar_busy(self, day: date, mirrored: set[str]) -> list[Interval]:
        """Calendar events that are not mirrors of our own bookings"""
        if self.calendar is None or not self.calendar.is_configured():
            return []

        try:
            events = await self.calendar.list_busy_intervals(day)
        except CalendarUnavailableError as e:
            logger.warning(f"⚠️ Calendar unavailable, using bookings only for {day}: {e}")
            return []
        except Exception as e:
            logger.error(f"❌ Calendar lookup failed for {day}, using bookings only: {type(e).__name__}: {e}")
            return []

        return [interval for event_id, interval in events if event_id not in mirrored]

    async def get_available_slots(
        self,
        day: date,
        is_admin: bool = False,
        package_id: Optional[str] = None,
        is_multiple_package: bool = False,
    ) -> list[str]:
        """
        Free start times on day for a session of the given package's length.

        Clients never see past dates or past start times of today; admins see
        the whole day. is_multiple_package is accepted for group bookings but
        the studio runs a single track, so it does not change the result.
        """
        if not is_admin and day < self.clock.now().date():
            return []

        duration = self._session_minutes(package_id)
        bookings = BookingRepository.get_confirmed_for_date(self.db, day)
        busy = [booking_interval(b) for b in bookings]
        mirrored = {b.google_event_id for b in bookings if b.google_event_id}
        end_read_transaction(self.db)
        busy.extend(await self._calendar_busy(day, mirrored))

        slots = compute_available_slots(day, duration, busy, self._past_cutoff(day, is_admin))
        logger.debug(
            f"📅 {len(slots)} slots free on {day} "
            f"(duration={duration}, admin={is_admin}, multiple={is_multiple_package})"
        )
        return slots
