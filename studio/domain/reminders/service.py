"""Reminder service - WhatsApp reminders for sessions starting soon"""

import logging
from datetime import date, datetime, timedelta
from typing import NamedTuple

from sqlalchemy.orm import Session

from ...clock import Clock
from ...config import REMINDER_WINDOW_MAX_MINUTES, REMINDER_WINDOW_MIN_MINUTES
from ...database import end_read_transaction
from ...services.whatsapp_service import WhatsAppService, format_booking_reminder_message
from ...shared.timeslots import slot_interval
from ..bookings.repository import BookingRepository

logger = logging.getLogger(__name__)


class DueReminder(NamedTuple):
    booking_id: str
    user_id: int
    name: str
    phone: str
    date: date
    time: str


class ReminderService:
    def __init__(self, db: Session, clock: Clock, notifier: WhatsAppService):
        self.db = db
        self.clock = clock
        self.notifier = notifier

    def _due_reminders(self, now: datetime) -> list[DueReminder]:
        window_start = now + timedelta(minutes=REMINDER_WINDOW_MIN_MINUTES)
        window_end = now + timedelta(minutes=REMINDER_WINDOW_MAX_MINUTES)
        days = {window_start.date(), window_end.date()}

        due = []
        for booking in BookingRepository.get_reminder_candidates(self.db, days):
            start = slot_interval(booking.date, booking.time, 0).start
            if not window_start <= start <= window_end:
                continue
            user = booking.user
            if not user.phone or not user.booking_reminders:
                continue
            due.append(DueReminder(booking.id, user.id, user.name, user.phone, booking.date, booking.time))

        end_read_transaction(self.db)
        return due

    async def send_due_reminders(self) -> dict:
        """
        Send one reminder per CONFIRMED booking starting 50-70 minutes from now.

        A booking is marked reminder_sent only after its message went out, so a
        failed send is retried on the next run while still inside the window.
        """
        now = self.clock.now()
        reminders = self._due_reminders(now)
        logger.info(f"⏰ Found {len(reminders)} bookings needing reminders")

        results = []
        success_count = 0
        error_count = 0

        for reminder in reminders:
            try:
                success, error = await self.notifier.send_message(
                    reminder.phone,
                    format_booking_reminder_message(reminder.name, reminder.date, reminder.time),
                    "booking_reminder",
                    user_id=reminder.user_id,
                    booking_id=reminder.booking_id,
                )
            except Exception as e:
                success, error = False, f"{type(e).__name__}: {e}"

            if success:
                BookingRepository.mark_reminder_sent(self.db, reminder.booking_id)
                self.db.commit()
                success_count += 1
                results.append({"bookingId": reminder.booking_id, "status": "sent"})
            else:
                error_count += 1
                logger.warning(f"⚠️ Reminder for booking {reminder.booking_id} not sent: {error}")
                results.append({"bookingId": reminder.booking_id, "status": "error", "error": error})

        return {
            "processed": len(reminders),
            "success": success_count,
            "errors": error_count,
            "results": results,
            "timestamp": now.isoformat(),
        }
