"""Booking service - Business logic for creating and cancelling bookings"""

import logging
from datetime import date, datetime, timedelta
from typing import NamedTuple, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from ...clock import Clock
from ...config import CANCELLATION_NOTICE_HOURS, DEFAULT_SESSION_MINUTES
from ...database import begin_serializable, end_read_transaction
from ...errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ...models import Booking, BookingStatus, User
from ...services.google_calendar_service import GoogleCalendarService
from ...services.whatsapp_service import (
    WhatsAppService,
    format_booking_cancellation_message,
    format_booking_confirmation_message,
)
from ...shared.timeslots import overlaps, slot_interval
from ...shared.validators import parse_iso_date
from ..availability.service import booking_interval
from ..packages.service import PackageLedger
from .repository import BookingRepository
from .schemas import BookingCreate

logger = logging.getLogger(__name__)

# SQLSTATEs raised by PostgreSQL when a concurrent writer wins
RETRYABLE_SQLSTATES = {"40001", "40P01"}


class Contact(NamedTuple):
    """Notification details captured before the transaction expires the ORM user"""

    user_id: int
    name: str
    phone: Optional[str]
    whatsapp_notifications: bool


def _contact_for(user: User) -> Contact:
    return Contact(user.id, user.name, user.phone, bool(user.whatsapp_notifications))


def _is_serialization_failure(error: DBAPIError) -> bool:
    orig = getattr(error, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return sqlstate in RETRYABLE_SQLSTATES


class BookingService:
    """
    Reconciles a booking request against the package ledger, the slot
    calendar and the external calendar.

    Only the database transaction decides whether a booking exists. Calendar
    sync and WhatsApp messages run outside it and never fail the request.
    """

    def __init__(
        self,
        db: Session,
        clock: Clock,
        calendar: Optional[GoogleCalendarService] = None,
        notifier: Optional[WhatsAppService] = None,
    ):
        self.db = db
        self.clock = clock
        self.calendar = calendar
        self.notifier = notifier
        self.ledger = PackageLedger(db)
        self.repo = BookingRepository()

    def _validate_request(self, data: BookingCreate) -> tuple[date, str]:
        try:
            day = parse_iso_date(data.date)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        now = self.clock.now()
        if day < now.date():
            raise ValidationError("Cannot book a date in the past")

        start = slot_interval(day, data.time, 0).start
        if start <= now + timedelta(minutes=1):
            raise ValidationError("Booking time must be in the future")

        return day, data.time

    async def create_booking(self, user: User, data: BookingCreate) -> Booking:
        """
        Create a CONFIRMED booking for user.

        Raises:
            ValidationError: Date or time not acceptable
            NotFoundError: Package missing or inactive
            ForbiddenError: Package not held by user
            ConflictError: Slot taken or sessions exhausted
        """
        day, slot = self._validate_request(data)

        holding = self.ledger.get_holding(data.packageId, user.id)
        self.ledger.check_available(holding)

        package = holding.package
        duration = package.duration_minutes or DEFAULT_SESSION_MINUTES
        package_name = package.name
        booker = _contact_for(user)
        end_read_transaction(self.db)

        window = slot_interval(day, slot, duration)
        event_id = await self._create_calendar_event(booker, package_name, window.start, window.end)

        try:
            booking = self.commit_booking(booker.user_id, data.packageId, day, slot, duration, event_id)
        except Exception:
            if event_id:
                await self._discard_orphaned_event(event_id)
            raise

        booking_id = booking.id
        end_read_transaction(self.db)
        logger.info(f"✅ Booking {booking_id} confirmed for user {booker.user_id} on {day} {slot}")

        await self._notify(
            booker,
            format_booking_confirmation_message(booker.name, day, slot),
            "booking_confirmation",
            booking_id,
        )
        return booking

    def commit_booking(
        self,
        user_id: int,
        package_id: str,
        day: date,
        slot: str,
        duration_minutes: int,
        google_event_id: Optional[str] = None,
    ) -> Booking:
        """
        Authoritative check-and-insert, in one serialized transaction.

        Re-checks slot overlap, charges the package and inserts the booking.
        Any failure rolls back everything; conflicts surface as ConflictError.
        """
        end_read_transaction(self.db)
        begin_serializable(self.db)

        try:
            requested = slot_interval(day, slot, duration_minutes)
            for existing in self.repo.get_confirmed_for_date(self.db, day):
                if overlaps(requested, booking_interval(existing)):
                    raise ConflictError("This time slot is no longer available")

            self.ledger.consume(package_id, user_id)

            booking = self.repo.create_booking(
                self.db,
                user_id=user_id,
                package_id=package_id,
                date=day,
                time=slot,
                status=BookingStatus.CONFIRMED,
                google_event_id=google_event_id,
                reminder_sent=False,
            )
            self.db.commit()
        except ConflictError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.info(f"ℹ️ Slot {day} {slot} taken by a concurrent booking")
            raise ConflictError("This time slot is no longer available") from e
        except DBAPIError as e:
            self.db.rollback()
            if _is_serialization_failure(e):
                logger.info(f"ℹ️ Serialization conflict booking {day} {slot}")
                raise ConflictError("This time slot is no longer available") from e
            raise
        except Exception:
            self.db.rollback()
            raise

        return booking

    async def _create_calendar_event(
        self, booker: Contact, package_name: str, start: datetime, end: datetime
    ) -> Optional[str]:
        if self.calendar is None:
            return None
        try:
            return await self.calendar.create_event(
                summary=f"Session {booker.name}",
                description=f"Package: {package_name}",
                start=start,
                end=end,
            )
        except Exception as e:
            logger.error(f"❌ Calendar sync failed, booking without event: {type(e).__name__}: {e}")
            return None

    async def _discard_orphaned_event(self, event_id: str) -> None:
        try:
            deleted = await self.calendar.delete_event(event_id)
        except Exception as e:
            logger.error(f"❌ Error deleting orphaned calendar event {event_id}: {type(e).__name__}: {e}")
            return
        if deleted:
            logger.info(f"🧹 Deleted orphaned calendar event {event_id}")
        else:
            logger.warning(f"⚠️ Orphaned calendar event {event_id} left in calendar")

    async def _notify(self, contact: Contact, body: str, message_type: str, booking_id: str) -> None:
        if self.notifier is None or not contact.phone or not contact.whatsapp_notifications:
            return
        try:
            success, error = await self.notifier.send_message(
                contact.phone, body, message_type, user_id=contact.user_id, booking_id=booking_id
            )
        except Exception as e:
            logger.error(f"❌ WhatsApp {message_type} failed for booking {booking_id}: {type(e).__name__}: {e}")
            return
        if not success:
            logger.warning(f"⚠️ WhatsApp {message_type} not sent for booking {booking_id}: {error}")

    async def cancel_booking(self, user: User, booking_id: str) -> Booking:
        """
        Cancel a CONFIRMED booking and give the session back.

        Raises:
            NotFoundError: No confirmed booking with that ID
            ForbiddenError: Caller does not hold the booking's package
            ValidationError: Client cancelling inside the notice period
        """
        booking = self.repo.get_booking(self.db, booking_id)
        if not booking or booking.status != BookingStatus.CONFIRMED:
            raise NotFoundError("Booking not found")

        actor_id = user.id
        cancelled_by_admin = user.is_admin
        if not cancelled_by_admin:
            holder_ids = {up.user_id for up in booking.package.user_packages}
            if user.id not in holder_ids:
                raise ForbiddenError("You cannot cancel this booking")

            start = slot_interval(booking.date, booking.time, 0).start
            if start - self.clock.now() < timedelta(hours=CANCELLATION_NOTICE_HOURS):
                raise ValidationError(
                    f"Bookings can only be cancelled at least {CANCELLATION_NOTICE_HOURS} hours in advance"
                )

        booker = _contact_for(booking.user)
        package_id = booking.package_id
        day, slot = booking.date, booking.time
        event_id = booking.google_event_id
        end_read_transaction(self.db)

        if event_id and self.calendar is not None:
            try:
                await self.calendar.delete_event(event_id)
            except Exception as e:
                logger.error(f"❌ Error deleting calendar event {event_id}: {type(e).__name__}: {e}")

        end_read_transaction(self.db)
        begin_serializable(self.db)
        try:
            booking = self.repo.lock_booking(self.db, booking_id)
            if not booking or booking.status != BookingStatus.CONFIRMED:
                raise ConflictError("Booking was already cancelled")

            booking.status = BookingStatus.CANCELLED
            self.ledger.release(package_id, booker.user_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🗑️ Booking {booking_id} cancelled by user {actor_id}")

        if cancelled_by_admin:
            await self._notify(
                booker,
                format_booking_cancellation_message(booker.name, day, slot),
                "booking_cancellation",
                booking_id,
            )
        return booking

    def list_for_user(self, user: User) -> list[Booking]:
        """Bookings on the user's packages, including group co-holders' bookings"""
        holdings = self.repo.get_holdings_for_user(self.db, user.id)
        if not holdings:
            return []

        user_ids = {user.id}
        for holding in holdings:
            if len(holding.package.user_packages) > 1:
                user_ids.update(up.user_id for up in holding.package.user_packages)

        package_ids = {h.package_id for h in holdings}
        return self.repo.get_bookings_for_holders(self.db, user_ids, package_ids)

    def list_all(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> list[Booking]:
        return self.repo.get_all_bookings(self.db, start_date, end_date)
