"""Booking repository - Database operations for bookings"""

from datetime import date
from typing import Iterable, Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Booking, BookingStatus, Package, UserPackage


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_booking(db: Session, booking_id: str) -> Optional[Booking]:
        return (
            db.query(Booking)
            .options(
                joinedload(Booking.package).joinedload(Package.user_packages),
                joinedload(Booking.user),
            )
            .filter(Booking.id == booking_id)
            .first()
        )

    @staticmethod
    def lock_booking(db: Session, booking_id: str) -> Optional[Booking]:
        """Re-read a booking, locking its row for the current transaction"""
        return (
            db.query(Booking)
            .filter(Booking.id == booking_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    @staticmethod
    def get_confirmed_for_date(db: Session, day: date) -> list[Booking]:
        """All CONFIRMED bookings on a day, with their package durations"""
        return (
            db.query(Booking)
            .options(joinedload(Booking.package))
            .filter(Booking.status == BookingStatus.CONFIRMED, Booking.date == day)
            .populate_existing()
            .order_by(Booking.time)
            .all()
        )

    @staticmethod
    def create_booking(db: Session, **booking_data) -> Booking:
        """Add a booking to the current transaction (flushed, not committed)"""
        booking = Booking(**booking_data)
        db.add(booking)
        db.flush()
        return booking

    @staticmethod
    def get_bookings_for_holders(
        db: Session, user_ids: Iterable[int], package_ids: Iterable[str]
    ) -> list[Booking]:
        """Non-cancelled bookings made by any of user_ids on any of package_ids"""
        return (
            db.query(Booking)
            .options(joinedload(Booking.package), joinedload(Booking.user))
            .filter(
                Booking.user_id.in_(list(user_ids)),
                Booking.package_id.in_(list(package_ids)),
                Booking.status != BookingStatus.CANCELLED,
            )
            .order_by(Booking.date, Booking.time)
            .all()
        )

    @staticmethod
    def get_all_bookings(
        db: Session, start_date: Optional[date] = None, end_date: Optional[date] = None
    ) -> list[Booking]:
        """Non-cancelled bookings, optionally within [start_date, end_date]"""
        query = (
            db.query(Booking)
            .options(joinedload(Booking.package), joinedload(Booking.user))
            .filter(Booking.status != BookingStatus.CANCELLED)
        )
        if start_date:
            query = query.filter(Booking.date >= start_date)
        if end_date:
            query = query.filter(Booking.date <= end_date)
        return query.order_by(Booking.date, Booking.time).all()

    @staticmethod
    def get_holdings_for_user(db: Session, user_id: int) -> list[UserPackage]:
        return (
            db.query(UserPackage)
            .options(joinedload(UserPackage.package).joinedload(Package.user_packages))
            .filter(UserPackage.user_id == user_id)
            .all()
        )

    @staticmethod
    def get_reminder_candidates(db: Session, days: Iterable[date]) -> list[Booking]:
        """CONFIRMED bookings on the given days that have not been reminded yet"""
        return (
            db.query(Booking)
            .options(joinedload(Booking.user))
            .filter(
                Booking.status == BookingStatus.CONFIRMED,
                Booking.reminder_sent.is_(False),
                Booking.date.in_(list(days)),
            )
            .order_by(Booking.date, Booking.time)
            .all()
        )

    @staticmethod
    def mark_reminder_sent(db: Session, booking_id: str) -> int:
        return (
            db.query(Booking)
            .filter(Booking.id == booking_id)
            .update({Booking.reminder_sent: True}, synchronize_session=False)
        )
