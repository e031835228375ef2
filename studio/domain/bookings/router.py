"""Booking router - FastAPI endpoints for client and admin bookings"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_admin, get_current_user
from ...clock import Clock, get_clock
from ...database import get_db
from ...errors import ValidationError
from ...models import User
from ...rate_limiter import RateLimiter, get_booking_rate_limiter
from ...services.google_calendar_service import GoogleCalendarService, get_calendar_service
from ...services.whatsapp_service import WhatsAppService, get_whatsapp_service
from ...shared.validators import parse_iso_date
from .schemas import BookingCreate, BookingResponse, CancelBookingResponse
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Bookings"])


def get_booking_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    calendar: GoogleCalendarService = Depends(get_calendar_service),
    notifier: WhatsAppService = Depends(get_whatsapp_service),
) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db, clock, calendar, notifier)


async def rate_limited_user(
    current_user: User = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_booking_rate_limiter),
) -> User:
    """Authenticated user whose booking attempts are within the rate limit"""
    limiter.enforce(str(current_user.id))
    return current_user


def _parse_optional_date(value: Optional[str], name: str):
    if not value:
        return None
    try:
        return parse_iso_date(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {name}") from e


@router.post("/bookings", response_model=BookingResponse, status_code=201)
async def create_booking(
    data: BookingCreate,
    current_user: User = Depends(rate_limited_user),
    service: BookingService = Depends(get_booking_service),
):
    """Book a session on one of the caller's packages"""
    booking = await service.create_booking(current_user, data)
    return BookingResponse.from_booking(booking)


@router.get("/bookings", response_model=list[BookingResponse])
async def get_my_bookings(
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Caller's bookings, plus those of their group package partners"""
    return [BookingResponse.from_booking(b, include_relations=True) for b in service.list_for_user(current_user)]


@router.delete("/bookings/{booking_id}", response_model=CancelBookingResponse)
async def cancel_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Cancel a booking and return its session to the package"""
    booking = await service.cancel_booking(current_user, booking_id)
    return CancelBookingResponse(success=True, booking=BookingResponse.from_booking(booking))


@router.get("/admin/bookings", response_model=list[BookingResponse])
async def get_all_bookings(
    startDate: Optional[str] = Query(None),
    endDate: Optional[str] = Query(None),
    _admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    """All active bookings, optionally limited to a date range"""
    start = _parse_optional_date(startDate, "startDate")
    end = _parse_optional_date(endDate, "endDate")
    bookings = service.list_all(start, end)
    return [BookingResponse.from_booking(b, include_relations=True) for b in bookings]
