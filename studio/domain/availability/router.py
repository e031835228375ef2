"""Availability router - free slots for the booking calendar"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...clock import Clock, get_clock
from ...database import get_db
from ...errors import ValidationError
from ...models import User
from ...services.google_calendar_service import GoogleCalendarService, get_calendar_service
from ...shared.validators import parse_iso_date
from .schemas import AvailableSlotsResponse
from .service import AvailabilityService

router = APIRouter(prefix="/api", tags=["Availability"])


def get_availability_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    calendar: GoogleCalendarService = Depends(get_calendar_service),
) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db, clock, calendar)


@router.get("/available-slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    date: Optional[str] = Query(None),
    isAdmin: bool = Query(False),
    packageId: Optional[str] = Query(None),
    isMultiplePackage: bool = Query(False),
    current_user: User = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Start times on a day where a session of the package's length fits"""
    if not date:
        raise ValidationError("Date parameter is required")
    try:
        day = parse_iso_date(date)
    except ValueError as e:
        raise ValidationError("Invalid date format") from e

    # Only admins may look at already-passed slots of today
    slots = await service.get_available_slots(
        day,
        is_admin=isAdmin and current_user.is_admin,
        package_id=packageId or None,
        is_multiple_package=isMultiplePackage,
    )
    return AvailableSlotsResponse(slots=slots)
