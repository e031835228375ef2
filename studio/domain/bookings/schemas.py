"""Booking domain schemas - Pydantic models for validation"""

from datetime import date as dt_date
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...models import Booking
from ...shared.validators import parse_iso_date, validate_booking_time


class BookingCreate(BaseModel):
    """Schema for a client booking request"""

    date: str
    time: str
    packageId: str = Field(..., min_length=1)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        parse_iso_date(v)
        return v.strip()

    @field_validator("time")
    @classmethod
    def validate_time(cls, v):
        return validate_booking_time(v)

    @field_validator("packageId")
    @classmethod
    def validate_package_id(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Package ID is required")
        return v


class BookingUserSummary(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None


class BookingPackageSummary(BaseModel):
    id: str
    name: str
    durationMinutes: int


class BookingResponse(BaseModel):
    """Schema for booking response"""

    id: str
    userId: int
    packageId: str
    date: dt_date
    time: str
    status: str
    googleEventId: Optional[str] = None
    reminderSent: bool
    createdAt: Optional[datetime] = None
    user: Optional[BookingUserSummary] = None
    package: Optional[BookingPackageSummary] = None

    @classmethod
    def from_booking(cls, booking: Booking, include_relations: bool = False) -> "BookingResponse":
        response = cls(
            id=booking.id,
            userId=booking.user_id,
            packageId=booking.package_id,
            date=booking.date,
            time=booking.time,
            status=booking.status,
            googleEventId=booking.google_event_id,
            reminderSent=booking.reminder_sent,
            createdAt=booking.created_at,
        )
        if include_relations:
            response.user = BookingUserSummary(
                id=booking.user.id,
                name=booking.user.name,
                email=booking.user.email,
                phone=booking.user.phone,
            )
            response.package = BookingPackageSummary(
                id=booking.package.id,
                name=booking.package.name,
                durationMinutes=booking.package.duration_minutes,
            )
        return response


class CancelBookingResponse(BaseModel):
    success: bool
    booking: BookingResponse
