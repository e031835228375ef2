"""Reminder schemas"""

from typing import Optional

from pydantic import BaseModel


class ReminderResult(BaseModel):
    bookingId: str
    status: str
    error: Optional[str] = None


class ReminderRunResponse(BaseModel):
    processed: int
    success: int
    errors: int
    results: list[ReminderResult]
    timestamp: str
