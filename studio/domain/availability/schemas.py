"""Availability schemas"""

from pydantic import BaseModel


class AvailableSlotsResponse(BaseModel):
    slots: list[str]
