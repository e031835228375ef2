"""Package domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PackageAssignRequest(BaseModel):
    """Schema for assigning a new package to one user or a group"""

    userIds: list[int] = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=255)
    totalSessions: int = Field(..., gt=0)
    durationMinutes: int = Field(60, gt=0, le=240)


class PackageResponse(BaseModel):
    """A package as seen by one of its holders"""

    id: str
    name: str
    totalSessions: int
    usedSessions: int
    remainingSessions: int
    durationMinutes: int
    isActive: bool
    isMultiplePackage: bool
    createdAt: Optional[datetime] = None


class PackageHolderResponse(BaseModel):
    userId: int
    name: str
    email: str
    usedSessions: int


class AdminPackageResponse(BaseModel):
    id: str
    name: str
    totalSessions: int
    durationMinutes: int
    isActive: bool
    holders: list[PackageHolderResponse]
    createdAt: Optional[datetime] = None
