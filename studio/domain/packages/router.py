"""Package router - FastAPI endpoints for package balances and assignment"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_admin, get_current_user
from ...database import get_db
from ...models import Package, User
from .schemas import (
    AdminPackageResponse,
    PackageAssignRequest,
    PackageHolderResponse,
    PackageResponse,
)
from .service import PackageLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Packages"])


def get_package_ledger(db: Session = Depends(get_db)) -> PackageLedger:
    """Dependency injection for PackageLedger"""
    return PackageLedger(db)


def _admin_package_response(package: Package) -> AdminPackageResponse:
    return AdminPackageResponse(
        id=package.id,
        name=package.name,
        totalSessions=package.total_sessions,
        durationMinutes=package.duration_minutes,
        isActive=package.is_active,
        holders=[
            PackageHolderResponse(
                userId=up.user.id,
                name=up.user.name,
                email=up.user.email,
                usedSessions=up.used_sessions,
            )
            for up in package.user_packages
        ],
        createdAt=package.created_at,
    )


@router.get("/packages", response_model=list[PackageResponse])
async def get_my_packages(
    current_user: User = Depends(get_current_user),
    ledger: PackageLedger = Depends(get_package_ledger),
):
    """Active packages of the current user, with their own session balance"""
    holdings = ledger.list_for_user(current_user.id)
    return [
        PackageResponse(
            id=h.package.id,
            name=h.package.name,
            totalSessions=h.package.total_sessions,
            usedSessions=h.used_sessions,
            remainingSessions=h.remaining_sessions,
            durationMinutes=h.package.duration_minutes,
            isActive=h.package.is_active,
            isMultiplePackage=len(h.package.user_packages) > 1,
            createdAt=h.package.created_at,
        )
        for h in holdings
    ]


@router.post("/admin/packages", response_model=AdminPackageResponse, status_code=201)
async def assign_package(
    data: PackageAssignRequest,
    _admin: User = Depends(get_current_admin),
    ledger: PackageLedger = Depends(get_package_ledger),
):
    """Assign a new package to a user, or a group package to several users"""
    package = ledger.assign(data)
    return _admin_package_response(package)
