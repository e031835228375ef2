"""Package ledger - session balances per package holder"""

import logging

from sqlalchemy.orm import Session

from ...database import begin_serializable, end_read_transaction
from ...errors import ConflictError, ForbiddenError, NotFoundError
from ...models import Package, UserPackage
from .repository import PackageRepository
from .schemas import PackageAssignRequest

logger = logging.getLogger(__name__)


class PackageLedger:
    """
    Source of truth for "sessions remaining".

    A package held by more than one user is a group package: one booking
    consumes a session from every holder, so every holder must have one left.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = PackageRepository()

    def get_holding(self, package_id: str, user_id: int) -> UserPackage:
        """Resolve the caller's ledger row for an active package"""
        package = self.repo.get_package(self.db, package_id)
        if not package or not package.is_active:
            raise NotFoundError("Package not found or not active")

        holding = self.repo.get_holding(self.db, package_id, user_id)
        if not holding:
            logger.warning(f"⚠️ User {user_id} tried to use package {package_id} they do not hold")
            raise ForbiddenError("This package does not belong to you")
        return holding

    @staticmethod
    def _holders_to_charge(holdings: list[UserPackage], user_id: int) -> list[UserPackage]:
        if len(holdings) > 1:
            return holdings
        return [h for h in holdings if h.user_id == user_id]

    def check_available(self, holding: UserPackage) -> None:
        """Read-only check that the next booking on this package can be charged"""
        package = holding.package
        holdings = self.repo.get_holdings_for_package(self.db, package.id)
        for charged in self._holders_to_charge(holdings, holding.user_id):
            if package.total_sessions - charged.used_sessions <= 0:
                if len(holdings) > 1:
                    raise ConflictError("One or more athletes in this package have no sessions left")
                raise ConflictError("No sessions remaining in this package")

    def consume(self, package_id: str, user_id: int) -> list[int]:
        """
        Charge one session for a booking by user_id, inside the caller's transaction.

        Re-reads the package and its ledger rows, then increments with a guarded
        UPDATE so a concurrent consumer can never push used past total. Returns
        the IDs of the users charged. The caller must roll back on ConflictError.
        """
        package = self.repo.get_package(self.db, package_id, for_update=True)
        if not package or not package.is_active:
            raise ConflictError("Package is no longer valid")

        holdings = self.repo.get_holdings_for_package(self.db, package_id)
        if not any(h.user_id == user_id for h in holdings):
            raise ConflictError("Package is no longer valid")

        charged = self._holders_to_charge(holdings, user_id)
        for holding in charged:
            if package.total_sessions - holding.used_sessions <= 0:
                raise ConflictError("Sessions ran out while processing the booking")

        charged_ids = [h.user_id for h in charged]
        updated = self.repo.increment_used_sessions(
            self.db, package_id, charged_ids, package.total_sessions
        )
        if updated != len(charged_ids):
            raise ConflictError("Sessions ran out while processing the booking")

        return charged_ids

    def release(self, package_id: str, booker_id: int) -> int:
        """Return one session for a cancelled booking, inside the caller's transaction"""
        holdings = self.repo.get_holdings_for_package(self.db, package_id)
        released_ids = [h.user_id for h in self._holders_to_charge(holdings, booker_id)]
        if not released_ids:
            return 0
        return self.repo.decrement_used_sessions(self.db, package_id, released_ids)

    def list_for_user(self, user_id: int) -> list[UserPackage]:
        return self.repo.get_active_holdings_for_user(self.db, user_id)

    def assign(self, data: PackageAssignRequest) -> Package:
        """Create a package for one user, or a group package for several"""
        user_ids = list(dict.fromkeys(data.userIds))

        end_read_transaction(self.db)
        begin_serializable(self.db)
        try:
            users = self.repo.get_users(self.db, user_ids)
            missing = set(user_ids) - {u.id for u in users}
            if missing:
                raise NotFoundError(f"User not found: {', '.join(str(i) for i in sorted(missing))}")

            for user_id in user_ids:
                for holding in self.repo.get_active_holdings_for_user(self.db, user_id):
                    if holding.remaining_sessions > 0:
                        raise ConflictError(
                            f"User {user_id} already has an active package with sessions remaining"
                        )

            package = self.repo.create_package(
                self.db, user_ids, data.name, data.totalSessions, data.durationMinutes
            )
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"📦 Package {package.id} assigned to users {user_ids} "
            f"({data.totalSessions} x {data.durationMinutes} min)"
        )
        return package
