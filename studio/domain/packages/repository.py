"""Package repository - Database operations for packages and their ledger rows"""

from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Package, User, UserPackage


class PackageRepository:
    """Repository for package database operations"""

    @staticmethod
    def get_package(db: Session, package_id: str, for_update: bool = False) -> Optional[Package]:
        """Get a package by ID, optionally locking the row for the transaction"""
        query = db.query(Package).filter(Package.id == package_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    @staticmethod
    def get_holding(db: Session, package_id: str, user_id: int) -> Optional[UserPackage]:
        """Get one user's ledger row for a package"""
        return (
            db.query(UserPackage)
            .options(joinedload(UserPackage.package))
            .filter(UserPackage.package_id == package_id, UserPackage.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_holdings_for_package(db: Session, package_id: str) -> list[UserPackage]:
        """Get every holder's ledger row for a package"""
        return (
            db.query(UserPackage)
            .filter(UserPackage.package_id == package_id)
            .populate_existing()
            .order_by(UserPackage.id)
            .all()
        )

    @staticmethod
    def get_active_holdings_for_user(db: Session, user_id: int) -> list[UserPackage]:
        """Get a user's ledger rows for active packages, newest first"""
        return (
            db.query(UserPackage)
            .join(Package)
            .options(joinedload(UserPackage.package))
            .filter(UserPackage.user_id == user_id, Package.is_active.is_(True))
            .order_by(UserPackage.created_at.desc(), UserPackage.id.desc())
            .all()
        )

    @staticmethod
    def increment_used_sessions(
        db: Session, package_id: str, user_ids: list[int], total_sessions: int
    ) -> int:
        """
        Consume one session for each listed holder that still has one left.
        Returns the number of ledger rows updated.
        """
        return (
            db.query(UserPackage)
            .filter(
                UserPackage.package_id == package_id,
                UserPackage.user_id.in_(user_ids),
                UserPackage.used_sessions < total_sessions,
            )
            .update(
                {UserPackage.used_sessions: UserPackage.used_sessions + 1},
                synchronize_session=False,
            )
        )

    @staticmethod
    def decrement_used_sessions(db: Session, package_id: str, user_ids: list[int]) -> int:
        """Give one session back to each listed holder. Returns rows updated."""
        return (
            db.query(UserPackage)
            .filter(
                UserPackage.package_id == package_id,
                UserPackage.user_id.in_(user_ids),
                UserPackage.used_sessions > 0,
            )
            .update(
                {UserPackage.used_sessions: UserPackage.used_sessions - 1},
                synchronize_session=False,
            )
        )

    @staticmethod
    def get_users(db: Session, user_ids: list[int]) -> list[User]:
        return db.query(User).filter(User.id.in_(user_ids)).all()

    @staticmethod
    def create_package(
        db: Session, user_ids: list[int], name: str, total_sessions: int, duration_minutes: int
    ) -> Package:
        """Create a package and one ledger row per holder"""
        package = Package(
            name=name,
            total_sessions=total_sessions,
            duration_minutes=duration_minutes,
            is_active=True,
        )
        package.user_packages = [UserPackage(user_id=user_id, used_sessions=0) for user_id in user_ids]
        db.add(package)
        db.commit()
        db.refresh(package)
        return package
