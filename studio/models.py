import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate a unique string ID for packages and bookings"""
    return str(uuid.uuid4())


class UserRole:
    ADMIN = "ADMIN"
    CLIENT = "CLIENT"


class BookingStatus:
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)  # Free-form, normalised when messaging
    password_hash = Column(String(255), nullable=False)  # bcrypt
    role = Column(String(20), default=UserRole.CLIENT, nullable=False)  # ADMIN, CLIENT
    # Notification preferences
    whatsapp_notifications = Column(
        Boolean, default=True, nullable=False
    )  # Booking confirmations and cancellations
    booking_reminders = Column(Boolean, default=True, nullable=False)  # Reminder before a session
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user_packages = relationship(
        "UserPackage", back_populates="user", cascade="all, delete-orphan"
    )
    bookings = relationship("Booking", back_populates="user", cascade="all, delete-orphan")
    message_logs = relationship(
        "WhatsAppMessageLog", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class Package(Base):
    """A prepaid grant of sessions, held by one user or shared by a group"""

    __tablename__ = "packages"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    total_sessions = Column(Integer, nullable=False)
    duration_minutes = Column(Integer, default=60, nullable=False)  # Length of each session
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user_packages = relationship(
        "UserPackage", back_populates="package", cascade="all, delete-orphan"
    )
    bookings = relationship("Booking", back_populates="package")

    __table_args__ = (CheckConstraint("total_sessions > 0", name="ck_packages_total_positive"),)


class UserPackage(Base):
    """Ledger row: how many sessions of a package one holder has used"""

    __tablename__ = "user_packages"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    package_id = Column(String(36), ForeignKey("packages.id", ondelete="CASCADE"), nullable=False)
    used_sessions = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="user_packages")
    package = relationship("Package", back_populates="user_packages")

    __table_args__ = (
        UniqueConstraint("user_id", "package_id", name="uq_user_packages_user_package"),
        CheckConstraint("used_sessions >= 0", name="ck_user_packages_used_non_negative"),
    )

    @property
    def remaining_sessions(self) -> int:
        return self.package.total_sessions - self.used_sessions


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    package_id = Column(String(36), ForeignKey("packages.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    time = Column(String(5), nullable=False)  # "HH:MM", studio local time
    status = Column(String(20), default=BookingStatus.CONFIRMED, nullable=False)
    google_event_id = Column(String(255), nullable=True)
    reminder_sent = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="bookings")
    package = relationship("Package", back_populates="bookings")

    __table_args__ = (
        # One confirmed booking per slot across the whole studio
        Index(
            "uq_bookings_confirmed_slot",
            "date",
            "time",
            unique=True,
            sqlite_where=text("status = 'CONFIRMED'"),
            postgresql_where=text("status = 'CONFIRMED'"),
        ),
    )


class GoogleCalendarCredential(Base):
    """The studio's Google Calendar connection (single row)"""

    __tablename__ = "google_calendar_credentials"

    id = Column(Integer, primary_key=True, index=True)

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=False)
    token_expires_at = Column(DateTime, nullable=True)

    calendar_id = Column(String(500), nullable=True)
    auto_sync_enabled = Column(Boolean, default=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class WhatsAppMessageLog(Base):
    """Track WhatsApp messages sent via Twilio"""

    __tablename__ = "whatsapp_message_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    booking_id = Column(String(36), nullable=True)

    # Message details
    to_phone = Column(String(50), nullable=False)
    message_body = Column(Text, nullable=False)
    message_type = Column(String(50), nullable=False)  # booking_confirmation, booking_reminder, ...

    # Twilio response
    twilio_message_sid = Column(String(255), nullable=True)
    status = Column(String(50), nullable=False)  # sent, failed
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="message_logs")
