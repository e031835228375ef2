"""
Twilio WhatsApp Service
Handles sending WhatsApp notifications for booking events. Sends never
raise: callers get (success, error_message) and decide what to log.
"""

import logging
from datetime import date
from typing import Optional

import httpx
from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import STUDIO_NAME, TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_WHATSAPP_FROM
from ..database import get_db
from ..models import WhatsAppMessageLog
from ..shared.validators import normalize_phone

logger = logging.getLogger(__name__)

TWILIO_API = "https://api.twilio.com/2010-04-01"

# Twilio error codes worth a specific hint in the logs
TWILIO_ERROR_HINTS = {
    21211: "invalid 'To' number (not on WhatsApp or wrong format)",
    21408: "destination region not enabled",
    21608: "number not authorized for the Twilio sandbox",
}


def _mask_phone(phone: str) -> str:
    return f"{phone[:4]}****{phone[-2:]}" if len(phone) > 6 else "****"


class WhatsAppService:
    def __init__(self, db: Session, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.db = db
        self.transport = transport

    @staticmethod
    def is_configured() -> bool:
        return bool(TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_WHATSAPP_FROM)

    def _log_message(
        self,
        to_phone: str,
        message_body: str,
        message_type: str,
        status: str,
        user_id: Optional[int],
        booking_id: Optional[str],
        message_sid: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        try:
            self.db.add(
                WhatsAppMessageLog(
                    user_id=user_id,
                    booking_id=booking_id,
                    to_phone=to_phone,
                    message_body=message_body,
                    message_type=message_type,
                    twilio_message_sid=message_sid,
                    status=status,
                    error_message=error_message,
                )
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record WhatsApp message log: {e}")

    async def send_message(
        self,
        to_phone: Optional[str],
        message_body: str,
        message_type: str,
        user_id: Optional[int] = None,
        booking_id: Optional[str] = None,
    ) -> tuple[bool, Optional[str]]:
        """
        Send a WhatsApp message via Twilio

        Args:
            to_phone: Recipient phone number, any common format
            message_body: Message content
            message_type: booking_confirmation, booking_reminder, booking_cancellation
            user_id: Recipient user ID, for the message log
            booking_id: Related booking ID, for the message log

        Returns:
            Tuple of (success: bool, error_message: Optional[str])
        """
        if not self.is_configured():
            logger.warning("⚠️ Twilio not configured, skipping WhatsApp message")
            return False, "WhatsApp not configured"

        normalized_phone = normalize_phone(to_phone)
        if not normalized_phone:
            logger.debug(f"No phone number provided for user {user_id}")
            return False, "No phone number provided"

        masked = _mask_phone(normalized_phone)
        logger.info(f"📱 Sending WhatsApp: type={message_type}, to={masked}, user={user_id}")

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=10.0) as client:
                response = await client.post(
                    f"{TWILIO_API}/Accounts/{TWILIO_ACCOUNT_SID}/Messages.json",
                    auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
                    data={
                        "From": TWILIO_WHATSAPP_FROM,
                        "To": f"whatsapp:{normalized_phone}",
                        "Body": message_body,
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Twilio API error: {str(e)}")
            self._log_message(
                normalized_phone, message_body, message_type, "failed", user_id, booking_id,
                error_message=str(e),
            )
            return False, str(e)

        if response.status_code in [200, 201]:
            message_sid = response.json().get("sid")
            self._log_message(
                normalized_phone, message_body, message_type, "sent", user_id, booking_id,
                message_sid=message_sid,
            )
            logger.info(f"✅ WhatsApp sent: {message_type} to {masked} (SID: {message_sid})")
            return True, None

        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        error_message = error_data.get("message", f"HTTP {response.status_code}")
        error_code = error_data.get("code")

        self._log_message(
            normalized_phone, message_body, message_type, "failed", user_id, booking_id,
            error_message=f"[{error_code}] {error_message}" if error_code else error_message,
        )
        hint = TWILIO_ERROR_HINTS.get(error_code)
        logger.error(
            f"❌ Twilio API error [{error_code}]: {error_message}" + (f" - {hint}" if hint else "")
        )
        return False, error_message


def get_whatsapp_service(db: Session = Depends(get_db)) -> WhatsAppService:
    """Dependency injection for WhatsAppService"""
    return WhatsAppService(db)


# Message Template Functions
def _format_date(day: date) -> str:
    return f"{day.strftime('%A')} {day.day} {day.strftime('%B %Y')}"


def format_booking_confirmation_message(client_name: str, day: date, time: str) -> str:
    return (
        f"✅ Booking confirmed!\n\nHi {client_name},\n\n"
        f"Your session is booked for:\n📅 {_format_date(day)}\n🕐 {time}\n\n"
        f"See you at {STUDIO_NAME}! 💪"
    )


def format_booking_reminder_message(client_name: str, day: date, time: str) -> str:
    return (
        f"⏰ Session reminder\n\nHi {client_name},\n\n"
        f"Your session starts in about an hour:\n📅 {_format_date(day)}\n🕐 {time}\n\n"
        f"See you soon! 💪"
    )


def format_booking_cancellation_message(client_name: str, day: date, time: str) -> str:
    return (
        f"❌ Booking cancelled\n\nHi {client_name},\n\n"
        f"Your session has been cancelled:\n📅 {_format_date(day)}\n🕐 {time}\n\n"
        f"The session has been returned to your package."
    )
