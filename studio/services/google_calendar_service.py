"""
Google Calendar Service
Handles calendar event creation, deletion and busy-time lookups for the
studio calendar. Event writes are best-effort: failures are logged and
reported as None/False so booking never depends on calendar sync.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple, Optional

import httpx
from fastapi import Depends
from sqlalchemy.orm import Session

from ..clock import Clock, get_clock
from ..config import (
    GOOGLE_CALENDAR_ID,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REFRESH_TOKEN,
    STUDIO_TIMEZONE,
)
from ..database import end_read_transaction, get_db
from ..models import GoogleCalendarCredential
from ..shared.crypto import decrypt_credential, encrypt_credential
from ..shared.timeslots import Interval

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
TOKEN_REFRESH_MARGIN = timedelta(minutes=5)
REQUEST_TIMEOUT = 10.0


class CalendarUnavailableError(Exception):
    """Google Calendar is not configured or did not answer usefully"""


class CalendarConnection(NamedTuple):
    """Stored credential fields, detached from the session so they survive awaits"""

    credential_id: int
    calendar_id: str
    access_token: Optional[str]  # encrypted
    refresh_token: str  # encrypted
    token_expires_at: Optional[datetime]  # naive UTC
    auto_sync_enabled: bool


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class GoogleCalendarService:
    def __init__(
        self,
        db: Session,
        clock: Clock,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.clock = clock
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=REQUEST_TIMEOUT)

    def _get_credential(self) -> Optional[GoogleCalendarCredential]:
        credential = self.db.query(GoogleCalendarCredential).first()
        if credential or not GOOGLE_REFRESH_TOKEN:
            return credential

        # Bootstrap the stored credential from the environment on first use
        logger.info("🔄 Storing Google Calendar refresh token from environment")
        credential = GoogleCalendarCredential(
            refresh_token=encrypt_credential(GOOGLE_REFRESH_TOKEN),
            calendar_id=GOOGLE_CALENDAR_ID,
        )
        self.db.add(credential)
        self.db.commit()
        self.db.refresh(credential)
        return credential

    def _load_connection(self) -> Optional[CalendarConnection]:
        """Read the credential and end the transaction before any HTTP call is awaited"""
        credential = self._get_credential()
        connection = None
        if credential:
            connection = CalendarConnection(
                credential_id=credential.id,
                calendar_id=credential.calendar_id or GOOGLE_CALENDAR_ID,
                access_token=credential.access_token,
                refresh_token=credential.refresh_token,
                token_expires_at=credential.token_expires_at,
                auto_sync_enabled=credential.auto_sync_enabled is not False,
            )
        end_read_transaction(self.db)
        return connection

    def _store_tokens(
        self, credential_id: int, access_token: str, expires_at: datetime, refresh_token: Optional[str]
    ) -> None:
        credential = self.db.get(GoogleCalendarCredential, credential_id)
        if credential is None:
            logger.warning("⚠️ Google Calendar credential removed during token refresh")
            end_read_transaction(self.db)
            return

        credential.access_token = encrypt_credential(access_token)
        credential.token_expires_at = expires_at
        if refresh_token:
            credential.refresh_token = encrypt_credential(refresh_token)
        self.db.commit()

    def is_configured(self) -> bool:
        if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
            return False
        connection = self._load_connection()
        return bool(connection and connection.auto_sync_enabled)

    async def get_valid_access_token(self, connection: CalendarConnection) -> str:
        """
        Get a valid access token, refreshing it when it expires within 5 minutes

        Raises:
            CalendarUnavailableError: If the refresh fails
        """
        now = _utcnow()
        if (
            connection.access_token
            and connection.token_expires_at
            and connection.token_expires_at > now + TOKEN_REFRESH_MARGIN
        ):
            return decrypt_credential(connection.access_token)

        logger.info("🔄 Google Calendar token expired, refreshing...")
        refresh_token = decrypt_credential(connection.refresh_token)

        try:
            async with self._client() as client:
                response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "client_id": GOOGLE_CLIENT_ID,
                        "client_secret": GOOGLE_CLIENT_SECRET,
                        "refresh_token": refresh_token,
                        "grant_type": "refresh_token",
                    },
                )
        except httpx.HTTPError as e:
            raise CalendarUnavailableError(f"Token refresh request failed: {e}") from e

        if response.status_code != 200:
            if "invalid_grant" in response.text:
                raise CalendarUnavailableError(
                    "Google Calendar token expired or revoked - reconnect the calendar"
                )
            raise CalendarUnavailableError(f"Token refresh failed: HTTP {response.status_code}")

        tokens = response.json()
        new_access_token = tokens.get("access_token")
        if not new_access_token:
            raise CalendarUnavailableError("No access token in refresh response")

        self._store_tokens(
            connection.credential_id,
            new_access_token,
            now + timedelta(seconds=tokens.get("expires_in", 3600)),
            tokens.get("refresh_token"),
        )

        logger.info("✅ Google Calendar token refreshed successfully")
        return new_access_token

    async def _authorized(self) -> tuple[str, str]:
        """Return (access_token, calendar_id) or raise CalendarUnavailableError"""
        if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
            raise CalendarUnavailableError("Google Calendar not configured")

        connection = self._load_connection()
        if not connection or not connection.auto_sync_enabled:
            raise CalendarUnavailableError("Google Calendar not connected or auto-sync disabled")

        access_token = await self.get_valid_access_token(connection)
        return access_token, connection.calendar_id

    async def create_event(
        self, summary: str, description: str, start: datetime, end: datetime
    ) -> Optional[str]:
        """
        Create an event in the studio calendar
        Returns the Google Calendar event ID if successful, None otherwise
        """
        try:
            access_token, calendar_id = await self._authorized()

            event_data = {
                "summary": summary,
                "description": description,
                "start": {"dateTime": start.isoformat(), "timeZone": STUDIO_TIMEZONE},
                "end": {"dateTime": end.isoformat(), "timeZone": STUDIO_TIMEZONE},
            }

            async with self._client() as client:
                response = await client.post(
                    f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events",
                    headers={"Authorization": f"Bearer {access_token}"},
                    json=event_data,
                )

            if response.status_code not in [200, 201]:
                logger.error(f"❌ Failed to create calendar event: HTTP {response.status_code}")
                return None

            event_id = response.json().get("id")
            logger.info(f"✅ Google Calendar event created: {event_id}")
            return event_id

        except CalendarUnavailableError as e:
            logger.warning(f"⚠️ Calendar event not created: {e}")
            return None
        except Exception as e:
            logger.error(f"❌ Error creating calendar event: {type(e).__name__}: {e}")
            return None

    async def delete_event(self, event_id: str) -> bool:
        """
        Delete an event from the studio calendar
        Returns True if successful (or already gone), False otherwise
        """
        try:
            access_token, calendar_id = await self._authorized()

            async with self._client() as client:
                response = await client.delete(
                    f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events/{event_id}",
                    headers={"Authorization": f"Bearer {access_token}"},
                )

            if response.status_code in [404, 410]:
                logger.info(f"ℹ️ Google Calendar event already gone: {event_id}")
                return True
            if response.status_code not in [200, 204]:
                logger.error(f"❌ Failed to delete calendar event: HTTP {response.status_code}")
                return False

            logger.info(f"✅ Google Calendar event deleted: {event_id}")
            return True

        except CalendarUnavailableError as e:
            logger.warning(f"⚠️ Calendar event {event_id} not deleted: {e}")
            return False
        except Exception as e:
            logger.error(f"❌ Error deleting calendar event: {type(e).__name__}: {e}")
            return False

    async def list_busy_intervals(self, day: date) -> list[tuple[str, Interval]]:
        """
        Timed, opaque events on the given day as (event_id, interval) pairs in
        studio-local time

        Raises:
            CalendarUnavailableError: If the calendar cannot be read
        """
        access_token, calendar_id = await self._authorized()

        day_start = self.clock.localize(datetime.combine(day, time.min))
        day_end = day_start + timedelta(days=1)

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events",
                    headers={"Authorization": f"Bearer {access_token}"},
                    params={
                        "timeMin": day_start.isoformat(),
                        "timeMax": day_end.isoformat(),
                        "singleEvents": "true",
                        "orderBy": "startTime",
                    },
                )
        except httpx.HTTPError as e:
            raise CalendarUnavailableError(f"Event list request failed: {e}") from e

        if response.status_code != 200:
            raise CalendarUnavailableError(f"Event list failed: HTTP {response.status_code}")

        busy = []
        for event in response.json().get("items", []):
            if event.get("status") == "cancelled" or event.get("transparency") == "transparent":
                continue

            start_raw = (event.get("start") or {}).get("dateTime")
            end_raw = (event.get("end") or {}).get("dateTime")
            if not start_raw or not end_raw:
                # All-day events carry only a date; they don't block slots
                continue

            try:
                start = self.clock.to_local(datetime.fromisoformat(start_raw))
                end = self.clock.to_local(datetime.fromisoformat(end_raw))
            except ValueError:
                logger.debug(f"Failed to parse event times: {start_raw} - {end_raw}")
                continue

            busy.append((event.get("id"), Interval(start, end)))

        return busy


def get_calendar_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> GoogleCalendarService:
    """Dependency injection for GoogleCalendarService"""
    return GoogleCalendarService(db, clock)
