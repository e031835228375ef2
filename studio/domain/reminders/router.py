"""Reminder router - endpoint hit by the scheduler"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from ... import config
from ...clock import Clock, get_clock
from ...database import get_db
from ...errors import UnauthorizedError
from ...services.whatsapp_service import WhatsAppService, get_whatsapp_service
from .schemas import ReminderRunResponse
from .service import ReminderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Reminders"])


def get_reminder_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: WhatsAppService = Depends(get_whatsapp_service),
) -> ReminderService:
    """Dependency injection for ReminderService"""
    return ReminderService(db, clock, notifier)


def verify_scheduler(request: Request, authorization: Optional[str] = Header(None)) -> None:
    """Accept the scheduler's marker header or the shared cron secret"""
    if request.headers.get(config.CRON_SCHEDULER_HEADER) == "1":
        return
    if config.CRON_SECRET and authorization and secrets.compare_digest(
        authorization, f"Bearer {config.CRON_SECRET}"
    ):
        return
    logger.warning("⚠️ Unauthorized reminder run attempt")
    raise UnauthorizedError("Unauthorized")


@router.get("/reminders", response_model=ReminderRunResponse)
async def send_reminders(
    _: None = Depends(verify_scheduler),
    service: ReminderService = Depends(get_reminder_service),
):
    """Send WhatsApp reminders for sessions starting in about an hour"""
    return await service.send_due_reminders()
