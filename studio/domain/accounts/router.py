"""Account router - login and current user"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import authenticate_user, create_access_token, get_current_user
from ...database import get_db
from ...errors import UnauthorizedError
from ...models import User
from .schemas import LoginRequest, TokenResponse, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        phone=user.phone,
        role=user.role,
        whatsappNotifications=user.whatsapp_notifications,
        bookingReminders=user.booking_reminders,
    )


@router.post("/login", response_model=TokenResponse)
async def login(data: LoginRequest, db: Session = Depends(get_db)):
    user = authenticate_user(db, data.email, data.password)
    if not user:
        logger.info(f"ℹ️ Failed login for {data.email}")
        raise UnauthorizedError("Invalid email or password")

    logger.info(f"🔑 User {user.id} logged in")
    return TokenResponse(access_token=create_access_token(user), user=_user_response(user))


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)):
    return _user_response(current_user)
