import uuid
from typing import Optional

from fastapi import Cookie, Depends, Header, HTTPException, Response

from restobook.config import settings
from restobook.models.schemas import Role, SessionContext
from restobook.services.booking import booking_service

SESSION_COOKIE = "session_id"


def get_booking_service():
    return booking_service


def get_context(
    response: Response,
    session_id: Optional[str] = Cookie(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> SessionContext:
    """Session token from the cookie (issued on first use) plus the pre-resolved user id."""
    if not session_id:
        session_id = uuid.uuid4().hex
        response.set_cookie(SESSION_COOKIE, session_id, max_age=settings.REDIS_TTL, httponly=True)
    return SessionContext(session_id=session_id, user_id=x_user_id)


def get_role(x_role: Role = Header()) -> Role:
    return x_role


def get_staff_role(role: Role = Depends(get_role)) -> Role:
    if role == Role.CUSTOMER:
        raise HTTPException(status_code=403, detail="Staff only")
    return role
