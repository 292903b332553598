"""Shared FastAPI dependencies.

Session handling lives in front of this service; it forwards the signed-in
user's id in the X-User-Id header.
"""

from fastapi import Header, HTTPException, status

from meetsync.calendar.base import CalendarSource
from meetsync.calendar.busy import default_source
from meetsync.calendar.oauth import TokenManager, token_manager
from meetsync.users import require_user


def current_user_id(x_user_id: str | None = Header(None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    require_user(x_user_id)
    return x_user_id


def calendar_source() -> CalendarSource:
    return default_source()


def tokens() -> TokenManager:
    return token_manager
