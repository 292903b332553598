"""
User Routes

- POST /api/users
- GET/PATCH /api/users/me
- GET /api/contacts/frequent
"""

from fastapi import APIRouter, Depends

from meetsync.api.deps import current_user_id
from meetsync.api.models import PreferencesUpdate, RegisterRequest
from meetsync.users import (
    frequent_contacts,
    register_user,
    require_user,
    update_buffer,
    update_timezone,
)


router = APIRouter()


@router.post("/users", status_code=201)
async def register(request: RegisterRequest):
    """Create an account. Called by the sign-in flow on first authentication."""
    user = register_user(
        request.email,
        request.name,
        timezone=request.timezone,
        buffer_minutes=request.buffer_minutes,
    )
    return {"user": user.to_dict()}


@router.get("/users/me")
async def me(user_id: str = Depends(current_user_id)):
    return {"user": require_user(user_id).to_dict()}


@router.patch("/users/me")
async def update_preferences(request: PreferencesUpdate, user_id: str = Depends(current_user_id)):
    user = require_user(user_id)
    if request.timezone is not None:
        user = update_timezone(user_id, request.timezone)
    if request.buffer_minutes is not None:
        user = update_buffer(user_id, request.buffer_minutes)
    return {"user": user.to_dict()}


@router.get("/contacts/frequent")
async def frequent(user_id: str = Depends(current_user_id)):
    return {"contacts": frequent_contacts(user_id)}
