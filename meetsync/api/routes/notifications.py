"""
Notification Routes

- GET /api/notifications
- POST /api/notifications/{id}/read
- POST /api/notifications/read-all
"""

from fastapi import APIRouter, Depends, Query

from meetsync.api.deps import current_user_id
from meetsync.errors import NotFound
from meetsync.notifications import list_notifications, mark_all_read, mark_read


router = APIRouter()


@router.get("")
async def inbox(
    unread_only: bool = Query(False, description="Only unread notifications"),
    user_id: str = Depends(current_user_id),
):
    notifications = list_notifications(user_id, unread_only=unread_only)
    return {
        "notifications": [n.to_dict() for n in notifications],
        "unread_count": sum(1 for n in notifications if not n.read),
    }


@router.post("/read-all")
async def read_all(user_id: str = Depends(current_user_id)):
    return {"updated": mark_all_read(user_id)}


@router.post("/{notification_id}/read")
async def read_one(notification_id: str, user_id: str = Depends(current_user_id)):
    if not mark_read(notification_id, user_id):
        raise NotFound(f"Notification not found: {notification_id}")
    return {"updated": 1}
