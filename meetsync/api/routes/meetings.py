"""
Meeting Routes

- POST /api/meetings/find-times
- GET/POST /api/meetings
- GET /api/meetings/{id}
"""

from fastapi import APIRouter, Depends

from meetsync.api.deps import calendar_source, current_user_id, tokens
from meetsync.api.models import FindTimesRequest, MeetingCreate
from meetsync.availability.finder import find_meeting_times
from meetsync.calendar.base import CalendarSource
from meetsync.calendar.oauth import TokenManager
from meetsync.errors import NotAuthorized
from meetsync.meetings import create_meeting, get_meeting, list_meetings


router = APIRouter()


@router.post("/find-times")
async def find_times(
    request: FindTimesRequest,
    user_id: str = Depends(current_user_id),
    source: CalendarSource = Depends(calendar_source),
    token_manager: TokenManager = Depends(tokens),
):
    result = await find_meeting_times(
        user_id,
        request.participant_emails,
        request.start_date,
        request.end_date,
        request.duration,
        source=source,
        tokens=token_manager,
    )
    return result.to_dict()


@router.get("")
async def get_meetings(user_id: str = Depends(current_user_id)):
    return {"meetings": [m.to_dict() for m in list_meetings(user_id)]}


@router.post("", status_code=201)
async def schedule(request: MeetingCreate, user_id: str = Depends(current_user_id)):
    meeting = create_meeting(
        user_id,
        request.title,
        request.start_time,
        request.end_time,
        request.participant_ids,
        request.description,
    )
    return {"meeting": meeting.to_dict()}


@router.get("/{meeting_id}")
async def get_one(meeting_id: str, user_id: str = Depends(current_user_id)):
    meeting = get_meeting(meeting_id)
    if user_id != meeting.coordinator_id and user_id not in meeting.participant_ids:
        raise NotAuthorized("Not a participant of this meeting")
    return {"meeting": meeting.to_dict()}
