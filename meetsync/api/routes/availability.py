"""
Availability Routes

- GET/POST/PUT /api/availability/rules, DELETE /api/availability/rules/{id}
- GET/POST /api/availability/blocked, DELETE /api/availability/blocked/{id}
- GET /api/availability/range
- GET /api/availability/suggested
- GET /api/availability/busy
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from meetsync.api.deps import calendar_source, current_user_id, tokens
from meetsync.api.models import BlockedTimeCreate, RuleCreate, RulesReplace
from meetsync.availability.rules import (
    availability_range,
    create_blocked_time,
    create_rule,
    delete_blocked_time,
    delete_rule,
    list_blocked_times,
    list_rules,
    replace_rules,
)
from meetsync.availability.suggest import suggest
from meetsync.calendar.base import CalendarSource
from meetsync.calendar.busy import fetch_busy
from meetsync.calendar.oauth import TokenManager
from meetsync.errors import InvalidRequest
from meetsync.users import require_user


router = APIRouter()


# =============================================================================
# Weekly rules
# =============================================================================


@router.get("/rules")
async def get_rules(user_id: str = Depends(current_user_id)):
    return {"rules": [r.to_dict() for r in list_rules(user_id)]}


@router.post("/rules", status_code=201)
async def add_rule(request: RuleCreate, user_id: str = Depends(current_user_id)):
    timezone = request.timezone or require_user(user_id).timezone
    rule = create_rule(user_id, request.day_of_week, request.start_time, request.end_time, timezone)
    return {"rule": rule.to_dict()}


@router.put("/rules")
async def put_rules(request: RulesReplace, user_id: str = Depends(current_user_id)):
    """Replace the whole week. An empty list leaves the user unrestricted."""
    timezone = require_user(user_id).timezone
    rules = replace_rules(
        user_id,
        [(r.day_of_week, r.start_time, r.end_time, r.timezone or timezone) for r in request.rules],
    )
    return {"rules": [r.to_dict() for r in rules]}


@router.delete("/rules/{rule_id}")
async def remove_rule(rule_id: str, user_id: str = Depends(current_user_id)):
    delete_rule(rule_id, user_id)
    return {"deleted": rule_id}


# =============================================================================
# Blocked times
# =============================================================================


@router.get("/blocked")
async def get_blocked(user_id: str = Depends(current_user_id)):
    return {"blocked_times": [b.to_dict() for b in list_blocked_times(user_id)]}


@router.post("/blocked", status_code=201)
async def add_blocked(request: BlockedTimeCreate, user_id: str = Depends(current_user_id)):
    blocked = create_blocked_time(user_id, request.start_time, request.end_time, request.reason)
    return {"blocked_time": blocked.to_dict()}


@router.delete("/blocked/{blocked_id}")
async def remove_blocked(blocked_id: str, user_id: str = Depends(current_user_id)):
    delete_blocked_time(blocked_id, user_id)
    return {"deleted": blocked_id}


# =============================================================================
# Derived views
# =============================================================================


@router.get("/range")
async def get_range(user_id: str = Depends(current_user_id)):
    start_hour, end_hour = availability_range(user_id)
    return {"start_hour": start_hour, "end_hour": end_hour}


@router.get("/suggested")
async def get_suggested(
    user_id: str = Depends(current_user_id),
    source: CalendarSource = Depends(calendar_source),
    token_manager: TokenManager = Depends(tokens),
):
    times = await suggest(user_id, source=source, tokens=token_manager)
    return {
        "suggestions": [t.isoformat() for t in times],
        "timezone": require_user(user_id).timezone,
    }


@router.get("/busy")
async def get_busy(
    start: datetime = Query(..., description="Range start (ISO format)"),
    end: datetime = Query(..., description="Range end (ISO format)"),
    user_id: str = Depends(current_user_id),
    source: CalendarSource = Depends(calendar_source),
    token_manager: TokenManager = Depends(tokens),
):
    """The caller's own buffered busy intervals."""
    if start >= end:
        raise InvalidRequest("start must be before end")
    busy = await fetch_busy(user_id, start, end, source, token_manager)
    return {"busy": [b.to_dict() for b in busy]}
