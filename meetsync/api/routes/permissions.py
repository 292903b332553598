"""
Permission Routes

- POST /api/permissions/grant, /revoke
- POST /api/permissions/request, /request-multiple
- POST /api/permissions/approve, /deny
- GET /api/permissions/list, /granted-to-me, /requests, /sent-requests
"""

from fastapi import APIRouter, Depends

from meetsync.api.deps import current_user_id
from meetsync.api.models import (
    AccessRequest,
    ApproveRequest,
    BulkAccessRequest,
    DenyRequest,
    GrantRequest,
    RevokeRequest,
)
from meetsync.errors import SelfGrantRejected
from meetsync.permissions.grants import describe_granted_by, grant_access, list_granted_to, revoke
from meetsync.permissions.requests import (
    STATUS_HAS_PERMISSION,
    STATUS_NOT_REGISTERED,
    STATUS_REQUEST_PENDING,
    STATUS_SELF,
    approve_request,
    deny_request,
    list_pending_for,
    list_sent,
    request_access,
    request_access_for_attendees,
)


router = APIRouter()


# =============================================================================
# Grants
# =============================================================================


@router.post("/grant")
async def grant(request: GrantRequest, user_id: str = Depends(current_user_id)):
    permission = grant_access(user_id, request.type, request.value)
    target = f"@{permission.grantee_domain}" if permission.grantee_domain else request.value.strip().lower()
    return {"message": f"Access granted to {target}", "permission": permission.to_dict()}


@router.post("/revoke")
async def revoke_permission(request: RevokeRequest, user_id: str = Depends(current_user_id)):
    revoke(request.permission_id, user_id)
    return {"message": "Permission revoked"}


@router.get("/list")
async def granted_by_me(user_id: str = Depends(current_user_id)):
    return {"permissions": describe_granted_by(user_id)}


@router.get("/granted-to-me")
async def granted_to_me(user_id: str = Depends(current_user_id)):
    return {"permissions": list_granted_to(user_id)}


# =============================================================================
# Requests
# =============================================================================


_REQUEST_MESSAGES = {
    STATUS_HAS_PERMISSION: "Permission already granted",
    STATUS_REQUEST_PENDING: "Request already pending",
    STATUS_NOT_REGISTERED: "Request sent (user will receive it when they sign up)",
}


@router.post("/request")
async def request_permission(request: AccessRequest, user_id: str = Depends(current_user_id)):
    status, permission_request = request_access(user_id, request.recipient_email, request.context)
    if status == STATUS_SELF:
        raise SelfGrantRejected("Cannot request permission from yourself")
    return {
        "status": status,
        "message": _REQUEST_MESSAGES.get(status, "Permission request sent"),
        "request": permission_request.to_dict() if permission_request else None,
        "has_permission": status == STATUS_HAS_PERMISSION,
    }


@router.post("/request-multiple")
async def request_multiple(request: BulkAccessRequest, user_id: str = Depends(current_user_id)):
    outcome = request_access_for_attendees(user_id, request.attendee_emails, request.context)
    return {"message": "Permission requests processed", **outcome}


@router.post("/approve")
async def approve(request: ApproveRequest, user_id: str = Depends(current_user_id)):
    permission = approve_request(
        request.request_id, user_id, request.permission_type, domain=request.domain
    )
    return {"message": "Permission granted", "permission": permission.to_dict()}


@router.post("/deny")
async def deny(request: DenyRequest, user_id: str = Depends(current_user_id)):
    deny_request(request.request_id, user_id)
    return {"message": "Permission request denied"}


@router.get("/requests")
async def received(user_id: str = Depends(current_user_id)):
    return {"requests": list_pending_for(user_id)}


@router.get("/sent-requests")
async def sent(user_id: str = Depends(current_user_id)):
    return {"requests": list_sent(user_id)}
