"""
Leave Routes
Leave requests and review
"""
from fastapi import APIRouter, HTTPException, Depends, status
from typing import Optional

from campus_leave.api.deps import get_services
from campus_leave.api.routes.auth import get_current_user, require_roles
from campus_leave.core.database import Services
from campus_leave.models.leave import (
    LeaveCountResponse,
    LeaveCreate,
    LeaveListResponse,
    LeaveRecord,
    LeaveRejectionRequest,
)
from campus_leave.models.user import REVIEWER_ROLES, UserRecord


router = APIRouter()

get_reviewer = require_roles(REVIEWER_ROLES)


@router.post("/apply", response_model=LeaveRecord, status_code=status.HTTP_201_CREATED)
async def apply_leave(
    request: LeaveCreate,
    current_user: UserRecord = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Request leave for the current user
    """
    return await services.leaves.create_leave_request(
        current_user.id,
        request.leave_type,
        request.start_date,
        request.end_date,
        request.reason,
    )


@router.get("/my-leaves", response_model=LeaveListResponse)
async def get_my_leaves(
    current_user: UserRecord = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Get leave requests for current user
    """
    leaves = await services.leaves.get_user_leaves(current_user.id)
    return {"total": len(leaves), "leaves": leaves}


@router.get("/active", response_model=Optional[LeaveRecord])
async def get_my_active_leave(
    current_user: UserRecord = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Most recent pending or approved leave of the current user"""
    return await services.leaves.get_user_active_leave(current_user.id)


@router.get("/pending", response_model=LeaveListResponse)
async def get_pending_leaves(
    reviewer: UserRecord = Depends(get_reviewer),
    services: Services = Depends(get_services),
):
    leaves = await services.leaves.get_pending_leaves()
    return {"total": len(leaves), "leaves": leaves}


@router.get("/pending/count", response_model=LeaveCountResponse)
async def get_pending_leave_count(
    reviewer: UserRecord = Depends(get_reviewer),
    services: Services = Depends(get_services),
):
    """Badge count for reviewers"""
    return {"pending": await services.leaves.get_pending_leave_count()}


@router.get("/all", response_model=LeaveListResponse)
async def get_all_leaves(
    reviewer: UserRecord = Depends(get_reviewer),
    services: Services = Depends(get_services),
):
    leaves = await services.leaves.get_all_leaves()
    return {"total": len(leaves), "leaves": leaves}


@router.get("/{leave_id}", response_model=LeaveRecord)
async def get_leave(
    leave_id: str,
    current_user: UserRecord = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    leave = await services.leaves.get_leave(leave_id)

    # Requesters only see their own leaves
    if not leave or (leave.user_id != current_user.id and current_user.role not in REVIEWER_ROLES):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Leave request not found"
        )
    return leave


@router.post("/{leave_id}/approve", response_model=LeaveRecord)
async def approve_leave(
    leave_id: str,
    reviewer: UserRecord = Depends(get_reviewer),
    services: Services = Depends(get_services),
):
    """
    Approve a pending leave request
    """
    return await services.leaves.approve_leave(leave_id, reviewer.id, reviewer.name)


@router.post("/{leave_id}/reject", response_model=LeaveRecord)
async def reject_leave(
    leave_id: str,
    request: Optional[LeaveRejectionRequest] = None,
    reviewer: UserRecord = Depends(get_reviewer),
    services: Services = Depends(get_services),
):
    """
    Reject a pending leave request
    """
    return await services.leaves.reject_leave(
        leave_id,
        reviewer.id,
        reviewer.name,
        request.rejection_reason if request else None,
    )
