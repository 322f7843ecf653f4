"""
Notification Routes
User-specific alerts and read-tracking
"""
from fastapi import APIRouter, Depends
from typing import List

from campus_leave.api.deps import get_services
from campus_leave.api.routes.auth import get_current_user
from campus_leave.core.database import Services
from campus_leave.models.notification import NotificationRecord
from campus_leave.models.user import UserRecord

router = APIRouter()


@router.get("/", response_model=List[NotificationRecord])
async def get_my_notifications(
    unread_only: bool = False,
    current_user: UserRecord = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Get notifications for current user"""
    return await services.notifications.list_for_user(current_user.id, unread_only=unread_only)


@router.put("/{notification_id}/read", response_model=NotificationRecord)
async def mark_as_read(
    notification_id: str,
    current_user: UserRecord = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Mark a notification as read"""
    return await services.notifications.mark_read(notification_id, current_user.id)
