from beanie import Document
from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional
from enum import Enum


class NotificationType(str, Enum):
    LEAVE_REQUESTED = "leave_requested"
    LEAVE_APPROVED = "leave_approved"
    LEAVE_REJECTED = "leave_rejected"
    LEAVE_EXPIRED = "leave_expired"
    LEAVE_EXPIRED_ADMIN = "leave_expired_admin"


class Notification(Document):
    user_id: str
    type: NotificationType
    title: str
    message: str
    read_by: List[str] = []
    related_leave_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Settings:
        name = "notifications"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
        ]


class NotificationIntent(BaseModel):
    """A notification the lifecycle wants sent; delivery is the dispatcher's job"""
    user_id: str
    type: NotificationType
    title: str
    message: str
    related_leave_id: Optional[str] = None


class NotificationRecord(BaseModel):
    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    read_by: List[str] = Field(default_factory=list)
    related_leave_id: Optional[str] = None
    created_at: Optional[datetime] = None
