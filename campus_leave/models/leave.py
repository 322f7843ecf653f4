"""
Leave Model
Database schema for leave requests
"""
from datetime import date, datetime
from typing import Optional, List
from pydantic import BaseModel, Field
from beanie import Document
from enum import Enum


class LeaveType(str, Enum):
    """Types of leave"""
    KITCHEN_LEAVE = "kitchen_leave"
    ON_LEAVE = "on_leave"

    @property
    def label(self) -> str:
        return "kitchen leave" if self is LeaveType.KITCHEN_LEAVE else "leave"


class LeaveStatus(str, Enum):
    """Leave request status"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


# Statuses that still block a new request for the same days
BLOCKING_STATUSES = (LeaveStatus.PENDING, LeaveStatus.APPROVED)


class Leave(Document):
    """Leave request document"""

    # Requester snapshot
    user_id: str
    user_name: str
    user_email: str

    # Leave Details
    leave_type: LeaveType
    start_date: datetime
    end_date: datetime
    reason: Optional[str] = None

    # Status
    status: LeaveStatus = LeaveStatus.PENDING

    # Review
    approved_by: Optional[str] = None
    approved_by_name: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_by_name: Optional[str] = None
    rejection_reason: Optional[str] = None
    rejected_at: Optional[datetime] = None

    # Metadata
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Settings:
        name = "leaves"
        indexes = [
            "user_id",
            "status",
            "leave_type",
            "created_at",
            [("user_id", 1), ("created_at", -1)],
            [("status", 1), ("created_at", -1)],
        ]


class LeaveRecord(BaseModel):
    """A leave as read back from the store, timestamps resolved"""
    id: str
    user_id: str
    user_name: str
    user_email: str
    leave_type: LeaveType
    start_date: datetime
    end_date: datetime
    status: LeaveStatus
    reason: Optional[str] = None
    approved_by: Optional[str] = None
    approved_by_name: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_by_name: Optional[str] = None
    rejection_reason: Optional[str] = None
    rejected_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": "65a1f0c2e4b0a1b2c3d4e5f6",
                "user_id": "65a1f0c2e4b0a1b2c3d4e500",
                "user_name": "Asha Verma",
                "user_email": "asha@campus.edu",
                "leave_type": "on_leave",
                "start_date": "2025-01-01T00:00:00",
                "end_date": "2025-01-05T00:00:00",
                "status": "pending",
                "reason": "Family function"
            }
        }


class LeaveCreate(BaseModel):
    """Schema for requesting leave"""
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: Optional[str] = None


class LeaveRejectionRequest(BaseModel):
    """Schema for rejecting leave"""
    rejection_reason: Optional[str] = None


class LeaveListResponse(BaseModel):
    """Schema for list of leaves"""
    total: int
    leaves: List[LeaveRecord]


class LeaveCountResponse(BaseModel):
    pending: int


class SweepReport(BaseModel):
    """Outcome of one sweep run"""
    job: str
    processed: int = 0
    failed_ids: List[str] = Field(default_factory=list)
