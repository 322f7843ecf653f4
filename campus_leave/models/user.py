"""
User Model
Campus user record; the leave fields are derived from the user's leaves
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, EmailStr
from beanie import Document


class UserRole(str, Enum):
    STUDENT = "student"
    MENTOR = "mentor"
    SUPER_MENTOR = "super_mentor"
    ADMIN = "admin"
    ACADEMIC_ASSOCIATE = "academic_associate"


class UserStatus(str, Enum):
    ACTIVE = "active"
    KITCHEN_LEAVE = "kitchen_leave"
    ON_LEAVE = "on_leave"
    UNAPPROVED_LEAVE = "unapproved_leave"


# Roles allowed to review leave requests
REVIEWER_ROLES = (
    UserRole.ADMIN,
    UserRole.ACADEMIC_ASSOCIATE,
    UserRole.MENTOR,
    UserRole.SUPER_MENTOR,
)

# Roles told about expired on-leave periods and allowed to run sweeps
SUPERVISOR_ROLES = (UserRole.ADMIN, UserRole.ACADEMIC_ASSOCIATE)


class User(Document):
    """User document model"""

    name: str
    email: EmailStr
    role: UserRole = UserRole.STUDENT
    mentor_id: Optional[str] = None

    # Derived from leaves
    status: UserStatus = UserStatus.ACTIVE
    leave_from: Optional[datetime] = None
    leave_to: Optional[datetime] = None
    unapproved_leave_start: Optional[datetime] = None

    # Metadata
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Settings:
        name = "users"
        indexes = [
            "email",
            "role",
        ]


class UserRecord(BaseModel):
    """User as returned by the user record service"""
    id: str
    name: str
    email: str
    role: UserRole = UserRole.STUDENT
    mentor_id: Optional[str] = None
    status: UserStatus = UserStatus.ACTIVE
    leave_from: Optional[datetime] = None
    leave_to: Optional[datetime] = None
    unapproved_leave_start: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
