"""
Leave date arithmetic and the user status projection.

All comparisons are on calendar dates; the time of day stored with a
leave is ignored.
"""
from datetime import date, datetime, time
from typing import Iterable, Optional, Sequence, Union

from pydantic import BaseModel

from campus_leave.models.leave import LeaveRecord, LeaveStatus, LeaveType
from campus_leave.models.user import UserStatus

DateLike = Union[date, datetime]


class StatusProjection(BaseModel):
    status: UserStatus
    leave_from: Optional[datetime] = None
    leave_to: Optional[datetime] = None


def to_day(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def start_of_day(value: DateLike) -> datetime:
    return datetime.combine(to_day(value), time.min)


def end_of_day(value: DateLike) -> datetime:
    return datetime.combine(to_day(value), time.max)


def overlaps(start_a: DateLike, end_a: DateLike, start_b: DateLike, end_b: DateLike) -> bool:
    """Closed-interval overlap of two date ranges"""
    return to_day(start_a) <= to_day(end_b) and to_day(end_a) >= to_day(start_b)


def covers(leave: LeaveRecord, day: DateLike) -> bool:
    return to_day(leave.start_date) <= to_day(day) <= to_day(leave.end_date)


def find_conflict(
    leaves: Iterable[LeaveRecord],
    start: DateLike,
    end: DateLike,
    statuses: Sequence[LeaveStatus],
    exclude_id: Optional[str] = None,
) -> Optional[LeaveRecord]:
    """First leave, in iteration order, with a listed status overlapping [start, end]"""
    for leave in leaves:
        if leave.id == exclude_id or leave.status not in statuses:
            continue
        if overlaps(start, end, leave.start_date, leave.end_date):
            return leave
    return None


def active_leave(leaves: Iterable[LeaveRecord], as_of: DateLike) -> Optional[LeaveRecord]:
    """
    The approved leave in force on ``as_of``. When an on-leave and a kitchen
    leave both cover the day, the on-leave wins.
    """
    in_force = [
        leave for leave in leaves
        if leave.status == LeaveStatus.APPROVED and covers(leave, as_of)
    ]
    for leave_type in (LeaveType.ON_LEAVE, LeaveType.KITCHEN_LEAVE):
        for leave in in_force:
            if leave.leave_type == leave_type:
                return leave
    return None


def derive_status(leaves: Iterable[LeaveRecord], as_of: DateLike) -> StatusProjection:
    leave = active_leave(leaves, as_of)
    if leave is None:
        return StatusProjection(status=UserStatus.ACTIVE)

    status = UserStatus.ON_LEAVE if leave.leave_type == LeaveType.ON_LEAVE else UserStatus.KITCHEN_LEAVE
    return StatusProjection(status=status, leave_from=leave.start_date, leave_to=leave.end_date)
