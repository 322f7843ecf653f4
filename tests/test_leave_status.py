from datetime import date, datetime

import pytest

from campus_leave.models.leave import BLOCKING_STATUSES, LeaveRecord, LeaveStatus, LeaveType
from campus_leave.models.user import UserStatus
from campus_leave.services.leave_status import (
    active_leave,
    derive_status,
    end_of_day,
    find_conflict,
    overlaps,
)


def make_record(leave_id, leave_type, start, end, status=LeaveStatus.APPROVED):
    return LeaveRecord(
        id=leave_id,
        user_id="u1",
        user_name="Asha Verma",
        user_email="asha@campus.edu",
        leave_type=leave_type,
        start_date=start,
        end_date=end,
        status=status,
    )


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((date(2025, 1, 1), date(2025, 1, 5)), (date(2025, 1, 4), date(2025, 1, 6)), True),
        ((date(2025, 1, 1), date(2025, 1, 5)), (date(2025, 1, 5), date(2025, 1, 5)), True),
        ((date(2025, 1, 1), date(2025, 1, 5)), (date(2025, 1, 6), date(2025, 1, 8)), False),
        ((date(2025, 1, 3), date(2025, 1, 3)), (date(2024, 12, 30), date(2025, 1, 2)), False),
        ((date(2025, 1, 2), date(2025, 1, 3)), (date(2025, 1, 1), date(2025, 1, 9)), True),
    ],
)
def test_overlaps_closed_intervals(a, b, expected):
    assert overlaps(*a, *b) is expected
    assert overlaps(*b, *a) is expected


def test_overlaps_ignores_time_of_day():
    assert overlaps(
        datetime(2025, 1, 5, 18, 30), datetime(2025, 1, 5, 18, 30),
        datetime(2025, 1, 1), datetime(2025, 1, 5),
    )


def test_end_of_day_is_last_instant():
    assert end_of_day(datetime(2025, 1, 10)) == datetime(2025, 1, 10, 23, 59, 59, 999999)


def test_find_conflict_skips_rejected_and_expired():
    leaves = [
        make_record("l1", LeaveType.ON_LEAVE, datetime(2025, 1, 1), datetime(2025, 1, 5), LeaveStatus.REJECTED),
        make_record("l2", LeaveType.ON_LEAVE, datetime(2025, 1, 1), datetime(2025, 1, 5), LeaveStatus.EXPIRED),
    ]
    assert find_conflict(leaves, date(2025, 1, 3), date(2025, 1, 3), BLOCKING_STATUSES) is None


def test_find_conflict_returns_first_match_in_order():
    leaves = [
        make_record("l1", LeaveType.KITCHEN_LEAVE, datetime(2025, 1, 4), datetime(2025, 1, 4), LeaveStatus.PENDING),
        make_record("l2", LeaveType.ON_LEAVE, datetime(2025, 1, 1), datetime(2025, 1, 5)),
    ]
    conflict = find_conflict(leaves, date(2025, 1, 4), date(2025, 1, 6), BLOCKING_STATUSES)
    assert conflict.id == "l1"


def test_find_conflict_excludes_given_leave_and_filters_status():
    leaves = [
        make_record("l1", LeaveType.ON_LEAVE, datetime(2025, 1, 1), datetime(2025, 1, 5), LeaveStatus.PENDING),
        make_record("l2", LeaveType.ON_LEAVE, datetime(2025, 1, 2), datetime(2025, 1, 3), LeaveStatus.PENDING),
    ]
    assert find_conflict(leaves, date(2025, 1, 1), date(2025, 1, 5), (LeaveStatus.APPROVED,)) is None
    assert find_conflict(leaves, date(2025, 1, 1), date(2025, 1, 5), BLOCKING_STATUSES, exclude_id="l1").id == "l2"


def test_on_leave_takes_priority_over_kitchen_leave():
    leaves = [
        make_record("k", LeaveType.KITCHEN_LEAVE, datetime(2025, 1, 10), datetime(2025, 1, 10)),
        make_record("o", LeaveType.ON_LEAVE, datetime(2025, 1, 8), datetime(2025, 1, 12)),
    ]
    assert active_leave(leaves, date(2025, 1, 10)).id == "o"

    projection = derive_status(leaves, date(2025, 1, 10))
    assert projection.status == UserStatus.ON_LEAVE
    assert projection.leave_from == datetime(2025, 1, 8)
    assert projection.leave_to == datetime(2025, 1, 12)


def test_derive_status_includes_last_day_of_leave():
    leaves = [make_record("k", LeaveType.KITCHEN_LEAVE, datetime(2025, 1, 10), datetime(2025, 1, 10))]
    assert derive_status(leaves, datetime(2025, 1, 10, 21, 0)).status == UserStatus.KITCHEN_LEAVE


def test_derive_status_ignores_unapproved_and_out_of_range_leaves():
    leaves = [
        make_record("p", LeaveType.ON_LEAVE, datetime(2025, 1, 8), datetime(2025, 1, 12), LeaveStatus.PENDING),
        make_record("x", LeaveType.ON_LEAVE, datetime(2025, 1, 1), datetime(2025, 1, 9), LeaveStatus.EXPIRED),
        make_record("f", LeaveType.KITCHEN_LEAVE, datetime(2025, 1, 11), datetime(2025, 1, 11)),
    ]
    projection = derive_status(leaves, date(2025, 1, 10))
    assert projection.status == UserStatus.ACTIVE
    assert projection.leave_from is None
    assert projection.leave_to is None
