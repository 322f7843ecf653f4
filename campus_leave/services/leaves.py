"""
Leave Management Service
Leave request lifecycle: requests, review, scheduled expiry and activation.

A leave moves pending -> approved -> expired, or pending -> rejected.
The user's ``status`` / ``leave_from`` / ``leave_to`` fields are a projection
of their approved leaves and are only written from here.
"""
import asyncio
import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from campus_leave.core.cache import CacheBackend
from campus_leave.core.exceptions import (
    Conflict,
    InvalidRequest,
    InvalidState,
    IndexBuilding,
    NotFound,
    PreconditionFailed,
    StoreUnavailable,
)
from campus_leave.models.leave import (
    BLOCKING_STATUSES,
    LeaveRecord,
    LeaveStatus,
    LeaveType,
    SweepReport,
)
from campus_leave.models.notification import NotificationIntent, NotificationType
from campus_leave.models.user import SUPERVISOR_ROLES, UserStatus
from campus_leave.services.leave_status import (
    StatusProjection,
    covers,
    derive_status,
    end_of_day,
    find_conflict,
    start_of_day,
    to_day,
)
from campus_leave.services.notifications import NotificationDispatcher
from campus_leave.services.store import (
    DELETE_FIELD,
    DESC,
    SERVER_TIMESTAMP,
    DocumentStore,
    Filter,
)
from campus_leave.services.users import UserService, user_cache_key

logger = logging.getLogger(__name__)

LEAVES = "leaves"

SWEEP_NAMES = ("expire-kitchen-leaves", "check-expired-on-leaves", "activate-future-leaves")


def _fmt(value: Union[date, datetime]) -> str:
    return to_day(value).strftime("%d/%m/%Y")


class LeaveManagementService:
    """Leave lifecycle manager"""

    def __init__(
        self,
        store: DocumentStore,
        users: UserService,
        notifications: NotificationDispatcher,
        cache: CacheBackend,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.users = users
        self.notifications = notifications
        self.cache = cache
        self.clock = clock
        # Serialises check-then-write sequences per requester within this process
        self._user_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _today(self) -> date:
        return self.clock().date()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _query_leaves(self, filters: Sequence[Filter], newest_first: bool = True, limit: Optional[int] = None) -> List[LeaveRecord]:
        order_by = [("created_at", DESC)] if newest_first else []
        rows = await self.store.query(LEAVES, filters, order_by=order_by, limit=limit)
        return [LeaveRecord.model_validate(row) for row in rows]

    async def get_leave(self, leave_id: str) -> Optional[LeaveRecord]:
        data = await self.store.get(LEAVES, leave_id)
        return LeaveRecord.model_validate(data) if data else None

    async def _require_leave(self, leave_id: str) -> LeaveRecord:
        leave = await self.get_leave(leave_id)
        if leave is None:
            raise NotFound(f"Leave request {leave_id} not found")
        return leave

    async def get_user_leaves(self, user_id: str) -> List[LeaveRecord]:
        """All of a user's leaves, newest first"""
        return await self._query_leaves([("user_id", "==", user_id)])

    async def get_all_leaves(self) -> List[LeaveRecord]:
        return await self._query_leaves([])

    async def get_pending_leaves(self) -> List[LeaveRecord]:
        """Pending requests awaiting review, newest first"""
        try:
            return await self._query_leaves([("status", "==", LeaveStatus.PENDING.value)])
        except IndexBuilding:
            logger.warning("Index for pending leaves is building, returning no results for now")
            return []

    async def get_pending_leave_count(self) -> int:
        return len(await self.get_pending_leaves())

    async def get_user_active_leave(self, user_id: str) -> Optional[LeaveRecord]:
        """The user's most recent leave that is still pending or approved"""
        leaves = await self._query_leaves(
            [
                ("user_id", "==", user_id),
                ("status", "in", [status.value for status in BLOCKING_STATUSES]),
            ],
            limit=1,
        )
        return leaves[0] if leaves else None

    # ------------------------------------------------------------------
    # Requests and review
    # ------------------------------------------------------------------

    async def create_leave_request(
        self,
        user_id: str,
        leave_type: Union[LeaveType, str],
        start_date: Union[date, datetime],
        end_date: Union[date, datetime],
        reason: Optional[str] = None,
    ) -> LeaveRecord:
        user = await self.users.get_by_id(user_id)
        if not user:
            raise NotFound("User not found")

        try:
            leave_type = LeaveType(leave_type)
        except ValueError:
            raise InvalidRequest(f"Unknown leave type '{leave_type}'")
        start, end = start_of_day(start_date), start_of_day(end_date)
        reason = (reason or "").strip() or None

        if start > end:
            raise InvalidRequest("Leave start date must be on or before the end date")

        if leave_type == LeaveType.KITCHEN_LEAVE and start != end:
            raise InvalidRequest("Kitchen leave can only be applied for a single day")

        if leave_type == LeaveType.ON_LEAVE and not reason:
            raise InvalidRequest("Reason is mandatory for on leave")

        async with self._user_locks[user_id]:
            existing = await self.get_user_leaves(user_id)
            conflict = find_conflict(existing, start, end, BLOCKING_STATUSES)
            if conflict:
                raise Conflict(
                    f"You already have a {conflict.leave_type.label} request from "
                    f"{_fmt(conflict.start_date)} to {_fmt(conflict.end_date)} "
                    f"with status: {conflict.status.value}",
                    conflicting_leave=conflict,
                )

            data: Dict[str, Any] = {
                "user_id": user_id,
                "user_name": user.name,
                "user_email": user.email,
                "leave_type": leave_type.value,
                "start_date": start,
                "end_date": end,
                "status": LeaveStatus.PENDING.value,
                "created_at": SERVER_TIMESTAMP,
                "updated_at": SERVER_TIMESTAMP,
            }
            if reason:
                data["reason"] = reason

            leave_id = await self.store.create(LEAVES, data)

        logger.info(f"Leave {leave_id} requested by {user_id}: {leave_type.value} {_fmt(start)}-{_fmt(end)}")

        await self.notifications.send(NotificationIntent(
            user_id=user_id,
            type=NotificationType.LEAVE_REQUESTED,
            title="Leave Request Submitted",
            message=f"{user.name} has requested {leave_type.label} from {_fmt(start)} to {_fmt(end)}",
            related_leave_id=leave_id,
        ))

        return await self._require_leave(leave_id)

    async def _review(self, leave: LeaveRecord, fields: Mapping[str, Any]) -> None:
        """Write a review decision, only if the leave is still pending"""
        try:
            await self.store.update(LEAVES, leave.id, fields, where={"status": LeaveStatus.PENDING.value})
        except PreconditionFailed:
            raise InvalidState("Leave request is not pending")

    @staticmethod
    def _require_pending(leave: LeaveRecord) -> None:
        if leave.status != LeaveStatus.PENDING:
            raise InvalidState("Leave request is not pending")

    async def approve_leave(self, leave_id: str, approved_by: str, approved_by_name: str) -> LeaveRecord:
        leave = await self._require_leave(leave_id)
        self._require_pending(leave)

        async with self._user_locks[leave.user_id]:
            others = await self.get_user_leaves(leave.user_id)
            conflict = find_conflict(
                others, leave.start_date, leave.end_date, (LeaveStatus.APPROVED,), exclude_id=leave.id
            )
            if conflict:
                raise Conflict(
                    f"Cannot approve this leave as there is already an approved "
                    f"{conflict.leave_type.label} from {_fmt(conflict.start_date)} "
                    f"to {_fmt(conflict.end_date)}",
                    conflicting_leave=conflict,
                )

            await self._review(leave, {
                "status": LeaveStatus.APPROVED.value,
                "approved_by": approved_by,
                "approved_by_name": approved_by_name,
                "approved_at": SERVER_TIMESTAMP,
                "updated_at": SERVER_TIMESTAMP,
            })
            logger.info(f"Leave {leave_id} approved by {approved_by}")

            # The decision is stored; the requester hears about it even if the status sync fails
            try:
                if to_day(leave.start_date) <= self._today():
                    await self.sync_user_status(leave.user_id)
                else:
                    logger.info(
                        f"Leave {leave_id} starts in future ({_fmt(leave.start_date)}), "
                        f"user {leave.user_id} status left for activation sweep"
                    )
            finally:
                await self.notifications.send(NotificationIntent(
                    user_id=leave.user_id,
                    type=NotificationType.LEAVE_APPROVED,
                    title="Leave Approved",
                    message=f"Your leave request from {_fmt(leave.start_date)} to {_fmt(leave.end_date)} has been approved.",
                    related_leave_id=leave_id,
                ))

        return await self._require_leave(leave_id)

    async def reject_leave(
        self,
        leave_id: str,
        rejected_by: str,
        rejected_by_name: str,
        rejection_reason: Optional[str] = None,
    ) -> LeaveRecord:
        leave = await self._require_leave(leave_id)
        self._require_pending(leave)

        rejection_reason = rejection_reason or "No reason provided"
        await self._review(leave, {
            "status": LeaveStatus.REJECTED.value,
            "rejected_by": rejected_by,
            "rejected_by_name": rejected_by_name,
            "rejection_reason": rejection_reason,
            "rejected_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        })
        logger.info(f"Leave {leave_id} rejected by {rejected_by}")

        await self.notifications.send(NotificationIntent(
            user_id=leave.user_id,
            type=NotificationType.LEAVE_REJECTED,
            title="Leave Rejected",
            message=(
                f"Your leave request from {_fmt(leave.start_date)} to {_fmt(leave.end_date)} "
                f"has been rejected. Reason: {rejection_reason}"
            ),
            related_leave_id=leave_id,
        ))

        return await self._require_leave(leave_id)

    # ------------------------------------------------------------------
    # Derived user status
    # ------------------------------------------------------------------

    async def _write_user_status(self, user_id: str, fields: Mapping[str, Any]) -> None:
        await self.users.update(user_id, fields)
        await self.cache.invalidate_pattern("users")
        await self.cache.invalidate(user_cache_key(user_id))

    async def sync_user_status(self, user_id: str, expiring_id: Optional[str] = None) -> StatusProjection:
        """
        Recompute the user's status from their approved leaves as of today.
        ``expiring_id`` is a leave about to be expired; it no longer counts.
        """
        leaves = [leave for leave in await self.get_user_leaves(user_id) if leave.id != expiring_id]
        projection = derive_status(leaves, self._today())

        fields: Dict[str, Any] = {"status": projection.status.value, "updated_at": SERVER_TIMESTAMP}
        if projection.status == UserStatus.ACTIVE:
            fields["leave_from"] = DELETE_FIELD
            fields["leave_to"] = DELETE_FIELD
        else:
            fields["leave_from"] = projection.leave_from
            fields["leave_to"] = projection.leave_to

        logger.info(f"Setting user {user_id} status to {projection.status.value}")
        await self._write_user_status(user_id, fields)
        return projection

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def _expire(self, leave: LeaveRecord) -> bool:
        """Mark an approved leave expired; False if it was no longer approved"""
        try:
            await self.store.update(
                LEAVES,
                leave.id,
                {"status": LeaveStatus.EXPIRED.value, "updated_at": SERVER_TIMESTAMP},
                where={"status": LeaveStatus.APPROVED.value},
            )
        except PreconditionFailed:
            logger.info(f"Leave {leave.id} already left approved state, skipping")
            return False
        return True

    async def _approved_leaves(self, leave_type: Optional[LeaveType] = None) -> List[LeaveRecord]:
        filters: List[Filter] = [("status", "==", LeaveStatus.APPROVED.value)]
        if leave_type:
            filters.insert(0, ("leave_type", "==", leave_type.value))
        return await self._query_leaves(filters, newest_first=False)

    async def expire_kitchen_leaves(self) -> SweepReport:
        """Expire approved kitchen leaves whose day has fully passed"""
        now = self.clock()
        report = SweepReport(job="expire-kitchen-leaves")

        for leave in await self._approved_leaves(LeaveType.KITCHEN_LEAVE):
            if now <= end_of_day(leave.end_date):
                continue
            # User first: if that write fails the leave stays approved for the next run
            try:
                await self.sync_user_status(leave.user_id, expiring_id=leave.id)
                if await self._expire(leave):
                    report.processed += 1
            except Exception:
                logger.exception(f"Failed to expire kitchen leave {leave.id}")
                report.failed_ids.append(leave.id)

        logger.info(f"Expired {report.processed} kitchen leaves")
        return report

    async def check_expired_on_leaves(self) -> SweepReport:
        """
        Expire approved on-leaves that ended before today. The user is put on
        unapproved leave rather than back to active, and admins/academic
        associates are told so someone can follow up.
        """
        today = self._today()
        report = SweepReport(job="check-expired-on-leaves")

        for leave in await self._approved_leaves(LeaveType.ON_LEAVE):
            if to_day(leave.end_date) >= today:
                continue
            try:
                logger.info(f"Setting user {leave.user_id} status to unapproved_leave")
                await self._write_user_status(leave.user_id, {
                    "status": UserStatus.UNAPPROVED_LEAVE.value,
                    "unapproved_leave_start": SERVER_TIMESTAMP,
                    "leave_from": DELETE_FIELD,
                    "leave_to": DELETE_FIELD,
                    "updated_at": SERVER_TIMESTAMP,
                })
                if not await self._expire(leave):
                    continue
                report.processed += 1
            except Exception:
                logger.exception(f"Failed to expire on leave {leave.id}")
                report.failed_ids.append(leave.id)
                continue

            await self._notify_expired_on_leave(leave)

        logger.info(f"Notified about {report.processed} expired on leaves")
        return report

    async def _notify_expired_on_leave(self, leave: LeaveRecord) -> None:
        intents = [NotificationIntent(
            user_id=leave.user_id,
            type=NotificationType.LEAVE_EXPIRED,
            title="Leave Expired - Status Changed to Unapproved Leave",
            message=(
                "Your leave period has ended. Your status has been changed to unapproved leave. "
                "Please contact admin/academic associate to update your status."
            ),
            related_leave_id=leave.id,
        )]

        try:
            supervisors = await self.users.list_by_roles(SUPERVISOR_ROLES)
        except StoreUnavailable:
            logger.exception(f"Could not load admins to notify about expired leave {leave.id}")
            supervisors = []

        intents.extend(
            NotificationIntent(
                user_id=supervisor.id,
                type=NotificationType.LEAVE_EXPIRED_ADMIN,
                title="User Leave Expired",
                message=f"{leave.user_name}'s leave period has ended. Their status needs to be changed manually.",
                related_leave_id=leave.id,
            )
            for supervisor in supervisors
        )
        await self.notifications.dispatch(intents)

    async def activate_future_leaves(self) -> SweepReport:
        """Bring user status in line for approved leaves that cover today"""
        today = self._today()
        report = SweepReport(job="activate-future-leaves")

        user_ids = list(dict.fromkeys(
            leave.user_id for leave in await self._approved_leaves() if covers(leave, today)
        ))

        for user_id in user_ids:
            logger.info(f"Updating status for user {user_id}")
            try:
                await self.sync_user_status(user_id)
                report.processed += 1
            except Exception:
                logger.exception(f"Failed to update status for user {user_id}")
                report.failed_ids.append(user_id)

        logger.info(f"Activated status for {report.processed} users with newly started leaves")
        return report

    async def run_all_sweeps(self) -> List[SweepReport]:
        return [
            await self.expire_kitchen_leaves(),
            await self.check_expired_on_leaves(),
            await self.activate_future_leaves(),
        ]

    async def run_sweep(self, name: str) -> SweepReport:
        jobs = {
            "expire-kitchen-leaves": self.expire_kitchen_leaves,
            "check-expired-on-leaves": self.check_expired_on_leaves,
            "activate-future-leaves": self.activate_future_leaves,
        }
        if name not in jobs:
            raise NotFound(f"Unknown sweep '{name}'")
        return await jobs[name]()
