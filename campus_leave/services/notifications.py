"""
Notification Service
Persists notification intents produced by the leave lifecycle, and serves
a user's notifications back with read tracking.
"""
import logging
from typing import Iterable, List

from campus_leave.config import settings
from campus_leave.core.exceptions import NotFound
from campus_leave.models.notification import NotificationIntent, NotificationRecord
from campus_leave.services.store import DESC, SERVER_TIMESTAMP, DocumentStore

logger = logging.getLogger(__name__)

NOTIFICATIONS = "notifications"


class NotificationDispatcher:
    """Best-effort delivery: a failed notification is logged, never raised"""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def send(self, intent: NotificationIntent) -> bool:
        data = {
            "user_id": intent.user_id,
            "type": intent.type.value,
            "title": intent.title,
            "message": intent.message,
            "read_by": [],
            "created_at": SERVER_TIMESTAMP,
        }
        if intent.related_leave_id:
            data["related_leave_id"] = intent.related_leave_id

        try:
            await self.store.create(NOTIFICATIONS, data)
        except Exception:
            logger.exception(f"Failed to create {intent.type.value} notification for user {intent.user_id}")
            return False
        return True

    async def dispatch(self, intents: Iterable[NotificationIntent]) -> int:
        """Send each intent in order; returns how many were stored"""
        delivered = 0
        for intent in intents:
            if await self.send(intent):
                delivered += 1
        return delivered


class NotificationService:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def list_for_user(self, user_id: str, unread_only: bool = False) -> List[NotificationRecord]:
        """Newest notifications addressed to the user"""
        rows = await self.store.query(
            NOTIFICATIONS,
            [("user_id", "==", user_id)],
            order_by=[("created_at", DESC)],
            limit=None if unread_only else settings.NOTIFICATION_PAGE_SIZE,
        )
        notifications = [NotificationRecord.model_validate(row) for row in rows]
        if unread_only:
            notifications = [n for n in notifications if user_id not in n.read_by]
        return notifications[: settings.NOTIFICATION_PAGE_SIZE]

    async def mark_read(self, notification_id: str, user_id: str) -> NotificationRecord:
        data = await self.store.get(NOTIFICATIONS, notification_id)
        if not data or data["user_id"] != user_id:
            raise NotFound("Notification not found")

        notification = NotificationRecord.model_validate(data)
        if user_id not in notification.read_by:
            notification.read_by.append(user_id)
            await self.store.update(NOTIFICATIONS, notification_id, {"read_by": notification.read_by})
        return notification
