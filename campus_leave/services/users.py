"""
User Record Service
Reads and writes user records, caching lookups by id and email
"""
import logging
from typing import Any, List, Mapping, Optional, Sequence

from campus_leave.core.cache import CacheBackend
from campus_leave.models.user import UserRecord, UserRole
from campus_leave.services.store import DocumentStore

logger = logging.getLogger(__name__)

USERS = "users"


def user_cache_key(user_id: str) -> str:
    return f"users:id:{user_id}"


class UserService:
    def __init__(self, store: DocumentStore, cache: CacheBackend):
        self.store = store
        self.cache = cache

    async def _cached(self, key: str) -> Optional[UserRecord]:
        data = await self.cache.get(key)
        return UserRecord.model_validate(data) if data else None

    async def _remember(self, user: UserRecord) -> None:
        data = user.model_dump(mode="json")
        await self.cache.set(user_cache_key(user.id), data)
        await self.cache.set(f"users:email:{user.email.lower()}", data)

    async def get_by_id(self, user_id: str) -> Optional[UserRecord]:
        """Get a user by document id"""
        user = await self._cached(user_cache_key(user_id))
        if user:
            return user

        data = await self.store.get(USERS, user_id)
        if not data:
            return None

        user = UserRecord.model_validate(data)
        await self._remember(user)
        return user

    async def get_by_email(self, email: str) -> Optional[UserRecord]:
        """Get a user by email address"""
        user = await self._cached(f"users:email:{email.lower()}")
        if user:
            return user

        rows = await self.store.query(USERS, [("email", "==", email)], limit=1)
        if not rows:
            return None

        user = UserRecord.model_validate(rows[0])
        await self._remember(user)
        return user

    async def list_by_roles(self, roles: Sequence[UserRole]) -> List[UserRecord]:
        rows = await self.store.query(USERS, [("role", "in", list(roles))])
        return [UserRecord.model_validate(row) for row in rows]

    async def update(self, user_id: str, fields: Mapping[str, Any]) -> None:
        """
        Partial update of a user record. Callers that change derived fields
        are responsible for invalidating cached user queries afterwards.
        """
        logger.debug(f"Updating user {user_id}: {sorted(fields)}")
        await self.store.update(USERS, user_id, fields)
