"""
Database bootstrap
Connects Motor, initialises Beanie and assembles the services on top
"""
import logging
from datetime import datetime
from typing import Callable, NamedTuple

from motor.motor_asyncio import AsyncIOMotorClient
from beanie import init_beanie

from campus_leave.config import Settings
from campus_leave.core.cache import CacheBackend
from campus_leave.models.leave import Leave
from campus_leave.models.notification import Notification
from campus_leave.models.user import User
from campus_leave.services.leaves import LeaveManagementService
from campus_leave.services.notifications import NotificationDispatcher, NotificationService
from campus_leave.services.store import BeanieDocumentStore, DocumentStore
from campus_leave.services.users import UserService

logger = logging.getLogger(__name__)

DOCUMENT_MODELS = [User, Leave, Notification]


class Services(NamedTuple):
    users: UserService
    leaves: LeaveManagementService
    notifications: NotificationService


async def connect(settings: Settings) -> AsyncIOMotorClient:
    client = AsyncIOMotorClient(settings.MONGODB_URL)
    await init_beanie(
        database=client[settings.MONGODB_DB_NAME],
        document_models=DOCUMENT_MODELS,
    )
    logger.info(f"Connected to MongoDB: {settings.MONGODB_DB_NAME}")
    return client


def build_services(store: DocumentStore, cache: CacheBackend, **leave_options) -> Services:
    users = UserService(store, cache)
    leaves = LeaveManagementService(
        store,
        users,
        NotificationDispatcher(store),
        cache,
        **leave_options,
    )
    return Services(users=users, leaves=leaves, notifications=NotificationService(store))


def build_mongo_services(cache: CacheBackend, clock: Callable[[], datetime] = datetime.now) -> Services:
    """Store timestamps and the leave date rules share one clock"""
    return build_services(BeanieDocumentStore(DOCUMENT_MODELS, clock=clock), cache, clock=clock)
