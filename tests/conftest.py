import os

# Keep test runs from writing log files
os.environ.setdefault("LOG_FILE", "")

import itertools
from collections import Counter, defaultdict
from copy import deepcopy
from datetime import datetime
from enum import Enum

import pytest

from campus_leave.core.cache import MemoryCache
from campus_leave.core.database import build_services
from campus_leave.core.exceptions import IndexBuilding, PreconditionFailed, StoreUnavailable
from campus_leave.services.store import DELETE_FIELD, DESC, SERVER_TIMESTAMP, DocumentStore


def _plain(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, set)):
        return [_plain(item) for item in value]
    return value


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


class InMemoryDocumentStore(DocumentStore):
    """DocumentStore double; timestamps come from the given clock"""

    def __init__(self, clock):
        self.clock = clock
        self.collections = defaultdict(dict)
        self.fail_creates_in = set()
        # collection -> number of updates that should fail before writes succeed again
        self.fail_updates_in = Counter()
        self.index_building = set()
        self._ids = itertools.count(1)
        self._seq = {}

    @staticmethod
    def _matches(doc, filters):
        for field, op, value in filters:
            if op == "==" and doc.get(field) != _plain(value):
                return False
            if op == "in" and doc.get(field) not in _plain(value):
                return False
        return True

    def _resolve(self, value):
        return self.clock() if value is SERVER_TIMESTAMP else _plain(value)

    async def query(self, collection, filters=(), order_by=(), limit=None):
        if collection in self.index_building:
            raise IndexBuilding(f"Index for '{collection}' is currently building")

        rows = [
            dict(deepcopy(doc), id=doc_id)
            for doc_id, doc in self.collections[collection].items()
            if self._matches(doc, filters)
        ]
        for field, direction in reversed(list(order_by)):
            rows.sort(
                key=lambda row: (row.get(field) is None, row.get(field), self._seq[row["id"]]),
                reverse=direction == DESC,
            )
        return rows[:limit] if limit else rows

    async def get(self, collection, doc_id):
        doc = self.collections[collection].get(doc_id)
        return dict(deepcopy(doc), id=doc_id) if doc is not None else None

    async def create(self, collection, fields):
        if collection in self.fail_creates_in:
            raise StoreUnavailable(f"Creating document in '{collection}' failed")
        return self.insert(collection, fields)

    def insert(self, collection, fields):
        seq = next(self._ids)
        doc_id = f"{collection}-{seq}"
        self._seq[doc_id] = seq
        self.collections[collection][doc_id] = {
            field: self._resolve(value)
            for field, value in fields.items()
            if value is not DELETE_FIELD
        }
        return doc_id

    async def update(self, collection, doc_id, fields, where=None):
        if self.fail_updates_in[collection] > 0:
            self.fail_updates_in[collection] -= 1
            raise StoreUnavailable(f"Updating {collection}/{doc_id} failed")

        doc = self.collections[collection].get(doc_id)
        if doc is None:
            raise PreconditionFailed(f"{collection}/{doc_id} does not exist")
        for field, value in (where or {}).items():
            if doc.get(field) != _plain(value):
                raise PreconditionFailed(f"{collection}/{doc_id} no longer matches")

        for field, value in fields.items():
            if value is DELETE_FIELD:
                doc.pop(field, None)
            else:
                doc[field] = self._resolve(value)

    # helpers for tests

    def raw(self, collection, doc_id):
        return self.collections[collection][doc_id]

    def notifications(self, **match):
        return [
            doc for doc in self.collections["notifications"].values()
            if all(doc.get(key) == value for key, value in match.items())
        ]


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 10, 9, 0))


@pytest.fixture
def store(clock):
    return InMemoryDocumentStore(clock)


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def services(store, cache, clock):
    return build_services(store, cache, clock=clock)


@pytest.fixture
def leave_service(services):
    return services.leaves


@pytest.fixture
def make_user(store):
    async def _make_user(name="Asha Verma", email=None, role="student", **extra):
        email = email or f"{name.split()[0].lower()}@campus.edu"
        return await store.create("users", {
            "name": name,
            "email": email,
            "role": role,
            "status": "active",
            **extra,
        })
    return _make_user


@pytest.fixture
async def student(make_user):
    return await make_user()


@pytest.fixture
async def mentor(make_user):
    return await make_user("Meera Iyer", role="mentor")


@pytest.fixture
def make_leave(store):
    """Insert a leave directly, bypassing request validation"""
    async def _make_leave(user_id, leave_type, start, end, status="approved", **extra):
        return await store.create("leaves", {
            "user_id": user_id,
            "user_name": "Asha Verma",
            "user_email": "asha@campus.edu",
            "leave_type": leave_type,
            "start_date": start,
            "end_date": end,
            "status": status,
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
            **extra,
        })
    return _make_leave
