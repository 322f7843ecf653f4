from datetime import datetime
from types import SimpleNamespace

import pytest
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from campus_leave.core.exceptions import IndexBuilding, PreconditionFailed, StoreUnavailable
from campus_leave.models.leave import LeaveStatus
from campus_leave.services.store import (
    DELETE_FIELD,
    DESC,
    SERVER_TIMESTAMP,
    BeanieDocumentStore,
    _is_index_building,
    to_mongo_filter,
    to_mongo_update,
)

NOW = datetime(2025, 1, 10, 9, 0)
LEAVE_ID = "65a1f0c2e4b0a1b2c3d4e5f6"


class FakeDocument:
    def __init__(self, model, data, id=None):
        self.model = model
        self.data = data
        self.id = id

    def model_dump(self, exclude=()):
        return {key: value for key, value in self.data.items() if key not in exclude}

    async def insert(self):
        self.id = LEAVE_ID
        self.model.inserted.append(self.data)


class FakeCursor:
    def __init__(self, documents, error):
        self.documents = documents
        self.error = error
        self.sorts = []
        self.limit_to = None

    def sort(self, key):
        self.sorts.append(key)
        return self

    def limit(self, n):
        self.limit_to = n
        return self

    async def to_list(self):
        if self.error:
            raise self.error
        return self.documents


class FakeCollection:
    def __init__(self, matched_count):
        self.matched_count = matched_count
        self.calls = []

    async def update_one(self, selector, update):
        self.calls.append((selector, update))
        return SimpleNamespace(matched_count=self.matched_count)


class FakeModel:
    """Stands in for a Beanie document class"""

    def __init__(self, name="leaves", documents=(), error=None, matched_count=1):
        self.name = name
        self.cursor = FakeCursor(list(documents), error)
        self.collection = FakeCollection(matched_count)
        self.queries = []
        self.inserted = []

    def get_settings(self):
        return SimpleNamespace(name=self.name)

    def find(self, query):
        self.queries.append(query)
        return self.cursor

    def get_motor_collection(self):
        return self.collection

    def model_validate(self, data):
        return FakeDocument(self, data)

    async def get(self, object_id):
        return None


def make_store(model):
    return BeanieDocumentStore([model], clock=lambda: NOW)


def test_filters_translate_to_mongo_query():
    query = to_mongo_filter([
        ("user_id", "==", "u1"),
        ("status", "in", [LeaveStatus.PENDING, LeaveStatus.APPROVED]),
    ])
    assert query == {"user_id": "u1", "status": {"$in": ["pending", "approved"]}}


def test_sentinels_translate_to_update_operators():
    update = to_mongo_update({
        "status": LeaveStatus.EXPIRED,
        "leave_from": DELETE_FIELD,
        "leave_to": DELETE_FIELD,
        "updated_at": SERVER_TIMESTAMP,
    }, NOW)
    assert update == {
        "$set": {"status": "expired", "updated_at": NOW},
        "$unset": {"leave_from": "", "leave_to": ""},
    }


def test_unknown_filter_operator_is_rejected():
    with pytest.raises(ValueError):
        to_mongo_filter([("created_at", ">", 1)])


def test_index_building_errors_are_recognised():
    assert _is_index_building(OperationFailure("The query requires an index that is currently building"))
    assert not _is_index_building(OperationFailure("not authorized on campus_learning"))


async def test_query_sorts_limits_and_returns_plain_dicts():
    model = FakeModel(documents=[FakeDocument(None, {"user_id": "u1", "status": "pending"}, id=LEAVE_ID)])
    store = make_store(model)

    rows = await store.query("leaves", [("user_id", "==", "u1")], order_by=[("created_at", DESC)], limit=1)

    assert rows == [{"user_id": "u1", "status": "pending", "id": LEAVE_ID}]
    assert model.queries == [{"user_id": "u1"}]
    assert model.cursor.sorts == ["-created_at"]
    assert model.cursor.limit_to == 1


async def test_query_while_index_builds_raises_index_building():
    store = make_store(FakeModel(error=OperationFailure("index for status is currently building")))

    with pytest.raises(IndexBuilding):
        await store.query("leaves", [("status", "==", "pending")])


@pytest.mark.parametrize("error", [
    OperationFailure("not authorized on campus_learning"),
    ServerSelectionTimeoutError("localhost:27017: connection refused"),
])
async def test_other_query_failures_are_store_unavailable(error):
    store = make_store(FakeModel(error=error))

    with pytest.raises(StoreUnavailable) as excinfo:
        await store.query("leaves")
    assert not isinstance(excinfo.value, IndexBuilding)


async def test_unknown_collection_is_store_unavailable():
    with pytest.raises(StoreUnavailable):
        await make_store(FakeModel()).query("payroll")


async def test_create_stamps_with_store_clock_and_drops_deleted_fields():
    model = FakeModel()
    store = make_store(model)

    doc_id = await store.create("leaves", {
        "user_id": "u1",
        "reason": DELETE_FIELD,
        "created_at": SERVER_TIMESTAMP,
    })

    assert doc_id == LEAVE_ID
    assert model.inserted == [{"user_id": "u1", "created_at": NOW}]


async def test_conditional_update_sends_precondition_in_selector():
    model = FakeModel()
    store = make_store(model)

    await store.update(
        "leaves", LEAVE_ID,
        {"status": LeaveStatus.APPROVED, "updated_at": SERVER_TIMESTAMP},
        where={"status": LeaveStatus.PENDING},
    )

    [(selector, update)] = model.collection.calls
    assert str(selector["_id"]) == LEAVE_ID
    assert selector["status"] == "pending"
    assert update == {"$set": {"status": "approved", "updated_at": NOW}}


async def test_conditional_update_that_matches_nothing_fails():
    store = make_store(FakeModel(matched_count=0))

    with pytest.raises(PreconditionFailed, match="no longer matches"):
        await store.update("leaves", LEAVE_ID, {"status": "approved"}, where={"status": "pending"})


async def test_update_of_missing_document_fails():
    store = make_store(FakeModel(matched_count=0))

    with pytest.raises(PreconditionFailed, match="does not exist"):
        await store.update("leaves", LEAVE_ID, {"status": "approved"})
    with pytest.raises(PreconditionFailed, match="does not exist"):
        await store.update("leaves", "not-an-object-id", {"status": "approved"})


async def test_get_with_malformed_id_is_none():
    assert await make_store(FakeModel()).get("leaves", "not-an-object-id") is None
