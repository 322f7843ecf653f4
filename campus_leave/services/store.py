"""
Document Store

Collection/field level access to the database used by the services.
Filters are ``(field, op, value)`` triples with op ``==`` or ``in``,
ordering is a list of ``(field, "asc" | "desc")`` pairs.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Type

from beanie import Document, PydanticObjectId
from bson.errors import InvalidId
from pymongo.errors import OperationFailure, PyMongoError

from campus_leave.core.exceptions import (
    IndexBuilding,
    PreconditionFailed,
    StoreUnavailable,
)

ASC = "asc"
DESC = "desc"

Filter = Tuple[str, str, Any]
Ordering = Tuple[str, str]


class _Sentinel:
    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return self.name


# Removes the field from the document (as opposed to setting it to None)
DELETE_FIELD = _Sentinel("DELETE_FIELD")

# Replaced with the write time, taken from the store's clock
SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")


class DocumentStore:
    """Abstract document store interface"""

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[Ordering] = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def create(self, collection: str, fields: Mapping[str, Any]) -> str:
        raise NotImplementedError

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        where: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Apply a partial update. With ``where``, the update only happens if the
        document still has those field values; otherwise PreconditionFailed.
        """
        raise NotImplementedError


def _plain(value: Any) -> Any:
    # str enums go to Mongo as their value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, set)):
        return [_plain(item) for item in value]
    return value


def to_mongo_filter(filters: Sequence[Filter]) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    for field, op, value in filters:
        if op == "==":
            query[field] = _plain(value)
        elif op == "in":
            query[field] = {"$in": _plain(value)}
        else:
            raise ValueError(f"Unsupported filter operator '{op}'")
    return query


def to_mongo_update(fields: Mapping[str, Any], now: datetime) -> Dict[str, Any]:
    update: Dict[str, Dict[str, Any]] = {}
    for field, value in fields.items():
        if value is DELETE_FIELD:
            update.setdefault("$unset", {})[field] = ""
        elif value is SERVER_TIMESTAMP:
            update.setdefault("$set", {})[field] = now
        else:
            update.setdefault("$set", {})[field] = _plain(value)
    return update


def _is_index_building(error: OperationFailure) -> bool:
    message = str(error).lower()
    return "index" in message and "building" in message


class BeanieDocumentStore(DocumentStore):
    """Document store backed by Beanie document classes, one per collection"""

    def __init__(self, models: Sequence[Type[Document]], clock: Callable[[], datetime] = datetime.now):
        self.clock = clock
        self.models: Dict[str, Type[Document]] = {
            model.get_settings().name: model for model in models
        }

    def _model(self, collection: str) -> Type[Document]:
        try:
            return self.models[collection]
        except KeyError:
            raise StoreUnavailable(f"Unknown collection '{collection}'")

    @staticmethod
    def _to_dict(document: Document) -> Dict[str, Any]:
        data = document.model_dump(exclude={"id", "revision_id"})
        data["id"] = str(document.id)
        return data

    async def query(self, collection, filters=(), order_by=(), limit=None):
        model = self._model(collection)
        cursor = model.find(to_mongo_filter(filters))
        for field, direction in order_by:
            cursor = cursor.sort(("-" if direction == DESC else "+") + field)
        if limit:
            cursor = cursor.limit(limit)

        try:
            documents = await cursor.to_list()
        except OperationFailure as e:
            if _is_index_building(e):
                raise IndexBuilding(f"Index for '{collection}' is currently building")
            raise StoreUnavailable(f"Query on '{collection}' failed: {e}")
        except PyMongoError as e:
            raise StoreUnavailable(f"Query on '{collection}' failed: {e}")

        return [self._to_dict(document) for document in documents]

    async def get(self, collection, doc_id):
        model = self._model(collection)
        try:
            document = await model.get(PydanticObjectId(doc_id))
        except (InvalidId, TypeError):
            return None
        except PyMongoError as e:
            raise StoreUnavailable(f"Reading {collection}/{doc_id} failed: {e}")

        return self._to_dict(document) if document else None

    async def create(self, collection, fields):
        model = self._model(collection)
        now = self.clock()
        data = {
            field: now if value is SERVER_TIMESTAMP else value
            for field, value in fields.items()
            if value is not DELETE_FIELD
        }

        document = model.model_validate(data)
        try:
            await document.insert()
        except PyMongoError as e:
            raise StoreUnavailable(f"Creating document in '{collection}' failed: {e}")
        return str(document.id)

    async def update(self, collection, doc_id, fields, where=None):
        model = self._model(collection)
        try:
            selector: Dict[str, Any] = {"_id": PydanticObjectId(doc_id)}
        except (InvalidId, TypeError):
            raise PreconditionFailed(f"{collection}/{doc_id} does not exist")
        if where:
            selector.update({field: _plain(value) for field, value in where.items()})

        try:
            result = await model.get_motor_collection().update_one(selector, to_mongo_update(fields, self.clock()))
        except PyMongoError as e:
            raise StoreUnavailable(f"Updating {collection}/{doc_id} failed: {e}")

        if result.matched_count == 0:
            if where:
                raise PreconditionFailed(f"{collection}/{doc_id} no longer matches {dict(where)}")
            raise PreconditionFailed(f"{collection}/{doc_id} does not exist")
