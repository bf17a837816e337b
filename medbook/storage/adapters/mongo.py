import datetime as dt
from collections.abc import Mapping, Sequence
from typing import Any, Generic, TypeVar

from bson import ObjectId
from bson.errors import InvalidId
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import BaseModel
from pymongo import ReturnDocument

from medbook.storage.ports import Filters, Sort

ModelT = TypeVar("ModelT", bound=BaseModel)

IndexSpec = Sequence[tuple[str, int]]


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _object_id(value: str) -> ObjectId | None:
    """Parse a document id; malformed ids simply match nothing."""
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


class MongoDocumentStore(Generic[ModelT]):
    """DocumentStore over one Motor collection.

    Documents keep their MongoDB ``_id``; it is exposed as the string ``id``
    on the returned models.
    """

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        model: type[ModelT],
        *,
        indexes: Sequence[IndexSpec] = (),
    ) -> None:
        self._collection = collection
        self._model = model
        self._indexes = list(indexes)

    def _to_model(self, doc: Mapping[str, Any]) -> ModelT:
        data = {k: v for k, v in doc.items() if k != "_id"}
        data["id"] = str(doc["_id"])
        return self._model.model_validate(data)

    async def get(self, doc_id: str) -> ModelT | None:
        oid = _object_id(doc_id)
        if oid is None:
            return None
        doc = await self._collection.find_one({"_id": oid})
        return self._to_model(doc) if doc else None

    async def find_one(self, filters: Filters) -> ModelT | None:
        doc = await self._collection.find_one(dict(filters))
        return self._to_model(doc) if doc else None

    async def find(
        self,
        filters: Filters,
        *,
        sort: Sort | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[ModelT]:
        cursor = self._collection.find(dict(filters))
        if sort:
            cursor = cursor.sort(list(sort))
        if offset:
            cursor = cursor.skip(offset)
        if limit:
            cursor = cursor.limit(limit)
        return [self._to_model(doc) async for doc in cursor]

    async def count(self, filters: Filters) -> int:
        return await self._collection.count_documents(dict(filters))

    async def insert(self, fields: Mapping[str, Any]) -> ModelT:
        now = utcnow()
        doc = {k: v for k, v in fields.items() if k not in {"id", "_id"}}
        doc["createdAt"] = now
        doc["updatedAt"] = now
        result = await self._collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return self._to_model(doc)

    async def update(self, doc_id: str, fields: Mapping[str, Any]) -> ModelT | None:
        oid = _object_id(doc_id)
        if oid is None:
            return None
        changes = {k: v for k, v in fields.items() if k not in {"id", "_id"}}
        changes["updatedAt"] = utcnow()
        doc = await self._collection.find_one_and_update(
            {"_id": oid},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        return self._to_model(doc) if doc else None

    async def ensure_indexes(self) -> None:
        for keys in self._indexes:
            name = await self._collection.create_index(list(keys))
            logger.debug("Ensured index {} on {}", name, self._collection.name)

    async def health_check(self) -> bool:
        try:
            await self._collection.database.command("ping")
            return True
        except Exception as exc:
            logger.warning("MongoDB health check failed: {}", exc)
            return False

    async def close(self) -> None:
        # The client is shared between collections and closed by its owner.
        return None
