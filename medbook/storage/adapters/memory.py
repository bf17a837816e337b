import datetime as dt
import uuid
from collections.abc import Mapping
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from medbook.storage.ports import Filters, Sort

ModelT = TypeVar("ModelT", bound=BaseModel)


def _matches(doc: Mapping[str, Any], filters: Filters) -> bool:
    for key, expected in filters.items():
        actual = doc.get(key)
        if isinstance(expected, Mapping):
            if "$ne" in expected and actual == expected["$ne"]:
                return False
            if "$in" in expected and actual not in expected["$in"]:
                return False
        elif actual != expected:
            return False
    return True


class InMemoryDocumentStore(Generic[ModelT]):
    """Dict-backed implementation of the DocumentStore protocol.

    Used by the ``memory`` storage backend and as a test double.  Set
    ``error`` to make the next call raise it.  Every insert/update is
    appended to ``writes`` as ``(operation, doc_id, fields)`` so tests can
    assert that a rejected command wrote nothing.
    """

    def __init__(self, model: type[ModelT]) -> None:
        self._model = model
        self._docs: dict[str, dict[str, Any]] = {}
        self.writes: list[tuple[str, str, dict[str, Any]]] = []
        self.error: Exception | None = None
        self.closed: bool = False

    def _raise_if_failing(self) -> None:
        if self.error:
            raise self.error

    def _to_model(self, doc_id: str, doc: Mapping[str, Any]) -> ModelT:
        return self._model.model_validate({**doc, "id": doc_id})

    async def get(self, doc_id: str) -> ModelT | None:
        self._raise_if_failing()
        doc = self._docs.get(doc_id)
        return self._to_model(doc_id, doc) if doc is not None else None

    async def find_one(self, filters: Filters) -> ModelT | None:
        found = await self.find(filters, limit=1)
        return found[0] if found else None

    async def find(
        self,
        filters: Filters,
        *,
        sort: Sort | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[ModelT]:
        self._raise_if_failing()
        rows = [(doc_id, doc) for doc_id, doc in self._docs.items() if _matches(doc, filters)]
        # Stable sorts applied from the least significant key.
        for key, direction in reversed(list(sort or [])):
            rows.sort(key=lambda row, k=key: str(row[1].get(k, "")), reverse=direction < 0)
        end = None if limit is None else offset + limit
        return [self._to_model(doc_id, doc) for doc_id, doc in rows[offset:end]]

    async def count(self, filters: Filters) -> int:
        self._raise_if_failing()
        return sum(1 for doc in self._docs.values() if _matches(doc, filters))

    async def insert(self, fields: Mapping[str, Any]) -> ModelT:
        self._raise_if_failing()
        doc_id = uuid.uuid4().hex
        now = dt.datetime.now(dt.timezone.utc)
        doc = {**fields, "createdAt": now, "updatedAt": now}
        doc.pop("id", None)
        self._docs[doc_id] = doc
        self.writes.append(("insert", doc_id, dict(fields)))
        return self._to_model(doc_id, doc)

    async def update(self, doc_id: str, fields: Mapping[str, Any]) -> ModelT | None:
        self._raise_if_failing()
        doc = self._docs.get(doc_id)
        if doc is None:
            return None
        doc.update(fields)
        doc["updatedAt"] = dt.datetime.now(dt.timezone.utc)
        self.writes.append(("update", doc_id, dict(fields)))
        return self._to_model(doc_id, doc)

    async def ensure_indexes(self) -> None:
        return None

    async def health_check(self) -> bool:
        return self.error is None

    async def close(self) -> None:
        self.closed = True
