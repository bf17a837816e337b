from collections.abc import Awaitable, Mapping, Sequence
from typing import Any, Protocol, TypeVar

from loguru import logger
from pydantic import BaseModel

from medbook.domain.exceptions import MedbookError, StorageUnavailableError

ModelT_co = TypeVar("ModelT_co", bound=BaseModel, covariant=True)
ResultT = TypeVar("ResultT")

# Keys are camelCase document fields.  A value is matched by equality, or by
# ``{"$ne": value}`` / ``{"$in": [values]}``.
Filters = Mapping[str, Any]
Sort = Sequence[tuple[str, int]]


class DocumentStore(Protocol[ModelT_co]):
    """Low-level interface over one collection of documents."""

    async def get(self, doc_id: str) -> ModelT_co | None:
        """Return the document with ``doc_id``, or None if absent."""
        ...

    async def find_one(self, filters: Filters) -> ModelT_co | None:
        """Return the first document matching ``filters``."""
        ...

    async def find(
        self,
        filters: Filters,
        *,
        sort: Sort | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[ModelT_co]:
        """Return matching documents, optionally sorted and sliced."""
        ...

    async def count(self, filters: Filters) -> int:
        """Count every document matching ``filters``."""
        ...

    async def insert(self, fields: Mapping[str, Any]) -> ModelT_co:
        """Store a new document; assigns ``id``, ``createdAt`` and ``updatedAt``."""
        ...

    async def update(self, doc_id: str, fields: Mapping[str, Any]) -> ModelT_co | None:
        """Set ``fields`` and refresh ``updatedAt``. None if ``doc_id`` is unknown."""
        ...

    async def ensure_indexes(self) -> None:
        """Create the indexes the queries rely on."""
        ...

    async def health_check(self) -> bool:
        """Check if the backing store is reachable."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...


async def guarded(resource: str, operation: str, call: Awaitable[ResultT]) -> ResultT:
    """Await a store call, turning unexpected failures into ``StorageUnavailableError``.

    The raised message names the resource and operation only; the underlying
    exception is logged and chained.
    """
    try:
        return await call
    except MedbookError:
        raise
    except Exception as exc:
        logger.exception("{} store failed during {}", resource, operation)
        raise StorageUnavailableError(
            f"{resource} storage is unavailable ({operation} failed)"
        ) from exc
