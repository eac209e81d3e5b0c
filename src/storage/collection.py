"""
Collection Handle

Thin accessor over one MongoDB collection. Every method takes an optional
`session`; passing the ClientSession of an open transaction makes the call
part of that transaction, leaving it None runs the call on its own.

All driver exceptions are translated to the storage error taxonomy
(see src.common.error_handling); nothing is retried here.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pymongo.client_session import ClientSession
from pymongo.collection import Collection

from src.common.error_handling import translate_store_errors

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexSpec:
    """
    Index declaration created once at startup.

    Attributes:
        name: Index name
        keys: List of (field, direction) tuples
        unique: Whether the index enforces uniqueness
    """
    name: str
    keys: List[Tuple[str, int]]
    unique: bool = False


@dataclass
class WriteResult:
    """
    Result of a write operation.

    Attributes:
        matched_count: Number of documents that matched the filter
        modified_count: Number of documents actually modified
        deleted_count: Number of documents deleted
        upserted_id: ID of upserted document (if any)
        inserted_ids: IDs of inserted documents
    """
    matched_count: int = 0
    modified_count: int = 0
    deleted_count: int = 0
    upserted_id: Optional[str] = None
    inserted_ids: List[Any] = field(default_factory=list)


class CollectionHandle:
    """
    Typed access to a single collection.

    Connection Management:
    - Wraps a pymongo Collection obtained from the shared MongoClient
    - PyMongo handles connection pooling internally

    Error Handling:
    - Fail-fast: All errors propagate to caller as StorageError subclasses
    - No silent failures - consumers must handle exceptions
    """

    def __init__(self, collection: Collection, indexes: Sequence[IndexSpec] = ()):
        """
        Args:
            collection: pymongo collection
            indexes: Indexes this collection needs (created by ensure_indexes)
        """
        self._collection = collection
        self._indexes = list(indexes)

    @property
    def name(self) -> str:
        return self._collection.name

    @property
    def indexes(self) -> List[IndexSpec]:
        return list(self._indexes)

    def _op(self, operation: str) -> str:
        return f"{self.name}.{operation}"

    def find(
        self,
        filter: Dict[str, Any],
        sort: Optional[List[Tuple[str, int]]] = None,
        limit: int = 0,
        projection: Optional[Dict[str, Any]] = None,
        session: Optional[ClientSession] = None,
    ) -> List[Dict[str, Any]]:
        """
        Find documents.

        Args:
            filter: MongoDB query filter
            sort: Sort order as list of (field, direction) tuples
            limit: Maximum documents to return (0 = no limit)
            projection: Fields to include/exclude
            session: Transaction session, if any

        Returns:
            List of matching documents
        """
        with translate_store_errors(self._op("find")):
            cursor = self._collection.find(filter, projection, session=session)
            if sort:
                cursor = cursor.sort(sort)
            if limit > 0:
                cursor = cursor.limit(limit)
            return list(cursor)

    def find_one(
        self,
        filter: Dict[str, Any],
        session: Optional[ClientSession] = None,
    ) -> Optional[Dict[str, Any]]:
        """Find a single document, None if absent."""
        with translate_store_errors(self._op("find_one")):
            return self._collection.find_one(filter, session=session)

    def count_documents(
        self,
        filter: Dict[str, Any],
        limit: int = 0,
        session: Optional[ClientSession] = None,
    ) -> int:
        """Count documents matching the filter (stops at limit when > 0)."""
        kwargs: Dict[str, Any] = {"session": session}
        if limit > 0:
            kwargs["limit"] = limit
        with translate_store_errors(self._op("count_documents")):
            return self._collection.count_documents(filter, **kwargs)

    def exists(self, filter: Dict[str, Any], session: Optional[ClientSession] = None) -> bool:
        """True if at least one document matches."""
        return self.count_documents(filter, limit=1, session=session) > 0

    def insert_one(
        self,
        document: Dict[str, Any],
        session: Optional[ClientSession] = None,
    ) -> WriteResult:
        """Insert a single document."""
        with translate_store_errors(self._op("insert_one")):
            result = self._collection.insert_one(document, session=session)
        return WriteResult(inserted_ids=[result.inserted_id])

    def insert_many(
        self,
        documents: List[Dict[str, Any]],
        session: Optional[ClientSession] = None,
    ) -> WriteResult:
        """Insert documents in order, stopping at the first failure."""
        if not documents:
            return WriteResult()
        with translate_store_errors(self._op("insert_many")):
            result = self._collection.insert_many(documents, session=session)
        return WriteResult(inserted_ids=list(result.inserted_ids))

    def replace_one(
        self,
        filter: Dict[str, Any],
        document: Dict[str, Any],
        upsert: bool = False,
        session: Optional[ClientSession] = None,
    ) -> WriteResult:
        """Replace a single document wholesale."""
        with translate_store_errors(self._op("replace_one")):
            result = self._collection.replace_one(filter, document, upsert=upsert, session=session)
        return WriteResult(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            upserted_id=str(result.upserted_id) if result.upserted_id else None,
        )

    def update_one(
        self,
        filter: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
        session: Optional[ClientSession] = None,
    ) -> WriteResult:
        """Apply update operators (e.g. {"$set": {...}}) to one document."""
        with translate_store_errors(self._op("update_one")):
            result = self._collection.update_one(filter, update, upsert=upsert, session=session)
        return WriteResult(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            upserted_id=str(result.upserted_id) if result.upserted_id else None,
        )

    def update_many(
        self,
        filter: Dict[str, Any],
        update: Dict[str, Any],
        session: Optional[ClientSession] = None,
    ) -> WriteResult:
        """Apply update operators to every matching document."""
        with translate_store_errors(self._op("update_many")):
            result = self._collection.update_many(filter, update, session=session)
        return WriteResult(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
        )

    def delete_one(
        self,
        filter: Dict[str, Any],
        session: Optional[ClientSession] = None,
    ) -> WriteResult:
        """Delete a single document."""
        with translate_store_errors(self._op("delete_one")):
            result = self._collection.delete_one(filter, session=session)
        return WriteResult(deleted_count=result.deleted_count)

    def delete_many(
        self,
        filter: Dict[str, Any],
        session: Optional[ClientSession] = None,
    ) -> WriteResult:
        """Delete every matching document."""
        with translate_store_errors(self._op("delete_many")):
            result = self._collection.delete_many(filter, session=session)
        return WriteResult(deleted_count=result.deleted_count)

    def aggregate(
        self,
        pipeline: List[Dict[str, Any]],
        session: Optional[ClientSession] = None,
    ) -> List[Dict[str, Any]]:
        """Run an aggregation pipeline and materialize the result."""
        with translate_store_errors(self._op("aggregate")):
            return list(self._collection.aggregate(pipeline, session=session))

    def watch(self, pipeline: Optional[List[Dict[str, Any]]] = None):
        """Open a change stream on this collection (requires a replica set)."""
        with translate_store_errors(self._op("watch")):
            return self._collection.watch(pipeline)

    def ensure_indexes(self) -> int:
        """
        Create the declared indexes.

        Returns:
            Number of indexes created or confirmed
        """
        created = 0
        for spec in self._indexes:
            with translate_store_errors(self._op(f"create_index({spec.name})")):
                self._collection.create_index(spec.keys, name=spec.name, unique=spec.unique)
            logger.info(f"✓ Created index: {self.name}.{spec.name}")
            created += 1
        return created
