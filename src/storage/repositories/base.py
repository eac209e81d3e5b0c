"""
Repository Interface Definitions

Defines the abstract entity-repository contract and the MongoDB
implementation every concrete repository extends. Concrete repositories
only declare their collection and model, plus any entity-specific queries.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Optional, Tuple, Type, TypeVar

from pymongo.client_session import ClientSession

from src.common.error_handling import NotFoundError

from ..collection import CollectionHandle
from ..database import DatabaseClient
from ..models import Document, utcnow

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Document)


class EntityRepositoryInterface(ABC, Generic[E]):
    """
    Abstract interface for top-level entity operations.

    Every method takes an optional session; pass the session of an open
    transaction to make the call part of it.
    """

    @abstractmethod
    def create(self, entity: E, session: Optional[ClientSession] = None) -> E:
        """
        Insert a new entity, stamping date_created.

        Raises:
            DuplicateKeyError: If a unique index rejects the entity
        """
        pass

    @abstractmethod
    def find(self, entity_id: str, session: Optional[ClientSession] = None) -> E:
        """
        Find an entity by id.

        Raises:
            NotFoundError: If no entity has this id
        """
        pass

    @abstractmethod
    def find_many(
        self,
        filter: Optional[Dict[str, Any]] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
        limit: int = 0,
        session: Optional[ClientSession] = None,
    ) -> List[E]:
        """Find every entity matching the filter."""
        pass

    @abstractmethod
    def save(self, entity: E, session: Optional[ClientSession] = None) -> E:
        """
        Persist changes to an existing entity, re-stamping date_updated.

        Raises:
            NotFoundError: If the entity no longer exists
        """
        pass

    @abstractmethod
    def delete(self, entity_id: str, session: Optional[ClientSession] = None) -> None:
        """
        Delete an entity by id. No dependency check happens here.

        Raises:
            NotFoundError: If no entity has this id
        """
        pass


class MongoEntityRepository(EntityRepositoryInterface[E]):
    """
    MongoDB implementation of the entity contract.

    Subclasses set:
        collection_name: Persisted collection name
        model: Document subclass stored in the collection
        kind: Human-readable entity kind used in errors
        save_fields: Fields written by save(); None writes the whole entity.
            Parents of embedded arrays restrict this so a stale in-memory copy
            never overwrites sub-entities edited elsewhere.
    """

    collection_name: str
    model: Type[E]
    kind: str
    save_fields: Optional[Tuple[str, ...]] = None

    def __init__(self, database: DatabaseClient):
        self._database = database

    @property
    def collection(self) -> CollectionHandle:
        return self._database.collection(self.collection_name)

    def _to_entity(self, document: Dict[str, Any]) -> E:
        return self.model.from_dict(document)

    def create(self, entity: E, session: Optional[ClientSession] = None) -> E:
        entity.date_created = utcnow()
        entity.date_updated = None
        self.collection.insert_one(entity.to_dict(), session=session)
        logger.debug(f"Created {self.kind} {entity.id}")
        return entity

    def find(self, entity_id: str, session: Optional[ClientSession] = None) -> E:
        entity = self.find_optional(entity_id, session=session)
        if entity is None:
            raise NotFoundError(self.kind, entity_id)
        return entity

    def find_optional(self, entity_id: str, session: Optional[ClientSession] = None) -> Optional[E]:
        """Find an entity by id, None if absent."""
        document = self.collection.find_one({"_id": entity_id}, session=session)
        return self._to_entity(document) if document is not None else None

    def find_many(
        self,
        filter: Optional[Dict[str, Any]] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
        limit: int = 0,
        session: Optional[ClientSession] = None,
    ) -> List[E]:
        documents = self.collection.find(filter or {}, sort=sort, limit=limit, session=session)
        return [self._to_entity(doc) for doc in documents]

    def find_all(self, session: Optional[ClientSession] = None) -> List[E]:
        return self.find_many({}, session=session)

    def exists(self, entity_id: str, session: Optional[ClientSession] = None) -> bool:
        return self.collection.exists({"_id": entity_id}, session=session)

    def save(self, entity: E, session: Optional[ClientSession] = None) -> E:
        entity.date_updated = utcnow()
        document = entity.to_dict()
        document.pop("_id", None)
        # date_created is written once, by create()
        document.pop("date_created", None)
        if self.save_fields is not None:
            document = {key: document[key] for key in self.save_fields + ("date_updated",)}

        result = self.collection.update_one({"_id": entity.id}, {"$set": document}, session=session)
        if result.matched_count == 0:
            raise NotFoundError(self.kind, entity.id)
        logger.debug(f"Saved {self.kind} {entity.id}")
        return entity

    def delete(self, entity_id: str, session: Optional[ClientSession] = None) -> None:
        result = self.collection.delete_one({"_id": entity_id}, session=session)
        if result.deleted_count == 0:
            raise NotFoundError(self.kind, entity_id)
        logger.debug(f"Deleted {self.kind} {entity_id}")
