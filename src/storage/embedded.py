"""
Embedded Sub-entity Manager

CRUD for elements stored inside a parent document's array: a county's
guidelines and status catalog, a test type's results.

Every write is read-modify-write of the whole parent:
load the parent, edit its array in memory, replace the parent.

The parent's array is handled as raw documents behind an id -> position
index, so elements that are not the target of a call are written back
exactly as they were read. Concurrent writes to the same parent are
last-write-wins; deletes that need a dependency check run inside a
transaction (see src.storage.adapter).
"""

import logging
from typing import Any, Dict, Generic, List, Optional, Tuple, Type, TypeVar

from pymongo.client_session import ClientSession

from src.common.error_handling import NotFoundError

from .models import EmbeddedItem, StoredModel, new_id, utcnow
from .repositories.base import MongoEntityRepository

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=StoredModel)


class EmbeddedList:
    """
    A parent's embedded array with an index from element id to position.

    The index is rebuilt whenever positions shift.
    """

    def __init__(self, items: Optional[List[Dict[str, Any]]], id_key: str):
        self.items: List[Dict[str, Any]] = list(items or [])
        self._id_key = id_key
        self._reindex()

    def _reindex(self) -> None:
        self._positions = {item.get(self._id_key): i for i, item in enumerate(self.items)}

    def __len__(self) -> int:
        return len(self.items)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._positions

    def position(self, item_id: str) -> Optional[int]:
        return self._positions.get(item_id)

    def get(self, item_id: str) -> Optional[Dict[str, Any]]:
        position = self.position(item_id)
        return self.items[position] if position is not None else None

    def append(self, item: Dict[str, Any]) -> None:
        self.items.append(item)
        self._positions[item.get(self._id_key)] = len(self.items) - 1

    def replace(self, item_id: str, item: Dict[str, Any]) -> bool:
        position = self.position(item_id)
        if position is None:
            return False
        self.items[position] = item
        return True

    def remove(self, item_id: str) -> Optional[Dict[str, Any]]:
        position = self.position(item_id)
        if position is None:
            return None
        removed = self.items.pop(position)
        self._reindex()
        return removed


class EmbeddedCollectionManager(Generic[S]):
    """
    Sub-entity CRUD over one embedded array of one parent collection.

    Args:
        parents: Repository of the parent documents
        field: Name of the array field in the parent
        model: Model of one array element
        kind: Human-readable sub-entity kind used in errors
        id_key: Key holding the element id ("id", or "_id" for test-type results)
    """

    def __init__(
        self,
        parents: MongoEntityRepository,
        field: str,
        model: Type[S],
        kind: str,
        id_key: str = "id",
    ):
        self._parents = parents
        self.field = field
        self._model = model
        self.kind = kind
        self.id_key = id_key

    @property
    def path(self) -> str:
        """Dotted path of the element id, served by a secondary index."""
        return f"{self.field}.{self.id_key}"

    def _load_parent(self, parent_id: str, session: Optional[ClientSession]) -> Dict[str, Any]:
        parent = self._parents.collection.find_one({"_id": parent_id}, session=session)
        if parent is None:
            raise NotFoundError(self._parents.kind, parent_id)
        return parent

    def _load_parent_of(self, sub_id: str, session: Optional[ClientSession]) -> Dict[str, Any]:
        # The index narrows to the owning parent; the element itself is
        # extracted in memory because the whole array comes back
        parent = self._parents.collection.find_one({self.path: sub_id}, session=session)
        if parent is None:
            raise NotFoundError(self.kind, sub_id)
        return parent

    def _replace_parent(self, parent: Dict[str, Any], session: Optional[ClientSession]) -> None:
        result = self._parents.collection.replace_one({"_id": parent["_id"]}, parent, session=session)
        if result.matched_count == 0:
            raise NotFoundError(self._parents.kind, parent["_id"])

    def create(self, parent_id: str, sub: S, session: Optional[ClientSession] = None) -> S:
        """
        Append a new element to the parent's array.

        Raises:
            NotFoundError: If the parent does not exist
        """
        parent = self._load_parent(parent_id, session)
        sub.id = new_id()
        if isinstance(sub, EmbeddedItem):
            sub.date_created = utcnow()
            sub.date_updated = None

        items = EmbeddedList(parent.get(self.field), self.id_key)
        items.append(sub.to_dict())
        parent[self.field] = items.items
        self._replace_parent(parent, session)

        logger.debug(f"Created {self.kind} {sub.id} in {self._parents.kind} {parent_id}")
        return sub

    def find(self, sub_id: str, session: Optional[ClientSession] = None) -> S:
        """
        Raises:
            NotFoundError: If no parent holds an element with this id
        """
        return self.find_with_parent_id(sub_id, session=session)[1]

    def find_with_parent_id(
        self, sub_id: str, session: Optional[ClientSession] = None
    ) -> Tuple[str, S]:
        """Find an element and the id of the parent holding it."""
        parent = self._load_parent_of(sub_id, session)
        item = EmbeddedList(parent.get(self.field), self.id_key).get(sub_id)
        if item is None:
            raise NotFoundError(self.kind, sub_id)
        return parent["_id"], self._model.from_dict(item)

    def find_by_parent(self, parent_id: str, session: Optional[ClientSession] = None) -> List[S]:
        """
        Raises:
            NotFoundError: If the parent does not exist
        """
        parent = self._load_parent(parent_id, session)
        return [self._model.from_dict(item) for item in parent.get(self.field) or []]

    def update(self, sub: S, session: Optional[ClientSession] = None) -> S:
        """
        Replace the stored element that has sub's id.

        The stored creation stamp is kept; the update stamp is renewed.

        Raises:
            NotFoundError: If no parent holds an element with this id
        """
        parent = self._load_parent_of(sub.id, session)
        items = EmbeddedList(parent.get(self.field), self.id_key)
        existing = items.get(sub.id)
        if existing is None:
            raise NotFoundError(self.kind, sub.id)

        if isinstance(sub, EmbeddedItem):
            sub.date_created = existing.get("date_created")
            sub.date_updated = utcnow()
        items.replace(sub.id, sub.to_dict())
        parent[self.field] = items.items
        self._replace_parent(parent, session)

        logger.debug(f"Updated {self.kind} {sub.id}")
        return sub

    def delete(self, sub_id: str, session: Optional[ClientSession] = None) -> None:
        """
        Remove the element with this id from its parent.

        Raises:
            NotFoundError: If no parent holds an element with this id
        """
        parent = self._load_parent_of(sub_id, session)
        items = EmbeddedList(parent.get(self.field), self.id_key)
        if items.remove(sub_id) is None:
            raise NotFoundError(self.kind, sub_id)
        parent[self.field] = items.items
        self._replace_parent(parent, session)

        logger.debug(f"Deleted {self.kind} {sub_id}")
