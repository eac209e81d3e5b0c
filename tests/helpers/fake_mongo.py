"""
In-memory stand-in for the slice of pymongo the storage engine uses.

FakeClient / FakeDatabase / FakeCollection cover the collection calls made
by CollectionHandle (filters with dotted paths, $in/$or/$and/$regex/
$exists/$ne/$gt, $set/$setOnInsert updates, upserts, projections, sort,
limit, unique indexes). FakeSession snapshots every collection of its
client on start_transaction and restores the snapshot on abort, which is
enough to observe atomicity from the outside.

Aggregations and change streams are not emulated; pipeline tests use
MagicMock collections instead.
"""

import copy
import re
import uuid
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pymongo.errors import DuplicateKeyError, InvalidOperation, OperationFailure


# ===== Filter evaluation =====

def _resolve(value: Any, parts: List[str]) -> List[Any]:
    """All values reachable from value along a dotted path, arrays expanded."""
    if not parts:
        return [value]
    head, rest = parts[0], parts[1:]
    if isinstance(value, dict):
        if head not in value:
            return []
        return _resolve(value[head], rest)
    if isinstance(value, list):
        if head.isdigit():
            index = int(head)
            return _resolve(value[index], rest) if index < len(value) else []
        found: List[Any] = []
        for item in value:
            if isinstance(item, dict):
                found.extend(_resolve(item, parts))
        return found
    return []


def _flatten(candidates: List[Any]) -> List[Any]:
    flat: List[Any] = []
    for candidate in candidates:
        flat.append(candidate)
        if isinstance(candidate, list):
            flat.extend(candidate)
    return flat


def _equals(candidates: List[Any], expected: Any) -> bool:
    if expected is None and not candidates:
        return True
    return any(c == expected for c in _flatten(candidates))


def _compare(candidates: List[Any], op: str, operand: Any) -> bool:
    if op == "$in":
        return any(_equals(candidates, value) for value in operand)
    if op == "$nin":
        return not any(_equals(candidates, value) for value in operand)
    if op == "$ne":
        return not _equals(candidates, operand)
    if op == "$exists":
        return bool(candidates) == bool(operand)
    if op in ("$gt", "$gte", "$lt", "$lte"):
        for c in _flatten(candidates):
            if c is None or isinstance(c, list):
                continue
            if op == "$gt" and c > operand:
                return True
            if op == "$gte" and c >= operand:
                return True
            if op == "$lt" and c < operand:
                return True
            if op == "$lte" and c <= operand:
                return True
        return False
    raise NotImplementedError(f"operator {op} not supported by the fake")


def _matches_condition(candidates: List[Any], condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        if "$regex" in condition:
            flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
            pattern = re.compile(condition["$regex"], flags)
            if not any(isinstance(c, str) and pattern.search(c) for c in _flatten(candidates)):
                return False
        return all(
            _compare(candidates, op, operand)
            for op, operand in condition.items()
            if op not in ("$regex", "$options")
        )
    return _equals(candidates, condition)


def matches(document: Dict[str, Any], filter: Optional[Dict[str, Any]]) -> bool:
    for key, condition in (filter or {}).items():
        if key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
        elif key == "$and":
            if not all(matches(document, sub) for sub in condition):
                return False
        elif not _matches_condition(_resolve(document, key.split(".")), condition):
            return False
    return True


# ===== Updates =====

def _set_path(document: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    target = document
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = copy.deepcopy(value)


def _apply_update(document: Dict[str, Any], update: Dict[str, Any], inserting: bool) -> None:
    for op, fields in update.items():
        if op == "$set" or (op == "$setOnInsert" and inserting):
            for path, value in fields.items():
                _set_path(document, path, value)
        elif op == "$unset":
            for path in fields:
                document.pop(path, None)
        elif op != "$setOnInsert":
            raise NotImplementedError(f"update operator {op} not supported by the fake")


def _seed_from_filter(filter: Dict[str, Any]) -> Dict[str, Any]:
    seed: Dict[str, Any] = {}
    for key, value in filter.items():
        if key.startswith("$") or "." in key:
            continue
        if isinstance(value, dict) and any(k.startswith("$") for k in value):
            continue
        seed[key] = copy.deepcopy(value)
    return seed


# ===== Results =====

class InsertOneResult:
    def __init__(self, inserted_id: Any):
        self.inserted_id = inserted_id


class InsertManyResult:
    def __init__(self, inserted_ids: List[Any]):
        self.inserted_ids = inserted_ids


class UpdateResult:
    def __init__(self, matched_count: int, modified_count: int, upserted_id: Any = None):
        self.matched_count = matched_count
        self.modified_count = modified_count
        self.upserted_id = upserted_id


class DeleteResult:
    def __init__(self, deleted_count: int):
        self.deleted_count = deleted_count


# ===== Cursor / collection =====

def _sort_key(field: str):
    def key(document: Dict[str, Any]) -> Tuple[bool, Any]:
        values = _resolve(document, field.split("."))
        value = values[0] if values else None
        return (value is not None, value)
    return key


class FakeCursor:
    def __init__(self, documents: List[Dict[str, Any]]):
        self._documents = documents

    def sort(self, keys: List[Tuple[str, int]]) -> "FakeCursor":
        for field, direction in reversed(keys):
            self._documents.sort(key=_sort_key(field), reverse=direction < 0)
        return self

    def limit(self, count: int) -> "FakeCursor":
        if count > 0:
            self._documents = self._documents[:count]
        return self

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self._documents)


def _project(document: Dict[str, Any], projection: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not projection:
        return document
    included = [k for k, v in projection.items() if v]
    if included:
        result = {k: document[k] for k in included if k in document}
        if projection.get("_id", 1) and "_id" in document:
            result["_id"] = document["_id"]
        return result
    return {k: v for k, v in document.items() if k not in projection}


class FakeCollection:
    def __init__(self, name: str):
        self.name = name
        self.documents: List[Dict[str, Any]] = []
        self.unique_indexes: Dict[str, List[str]] = {}
        self.created_indexes: List[Tuple[str, Any, bool]] = []

    # ----- indexes -----

    def create_index(self, keys, name: str = None, unique: bool = False, **kwargs) -> str:
        self.created_indexes.append((name, keys, unique))
        if unique:
            self.unique_indexes[name] = [field for field, _ in keys]
        return name

    def _check_unique(self, candidate: Dict[str, Any], ignore: Optional[Dict[str, Any]] = None) -> None:
        indexes = dict(self.unique_indexes)
        indexes["_id_"] = ["_id"]
        for name, fields in indexes.items():
            key = tuple(
                (_resolve(candidate, f.split(".")) or [None])[0] for f in fields
            )
            for existing in self.documents:
                if existing is ignore:
                    continue
                other = tuple(
                    (_resolve(existing, f.split(".")) or [None])[0] for f in fields
                )
                if other == key:
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: {self.name} index: {name}",
                        11000,
                    )

    # ----- reads -----

    def _matching(self, filter: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [doc for doc in self.documents if matches(doc, filter)]

    def find(self, filter=None, projection=None, session=None) -> FakeCursor:
        return FakeCursor([
            _project(copy.deepcopy(doc), projection) for doc in self._matching(filter)
        ])

    def find_one(self, filter=None, session=None) -> Optional[Dict[str, Any]]:
        found = self._matching(filter)
        return copy.deepcopy(found[0]) if found else None

    def count_documents(self, filter, session=None, limit: int = 0) -> int:
        count = len(self._matching(filter))
        return min(count, limit) if limit else count

    def aggregate(self, pipeline, session=None):
        raise NotImplementedError("aggregation is not emulated")

    def watch(self, pipeline=None):
        raise NotImplementedError("change streams are not emulated")

    # ----- writes -----

    def insert_one(self, document: Dict[str, Any], session=None) -> InsertOneResult:
        stored = copy.deepcopy(document)
        stored.setdefault("_id", str(uuid.uuid4()))
        self._check_unique(stored)
        self.documents.append(stored)
        return InsertOneResult(stored["_id"])

    def insert_many(self, documents: List[Dict[str, Any]], session=None) -> InsertManyResult:
        return InsertManyResult([self.insert_one(doc).inserted_id for doc in documents])

    def replace_one(self, filter, replacement, upsert: bool = False, session=None) -> UpdateResult:
        found = self._matching(filter)
        if found:
            current = found[0]
            stored = copy.deepcopy(replacement)
            stored["_id"] = current["_id"]
            self._check_unique(stored, ignore=current)
            self.documents[self.documents.index(current)] = stored
            return UpdateResult(1, int(stored != current))
        if not upsert:
            return UpdateResult(0, 0)
        stored = _seed_from_filter(filter)
        stored.update(copy.deepcopy(replacement))
        return UpdateResult(0, 0, self.insert_one(stored).inserted_id)

    def update_one(self, filter, update, upsert: bool = False, session=None) -> UpdateResult:
        found = self._matching(filter)
        if found:
            current = found[0]
            stored = copy.deepcopy(current)
            _apply_update(stored, update, inserting=False)
            self._check_unique(stored, ignore=current)
            self.documents[self.documents.index(current)] = stored
            return UpdateResult(1, int(stored != current))
        if not upsert:
            return UpdateResult(0, 0)
        stored = _seed_from_filter(filter)
        _apply_update(stored, update, inserting=True)
        return UpdateResult(0, 0, self.insert_one(stored).inserted_id)

    def update_many(self, filter, update, session=None) -> UpdateResult:
        found = self._matching(filter)
        modified = 0
        for current in found:
            stored = copy.deepcopy(current)
            _apply_update(stored, update, inserting=False)
            modified += int(stored != current)
            self.documents[self.documents.index(current)] = stored
        return UpdateResult(len(found), modified)

    def delete_one(self, filter, session=None) -> DeleteResult:
        found = self._matching(filter)
        if not found:
            return DeleteResult(0)
        self.documents.remove(found[0])
        return DeleteResult(1)

    def delete_many(self, filter, session=None) -> DeleteResult:
        found = self._matching(filter)
        for doc in found:
            self.documents.remove(doc)
        return DeleteResult(len(found))


class FakeDatabase:
    def __init__(self, name: str):
        self.name = name
        self.collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]


class FakeSession:
    """
    Snapshot/restore transaction emulation.

    Attributes:
        fail_commit: Exception raised by commit_transaction (after which the
            snapshot is restored, like a server-side abort)
    """

    def __init__(self, client: "FakeClient"):
        self._client = client
        self._snapshot: Optional[Dict[str, Dict[str, List[Dict[str, Any]]]]] = None
        self.fail_commit: Optional[Exception] = None
        self.fail_abort: Optional[Exception] = None
        self.committed = False
        self.aborted = False
        self.ended = False

    @property
    def in_transaction(self) -> bool:
        return self._snapshot is not None

    def start_transaction(self) -> None:
        if self.in_transaction:
            raise InvalidOperation("Transaction already in progress")
        self._snapshot = {
            db_name: {name: copy.deepcopy(coll.documents) for name, coll in db.collections.items()}
            for db_name, db in self._client.databases.items()
        }

    def _restore(self) -> None:
        for db_name, db in self._client.databases.items():
            saved = self._snapshot.get(db_name, {})
            for name, coll in db.collections.items():
                coll.documents = saved.get(name, [])
        self._snapshot = None

    def commit_transaction(self) -> None:
        if self.fail_commit is not None:
            self._restore()
            raise self.fail_commit
        self._snapshot = None
        self.committed = True

    def abort_transaction(self) -> None:
        self.aborted = True
        self._restore()
        if self.fail_abort is not None:
            raise self.fail_abort

    def end_session(self) -> None:
        if self.in_transaction:
            self._restore()
        self.ended = True

    def __enter__(self) -> "FakeSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.end_session()
        return False


class FakeClient:
    def __init__(self):
        self.databases: Dict[str, FakeDatabase] = {}
        self.sessions: List[FakeSession] = []
        self.next_commit_error: Optional[Exception] = None
        self.closed = False

    def __getitem__(self, name: str) -> FakeDatabase:
        if name not in self.databases:
            self.databases[name] = FakeDatabase(name)
        return self.databases[name]

    def start_session(self) -> FakeSession:
        session = FakeSession(self)
        if self.next_commit_error is not None:
            session.fail_commit = self.next_commit_error
            self.next_commit_error = None
        self.sessions.append(session)
        return session

    def close(self) -> None:
        self.closed = True


def commit_failure(message: str = "WriteConflict") -> OperationFailure:
    return OperationFailure(message, code=112)


def snapshot(database: FakeDatabase) -> Dict[str, List[Dict[str, Any]]]:
    """Deep copy of every non-empty collection, for before/after comparisons."""
    return {
        name: copy.deepcopy(coll.documents)
        for name, coll in database.collections.items()
        if coll.documents
    }
