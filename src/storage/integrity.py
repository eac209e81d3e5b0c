"""
Referential Integrity Validator

MongoDB has no foreign keys. This module keeps the relationships between
collections as data:

- DEPENDENCY_CHECKLIST: for each referenced kind, where references to it
  live. A delete is refused on the first dependent found.
- REFERENCE_TARGETS: where an entity of each kind is stored, so that ids
  can be checked for existence before a referencing entity is written.

Adding a referencing collection means adding a row here, not new code.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pymongo.client_session import ClientSession

from src.common.error_handling import DependencyExistsError, ValidationError

from .database import Collections, DatabaseClient
from .models import AccessRule, County, Location, Rule, SymptomRule, TestType

logger = logging.getLogger(__name__)


class EntityKind(str, Enum):
    """Kinds of entities other collections reference by id."""
    COUNTY = "county"
    COUNTY_STATUS = "county status"
    GUIDELINE = "guideline"
    TEST_TYPE = "test type"
    TEST_TYPE_RESULT = "test type result"
    PROVIDER = "provider"
    LOCATION = "location"
    USER = "user"


@dataclass(frozen=True)
class DependencyRef:
    """
    One place where references to an entity may live.

    Attributes:
        collection: Referencing collection
        field: Field path holding the referenced id. Array fields and paths
            through arrays of sub-documents match any element.
        condition: Extra filter a document must also satisfy to count
    """
    collection: str
    field: str
    condition: Dict[str, Any] = field(default_factory=dict)

    def query(self, entity_id: str) -> Dict[str, Any]:
        query = {self.field: entity_id}
        query.update(self.condition)
        return query


DEPENDENCY_CHECKLIST: Dict[EntityKind, Tuple[DependencyRef, ...]] = {
    EntityKind.COUNTY: (
        DependencyRef(Collections.LOCATIONS, "county_id"),
        DependencyRef(Collections.RULES, "county_id"),
        DependencyRef(Collections.SYMPTOM_RULES, "county_id"),
        DependencyRef(Collections.ACCESS_RULES, "county_id"),
    ),
    EntityKind.PROVIDER: (
        DependencyRef(Collections.LOCATIONS, "provider_id"),
        DependencyRef(Collections.CTESTS, "provider_id"),
    ),
    EntityKind.TEST_TYPE: (
        DependencyRef(Collections.LOCATIONS, "available_tests"),
        DependencyRef(Collections.RULES, "test_type_id"),
        # A test type's own results must be removed first
        DependencyRef(Collections.TEST_TYPES, "_id", {"results.0": {"$exists": True}}),
    ),
    EntityKind.TEST_TYPE_RESULT: (
        DependencyRef(Collections.RULES, "results_statuses.test_type_result_id"),
    ),
    EntityKind.COUNTY_STATUS: (
        DependencyRef(Collections.RULES, "results_statuses.county_status_id"),
        DependencyRef(Collections.SYMPTOM_RULES, "items.county_status_id"),
        DependencyRef(Collections.ACCESS_RULES, "rules.county_status_id"),
    ),
}


# Where an entity of each kind lives: (collection, id field path)
REFERENCE_TARGETS: Dict[EntityKind, Tuple[str, str]] = {
    EntityKind.COUNTY: (Collections.COUNTIES, "_id"),
    EntityKind.COUNTY_STATUS: (Collections.COUNTIES, "county_statuses.id"),
    EntityKind.GUIDELINE: (Collections.COUNTIES, "guidelines.id"),
    EntityKind.TEST_TYPE: (Collections.TEST_TYPES, "_id"),
    EntityKind.TEST_TYPE_RESULT: (Collections.TEST_TYPES, "results._id"),
    EntityKind.PROVIDER: (Collections.PROVIDERS, "_id"),
    EntityKind.LOCATION: (Collections.LOCATIONS, "_id"),
    EntityKind.USER: (Collections.USERS, "_id"),
}


class ReferentialIntegrityValidator:
    """
    Runs the dependency checklist before deletes and reference checks before writes.

    Every check takes the session of the caller's transaction so that the
    check and the write it guards see the same snapshot.
    """

    def __init__(
        self,
        database: DatabaseClient,
        checklist: Optional[Dict[EntityKind, Tuple[DependencyRef, ...]]] = None,
    ):
        self._database = database
        self._checklist = checklist if checklist is not None else DEPENDENCY_CHECKLIST

    def find_dependent(
        self,
        kind: EntityKind,
        entity_id: str,
        session: Optional[ClientSession] = None,
    ) -> Optional[DependencyRef]:
        """First checklist entry with a live dependent, None when there is none."""
        for ref in self._checklist.get(kind, ()):
            if self._database.collection(ref.collection).exists(ref.query(entity_id), session=session):
                return ref
        return None

    def ensure_deletable(
        self,
        kind: EntityKind,
        entity_id: str,
        session: Optional[ClientSession] = None,
    ) -> None:
        """
        Raises:
            DependencyExistsError: On the first dependent found
        """
        ref = self.find_dependent(kind, entity_id, session=session)
        if ref is not None:
            logger.info(f"Delete of {kind.value} {entity_id} blocked by {ref.collection}.{ref.field}")
            raise DependencyExistsError(kind.value, entity_id, ref.collection, ref.field)

    def ensure_exists(
        self,
        kind: EntityKind,
        entity_id: str,
        session: Optional[ClientSession] = None,
    ) -> None:
        """
        Raises:
            ValidationError: If nothing of this kind has the id
        """
        collection, path = REFERENCE_TARGETS[kind]
        if not entity_id or not self._database.collection(collection).exists({path: entity_id}, session=session):
            raise ValidationError(f"{kind.value} {entity_id} does not exist")

    def _load(self, kind: EntityKind, entity_id: str, session: Optional[ClientSession]) -> Dict[str, Any]:
        collection, _ = REFERENCE_TARGETS[kind]
        document = self._database.collection(collection).find_one({"_id": entity_id}, session=session)
        if document is None:
            raise ValidationError(f"{kind.value} {entity_id} does not exist")
        return document

    def _load_county(self, county_id: str, session: Optional[ClientSession]) -> County:
        return County.from_dict(self._load(EntityKind.COUNTY, county_id, session))

    @staticmethod
    def _ensure_members(kind: EntityKind, ids: Iterable[str], catalog: List[str], owner: str) -> None:
        known = set(catalog)
        for item_id in ids:
            if item_id not in known:
                raise ValidationError(f"{kind.value} {item_id} does not belong to {owner}")

    def validate_rule(self, rule: Rule, session: Optional[ClientSession] = None) -> None:
        """
        County and test type must exist; every mapping must use a result of
        that test type and a status of that county.
        """
        county = self._load_county(rule.county_id, session)
        test_type = TestType.from_dict(self._load(EntityKind.TEST_TYPE, rule.test_type_id, session))
        self._ensure_members(
            EntityKind.TEST_TYPE_RESULT,
            (m.test_type_result_id for m in rule.results_statuses),
            test_type.result_ids(),
            f"test type {test_type.id}",
        )
        self._ensure_members(
            EntityKind.COUNTY_STATUS,
            (m.county_status_id for m in rule.results_statuses),
            county.status_ids(),
            f"county {county.id}",
        )

    def validate_symptom_rule(self, rule: SymptomRule, session: Optional[ClientSession] = None) -> None:
        county = self._load_county(rule.county_id, session)
        self._ensure_members(
            EntityKind.COUNTY_STATUS,
            (item.county_status_id for item in rule.items),
            county.status_ids(),
            f"county {county.id}",
        )

    def validate_access_rule(self, rule: AccessRule, session: Optional[ClientSession] = None) -> None:
        """
        The county must exist and have a status catalog, and every entry
        must reference a status from that catalog.
        """
        county = self._load_county(rule.county_id, session)
        if not county.county_statuses:
            raise ValidationError(f"county {county.id} has no county statuses")
        self._ensure_members(
            EntityKind.COUNTY_STATUS,
            (entry.county_status_id for entry in rule.rules),
            county.status_ids(),
            f"county {county.id}",
        )

    def validate_location(self, location: Location, session: Optional[ClientSession] = None) -> None:
        self.ensure_exists(EntityKind.PROVIDER, location.provider_id, session=session)
        self.ensure_exists(EntityKind.COUNTY, location.county_id, session=session)
        for test_type_id in location.available_tests:
            self.ensure_exists(EntityKind.TEST_TYPE, test_type_id, session=session)
