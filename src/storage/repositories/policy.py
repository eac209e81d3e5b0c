"""
County, test type and policy-rule repositories.

Counties and test types are parents of embedded arrays; their save() only
writes scalar fields. Embedded elements are edited through
src.storage.embedded.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING
from pymongo.client_session import ClientSession

from src.common.error_handling import NotFoundError

from ..database import Collections
from ..models import AccessRule, County, Rule, SymptomRule, TestType
from .base import MongoEntityRepository


@dataclass
class FilterItem:
    """One field of a search filter. Every value is matched case-insensitively."""
    field: str
    values: List[str] = field(default_factory=list)


def build_search_filter(items: Optional[List[FilterItem]]) -> Dict[str, Any]:
    """
    Build a MongoDB filter from search items.

    A single value becomes an escaped, case-insensitive $regex on the field;
    several values for the same field become an $or of such regexes.
    Items with no values are ignored.
    """
    query: Dict[str, Any] = {}
    or_clauses: List[Dict[str, Any]] = []
    for item in items or []:
        if len(item.values) == 1:
            query[item.field] = {"$regex": re.escape(item.values[0]), "$options": "i"}
        elif len(item.values) > 1:
            or_clauses.append({
                "$or": [
                    {item.field: {"$regex": re.escape(value), "$options": "i"}}
                    for value in item.values
                ]
            })
    if len(or_clauses) == 1:
        query.update(or_clauses[0])
    elif or_clauses:
        query["$and"] = or_clauses
    return query


class CountyRepository(MongoEntityRepository[County]):
    collection_name = Collections.COUNTIES
    model = County
    kind = "county"
    save_fields = ("name", "state_province", "country")

    def search(self, items: Optional[List[FilterItem]] = None) -> List[County]:
        """Find counties matching the case-insensitive filter items."""
        return self.find_many(build_search_filter(items))


class TestTypeRepository(MongoEntityRepository[TestType]):
    collection_name = Collections.TEST_TYPES
    model = TestType
    kind = "test type"
    save_fields = ("name", "priority")

    def find_by_ids(self, ids: List[str]) -> List[TestType]:
        if not ids:
            return []
        return self.find_many({"_id": {"$in": ids}})


class RuleRepository(MongoEntityRepository[Rule]):
    collection_name = Collections.RULES
    model = Rule
    kind = "rule"

    def find_by_county(self, county_id: str) -> List[Rule]:
        return self.find_many({"county_id": county_id}, sort=[("priority", ASCENDING)])

    def find_by_county_and_test_type(
        self,
        county_id: str,
        test_type_id: str,
        session: Optional[ClientSession] = None,
    ) -> Optional[Rule]:
        """The (county, test type) pair is unique by convention, so at most one is returned."""
        documents = self.collection.find(
            {"county_id": county_id, "test_type_id": test_type_id}, limit=1, session=session
        )
        return self._to_entity(documents[0]) if documents else None


class SymptomRuleRepository(MongoEntityRepository[SymptomRule]):
    collection_name = Collections.SYMPTOM_RULES
    model = SymptomRule
    kind = "symptom rule"

    def find_by_county(self, county_id: str, session: Optional[ClientSession] = None) -> SymptomRule:
        document = self.collection.find_one({"county_id": county_id}, session=session)
        if document is None:
            raise NotFoundError(self.kind, county_id, f"no symptom rule for county {county_id}")
        return self._to_entity(document)


class AccessRuleRepository(MongoEntityRepository[AccessRule]):
    collection_name = Collections.ACCESS_RULES
    model = AccessRule
    kind = "access rule"

    def find_by_county(self, county_id: str, session: Optional[ClientSession] = None) -> AccessRule:
        document = self.collection.find_one({"county_id": county_id}, session=session)
        if document is None:
            raise NotFoundError(self.kind, county_id, f"no access rule for county {county_id}")
        return self._to_entity(document)
