"""
County health policy models.

A County owns its guidelines and its status catalog; a TestType owns its
result catalog. Rule, SymptomRule and AccessRule only hold ids pointing
into those catalogs.
"""

from enum import Enum
from typing import List, Optional

from pydantic import Field

from .base import Document, EmbeddedItem, StoredModel, new_id


class GuidelineItem(StoredModel):
    icon: str = ""
    description: str = ""
    type: str = ""


class Guideline(EmbeddedItem):
    name: str
    description: str = ""
    items: List[GuidelineItem] = Field(default_factory=list)


class CountyStatus(EmbeddedItem):
    name: str
    description: str = ""


class County(Document):
    name: str
    state_province: str = ""
    country: str = ""
    guidelines: List[Guideline] = Field(default_factory=list)
    county_statuses: List[CountyStatus] = Field(default_factory=list)

    def status_ids(self) -> List[str]:
        return [status.id for status in self.county_statuses]


class TestTypeResult(EmbeddedItem):
    """Result catalog entry. Stored under _id, unlike county sub-entities."""

    id: str = Field(default_factory=new_id, alias="_id")
    name: str
    next_step: str = ""
    next_step_offset: Optional[int] = None
    result_expires_offset: Optional[int] = None


class TestType(Document):
    name: str
    priority: Optional[int] = None
    results: List[TestTypeResult] = Field(default_factory=list)

    def result_ids(self) -> List[str]:
        return [result.id for result in self.results]


class ResultStatusMapping(StoredModel):
    test_type_result_id: str
    county_status_id: str


class Rule(Document):
    """Maps a (county, test type) pair to the status each result leads to."""

    county_id: str
    test_type_id: str
    priority: Optional[int] = None
    results_statuses: List[ResultStatusMapping] = Field(default_factory=list)


class SymptomRuleItem(StoredModel):
    gr1: bool = False
    gr2: bool = False
    county_status_id: str
    next_step: str = ""


class SymptomRule(Document):
    county_id: str
    gr1_count: int = 0
    gr2_count: int = 0
    items: List[SymptomRuleItem] = Field(default_factory=list)


class AccessValue(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"


class AccessRuleEntry(StoredModel):
    county_status_id: str
    value: AccessValue


class AccessRule(Document):
    county_id: str
    rules: List[AccessRuleEntry] = Field(default_factory=list)
