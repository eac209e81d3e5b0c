"""Stored models for the health storage engine."""

from .base import Document, EmbeddedItem, StoredModel, new_id, utcnow
from .policy import (
    AccessRule,
    AccessRuleEntry,
    AccessValue,
    County,
    CountyStatus,
    Guideline,
    GuidelineItem,
    ResultStatusMapping,
    Rule,
    SymptomRule,
    SymptomRuleItem,
    TestType,
    TestTypeResult,
)
from .testing import (
    CTest,
    EHistory,
    EManualTest,
    EStatus,
    HistoryType,
    Location,
    LocationDetails,
    ManualTestDetails,
    ManualTestStatus,
    ManualTestUser,
    OperationDay,
    Provider,
)
from .users import ShibbolethAuth, User
from .content import (
    COVID19_CONFIG_NAME,
    FAQ,
    AppVersion,
    Covid19Config,
    FAQGeneral,
    FAQQuestion,
    FAQSection,
    News,
    Resource,
    UINOverride,
)

__all__ = [
    "Document",
    "EmbeddedItem",
    "StoredModel",
    "new_id",
    "utcnow",
    # Policy
    "AccessRule",
    "AccessRuleEntry",
    "AccessValue",
    "County",
    "CountyStatus",
    "Guideline",
    "GuidelineItem",
    "ResultStatusMapping",
    "Rule",
    "SymptomRule",
    "SymptomRuleItem",
    "TestType",
    "TestTypeResult",
    # Testing
    "CTest",
    "EHistory",
    "EManualTest",
    "EStatus",
    "HistoryType",
    "Location",
    "LocationDetails",
    "ManualTestDetails",
    "ManualTestStatus",
    "ManualTestUser",
    "OperationDay",
    "Provider",
    # Users
    "ShibbolethAuth",
    "User",
    # Content
    "COVID19_CONFIG_NAME",
    "FAQ",
    "AppVersion",
    "Covid19Config",
    "FAQGeneral",
    "FAQQuestion",
    "FAQSection",
    "News",
    "Resource",
    "UINOverride",
]
