"""
Entity repositories for the health storage engine.

Public API:
- Repositories: container building one repository per collection
- MongoEntityRepository / EntityRepositoryInterface: the shared contract
- FilterItem / build_search_filter: case-insensitive search filters

Usage:
    from src.storage.repositories import Repositories

    repos = Repositories.build(database)
    county = repos.counties.find(county_id)
"""

from dataclasses import dataclass

from ..database import DatabaseClient
from .base import EntityRepositoryInterface, MongoEntityRepository
from .content import (
    DEFAULT_APP_VERSIONS,
    AppVersionRepository,
    ConfigRepository,
    FAQRepository,
    NewsRepository,
    ResourceRepository,
    UINOverrideRepository,
)
from .policy import (
    AccessRuleRepository,
    CountyRepository,
    FilterItem,
    RuleRepository,
    SymptomRuleRepository,
    TestTypeRepository,
    build_search_filter,
)
from .testing import (
    CTestRepository,
    EHistoryRepository,
    EStatusRepository,
    LocationRepository,
    ManualTestRepository,
    ProviderRepository,
)
from .users import UserRepository


@dataclass
class Repositories:
    """One repository per persisted collection, sharing a DatabaseClient."""

    counties: CountyRepository
    test_types: TestTypeRepository
    rules: RuleRepository
    symptom_rules: SymptomRuleRepository
    access_rules: AccessRuleRepository
    providers: ProviderRepository
    locations: LocationRepository
    users: UserRepository
    ctests: CTestRepository
    manual_tests: ManualTestRepository
    histories: EHistoryRepository
    statuses: EStatusRepository
    resources: ResourceRepository
    news: NewsRepository
    faq: FAQRepository
    uin_overrides: UINOverrideRepository
    app_versions: AppVersionRepository
    configs: ConfigRepository

    @classmethod
    def build(cls, database: DatabaseClient) -> "Repositories":
        return cls(
            counties=CountyRepository(database),
            test_types=TestTypeRepository(database),
            rules=RuleRepository(database),
            symptom_rules=SymptomRuleRepository(database),
            access_rules=AccessRuleRepository(database),
            providers=ProviderRepository(database),
            locations=LocationRepository(database),
            users=UserRepository(database),
            ctests=CTestRepository(database),
            manual_tests=ManualTestRepository(database),
            histories=EHistoryRepository(database),
            statuses=EStatusRepository(database),
            resources=ResourceRepository(database),
            news=NewsRepository(database),
            faq=FAQRepository(database),
            uin_overrides=UINOverrideRepository(database),
            app_versions=AppVersionRepository(database),
            configs=ConfigRepository(database),
        )


__all__ = [
    "Repositories",
    "EntityRepositoryInterface",
    "MongoEntityRepository",
    "FilterItem",
    "build_search_filter",
    "DEFAULT_APP_VERSIONS",
    "AccessRuleRepository",
    "AppVersionRepository",
    "ConfigRepository",
    "CountyRepository",
    "CTestRepository",
    "EHistoryRepository",
    "EStatusRepository",
    "FAQRepository",
    "LocationRepository",
    "ManualTestRepository",
    "NewsRepository",
    "ProviderRepository",
    "ResourceRepository",
    "RuleRepository",
    "SymptomRuleRepository",
    "TestTypeRepository",
    "UINOverrideRepository",
    "UserRepository",
]
