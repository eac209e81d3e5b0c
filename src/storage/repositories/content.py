"""
Content, override, app-version and configuration repositories.

The FAQ and the covid19 config are singleton documents and do not follow
the id-based entity contract.
"""

import logging
from datetime import datetime
from typing import List, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.client_session import ClientSession

from src.common.error_handling import NotFoundError, ValidationError

from ..collection import CollectionHandle
from ..database import Collections, DatabaseClient
from ..models import (
    COVID19_CONFIG_NAME,
    FAQ,
    AppVersion,
    Covid19Config,
    News,
    Resource,
    UINOverride,
    new_id,
    utcnow,
)
from .base import MongoEntityRepository

logger = logging.getLogger(__name__)

# Versions every deployment starts with; clients older than these are unsupported
DEFAULT_APP_VERSIONS = ("2.6", "2.7", "2.8")


class ResourceRepository(MongoEntityRepository[Resource]):
    collection_name = Collections.RESOURCES
    model = Resource
    kind = "resource"

    def find_all(self, session: Optional[ClientSession] = None) -> List[Resource]:
        return self.find_many({}, sort=[("display_order", ASCENDING)], session=session)


class NewsRepository(MongoEntityRepository[News]):
    collection_name = Collections.NEWS
    model = News
    kind = "news"

    def find_latest(self, limit: int = 0) -> List[News]:
        """Newest first; limit 0 returns everything."""
        return self.find_many({}, sort=[("date", DESCENDING)], limit=limit)


class UINOverrideRepository(MongoEntityRepository[UINOverride]):
    collection_name = Collections.UIN_OVERRIDES
    model = UINOverride
    kind = "uin override"

    def create_or_update(
        self,
        uin: str,
        interval: int,
        category: Optional[str] = None,
        expiration: Optional[datetime] = None,
    ) -> UINOverride:
        """Upsert the override for a UIN."""
        now = utcnow()
        self.collection.update_one(
            {"uin": uin},
            {
                "$set": {
                    "interval": interval,
                    "category": category,
                    "expiration": expiration,
                    "date_updated": now,
                },
                "$setOnInsert": {"_id": new_id(), "date_created": now},
            },
            upsert=True,
        )
        return self.find_by_uin(uin)

    def find_by_uin(self, uin: str) -> UINOverride:
        document = self.collection.find_one({"uin": uin})
        if document is None:
            raise NotFoundError(self.kind, uin)
        return self._to_entity(document)

    def find_active(self, uin: str) -> Optional[UINOverride]:
        """The override for a UIN unless it has expired. No expiration means it never does."""
        document = self.collection.find_one({
            "uin": uin,
            "$or": [{"expiration": None}, {"expiration": {"$gt": utcnow()}}],
        })
        return self._to_entity(document) if document is not None else None

    def find_by(self, uin: Optional[str] = None, sort_by: Optional[str] = None) -> List[UINOverride]:
        query = {"uin": uin} if uin else {}
        sort = [(sort_by, ASCENDING)] if sort_by else None
        return self.find_many(query, sort=sort)

    def update_by_uin(
        self,
        uin: str,
        interval: int,
        category: Optional[str] = None,
        expiration: Optional[datetime] = None,
    ) -> UINOverride:
        result = self.collection.update_one(
            {"uin": uin},
            {"$set": {
                "interval": interval,
                "category": category,
                "expiration": expiration,
                "date_updated": utcnow(),
            }},
        )
        if result.matched_count == 0:
            raise NotFoundError(self.kind, uin)
        return self.find_by_uin(uin)

    def delete_by_uin(self, uin: str, session: Optional[ClientSession] = None) -> int:
        return self.collection.delete_many({"uin": uin}, session=session).deleted_count


class AppVersionRepository(MongoEntityRepository[AppVersion]):
    collection_name = Collections.APP_VERSIONS
    model = AppVersion
    kind = "app version"

    def find_all(self, session: Optional[ClientSession] = None) -> List[AppVersion]:
        """Latest version first, comparing numeric components."""
        versions = self.find_many({}, session=session)
        return sorted(versions, key=lambda v: v.sort_key(), reverse=True)

    def create_version(self, version: str) -> AppVersion:
        """
        Raises:
            DuplicateKeyError: If the version is already registered
        """
        return self.create(AppVersion(version=version))

    def seed_defaults(self, versions=DEFAULT_APP_VERSIONS) -> int:
        """
        Insert the default versions when the collection is empty.

        Returns:
            Number of versions inserted
        """
        if self.collection.count_documents({}) > 0:
            return 0
        now = utcnow()
        documents = [
            AppVersion(version=version, date_created=now).to_dict() for version in versions
        ]
        self.collection.insert_many(documents)
        logger.info(f"Seeded app versions: {', '.join(versions)}")
        return len(documents)


class FAQRepository:
    """The FAQ is one document, replaced as a whole."""

    kind = "faq"

    def __init__(self, database: DatabaseClient):
        self._database = database

    @property
    def collection(self) -> CollectionHandle:
        return self._database.collection(Collections.FAQ)

    def read(self, session: Optional[ClientSession] = None) -> FAQ:
        """
        Raises:
            NotFoundError: If no FAQ has been saved yet
        """
        document = self.collection.find_one({}, session=session)
        if document is None:
            raise NotFoundError(self.kind, "faq", "no faq data")
        faq = FAQ.from_dict(document)
        faq.sort()
        return faq

    def save(self, faq: FAQ, session: Optional[ClientSession] = None) -> FAQ:
        faq.date_updated = utcnow()
        self.collection.replace_one({}, faq.to_dict(), upsert=True, session=session)
        return faq


class ConfigRepository:
    """Named configuration documents. Only the covid19 config is used."""

    kind = "config"

    def __init__(self, database: DatabaseClient):
        self._database = database

    @property
    def collection(self) -> CollectionHandle:
        return self._database.collection(Collections.CONFIGS)

    def read_covid19(self) -> Covid19Config:
        """
        Raises:
            NotFoundError: If no covid19 config exists
            ValidationError: If more than one covid19 config exists
        """
        documents = self.collection.find({"name": COVID19_CONFIG_NAME})
        if not documents:
            raise NotFoundError(self.kind, COVID19_CONFIG_NAME, "no covid19 config found")
        if len(documents) > 1:
            raise ValidationError("more than 1 covid19 configs were found")
        document = dict(documents[0])
        document.pop("_id", None)
        return Covid19Config.from_dict(document)

    def save_covid19(self, config: Covid19Config) -> None:
        self.collection.replace_one({"name": config.name}, config.to_dict(), upsert=True)
